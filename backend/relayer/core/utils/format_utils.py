from decimal import Decimal
from typing import Optional


def _tail(address: str, n: int = 6) -> str:
    """Return the last n characters of an address (for concise logs)."""
    addr = address or ""
    return addr[-n:] if len(addr) >= n else addr


def _format_units(amount: Optional[int], decimals: int) -> str:
    """Render integer base units as a human amount, or 'NA' if missing."""
    if amount is None:
        return "NA"
    return f"{Decimal(amount).scaleb(-decimals):f}"
