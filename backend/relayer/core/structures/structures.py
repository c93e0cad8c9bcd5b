from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey
from solders.signature import Signature

from relayer.core.utils.format_utils import _tail


class TransactionStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PriceSource(Enum):
    ORACLE = "oracle"
    CACHE = "cache"
    STALE_CACHE = "stale-cache"
    FIXED = "fixed"


@dataclass(frozen=True)
class PriceSample:
    """Native token price in stable units, with where it came from."""
    price: Decimal
    fetched_at: datetime
    source: PriceSource
    publish_time: Optional[datetime] = None


@dataclass(frozen=True)
class GasEstimate:
    """
    Compute budget for the sponsored transfer.

    units:          compute-unit limit (already buffered)
    unit_price:     priority price in micro-lamports per compute unit
    signature_fee:  fixed lamports charged for the transaction's signatures
    """
    units: int
    unit_price: int
    signature_fee: int
    degraded: bool = False
    simulated_units: Optional[int] = None


@dataclass(frozen=True)
class FeeConfig:
    markup_percent: Decimal
    fee_fraction: Decimal
    min_absolute_fee: int
    decimals: int
    treasury_share_percent: Decimal
    treasury_enabled: bool


@dataclass(frozen=True)
class FeeBreakdown:
    """Every intermediate of the hybrid fee rule, in lamports or stable base units."""
    gas_cost_lamports: int
    gas_cost_stable: Decimal
    oracle_fee: int
    percentage_fee: int
    final_fee: int
    winner: str
    sponsor_fee: int
    treasury_fee: int
    price: Decimal

    def to_plain_dict(self) -> Dict[str, Any]:
        return {
            "gasCostLamports": self.gas_cost_lamports,
            "gasCostStable": str(self.gas_cost_stable),
            "oracleFee": self.oracle_fee,
            "percentageFee": self.percentage_fee,
            "finalFee": self.final_fee,
            "winner": self.winner,
            "sponsorFee": self.sponsor_fee,
            "treasuryFee": self.treasury_fee,
            "price": str(self.price),
        }


@dataclass(frozen=True)
class TransferIntent:
    sender: str
    recipient: str
    amount: int
    coin: str

    def __str__(self) -> str:
        return (f"[from=…{_tail(self.sender)} "
                f"to=…{_tail(self.recipient)} "
                f"amount={self.amount} "
                f"coin=…{_tail(self.coin)}]")


@dataclass
class Quote:
    quote_id: str
    intent: TransferIntent
    gas: GasEstimate
    fee: FeeBreakdown
    price: PriceSample
    blockhash: str
    message_bytes: bytes
    fee_payer: str
    issued_at: datetime
    expires_at: datetime
    decline_reason: Optional[str] = None

    @property
    def declined(self) -> bool:
        return self.decline_reason is not None


@dataclass(frozen=True)
class WalletSignature:
    """Raw wallet signature material as decoded from the request; both parts are required."""
    signature: bytes
    public_key: bytes


@dataclass(frozen=True)
class SponsorshipRequest:
    intent: TransferIntent
    signature: WalletSignature
    quote_id: Optional[str] = None
    client_fee: Optional[int] = None


@dataclass(frozen=True)
class SenderAuthenticator:
    public_key: Pubkey
    signature: Signature


@dataclass(frozen=True)
class SubmissionResult:
    hash: str
    status: TransactionStatus
    gas_used: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Reservation:
    """Amount held against both day counters until recorded or released."""
    reservation_id: str
    address: str
    amount: int
    day: date


@dataclass(frozen=True)
class Admission:
    allowed: bool
    reservation: Optional[Reservation] = None
    limit: Optional[str] = None
    usage: int = 0
    cap: int = 0


@dataclass
class SponsorshipOutcome:
    """What the orchestrator hands back to the API after a submission."""
    transaction_id: str
    hash: str
    status: TransactionStatus
    fee: int
    gas_used: Optional[int] = None
    error: Optional[str] = None
