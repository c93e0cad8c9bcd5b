from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict

from relayer.persistence.models import TransactionRecord


def _iso(dt: Optional[datetime]) -> Optional[str]:
    """
    Convert a datetime to an ISO 8601 string in the system local timezone.
    Returns None when the input is None.
    """
    if dt is None:
        return None
    return dt.astimezone().isoformat()


class TransactionPayload(TypedDict, total=False):
    id: str
    fromAddress: str
    toAddress: str
    amount: int
    coin: str
    gasUnits: int
    gasPrice: int
    totalGasFee: int
    price: float
    stableFee: int
    sponsorFee: int
    treasuryFee: int
    totalFee: int
    status: str
    hash: Optional[str]
    gasUsed: Optional[int]
    errorMessage: Optional[str]
    createdAt: Optional[str]
    updatedAt: Optional[str]


def serialize_transaction(record: TransactionRecord) -> TransactionPayload:
    return {
        "id": record.id,
        "fromAddress": record.from_address,
        "toAddress": record.to_address,
        "amount": int(record.amount),
        "coin": record.coin,
        "gasUnits": int(record.gas_units),
        "gasPrice": int(record.gas_price),
        "totalGasFee": int(record.total_gas_fee),
        "price": float(record.price),
        "stableFee": int(record.stable_fee),
        "sponsorFee": int(record.sponsor_fee),
        "treasuryFee": int(record.treasury_fee),
        "totalFee": int(record.total_fee),
        "status": record.status.value,
        "hash": record.hash,
        "gasUsed": record.gas_used,
        "errorMessage": record.error_message,
        "createdAt": _iso(record.created_at),
        "updatedAt": _iso(record.updated_at),
    }
