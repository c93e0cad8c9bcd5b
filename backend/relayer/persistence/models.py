from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Enum as SqlAlchemyEnum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from relayer.core.structures.structures import TransactionStatus
from relayer.core.utils.date_utils import timezone_now
from relayer.persistence.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class TransactionRecord(Base):
    """
    Audit trail of one sponsored transfer, from submission to its terminal chain status.
    Amounts and fees are stable-token base units; gas figures are lamports / compute units.
    """
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    from_address: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    to_address: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    coin: Mapped[str] = mapped_column(String(64), nullable=False)
    gas_units: Mapped[int] = mapped_column(Integer, nullable=False)
    gas_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_gas_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    stable_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sponsor_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    treasury_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SqlAlchemyEnum(TransactionStatus), index=True, nullable=False, default=TransactionStatus.PENDING
    )
    hash: Mapped[Optional[str]] = mapped_column(String(128), unique=True, nullable=True, default=None)
    gas_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(default=timezone_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=timezone_now, onupdate=timezone_now, nullable=False)

    def __repr__(self) -> str:
        return f"<TransactionRecord {self.id} {self.from_address[-6:]}→{self.to_address[-6:]} status={self.status}>"
