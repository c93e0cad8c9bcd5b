from __future__ import annotations

from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from relayer.core.errors import PersistenceError
from relayer.core.structures.structures import TransactionStatus
from relayer.logging.logger import get_logger
from relayer.persistence.models import TransactionRecord

log = get_logger(__name__)


def _get_or_fail(db: Session, transaction_id: str) -> TransactionRecord:
    record = db.get(TransactionRecord, transaction_id)
    if record is None:
        raise PersistenceError(f"Transaction {transaction_id} not found")
    return record


def insert_pending(db: Session, record: TransactionRecord) -> TransactionRecord:
    record.status = TransactionStatus.PENDING
    record.hash = None
    db.add(record)
    db.flush()
    log.debug("[DAO][TX][INSERT] id=%s", record.id)
    return record


def set_hash(db: Session, transaction_id: str, tx_hash: str) -> TransactionRecord:
    """Attach the chain hash; a hash is written at most once."""
    record = _get_or_fail(db, transaction_id)
    if record.hash is not None and record.hash != tx_hash:
        raise PersistenceError(f"Transaction {transaction_id} already has hash {record.hash}")
    record.hash = tx_hash
    db.flush()
    return record


def set_terminal(
        db: Session,
        transaction_id: str,
        status: TransactionStatus,
        error_message: Optional[str] = None,
        gas_used: Optional[int] = None,
) -> TransactionRecord:
    """
    Move a record from pending to success/failed.

    Re-applying the same terminal status is a no-op; any other transition is rejected.
    """
    if status is TransactionStatus.PENDING:
        raise PersistenceError("pending is not a terminal status")
    record = _get_or_fail(db, transaction_id)
    if record.status is status:
        return record
    if record.status is not TransactionStatus.PENDING:
        raise PersistenceError(
            f"Transaction {transaction_id} is already {record.status.value}; cannot become {status.value}"
        )
    record.status = status
    record.error_message = error_message
    if gas_used is not None:
        record.gas_used = gas_used
    db.flush()
    return record


def get_by_hash(db: Session, tx_hash: str) -> Optional[TransactionRecord]:
    return db.execute(select(TransactionRecord).where(TransactionRecord.hash == tx_hash)).scalars().first()


def count_by_status(db: Session) -> Dict[TransactionStatus, int]:
    rows = db.execute(
        select(TransactionRecord.status, func.count(TransactionRecord.id)).group_by(TransactionRecord.status)
    ).all()
    counts = {status: 0 for status in TransactionStatus}
    for status, count in rows:
        counts[status] = int(count)
    return counts


def collected_fees(db: Session) -> Dict[str, int]:
    """Fee totals over successful transfers only."""
    row = db.execute(
        select(
            func.coalesce(func.sum(TransactionRecord.total_fee), 0),
            func.coalesce(func.sum(TransactionRecord.sponsor_fee), 0),
            func.coalesce(func.sum(TransactionRecord.treasury_fee), 0),
            func.coalesce(func.sum(TransactionRecord.amount), 0),
        ).where(TransactionRecord.status == TransactionStatus.SUCCESS)
    ).one()
    return {
        "totalFees": int(row[0]),
        "sponsorFees": int(row[1]),
        "treasuryFees": int(row[2]),
        "totalVolume": int(row[3]),
    }
