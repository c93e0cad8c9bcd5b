from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

from relayer.configuration.config import settings
from relayer.core.structures.structures import FeeBreakdown, GasEstimate, TransactionStatus, TransferIntent
from relayer.logging.logger import get_logger
from relayer.persistence.dao import transactions as dao
from relayer.persistence.db import _session, init_db
from relayer.persistence.models import TransactionRecord
from relayer.persistence.serializers import TransactionPayload, serialize_transaction

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LedgerResult(Generic[T]):
    """Outcome of a best-effort ledger write or read; never drives the sponsorship flow."""
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PendingTransaction:
    transaction_id: str
    intent: TransferIntent
    gas: GasEstimate
    fee: FeeBreakdown


class TransactionLedger:
    """
    Async facade over the transactions DAO.

    Every call runs its session in a worker thread and absorbs any failure
    (logged at ERROR), returning a LedgerResult instead of raising.
    """

    async def _run(self, label: str, fn: Callable[[], T]) -> LedgerResult[T]:
        try:
            value = await asyncio.to_thread(fn)
        except Exception as exc:
            log.error("[LEDGER][%s] failed: %s", label, exc, exc_info=True)
            return LedgerResult(ok=False, error=str(exc))
        return LedgerResult(ok=True, value=value)

    def initialize(self) -> None:
        try:
            init_db()
        except Exception as exc:
            log.error("[LEDGER][INIT] Database unavailable, transactions will not be tracked: %s", exc)

    async def create_pending(self, pending: PendingTransaction) -> LedgerResult[str]:
        def _write() -> str:
            record = TransactionRecord(
                id=pending.transaction_id,
                from_address=pending.intent.sender,
                to_address=pending.intent.recipient,
                amount=pending.intent.amount,
                coin=pending.intent.coin,
                gas_units=pending.gas.units,
                gas_price=pending.gas.unit_price,
                total_gas_fee=pending.fee.gas_cost_lamports,
                price=float(pending.fee.price),
                stable_fee=pending.fee.oracle_fee,
                sponsor_fee=pending.fee.sponsor_fee,
                treasury_fee=pending.fee.treasury_fee,
                total_fee=pending.fee.final_fee,
            )
            with _session() as db:
                return dao.insert_pending(db, record).id

        result = await self._run("CREATE", _write)
        if result.ok:
            log.debug("[LEDGER][CREATE] id=%s", result.value)
        return result

    async def mark_submitted(self, transaction_id: str, tx_hash: str) -> LedgerResult[None]:
        def _write() -> None:
            with _session() as db:
                dao.set_hash(db, transaction_id, tx_hash)

        return await self._run("SUBMITTED", _write)

    async def mark_terminal(
            self,
            transaction_id: str,
            status: TransactionStatus,
            error_message: Optional[str] = None,
            gas_used: Optional[int] = None,
    ) -> LedgerResult[None]:
        def _write() -> None:
            with _session() as db:
                dao.set_terminal(db, transaction_id, status, error_message, gas_used)

        result = await self._run("TERMINAL", _write)
        if result.ok:
            log.info("[LEDGER][TERMINAL] id=%s status=%s", transaction_id, status.value)
        return result

    async def find_by_hash(self, tx_hash: str) -> LedgerResult[Optional[TransactionPayload]]:
        def _read() -> Optional[TransactionPayload]:
            with _session() as db:
                record = dao.get_by_hash(db, tx_hash)
                return serialize_transaction(record) if record is not None else None

        return await self._run("FIND", _read)

    async def stats(self) -> LedgerResult[Dict[str, object]]:
        def _read() -> Dict[str, object]:
            with _session() as db:
                counts = dao.count_by_status(db)
                fees = dao.collected_fees(db)
            return {
                "totalTransactions": sum(counts.values()),
                "successfulTransactions": counts[TransactionStatus.SUCCESS],
                "failedTransactions": counts[TransactionStatus.FAILED],
                "pendingTransactions": counts[TransactionStatus.PENDING],
                **fees,
            }

        return await self._run("STATS", _read)


def build_default_ledger() -> Optional[TransactionLedger]:
    """Factory using Settings; None when the ledger is disabled."""
    if not settings.LEDGER_ENABLED:
        log.info("[LEDGER] Disabled by configuration; transactions will not be tracked")
        return None
    ledger = TransactionLedger()
    ledger.initialize()
    return ledger
