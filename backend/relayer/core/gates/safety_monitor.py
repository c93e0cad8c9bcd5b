from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, Optional, Tuple

from relayer.configuration.config import settings
from relayer.core.structures.structures import Admission, Reservation
from relayer.core.utils.date_utils import utc_day, utc_now
from relayer.core.utils.format_utils import _tail
from relayer.logging.logger import get_logger

log = get_logger(__name__)

GLOBAL_SCOPE = "*"
WARNING_UTILIZATION = 0.8

CounterKey = Tuple[str, date]


@dataclass(frozen=True)
class SafetyLimits:
    """Caps in stable-token base units."""
    max_single_transaction: int
    max_address_daily: int
    max_global_daily: int


@dataclass(frozen=True)
class DayUsage:
    confirmed: int
    pending: int

    @property
    def total(self) -> int:
        return self.confirmed + self.pending


class DailyCounterStore:
    """
    In-memory day counters for one process, keyed by (scope, UTC day).

    Each scope tracks confirmed usage and in-flight reservations. All reads
    and writes go through one lock so a check-and-reserve is atomic for both
    asyncio tasks and threads. Days other than the current one are pruned
    lazily on the next reservation.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._confirmed: Dict[CounterKey, int] = {}
        self._pending: Dict[CounterKey, int] = {}
        self._reservations: Dict[str, Reservation] = {}

    def _usage(self, key: CounterKey) -> DayUsage:
        return DayUsage(confirmed=self._confirmed.get(key, 0), pending=self._pending.get(key, 0))

    def _prune(self, today: date) -> None:
        for table in (self._confirmed, self._pending):
            for key in [k for k in table if k[1] != today]:
                del table[key]
        for reservation_id in [r for r, res in self._reservations.items() if res.day != today]:
            del self._reservations[reservation_id]

    def try_reserve(self, address: str, amount: int, day: date, limits: SafetyLimits) -> Admission:
        with self._lock:
            self._prune(day)

            address_usage = self._usage((address, day)).total
            if address_usage + amount > limits.max_address_daily:
                return Admission(allowed=False, limit="address-daily", usage=address_usage,
                                 cap=limits.max_address_daily)

            global_usage = self._usage((GLOBAL_SCOPE, day)).total
            if global_usage + amount > limits.max_global_daily:
                return Admission(allowed=False, limit="global-daily", usage=global_usage,
                                 cap=limits.max_global_daily)

            reservation = Reservation(reservation_id=uuid.uuid4().hex, address=address, amount=amount, day=day)
            for scope in (address, GLOBAL_SCOPE):
                self._pending[(scope, day)] = self._pending.get((scope, day), 0) + amount
            self._reservations[reservation.reservation_id] = reservation
            return Admission(allowed=True, reservation=reservation, usage=address_usage,
                             cap=limits.max_address_daily)

    def _take(self, reservation: Reservation) -> bool:
        """Remove a live reservation from the pending tables (caller holds the lock)."""
        if self._reservations.pop(reservation.reservation_id, None) is None:
            return False
        for scope in (reservation.address, GLOBAL_SCOPE):
            key = (scope, reservation.day)
            remaining = self._pending.get(key, 0) - reservation.amount
            if remaining > 0:
                self._pending[key] = remaining
            else:
                self._pending.pop(key, None)
        return True

    def commit(self, reservation: Reservation) -> bool:
        with self._lock:
            if not self._take(reservation):
                return False
            for scope in (reservation.address, GLOBAL_SCOPE):
                key = (scope, reservation.day)
                self._confirmed[key] = self._confirmed.get(key, 0) + reservation.amount
            return True

    def release(self, reservation: Reservation) -> bool:
        with self._lock:
            return self._take(reservation)

    def usage(self, scope: str, day: date) -> DayUsage:
        with self._lock:
            return self._usage((scope, day))

    def tracked_addresses(self, day: date) -> int:
        with self._lock:
            scopes = {k[0] for k in list(self._confirmed) + list(self._pending) if k[1] == day}
            scopes.discard(GLOBAL_SCOPE)
            return len(scopes)


class SafetyMonitor:
    """
    Abuse limits on sponsored volume: per transaction, per address per day, global per day.

    `admit` reserves the amount up front; the caller must later `record` it
    (confirmed on-chain) or `release` it (failed or abandoned).
    """

    def __init__(
            self,
            limits: SafetyLimits,
            store: Optional[DailyCounterStore] = None,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.limits = limits
        self.store = store or DailyCounterStore()
        self.clock = clock

    def admit(self, address: str, amount: int) -> Admission:
        if amount > self.limits.max_single_transaction:
            log.warning("[SAFETY][DENY] single-transaction amount=%d cap=%d from=…%s",
                        amount, self.limits.max_single_transaction, _tail(address))
            return Admission(allowed=False, limit="single-transaction", usage=amount,
                             cap=self.limits.max_single_transaction)

        admission = self.store.try_reserve(address, amount, utc_day(self.clock()), self.limits)
        if admission.allowed:
            log.debug("[SAFETY][RESERVE] amount=%d from=…%s", amount, _tail(address))
        else:
            log.warning("[SAFETY][DENY] %s usage=%d amount=%d cap=%d from=…%s",
                        admission.limit, admission.usage, amount, admission.cap, _tail(address))
        return admission

    def record(self, reservation: Reservation) -> None:
        if not self.store.commit(reservation):
            log.debug("[SAFETY][RECORD] reservation %s already settled", reservation.reservation_id)
            return

        global_usage = self.store.usage(GLOBAL_SCOPE, reservation.day).confirmed
        log.info("[SAFETY][RECORD] amount=%d from=…%s global=%d/%d",
                 reservation.amount, _tail(reservation.address), global_usage, self.limits.max_global_daily)
        if global_usage > self.limits.max_global_daily * WARNING_UTILIZATION:
            log.warning("[SAFETY][WARN] Approaching global daily cap: %d/%d (%.1f%%)",
                        global_usage, self.limits.max_global_daily,
                        global_usage / self.limits.max_global_daily * 100)

    def release(self, reservation: Reservation) -> None:
        if self.store.release(reservation):
            log.debug("[SAFETY][RELEASE] amount=%d from=…%s", reservation.amount, _tail(reservation.address))

    def stats(self) -> Dict[str, object]:
        day = utc_day(self.clock())
        usage = self.store.usage(GLOBAL_SCOPE, day)
        utilization = usage.total / self.limits.max_global_daily * 100 if self.limits.max_global_daily else 0.0
        return {
            "limits": {
                "maxSingleTransaction": self.limits.max_single_transaction,
                "maxAddressDaily": self.limits.max_address_daily,
                "maxGlobalDaily": self.limits.max_global_daily,
            },
            "currentUsage": {
                "date": day.isoformat(),
                "globalConfirmed": usage.confirmed,
                "globalPending": usage.pending,
                "globalRemaining": max(0, self.limits.max_global_daily - usage.total),
                "utilizationPercentage": round(utilization, 2),
                "trackedAddresses": self.store.tracked_addresses(day),
                "status": "warning" if utilization > WARNING_UTILIZATION * 100 else "normal",
            },
        }


def build_default_safety_monitor() -> SafetyMonitor:
    """Factory using Settings for convenience."""
    limits = SafetyLimits(
        max_single_transaction=settings.MAX_SINGLE_TRANSACTION_AMOUNT,
        max_address_daily=settings.MAX_ADDRESS_DAILY_AMOUNT,
        max_global_daily=settings.MAX_GLOBAL_DAILY_AMOUNT,
    )
    return SafetyMonitor(limits)
