"""
backend/tests/test_safety_monitor.py

Purpose:
    Daily volume caps with atomic check-and-reserve, record/release of
    reservations, UTC day rollover and the stats snapshot.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from relayer.core.gates.safety_monitor import GLOBAL_SCOPE, SafetyLimits, SafetyMonitor

LIMITS = SafetyLimits(max_single_transaction=50, max_address_daily=100, max_global_daily=1000)


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 23, 59, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def test_single_transaction_cap_denies_without_reserving():
    monitor = SafetyMonitor(LIMITS)

    admission = monitor.admit("alice", 51)

    assert admission.allowed is False
    assert admission.limit == "single-transaction"
    assert admission.cap == 50
    assert monitor.stats()["currentUsage"]["globalPending"] == 0


def test_address_cap_reports_limit_and_usage():
    monitor = SafetyMonitor(LIMITS)
    for _ in range(2):
        monitor.record(monitor.admit("alice", 50).reservation)

    denied = monitor.admit("alice", 1)

    assert denied.allowed is False
    assert denied.limit == "address-daily"
    assert denied.usage == 100
    assert denied.cap == 100
    assert monitor.admit("bob", 50).allowed is True


def test_global_cap_applies_across_addresses():
    monitor = SafetyMonitor(SafetyLimits(max_single_transaction=50, max_address_daily=100, max_global_daily=120))
    monitor.admit("alice", 50)
    monitor.admit("bob", 50)

    denied = monitor.admit("carol", 50)

    assert denied.limit == "global-daily"
    assert denied.usage == 100


def test_concurrent_threads_never_exceed_address_cap():
    clock = _Clock()
    monitor = SafetyMonitor(LIMITS, clock=clock)

    with ThreadPoolExecutor(max_workers=16) as pool:
        admissions = list(pool.map(lambda _: monitor.admit("alice", 10), range(40)))

    assert sum(1 for a in admissions if a.allowed) == 10
    assert monitor.store.usage("alice", clock.now.date()).total == 100


@pytest.mark.asyncio
async def test_concurrent_tasks_at_the_cap_admit_exactly_one():
    monitor = SafetyMonitor(LIMITS)
    monitor.record(monitor.admit("alice", 50).reservation)
    monitor.record(monitor.admit("alice", 40).reservation)

    async def attempt():
        await asyncio.sleep(0)
        return monitor.admit("alice", 10)

    results = await asyncio.gather(*(attempt() for _ in range(5)))

    assert sum(1 for r in results if r.allowed) == 1


def test_release_returns_capacity_and_record_commits():
    clock = _Clock()
    monitor = SafetyMonitor(LIMITS, clock=clock)
    day = clock.now.date()

    first = monitor.admit("alice", 50).reservation
    monitor.release(first)
    assert monitor.store.usage("alice", day).total == 0

    second = monitor.admit("alice", 50).reservation
    monitor.record(second)
    monitor.record(second)
    assert monitor.store.usage("alice", day).confirmed == 50
    assert monitor.store.usage(GLOBAL_SCOPE, day).confirmed == 50


def test_counters_reset_on_new_utc_day():
    clock = _Clock()
    monitor = SafetyMonitor(LIMITS, clock=clock)
    for _ in range(2):
        monitor.record(monitor.admit("alice", 50).reservation)
    assert monitor.admit("alice", 1).allowed is False

    clock.now += timedelta(minutes=2)

    assert monitor.admit("alice", 50).allowed is True
    assert monitor.stats()["currentUsage"]["date"] == "2026-03-02"


def test_warns_when_global_usage_passes_eighty_percent(caplog):
    monitor = SafetyMonitor(SafetyLimits(max_single_transaction=50, max_address_daily=100, max_global_daily=100))
    caplog.set_level(logging.WARNING, logger="relayer")

    monitor.record(monitor.admit("alice", 50).reservation)
    monitor.record(monitor.admit("bob", 35).reservation)

    assert any("[SAFETY][WARN]" in r.getMessage() for r in caplog.records)
    stats = monitor.stats()
    assert stats["currentUsage"]["status"] == "warning"
    assert stats["currentUsage"]["trackedAddresses"] == 2
    assert stats["limits"] == {"maxSingleTransaction": 50, "maxAddressDaily": 100, "maxGlobalDaily": 100}
