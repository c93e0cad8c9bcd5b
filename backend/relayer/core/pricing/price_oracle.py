from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from relayer.configuration.config import settings
from relayer.core.structures.structures import PriceSample, PriceSource
from relayer.core.utils.amount_utils import _dec
from relayer.core.utils.date_utils import utc_now
from relayer.integrations.pyth.pyth_client import PythClient
from relayer.logging.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class PriceOracleConfig:
    feed_id: str
    high_value_threshold: int
    fallback_price: Decimal
    cache_ttl_seconds: int
    max_staleness_seconds: int
    timeout_seconds: float


class PriceOracle:
    """
    Native-token price in stable units (e.g. USDC per SOL).

    - Transfers below the high-value threshold get the fixed conservative price (no feed call).
    - Otherwise: fresh cache → live Pyth feed → stale cache → fixed price.
    Never raises to the caller.
    """

    def __init__(
            self,
            config: PriceOracleConfig,
            feed: PythClient,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.feed = feed
        self.clock = clock
        self._cached: Optional[PriceSample] = None

    def _fixed(self) -> PriceSample:
        return PriceSample(price=self.config.fallback_price, fetched_at=self.clock(), source=PriceSource.FIXED)

    def _cache_age_seconds(self, now: datetime) -> Optional[float]:
        if self._cached is None:
            return None
        return (now - self._cached.fetched_at).total_seconds()

    async def get_price(self, notional_amount: Optional[int] = None) -> PriceSample:
        if notional_amount is not None and notional_amount < self.config.high_value_threshold:
            log.debug("[ORACLE][FIXED] notional=%d below threshold=%d, using fixed price %s",
                      notional_amount, self.config.high_value_threshold, self.config.fallback_price)
            return self._fixed()

        now = self.clock()
        age = self._cache_age_seconds(now)
        if self._cached is not None and age is not None and age < self.config.cache_ttl_seconds:
            log.debug("[ORACLE][CACHE] hit age=%.1fs price=%s", age, self._cached.price)
            return PriceSample(
                price=self._cached.price,
                fetched_at=self._cached.fetched_at,
                source=PriceSource.CACHE,
                publish_time=self._cached.publish_time,
            )

        try:
            point = await asyncio.wait_for(
                self.feed.fetch_latest_price(self.config.feed_id),
                timeout=self.config.timeout_seconds,
            )
        except Exception as exc:
            return self._degraded(exc)

        fetched_at = self.clock()
        lag = (fetched_at - point.publish_time).total_seconds()
        if lag > self.config.max_staleness_seconds:
            log.warning("[ORACLE][STALE] Feed publish time is %.0fs old (max=%ds); using it anyway",
                        lag, self.config.max_staleness_seconds)

        sample = PriceSample(
            price=point.value,
            fetched_at=fetched_at,
            source=PriceSource.ORACLE,
            publish_time=point.publish_time,
        )
        self._cached = sample
        log.info("[ORACLE][FETCH] price=%s publish_lag=%.0fs", sample.price, lag)
        return sample

    def _degraded(self, exc: BaseException) -> PriceSample:
        if self._cached is not None:
            log.warning("[ORACLE][DEGRADED] Feed unavailable (%s); serving cached price %s from %s",
                        exc.__class__.__name__, self._cached.price, self._cached.fetched_at.isoformat())
            return PriceSample(
                price=self._cached.price,
                fetched_at=self._cached.fetched_at,
                source=PriceSource.STALE_CACHE,
                publish_time=self._cached.publish_time,
            )
        log.warning("[ORACLE][DEGRADED] Feed unavailable (%s) and no cached price; using fixed price %s",
                    exc.__class__.__name__, self.config.fallback_price)
        return self._fixed()

    async def close(self) -> None:
        await self.feed.aclose()


def build_default_price_oracle() -> PriceOracle:
    """Factory using Settings for convenience."""
    config = PriceOracleConfig(
        feed_id=settings.PYTH_NATIVE_PRICE_FEED_ID,
        high_value_threshold=settings.ORACLE_HIGH_VALUE_THRESHOLD,
        fallback_price=_dec(settings.FALLBACK_NATIVE_PRICE),
        cache_ttl_seconds=settings.PRICE_CACHE_TTL_SECONDS,
        max_staleness_seconds=settings.PRICE_MAX_STALENESS_SECONDS,
        timeout_seconds=settings.ORACLE_TIMEOUT_SECONDS,
    )
    feed = PythClient(settings.PYTH_HERMES_URL, settings.ORACLE_TIMEOUT_SECONDS)
    return PriceOracle(config, feed)
