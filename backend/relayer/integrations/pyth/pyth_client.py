from __future__ import annotations

from typing import Optional

import httpx

from relayer.integrations.pyth.pyth_structures import PythPrice, _normalize_feed_id, parse_latest_updates
from relayer.logging.logger import get_logger

log = get_logger(__name__)

LATEST_PRICE_PATH = "/v2/updates/price/latest"


class PythClient:
    """
    Minimal async client for the Pyth Hermes price service.

    The underlying httpx.AsyncClient is created lazily and reused; call `aclose()` on shutdown.
    """

    def __init__(self, base_url: str, timeout_seconds: float, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 3.0))
        self._client = http_client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def fetch_latest_price(self, feed_id: str) -> PythPrice:
        """
        Fetch the latest parsed price for one feed.

        Raises:
            httpx.HTTPStatusError on non-2xx responses.
            httpx.RequestError on connection/timeout errors.
            ValueError when the payload does not contain the requested feed.
        """
        url = f"{self.base_url}{LATEST_PRICE_PATH}"
        params = {"ids[]": feed_id, "parsed": "true"}
        try:
            response = await self._http().get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            log.warning(
                "[PYTH][HTTP] GET fails: url=%s status=%s",
                url,
                exc.response.status_code if exc.response is not None else "n/a",
            )
            raise
        except httpx.RequestError as exc:
            log.warning("[PYTH][HTTP] GET request error: url=%s error=%s", url, str(exc))
            raise

        wanted = _normalize_feed_id(feed_id)
        for update in parse_latest_updates(payload):
            if update.feed_id == wanted:
                log.debug("[PYTH][PRICE] feed=%s price=%s publish_time=%s",
                          wanted[:8], update.price.value, update.price.publish_time.isoformat())
                return update.price

        raise ValueError(f"Pyth response has no parsed price for feed {wanted}")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
