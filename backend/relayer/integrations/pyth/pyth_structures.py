from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from relayer.core.utils.date_utils import epoch_to_utc_datetime

JSON = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


def _to_int(value: JSON) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _normalize_feed_id(feed_id: str) -> str:
    text = (feed_id or "").strip().lower()
    return text[2:] if text.startswith("0x") else text


@dataclass(frozen=True)
class PythPrice:
    """
    A Pyth price point: the real price is `price * 10^expo`.
    """
    price: int
    conf: int
    expo: int
    publish_time: datetime

    @property
    def value(self) -> Decimal:
        return Decimal(self.price).scaleb(self.expo)

    @staticmethod
    def from_json(payload: Dict[str, JSON]) -> Optional["PythPrice"]:
        price = _to_int(payload.get("price"))
        expo = _to_int(payload.get("expo"))
        publish_time = _to_int(payload.get("publish_time"))
        if price is None or expo is None or publish_time is None:
            return None
        return PythPrice(
            price=price,
            conf=_to_int(payload.get("conf")) or 0,
            expo=expo,
            publish_time=epoch_to_utc_datetime(publish_time),
        )


@dataclass(frozen=True)
class PythPriceUpdate:
    feed_id: str
    price: PythPrice

    @staticmethod
    def from_json(payload: Dict[str, JSON]) -> Optional["PythPriceUpdate"]:
        raw_price = payload.get("price")
        if not isinstance(raw_price, dict):
            return None
        price = PythPrice.from_json(raw_price)
        if price is None:
            return None
        return PythPriceUpdate(feed_id=_normalize_feed_id(str(payload.get("id") or "")), price=price)


def parse_latest_updates(payload: JSON) -> List[PythPriceUpdate]:
    """Parse the `parsed` array of a Hermes /v2/updates/price/latest response."""
    if not isinstance(payload, dict):
        return []
    parsed = payload.get("parsed")
    if not isinstance(parsed, list):
        return []
    updates: List[PythPriceUpdate] = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        update = PythPriceUpdate.from_json(item)
        if update is not None:
            updates.append(update)
    return updates
