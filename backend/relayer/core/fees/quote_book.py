from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Dict, Optional

from relayer.core.errors import ValidationError
from relayer.core.structures.structures import Quote, TransferIntent
from relayer.core.utils.date_utils import utc_now
from relayer.logging.logger import get_logger

log = get_logger(__name__)


class QuoteBook:
    """
    Server-held copy of every issued quote until it expires.

    A submission is only accepted against a live entry here, so the fee,
    gas budget and blockhash always come from what the server itself issued.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock
        self._lock = threading.Lock()
        self._quotes: Dict[str, Quote] = {}

    def _prune(self, now: datetime) -> None:
        for quote_id in [q for q, quote in self._quotes.items() if quote.expires_at <= now]:
            del self._quotes[quote_id]

    def put(self, quote: Quote) -> None:
        if quote.declined:
            return
        with self._lock:
            self._prune(self.clock())
            self._quotes[quote.quote_id] = quote

    def claim(self, intent: TransferIntent, quote_id: Optional[str] = None) -> Quote:
        """
        Remove and return the live quote for a submission.

        With a quote id the stored intent must match the submitted one exactly;
        without one, the most recent live quote for the same intent is used.
        A claimed quote cannot be claimed again until it is restored.
        """
        with self._lock:
            self._prune(self.clock())
            if quote_id:
                quote = self._quotes.get(quote_id)
                if quote is None:
                    raise ValidationError("Quote is unknown or expired; request a new quote", reason="quote-expired")
                if quote.intent != intent:
                    log.warning("[QUOTE][MISMATCH] quote=%s issued=%s submitted=%s", quote_id, quote.intent, intent)
                    raise ValidationError("Submission does not match the quoted transfer", reason="quote-mismatch")
                return self._quotes.pop(quote_id)

            matches = [q for q in self._quotes.values() if q.intent == intent]
            if not matches:
                raise ValidationError("No live quote for this transfer; request a new quote", reason="quote-expired")
            return self._quotes.pop(max(matches, key=lambda q: q.issued_at).quote_id)

    def restore(self, quote: Quote) -> None:
        """Return a claimed quote that was never broadcast; expired ones are dropped."""
        with self._lock:
            now = self.clock()
            self._prune(now)
            if quote.expires_at > now:
                self._quotes.setdefault(quote.quote_id, quote)
