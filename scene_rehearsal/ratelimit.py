"""Free-tier quota for speech synthesis: a sliding window per client."""

import logging
import time

from scene_rehearsal.constants import (
    FREE_DAILY_LIMIT,
    FREE_CHAR_LIMIT,
    QUOTA_WINDOW_SECONDS,
    QUOTA_KEY,
)
from scene_rehearsal.models import QuotaDecision, QuotaStatus

logger = logging.getLogger(__name__)


class QuotaService:
    """Counts synthesis requests per client over the last window_seconds.

    Request timestamps are kept per client id. When a store is given the
    ledger is persisted there, so the quota holds across separate runs, and
    clients idle for a whole window are dropped each time it is loaded.
    """

    def __init__(
        self,
        limit: int = FREE_DAILY_LIMIT,
        window_seconds: float = QUOTA_WINDOW_SECONDS,
        store=None,
        clock=time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.store = store
        self.clock = clock
        self._ledger = {}
        if store is not None:
            saved = store.load(QUOTA_KEY, {})
            if isinstance(saved, dict):
                self._ledger = {k: [float(t) for t in v] for k, v in saved.items() if isinstance(v, list)}
            self.cleanup()

    def _recent(self, client_id: str) -> list[float]:
        cutoff = self.clock() - self.window_seconds
        recent = [t for t in self._ledger.get(client_id, []) if t > cutoff]
        self._ledger[client_id] = recent
        return recent

    def _reset_time(self, recent: list[float]) -> float:
        if recent:
            return recent[0] + self.window_seconds
        return self.clock() + self.window_seconds

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(QUOTA_KEY, self._ledger)

    def check_and_increment(self, client_id: str) -> QuotaDecision:
        """Record one request if the client is under the limit."""
        recent = self._recent(client_id)
        if len(recent) >= self.limit:
            logger.info("Quota exhausted for %s", client_id)
            return QuotaDecision(allowed=False, remaining=0, reset_time=self._reset_time(recent))

        recent.append(self.clock())
        self._persist()
        return QuotaDecision(
            allowed=True,
            remaining=self.limit - len(recent),
            reset_time=self._reset_time(recent),
        )

    def get_status(self, client_id: str, has_api_key: bool = False) -> QuotaStatus:
        """Current quota without counting a request."""
        if has_api_key:
            return QuotaStatus(tier="unlimited", remaining=float("inf"), limit=float("inf"), reset_time=None)

        recent = self._recent(client_id)
        return QuotaStatus(
            tier="free",
            remaining=max(0, self.limit - len(recent)),
            limit=self.limit,
            reset_time=self._reset_time(recent),
            character_limit=FREE_CHAR_LIMIT,
        )

    def cleanup(self) -> int:
        """Drop clients with no requests inside the window. Returns how many."""
        expired = [client_id for client_id in list(self._ledger) if not self._recent(client_id)]
        for client_id in expired:
            del self._ledger[client_id]
        if expired:
            self._persist()
        return len(expired)
