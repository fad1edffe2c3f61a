"""Result cache for statement outcomes.

Entries are keyed by data source and a hash of the statement, and expire
lazily on lookup. The cache only ever saves backend load, nothing reads it
as authoritative state.
"""

import hashlib
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from loguru import logger

from query_health_checks.models.run_outcome import RunOutcome


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def statement_digest(statement: str) -> str:
    """Hash a statement after normalizing surrounding whitespace."""
    return hashlib.sha256(statement.strip().encode("utf-8")).hexdigest()


class CacheEntry(NamedTuple):
    """A cached outcome and the instant it expires."""

    outcome: RunOutcome
    expires_at: datetime


class ResultCache:
    """In-process TTL cache of RunOutcomes."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}
        self._lock = threading.Lock()

    def lookup(self, data_source_id: str, statement: str) -> Optional[RunOutcome]:
        """Get a cached outcome.

        Args:
            data_source_id: The data source identifier.
            statement: The statement that produced the outcome.

        Returns:
            RunOutcome: The cached outcome, or None if absent or expired.
        """
        key = (data_source_id, statement_digest(statement))
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                logger.debug(f"[CACHE] Evicted expired entry for {data_source_id}")
                return None
            return entry.outcome

    def store(
        self,
        data_source_id: str,
        statement: str,
        outcome: RunOutcome,
        ttl: float,
    ) -> None:
        """Store an outcome, overwriting any previous entry.

        Args:
            data_source_id: The data source identifier.
            statement: The statement that produced the outcome.
            outcome: The outcome to cache.
            ttl: Time to live in seconds.
        """
        now = self._clock()
        snapshot = outcome.model_copy(update={"cached_at": now}, deep=True)
        key = (data_source_id, statement_digest(statement))
        with self._lock:
            self._entries[key] = CacheEntry(snapshot, now + timedelta(seconds=ttl))

    def invalidate(self, data_source_id: str, statement: str) -> None:
        """Remove an entry, if present."""
        key = (data_source_id, statement_digest(statement))
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
