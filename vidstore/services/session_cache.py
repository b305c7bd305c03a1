"""Short-TTL cache of session validation results.

Bounds the rate of session lookups when the same token is validated over and
over (polling clients) and collapses concurrent lookups of one token: while a
lookup is in flight, other callers get whatever is cached for the token
instead of issuing their own query.

All state is plain dicts touched only from the event loop thread.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vidstore.services.session import Session

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0
DEFAULT_LOG_INTERVAL_SECONDS = 5.0


@dataclass(frozen=True)
class CacheEntry:
    """A cached validation result. ``session`` is None for an invalid token."""

    session: "Session | None"
    cached_at: float


class SessionCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        log_interval_seconds: float = DEFAULT_LOG_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.log_interval_seconds = log_interval_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: set[str] = set()
        self._generation = 0
        self._hits_since_log = 0
        self._last_log_time: float | None = None

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def get(self, token: str) -> CacheEntry | None:
        """Entry for ``token`` regardless of age."""
        return self._entries.get(token)

    def get_fresh(self, token: str) -> CacheEntry | None:
        """Entry for ``token`` if it is younger than the TTL."""
        entry = self._entries.get(token)
        if entry is None or self._clock() - entry.cached_at >= self.ttl_seconds:
            return None
        return entry

    def put(self, token: str, session: "Session | None") -> None:
        self._entries[token] = CacheEntry(session=session, cached_at=self._clock())

    def clear(self) -> None:
        """Drop every entry. In-flight markers are owned by their lookups and kept."""
        self._entries.clear()
        self._generation += 1

    @property
    def generation(self) -> int:
        """Bumped by every clear(); a lookup started under an older one must not be cached."""
        return self._generation

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # In-flight markers
    # ------------------------------------------------------------------

    def is_in_flight(self, token: str) -> bool:
        return token in self._in_flight

    def mark_in_flight(self, token: str) -> None:
        self._in_flight.add(token)

    def clear_in_flight(self, token: str) -> None:
        self._in_flight.discard(token)

    # ------------------------------------------------------------------
    # Hit accounting
    # ------------------------------------------------------------------

    def record_hit(self) -> None:
        """Count a cache hit, logging the running count at most once per interval."""
        self._hits_since_log += 1
        now = self._clock()
        if self._last_log_time is None or now - self._last_log_time > self.log_interval_seconds:
            logger.info(
                "Served cached session (%d validations in the last %.0fs)",
                self._hits_since_log,
                self.log_interval_seconds,
            )
            self._hits_since_log = 0
            self._last_log_time = now
