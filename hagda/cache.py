import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, FrozenSet, List, Optional

from hagda import config
from hagda.aggregator import TrendingAggregator
from hagda.errors import AdapterError
from hagda.schemas import ContentItem, Source
from hagda.scorer import TrendingContentItem

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = config.CACHE_TTL_MINUTES * 60


class TrendingManager:
    """
    Holds the last trending aggregation for a fixed time-to-live.

    One instance is built at startup and shared by every caller (see main.py).
    It is the only writer of the cached result; items, source set and timestamp are
    always replaced together under a lock, never mutated in place.
    """

    def __init__(
        self,
        aggregator: Optional[TrendingAggregator] = None,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.aggregator = aggregator or TrendingAggregator()
        self.ttl_seconds = ttl_seconds
        self._clock = clock  # monotonic seconds, only used for freshness checks

        self._cached_items: List[TrendingContentItem] = []
        self._cached_sources: Optional[FrozenSet[Source]] = None  # the source set the cached items came from
        self._fetched_at: Optional[float] = None
        self._last_fetched_at: Optional[datetime] = None  # wall-clock time, for display
        self._is_loading = False
        self._error: Optional[AdapterError] = None
        self._lock = asyncio.Lock()

    # --- Read-only state for the UI ---

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Optional[AdapterError]:
        """The last adapter error of the most recent aggregation, if any source failed."""
        return self._error

    @property
    def last_fetched_at(self) -> Optional[datetime]:
        return self._last_fetched_at

    def is_fresh(self) -> bool:
        if self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.ttl_seconds

    # --- Operations ---

    async def fetch_trending_content(self, sources: List[Source], force_refresh: bool = False) -> List[ContentItem]:
        """
        Return the ranked trending items for the given sources.

        Serves the cached result while it is fresh, non-empty and was built from
        the same set of sources; otherwise, or when force_refresh is set, runs a
        full aggregation and caches whatever it produced, partial failures
        included. Never raises for adapter errors.
        """
        requested = frozenset(sources)
        async with self._lock:
            if (
                not force_refresh
                and self._cached_items
                and self._cached_sources == requested
                and self.is_fresh()
            ):
                logger.info(f"Serving {len(self._cached_items)} cached trending items")
                return [trending.item for trending in self._cached_items]

            if self._cached_sources is not None and self._cached_sources != requested:
                logger.info("Followed sources changed, re-aggregating")

            self._is_loading = True
            self._error = None
            try:
                result = await self.aggregator.aggregate(sources)
            finally:
                self._is_loading = False

            self._cached_items = result.items
            self._cached_sources = requested
            self._fetched_at = self._clock()
            self._last_fetched_at = datetime.now(timezone.utc)
            self._error = result.errors[-1] if result.errors else None

            return [trending.item for trending in self._cached_items]

    def invalidate(self) -> None:
        """Drop the cached result so the next fetch aggregates again."""
        self._cached_items = []
        self._cached_sources = None
        self._fetched_at = None
        logger.info("Trending cache invalidated")
