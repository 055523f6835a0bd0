import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional, Tuple

from hagda import config
from hagda.adapters import ADAPTERS, BaseAdapter
from hagda.errors import AdapterError
from hagda.schemas import ContentItem, Source, SourceType
from hagda.scorer import TrendingContentItem, score_item

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    items: List[TrendingContentItem] = field(default_factory=list)  # ranked, at most max_items long
    errors: List[AdapterError] = field(default_factory=list)        # one per failed source, in source order

    @property
    def content(self) -> List[ContentItem]:
        """The ranked items with their scores stripped."""
        return [trending.item for trending in self.items]


class TrendingAggregator:
    """
    Fans out one fetch per followed source, scores everything that came back,
    and keeps the highest-scoring items.

    Adapters are synchronous (requests/feedparser), so each one runs in a
    worker thread; the fetches overlap and a failure in one never cancels
    the others.
    """

    def __init__(
        self,
        adapters: Optional[Mapping[SourceType, BaseAdapter]] = None,
        fetch_limit: int = config.FETCH_LIMIT,
        max_items: int = config.MAX_TRENDING_ITEMS,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.adapters = adapters if adapters is not None else ADAPTERS
        self.fetch_limit = fetch_limit
        self.max_items = max_items
        self.now = now

    async def fetch_all(self, sources: List[Source]) -> Tuple[List[Tuple[Source, List[ContentItem]]], List[AdapterError]]:
        """
        Fetch every source concurrently, unscored and untruncated.
        Returns (source, items) pairs for the sources that succeeded and one
        error per failed source, both in source order. Never raises.
        """
        tasks = [self._fetch_source(source) for source in sources]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        fetched: List[Tuple[Source, List[ContentItem]]] = []
        errors: List[AdapterError] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                error = self._as_adapter_error(source, result)
                logger.error(f"[{source.name}] Failed to fetch: {error.message}")
                errors.append(error)
                continue
            fetched.append((source, result))
        return fetched, errors

    async def aggregate(self, sources: List[Source]) -> AggregationResult:
        """Fetch, score, merge and rank items from every source. Never raises."""
        logger.info(f"Aggregating trending content from {len(sources)} sources")

        fetched, errors = await self.fetch_all(sources)

        now = self.now()
        scored: List[TrendingContentItem] = []
        for source, items in fetched:
            scored.extend(score_item(item, source.weight, now=now) for item in items)

        # sorted() is stable, so equal scores keep source order; callers must not rely on it
        ranked = sorted(scored, key=lambda trending: trending.score.total, reverse=True)
        top = ranked[: self.max_items]

        logger.info(
            f"Aggregation complete: {len(scored)} items scored, {len(top)} kept, "
            f"{len(errors)} of {len(sources)} sources failed"
        )
        return AggregationResult(items=top, errors=errors)

    async def _fetch_source(self, source: Source) -> List[ContentItem]:
        adapter = self.adapters.get(source.type)
        if adapter is None:
            raise AdapterError(f"No adapter for source type '{source.type.value}'", source.name)
        return await asyncio.to_thread(adapter.fetch, source, self.fetch_limit)

    @staticmethod
    def _as_adapter_error(source: Source, exc: BaseException) -> AdapterError:
        """Attach the failing source to the error, wrapping anything that isn't an AdapterError."""
        if isinstance(exc, AdapterError):
            if exc.source_name is None:
                exc.source_name = source.name
            return exc
        error = AdapterError(f"Unexpected error: {exc}", source.name)
        error.__cause__ = exc
        return error
