import asyncio
import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from hagda.aggregator import TrendingAggregator
from hagda.errors import AdapterError
from hagda.schemas import (
    BriefCategory,
    BriefEngagement,
    BriefItem,
    BriefMode,
    ContentItem,
    DailyBrief,
    EngagementAction,
    SelectionReason,
    Source,
    SourceType,
)

logger = logging.getLogger(__name__)

BRIEF_WINDOW = timedelta(hours=24)      # only content published this recently is considered
HISTORY_WINDOW = timedelta(days=30)     # engagement older than this is forgotten

# (published less than N hours ago, bonus); older items get RECENCY_FLOOR
RECENCY_BONUSES = ((6, 0.4), (12, 0.3), (18, 0.2))
RECENCY_FLOOR = 0.1
NEW_SOURCE_BONUS = 0.2
NEW_TYPE_BONUS = 0.1
PREFERENCE_WEIGHT = 0.2
DISCOVERY_MAX = 0.1

MAX_PER_SOURCE = 2
TOP_STORY_COUNT = 3
HIGH_ENGAGEMENT_SCORE = 0.8
RECENT_HOURS = 6

NEUTRAL_PREFERENCE = 0.5
PREFERENCE_STEPS = {EngagementAction.CLICKED: 0.1, EngagementAction.DISMISSED: -0.1}
DEFAULT_PREFERENCE_STEP = 0.05

SUMMARY_LENGTHS = {
    BriefMode.RUSH: 50,
    BriefMode.STANDARD: 100,
    BriefMode.LEISURELY: 150,
    BriefMode.COMMUTE: 80,
    BriefMode.WEEKEND: 120,
}

READ_TIME_SECONDS = {
    SourceType.ARTICLE: 180,
    SourceType.REDDIT: 120,
    SourceType.PODCAST: 60,  # enough to read the description
    SourceType.BLUESKY: 60,
    SourceType.MASTODON: 60,
}

CATEGORY_FOR_TYPE = {
    SourceType.ARTICLE: BriefCategory.TOP_STORIES,
    SourceType.REDDIT: BriefCategory.TRENDING,
    SourceType.PODCAST: BriefCategory.PODCASTS,
    SourceType.BLUESKY: BriefCategory.SOCIAL,
    SourceType.MASTODON: BriefCategory.SOCIAL,
}


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def determine_mode(now: datetime) -> BriefMode:
    """Pick a brief mode from the reader's local time: weekends, morning rush, evening commute."""
    if now.weekday() >= 5:
        return BriefMode.WEEKEND
    if 6 <= now.hour < 9:
        return BriefMode.RUSH
    if 17 <= now.hour < 19:
        return BriefMode.COMMUTE
    return BriefMode.STANDARD


def recency_bonus(hours: float) -> float:
    for max_hours, bonus in RECENCY_BONUSES:
        if hours < max_hours:
            return bonus
    return RECENCY_FLOOR


def summarize(item: ContentItem, mode: BriefMode) -> str:
    """Subtitle (or preview when there is none), cut to the mode's length with a trailing '...'."""
    text = item.subtitle or item.preview or ""
    max_length = SUMMARY_LENGTHS[mode]
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def estimate_read_time(items: List[BriefItem]) -> float:
    return float(sum(READ_TIME_SECONDS[brief_item.content.type] for brief_item in items))


def selection_reason(index: int, score: float, item: ContentItem, now: datetime) -> SelectionReason:
    if index < TOP_STORY_COUNT:
        return SelectionReason.TOP_STORY
    if score > HIGH_ENGAGEMENT_SCORE:
        return SelectionReason.HIGH_ENGAGEMENT
    if now - item.published_at < timedelta(hours=RECENT_HOURS):
        return SelectionReason.RECENTLY_PUBLISHED
    return SelectionReason.DIVERSITY_PICK


# ---------------------------------------------------------------------------
# Reader behavior (kept in memory only)
# ---------------------------------------------------------------------------

@dataclass
class UserBehavior:
    preferred_categories: Dict[BriefCategory, float] = field(default_factory=dict)  # each within [0, 1]
    engagement_history: List[BriefEngagement] = field(default_factory=list)
    last_brief_at: Optional[datetime] = None

    def record(self, engagement: BriefEngagement, now: datetime) -> None:
        self.engagement_history.append(engagement)
        cutoff = now - HISTORY_WINDOW
        self.engagement_history = [e for e in self.engagement_history if e.date > cutoff]

    def adjust_preference(self, category: BriefCategory, action: EngagementAction) -> None:
        current = self.preferred_categories.get(category, NEUTRAL_PREFERENCE)
        step = PREFERENCE_STEPS.get(action, DEFAULT_PREFERENCE_STEP)
        self.preferred_categories[category] = min(max(current + step, 0.0), 1.0)

    def average_time_on_source(self, source_id: str) -> Optional[float]:
        spent = [e.time_spent for e in self.engagement_history if e.source_id == source_id]
        if not spent:
            return None
        return sum(spent) / len(spent)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class BriefGenerator:
    """
    Builds a short, varied digest of the last 24 hours from the followed sources.

    Candidates are picked one at a time: each pick re-scores what is left, so
    the new-source and new-type bonuses reflect what the brief already holds.
    A source contributes at most MAX_PER_SOURCE items and a provider type
    at most half of mode.max_items.

    `discovery` draws the small random nudge each candidate gets; pass a
    constant to make selection deterministic.
    """

    def __init__(
        self,
        aggregator: Optional[TrendingAggregator] = None,
        now: Callable[[], datetime] = lambda: datetime.now().astimezone(),
        discovery: Callable[[], float] = lambda: random.uniform(0.0, DISCOVERY_MAX),
    ):
        self.aggregator = aggregator or TrendingAggregator()
        self.now = now
        self.discovery = discovery
        self.behavior = UserBehavior()

        self._current: Optional[DailyBrief] = None
        self._is_generating = False
        self._error: Optional[AdapterError] = None
        self._lock = asyncio.Lock()

    @property
    def current_brief(self) -> Optional[DailyBrief]:
        return self._current

    @property
    def is_generating(self) -> bool:
        return self._is_generating

    @property
    def error(self) -> Optional[AdapterError]:
        """The last adapter error of the most recent generation, if any source failed."""
        return self._error

    async def generate_brief(self, sources: List[Source], mode: Optional[BriefMode] = None) -> DailyBrief:
        """Fetch every source, keep the last 24 hours, select and annotate. Never raises for adapter errors."""
        async with self._lock:
            self._is_generating = True
            self._error = None
            try:
                fetched, errors = await self.aggregator.fetch_all(sources)
            finally:
                self._is_generating = False

            now = self.now()
            mode = mode or determine_mode(now)
            recent = [
                item
                for _, items in fetched
                for item in items
                if now - item.published_at <= BRIEF_WINDOW
            ]

            selected = self.select(recent, mode, now)
            items = [self._brief_item(index, item, score, mode, now) for index, (item, score) in enumerate(selected)]

            brief = DailyBrief(
                day=now.date(),
                items=items,
                read_time=estimate_read_time(items),
                mode=mode,
                generated_at=now,
            )
            self._current = brief
            self._error = errors[-1] if errors else None
            self.behavior.last_brief_at = now

            logger.info(
                f"Generated {mode.value} brief: {len(items)} of {len(recent)} recent items, "
                f"~{brief.read_time_minutes} min, {len(errors)} of {len(sources)} sources failed"
            )
            return brief

    def select(self, items: List[ContentItem], mode: BriefMode, now: datetime) -> List[Tuple[ContentItem, float]]:
        """Greedy pick of up to mode.max_items (item, score) pairs, best first."""
        candidates = [(item, self.discovery()) for item in items]
        type_limit = mode.max_items // 2
        per_source: Counter = Counter()
        per_type: Counter = Counter()
        selected: List[Tuple[ContentItem, float]] = []

        while candidates and len(selected) < mode.max_items:
            best_index, best_score = None, float("-inf")
            for index, (item, nudge) in enumerate(candidates):
                if per_source[item.source_id] >= MAX_PER_SOURCE or per_type[item.type] >= type_limit:
                    continue
                score = self._score(item, now, per_source, per_type) + nudge
                if score > best_score:
                    best_index, best_score = index, score
            if best_index is None:
                break

            item, _ = candidates.pop(best_index)
            selected.append((item, best_score))
            per_source[item.source_id] += 1
            per_type[item.type] += 1

        return selected

    def record_engagement(
        self,
        brief_item_id: str,
        action: EngagementAction,
        time_spent: float = 0.0,
    ) -> Optional[BriefEngagement]:
        """Log an interaction with an item of the current brief. Returns None if no such item."""
        brief_item = self._find_item(brief_item_id)
        if brief_item is None:
            logger.warning(f"Engagement for unknown brief item '{brief_item_id}' ignored")
            return None

        now = self.now()
        engagement = BriefEngagement(
            brief_item_id=brief_item.id,
            content_id=brief_item.content.id,
            source_id=brief_item.content.source_id,
            date=now,
            time_spent=time_spent,
            action=action,
        )
        self.behavior.record(engagement, now)
        self.behavior.adjust_preference(brief_item.category, action)
        logger.info(f"Recorded '{action.value}' on brief item {brief_item.id} ({brief_item.category.value})")
        return engagement

    # --- Internals ---

    def _score(self, item: ContentItem, now: datetime, per_source: Counter, per_type: Counter) -> float:
        hours = (now - item.published_at).total_seconds() / 3600
        score = recency_bonus(hours)
        if not per_source[item.source_id]:
            score += NEW_SOURCE_BONUS
        if not per_type[item.type]:
            score += NEW_TYPE_BONUS
        preference = self.behavior.preferred_categories.get(CATEGORY_FOR_TYPE[item.type])
        if preference is not None:
            score += preference * PREFERENCE_WEIGHT
        return score

    def _brief_item(self, index: int, item: ContentItem, score: float, mode: BriefMode, now: datetime) -> BriefItem:
        reason = selection_reason(index, score, item, now)
        return BriefItem(
            content=item,
            reason=reason,
            explanation=reason.explanation,
            context=self._context(item),
            summary=summarize(item, mode),
            category=CATEGORY_FOR_TYPE[item.type],
            priority=index,
        )

    def _context(self, item: ContentItem) -> Optional[str]:
        average = self.behavior.average_time_on_source(item.source_id)
        if average is None:
            return None
        return f"You typically spend {int(average // 60)} min on content from this source"

    def _find_item(self, brief_item_id: str) -> Optional[BriefItem]:
        if self._current is None:
            return None
        return next((i for i in self._current.items if i.id == brief_item_id), None)
