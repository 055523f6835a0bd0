from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from hagda.schemas import ContentItem, SourceType

# ---------------------------------------------------------------------------
# Composite weights: engagement dominates, then recency, then user preference
# (most sources keep the default weight, so it mostly acts as a tiebreaker)
# ---------------------------------------------------------------------------

ENGAGEMENT_WEIGHT = 0.6
RECENCY_WEIGHT = 0.3
SOURCE_WEIGHT = 0.1

# Raw engagement at which a post counts as maximally engaging, per provider
ENGAGEMENT_CEILINGS: dict[SourceType, float] = {
    SourceType.REDDIT:   10_000,  # upvotes
    SourceType.BLUESKY:  1_000,   # likes + 2 × reposts
    SourceType.MASTODON: 500,     # favourites + 2 × boosts
}

ARTICLE_ENGAGEMENT = 0.5   # RSS exposes no engagement signal
PODCAST_RECENCY = 0.7      # chart entries carry no date but are current by definition
PODCAST_CHART_SPAN = 10.0  # chart position at which podcast engagement reaches zero

# (max hours since publication, score); first matching band wins
RECENCY_BANDS: list[tuple[float, float]] = [
    (1,   1.0),
    (6,   0.9),
    (12,  0.8),
    (24,  0.7),
    (48,  0.5),
    (72,  0.3),
    (168, 0.1),  # one week
]


@dataclass(frozen=True)
class TrendingScore:
    engagement: float     # 0-1 normalized
    recency: float        # 0-1 based on age
    source_weight: float  # user preference weight

    @property
    def total(self) -> float:
        return (
            self.engagement * ENGAGEMENT_WEIGHT
            + self.recency * RECENCY_WEIGHT
            + self.source_weight * SOURCE_WEIGHT
        )


@dataclass(frozen=True)
class TrendingContentItem:
    item: ContentItem
    score: TrendingScore


def normalize_engagement(value: float, ceiling: float) -> float:
    """Scale a raw engagement count into [0, 1] against a provider ceiling."""
    if ceiling <= 0:
        raise ValueError("ceiling must be positive")
    return min(max(value, 0.0) / ceiling, 1.0)


def recency_score(hours_elapsed: float) -> float:
    """Banded decay: 1.0 within the first hour down to 0.0 after a week."""
    for max_hours, score in RECENCY_BANDS:
        if hours_elapsed <= max_hours:
            return score
    return 0.0


def raw_engagement(item: ContentItem) -> Optional[float]:
    """Collapse an item's counters into the single raw value its provider is scored on."""
    counters = item.engagement
    if item.type == SourceType.ARTICLE:
        return None
    if counters is None:
        return 0.0
    if item.type == SourceType.REDDIT:
        return float(counters.upvotes or 0)
    if item.type in (SourceType.BLUESKY, SourceType.MASTODON):
        # A repost spreads the post further than a like, so it counts double
        return float((counters.likes or 0) + 2 * (counters.reposts or 0))
    return float(counters.chart_position or 0)


def score(
    engagement_raw: Optional[float],
    published_at: datetime,
    source_weight: float,
    source_type: SourceType,
    now: Optional[datetime] = None,
) -> TrendingScore:
    """
    Compute the trending score of one item. Pure: no I/O, and deterministic
    once `now` is pinned.

    Args:
        engagement_raw: provider value from raw_engagement(): upvotes, weighted
            likes/reposts, or chart position for podcasts. Ignored for articles.
        published_at: publication time; naive values are treated as UTC
        source_weight: user preference for the owning source, in [0, 1]
        source_type: provider of the item, selects the engagement rule
        now: reference time, defaults to the current UTC time
    """
    if source_type == SourceType.ARTICLE:
        engagement = ARTICLE_ENGAGEMENT
    elif source_type == SourceType.PODCAST:
        position = engagement_raw or 0.0
        engagement = max(0.0, 1.0 - position / PODCAST_CHART_SPAN)
    else:
        engagement = normalize_engagement(engagement_raw or 0.0, ENGAGEMENT_CEILINGS[source_type])

    if source_type == SourceType.PODCAST:
        recency = PODCAST_RECENCY
    else:
        if published_at.tzinfo is None:
            published_at = published_at.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        hours_elapsed = (now - published_at).total_seconds() / 3600
        recency = recency_score(hours_elapsed)

    return TrendingScore(engagement=engagement, recency=recency, source_weight=source_weight)


def score_item(item: ContentItem, source_weight: float = 1.0, now: Optional[datetime] = None) -> TrendingContentItem:
    """Score a fetched item and pair it with its score."""
    trending_score = score(raw_engagement(item), item.published_at, source_weight, item.type, now=now)
    return TrendingContentItem(item=item, score=trending_score)
