import uuid
import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class SourceType(str, Enum):
    """Provider category of a followed source."""
    ARTICLE = "article"
    REDDIT = "reddit"
    BLUESKY = "bluesky"
    MASTODON = "mastodon"
    PODCAST = "podcast"

    @property
    def display_name(self) -> str:
        return {
            SourceType.ARTICLE: "News",
            SourceType.REDDIT: "Reddit",
            SourceType.BLUESKY: "Bluesky",
            SourceType.MASTODON: "Mastodon",
            SourceType.PODCAST: "Podcast",
        }[self]


class Source(BaseModel):
    """A followed content provider. Frozen: a source never changes type after creation."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    type: SourceType
    description: str = ""
    handle: Optional[str] = None
    artwork_url: Optional[str] = None
    feed_url: Optional[str] = None   # RSS/Atom URL, required for article sources
    weight: float = Field(default=1.0, ge=0.0, le=1.0)  # user preference, feeds the trending score

    model_config = ConfigDict(frozen=True)


class Engagement(BaseModel):
    """Provider-reported interaction counters. Which ones are set depends on the provider."""
    upvotes: Optional[int] = Field(default=None, ge=0)
    likes: Optional[int] = Field(default=None, ge=0)
    reposts: Optional[int] = Field(default=None, ge=0)
    replies: Optional[int] = Field(default=None, ge=0)
    chart_position: Optional[int] = Field(default=None, ge=0)  # zero-based rank in a top chart

    model_config = ConfigDict(frozen=True)


class ContentItem(BaseModel):
    """One fetched unit of content (article, post or podcast) attributable to a Source."""
    id: str
    title: str
    subtitle: str = ""
    published_at: datetime
    type: SourceType
    source_id: str
    url: Optional[str] = None
    preview: Optional[str] = None
    engagement: Optional[Engagement] = None
    progress: Optional[float] = None  # fraction already consumed, always within [0, 1]

    model_config = ConfigDict(frozen=True)

    @field_validator("published_at")
    @classmethod
    def _not_in_future(cls, value: datetime) -> datetime:
        # Naive timestamps are treated as UTC, matching how the adapters parse them
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value > datetime.now(timezone.utc):
            raise ValueError("published_at must not be in the future")
        return value

    @field_validator("progress")
    @classmethod
    def _clamp_progress(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        return min(max(value, 0.0), 1.0)


# ---------------------------------------------------------------------------
# API shapes
# ---------------------------------------------------------------------------

class TrendingRequest(BaseModel):
    """Body of POST /trending."""
    sources: list[Source]
    force_refresh: bool = False


class TrendingStatus(BaseModel):
    """Shape returned by GET /trending/status."""
    is_loading: bool
    error: Optional[str] = None
    last_fetched_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Daily brief
# ---------------------------------------------------------------------------

class BriefMode(str, Enum):
    """How much the reader has time for; decides the brief's length."""
    RUSH = "rush"
    STANDARD = "standard"
    LEISURELY = "leisurely"
    COMMUTE = "commute"
    WEEKEND = "weekend"

    @property
    def display_name(self) -> str:
        return {
            BriefMode.RUSH: "Quick Brief",
            BriefMode.STANDARD: "Standard Brief",
            BriefMode.LEISURELY: "Extended Brief",
            BriefMode.COMMUTE: "Commute Brief",
            BriefMode.WEEKEND: "Weekend Brief",
        }[self]

    @property
    def target_read_time(self) -> int:
        """Seconds the reader is expected to spend on the whole brief."""
        return {
            BriefMode.RUSH: 120,
            BriefMode.STANDARD: 300,
            BriefMode.LEISURELY: 900,
            BriefMode.COMMUTE: 600,
            BriefMode.WEEKEND: 1200,
        }[self]

    @property
    def max_items(self) -> int:
        return {
            BriefMode.RUSH: 5,
            BriefMode.STANDARD: 10,
            BriefMode.LEISURELY: 15,
            BriefMode.COMMUTE: 8,
            BriefMode.WEEKEND: 12,
        }[self]


class BriefCategory(str, Enum):
    TOP_STORIES = "top_stories"
    UPDATES = "updates"
    TRENDING = "trending"
    PODCASTS = "podcasts"
    SOCIAL = "social"
    DISCOVERY = "discovery"

    @property
    def display_name(self) -> str:
        return {
            BriefCategory.TOP_STORIES: "Top Stories",
            BriefCategory.UPDATES: "Updates",
            BriefCategory.TRENDING: "Trending",
            BriefCategory.PODCASTS: "Audio",
            BriefCategory.SOCIAL: "Social",
            BriefCategory.DISCOVERY: "Discover",
        }[self]


class SelectionReason(str, Enum):
    """Why an item made it into the brief, shown next to it."""
    TOP_STORY = "top_story"
    TRENDING = "trending"
    FOLLOW_UP = "follow_up"
    TRUSTED_SOURCE = "trusted_source"
    HIGH_ENGAGEMENT = "high_engagement"
    RECENTLY_PUBLISHED = "recently_published"
    DIVERSITY_PICK = "diversity_pick"
    USER_INTEREST = "user_interest"

    @property
    def explanation(self) -> str:
        return {
            SelectionReason.TOP_STORY: "Top story from your sources",
            SelectionReason.TRENDING: "Trending in your network",
            SelectionReason.FOLLOW_UP: "Update on story you followed",
            SelectionReason.TRUSTED_SOURCE: "From a source you read often",
            SelectionReason.HIGH_ENGAGEMENT: "Getting lots of discussion",
            SelectionReason.RECENTLY_PUBLISHED: "Just published",
            SelectionReason.DIVERSITY_PICK: "Different perspective",
            SelectionReason.USER_INTEREST: "Matches your interests",
        }[self]


class BriefItem(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    content: ContentItem
    reason: SelectionReason
    explanation: str
    context: Optional[str] = None  # personal relevance, when there is history to draw on
    summary: str
    category: BriefCategory
    priority: int  # display order, 0 first

    model_config = ConfigDict(frozen=True)


class DailyBrief(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    day: date  # the day the brief covers, in the reader's local time
    items: list[BriefItem]
    read_time: float  # estimated seconds for the whole brief
    mode: BriefMode
    generated_at: datetime

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def read_time_minutes(self) -> int:
        return math.ceil(self.read_time / 60)


class EngagementAction(str, Enum):
    VIEWED = "viewed"
    CLICKED = "clicked"
    SHARED = "shared"
    SAVED = "saved"
    DISMISSED = "dismissed"


class BriefEngagement(BaseModel):
    """One interaction with a brief item."""
    brief_item_id: str
    content_id: str
    source_id: str
    date: datetime
    time_spent: float = Field(default=0.0, ge=0.0)  # seconds
    action: EngagementAction

    model_config = ConfigDict(frozen=True)


class BriefRequest(BaseModel):
    """Body of POST /brief. Without a mode, one is picked from the time of day."""
    sources: list[Source]
    mode: Optional[BriefMode] = None


class EngagementRequest(BaseModel):
    """Body of POST /brief/engagement."""
    brief_item_id: str
    action: EngagementAction
    time_spent: float = Field(default=0.0, ge=0.0)
