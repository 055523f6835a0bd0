import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
import requests
from pydantic import ValidationError

from hagda import config
from hagda.errors import (
    InvalidSourceError,
    NetworkError,
    NetworkErrorKind,
    ParsingError,
    ParsingErrorKind,
)
from hagda.schemas import ContentItem, Engagement, Source, SourceType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def strip_html(text: Optional[str]) -> str:
    """Remove HTML tags from a string, returning clean plain text."""
    return re.sub(r"<[^>]+>", "", text or "").strip()


def parse_date(entry) -> datetime:
    """
    Extract a UTC datetime from a feedparser entry.
    Falls back to the current time if no date is found.
    """
    parsed = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an ISO 8601 timestamp as returned by the Bluesky and Mastodon APIs.
    Falls back to the current time if the value is missing or malformed.
    """
    if value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except ValueError:
            logger.debug(f"Unparseable timestamp '{value}', using now")
    return datetime.now(timezone.utc)


def format_interactions(**counts: Optional[int]) -> str:
    """Render non-zero counters as ' • 3 replies • 12 likes' for an item subtitle."""
    parts = [f"{count} {label}" for label, count in counts.items() if count]
    return "".join(f" • {part}" for part in parts)


def http_get(url: str, params: Optional[dict] = None, accept: str = "application/json") -> requests.Response:
    """
    GET a URL, mapping transport failures and non-2xx statuses onto NetworkError.
    The only time bound is the requests timeout.
    """
    try:
        response = requests.get(
            url,
            params=params,
            headers={"User-Agent": config.USER_AGENT, "Accept": accept},
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
    except requests.exceptions.Timeout as e:  # checked first: ConnectTimeout is also a ConnectionError
        raise NetworkError(NetworkErrorKind.TIMEOUT) from e
    except requests.exceptions.ConnectionError as e:
        raise NetworkError(NetworkErrorKind.NO_CONNECTION) from e

    error = NetworkError.from_status(response.status_code)
    if error:
        raise error
    return response


def http_get_json(url: str, params: Optional[dict] = None):
    """GET a JSON document; undecodable or empty bodies raise ParsingError."""
    response = http_get(url, params=params)
    if not response.content:
        raise ParsingError(ParsingErrorKind.EMPTY_RESPONSE)
    try:
        return response.json()
    except ValueError as e:
        raise ParsingError(ParsingErrorKind.INVALID_JSON) from e


# ---------------------------------------------------------------------------
# Base adapter: subclass this to support a new provider type
# ---------------------------------------------------------------------------

class BaseAdapter(ABC):
    """
    Abstract base class for all provider adapters.
    To add a provider: subclass this, set source_type, implement fetch(),
    and register an instance in ADAPTERS.

    Adapters raise AdapterError subclasses on failure; the aggregator turns
    those into "no items" for the failing source.
    """
    source_type: SourceType

    @abstractmethod
    def fetch(self, source: Source, limit: int = config.FETCH_LIMIT) -> List[ContentItem]:
        """Fetch up to `limit` items for a followed source."""
        pass

    def _build_item(self, source: Source, engagement: Optional[dict] = None, **fields) -> Optional[ContentItem]:
        """
        Create a ContentItem, or log and return None if the entry is invalid
        (e.g. future-dated, or a negative or non-numeric engagement counter).
        """
        try:
            return ContentItem(
                type=self.source_type,
                source_id=source.id,
                engagement=Engagement(**engagement) if engagement is not None else None,
                **fields,
            )
        except ValidationError as e:
            logger.warning(f"[{source.name}] Skipping entry '{fields.get('id')}': {e.errors()[0]['msg']}")
            return None

    @staticmethod
    def _is_entry(source: Source, entry) -> bool:
        """Provider listings should hold JSON objects; anything else is logged and skipped."""
        if isinstance(entry, dict):
            return True
        logger.warning(f"[{source.name}] Skipping malformed entry of type {type(entry).__name__}")
        return False


# ---------------------------------------------------------------------------
# Articles: RSS/Atom feeds
# ---------------------------------------------------------------------------

class NewsAdapter(BaseAdapter):
    source_type = SourceType.ARTICLE

    def fetch(self, source: Source, limit: int = config.FETCH_LIMIT) -> List[ContentItem]:
        return self.fetch_articles(source, limit)

    def fetch_articles(self, source: Source, limit: int = config.FETCH_LIMIT) -> List[ContentItem]:
        if not source.feed_url:
            raise InvalidSourceError("Article source has no feed URL", source.name)

        response = http_get(source.feed_url, accept="application/rss+xml, application/atom+xml, */*")
        feed = feedparser.parse(response.content)  # parses the raw RSS/Atom bytes into a structured object
        if not feed.entries:
            kind = ParsingErrorKind.INVALID_FORMAT if feed.bozo else ParsingErrorKind.EMPTY_RESPONSE
            raise ParsingError(kind, source_name=source.name)

        articles = []
        for entry in feed.entries[:limit]:
            # Use the RSS GUID as the article ID; fall back to the link
            article_id = entry.get("id") or entry.get("link")
            if not article_id:
                logger.warning(f"[{source.name}] Skipping entry with no ID or link")
                continue

            # RSS body may be in 'summary' or nested inside 'content'
            raw_body = (
                entry.get("summary")
                or (entry.get("content") or [{}])[0].get("value")
                or ""
            )
            author = entry.get("author")

            item = self._build_item(
                source,
                id=article_id,
                title=strip_html(entry.get("title", "")),
                subtitle=f"By {author}" if author else f"From {source.name}",
                published_at=parse_date(entry),
                url=entry.get("link") or None,
                preview=strip_html(raw_body) or None,
                progress=0.0,
            )
            if item:
                articles.append(item)

        logger.info(f"[{source.name}] Fetched {len(articles)} articles")
        return articles


# ---------------------------------------------------------------------------
# Reddit: hot posts of a subreddit
# ---------------------------------------------------------------------------

class RedditAdapter(BaseAdapter):
    source_type = SourceType.REDDIT

    def fetch(self, source: Source, limit: int = config.FETCH_LIMIT) -> List[ContentItem]:
        subreddit = source.handle or source.name or config.REDDIT_DEFAULT_SUBREDDIT
        return self.fetch_hot_posts(subreddit, limit, source=source)

    def fetch_hot_posts(
        self,
        subreddit: str,
        limit: int = config.FETCH_LIMIT,
        source: Optional[Source] = None,
    ) -> List[ContentItem]:
        name = subreddit[2:] if subreddit.startswith("r/") else subreddit
        source = source or Source(name=f"r/{name}", type=SourceType.REDDIT, handle=f"r/{name}")

        data = http_get_json(
            f"{config.REDDIT_BASE_URL}/r/{name}/hot.json",
            params={"limit": limit, "raw_json": 1},
        )
        try:
            children = data["data"]["children"]
        except (KeyError, TypeError) as e:
            raise ParsingError(ParsingErrorKind.MISSING_FIELD, "data.children", source.name) from e
        if not isinstance(children, list):
            raise ParsingError(ParsingErrorKind.INVALID_FORMAT, "data.children", source.name)
        if not children:
            raise ParsingError(ParsingErrorKind.EMPTY_RESPONSE, source_name=source.name)

        posts = []
        for child in children[:limit]:
            if not self._is_entry(source, child):
                continue
            post = child.get("data")
            if not isinstance(post, dict) or "id" not in post or not isinstance(post.get("created_utc"), (int, float)):
                logger.warning(f"[{source.name}] Skipping post with no id or timestamp")
                continue

            author = post.get("author") or "unknown"
            num_comments = post.get("num_comments") or 0
            permalink = post.get("permalink")

            item = self._build_item(
                source,
                id=f"reddit-{post['id']}",
                title=post.get("title", "").strip(),
                subtitle=f"Posted by u/{author} • {num_comments} comments",
                published_at=datetime.fromtimestamp(post["created_utc"], tz=timezone.utc),
                url=f"{config.REDDIT_BASE_URL}{permalink}" if permalink else post.get("url"),
                preview=post.get("selftext") or None,
                engagement={"upvotes": max(post.get("ups") or 0, 0), "replies": num_comments},
                progress=0.0,
            )
            if item:
                posts.append(item)

        logger.info(f"[{source.name}] Fetched {len(posts)} posts from r/{name}")
        return posts


# ---------------------------------------------------------------------------
# Bluesky: the public "what's hot" feed
# ---------------------------------------------------------------------------

class BlueskyAdapter(BaseAdapter):
    source_type = SourceType.BLUESKY

    def fetch(self, source: Source, limit: int = config.FETCH_LIMIT) -> List[ContentItem]:
        return self.fetch_popular_posts(limit, source=source)

    def fetch_popular_posts(self, limit: int = config.FETCH_LIMIT, source: Optional[Source] = None) -> List[ContentItem]:
        source = source or Source(name="Bluesky", type=SourceType.BLUESKY)

        data = http_get_json(
            f"{config.BLUESKY_BASE_URL}/app.bsky.feed.getFeed",
            params={"feed": config.BLUESKY_POPULAR_FEED, "limit": limit},
        )
        if not isinstance(data, dict) or "feed" not in data:
            raise ParsingError(ParsingErrorKind.MISSING_FIELD, "feed", source.name)
        if not isinstance(data["feed"], list):
            raise ParsingError(ParsingErrorKind.INVALID_FORMAT, "feed", source.name)

        posts = []
        for feed_item in data["feed"][:limit]:
            if not self._is_entry(source, feed_item):
                continue
            post = feed_item.get("post")
            if not isinstance(post, dict) or not post.get("uri"):
                logger.warning(f"[{source.name}] Skipping post with no uri")
                continue
            record = post.get("record")
            if not isinstance(record, dict):
                record = {}

            handle = (post.get("author") or {}).get("handle", "unknown")
            likes = post.get("likeCount")
            reposts = post.get("repostCount")
            replies = post.get("replyCount")
            text = (record.get("text") or "").strip()

            item = self._build_item(
                source,
                id=post["uri"],
                title=text,
                subtitle=f"@{handle}" + format_interactions(replies=replies, reposts=reposts, likes=likes),
                published_at=parse_timestamp(record.get("createdAt") or post.get("indexedAt")),
                preview=text or None,
                engagement={"likes": likes, "reposts": reposts, "replies": replies},
                progress=0.0,
            )
            if item:
                posts.append(item)

        logger.info(f"[{source.name}] Fetched {len(posts)} popular Bluesky posts")
        return posts


# ---------------------------------------------------------------------------
# Mastodon: trending statuses of an instance
# ---------------------------------------------------------------------------

def mastodon_server(handle: Optional[str]) -> str:
    """
    Extract the instance from a handle like '@user@fosstodon.org'.
    Anything without a domain part uses the default server.
    """
    if handle and "@" in handle:
        parts = [part for part in handle.strip().split("@") if part]
        if len(parts) >= 2 and "." in parts[-1] and " " not in parts[-1]:
            return parts[-1]
    return config.MASTODON_DEFAULT_SERVER


class MastodonAdapter(BaseAdapter):
    source_type = SourceType.MASTODON

    def fetch(self, source: Source, limit: int = config.FETCH_LIMIT) -> List[ContentItem]:
        return self.fetch_trending_posts(mastodon_server(source.handle), limit, source=source)

    def fetch_trending_posts(
        self,
        server: str,
        limit: int = config.FETCH_LIMIT,
        source: Optional[Source] = None,
    ) -> List[ContentItem]:
        source = source or Source(name=server, type=SourceType.MASTODON)

        statuses = http_get_json(f"https://{server}/api/v1/trends/statuses", params={"limit": limit})
        if not isinstance(statuses, list):
            raise ParsingError(ParsingErrorKind.INVALID_FORMAT, "expected a list of statuses", source.name)

        posts = []
        for status in statuses[:limit]:
            if not self._is_entry(source, status):
                continue
            if not status.get("id"):
                logger.warning(f"[{source.name}] Skipping status with no id")
                continue

            acct = (status.get("account") or {}).get("acct", "unknown")
            favourites = status.get("favourites_count")
            reblogs = status.get("reblogs_count")
            replies = status.get("replies_count")
            text = strip_html(status.get("content"))

            item = self._build_item(
                source,
                id=f"mastodon-{server}-{status['id']}",
                title=text,
                subtitle=f"@{acct}" + format_interactions(replies=replies, boosts=reblogs, favorites=favourites),
                published_at=parse_timestamp(status.get("created_at")),
                url=status.get("url"),
                preview=text or None,
                engagement={"likes": favourites, "reposts": reblogs, "replies": replies},
                progress=0.0,
            )
            if item:
                posts.append(item)

        logger.info(f"[{source.name}] Fetched {len(posts)} trending statuses from {server}")
        return posts


# ---------------------------------------------------------------------------
# Podcasts: iTunes top chart
# ---------------------------------------------------------------------------

def _label(entry: dict, key: str) -> Optional[str]:
    """iTunes RSS JSON wraps every value as {'label': ...}."""
    value = entry.get(key)
    return value.get("label") if isinstance(value, dict) else None


class PodcastAdapter(BaseAdapter):
    source_type = SourceType.PODCAST

    def fetch(self, source: Source, limit: int = config.FETCH_LIMIT) -> List[ContentItem]:
        return self.fetch_top_podcasts(limit, source=source)

    def fetch_top_podcasts(self, limit: int = config.FETCH_LIMIT, source: Optional[Source] = None) -> List[ContentItem]:
        source = source or Source(name="Top Podcasts", type=SourceType.PODCAST)

        data = http_get_json(config.ITUNES_TOP_PODCASTS_URL.format(limit=limit))
        try:
            entries = data["feed"]["entry"]
        except (KeyError, TypeError) as e:
            raise ParsingError(ParsingErrorKind.MISSING_FIELD, "feed.entry", source.name) from e
        if isinstance(entries, dict):  # a single-entry chart is not wrapped in a list
            entries = [entries]
        if not isinstance(entries, list):
            raise ParsingError(ParsingErrorKind.INVALID_FORMAT, "feed.entry", source.name)

        now = datetime.now(timezone.utc)
        podcasts = []
        for entry in entries[:limit]:
            if not self._is_entry(source, entry):
                continue
            title = _label(entry, "im:name")
            artist = _label(entry, "im:artist")
            if not title or not artist:
                logger.warning(f"[{source.name}] Skipping chart entry with no name or artist")
                continue

            chart_id = ((entry.get("id") or {}).get("attributes") or {}).get("im:id") or title
            item = self._build_item(
                source,
                id=f"podcast-{chart_id}",
                title=title,
                subtitle=artist,
                published_at=now,  # chart entries are current
                url=_label(entry, "id"),
                preview=_label(entry, "summary"),
                # Position among usable entries, so skipped entries don't leave gaps
                engagement={"chart_position": len(podcasts)},
                progress=0.0,
            )
            if item:
                podcasts.append(item)

        logger.info(f"[{source.name}] Fetched {len(podcasts)} top podcasts")
        return podcasts


# ---------------------------------------------------------------------------
# Registry: one adapter per provider type
# ---------------------------------------------------------------------------

ADAPTERS: dict[SourceType, BaseAdapter] = {
    SourceType.ARTICLE: NewsAdapter(),
    SourceType.REDDIT: RedditAdapter(),
    SourceType.BLUESKY: BlueskyAdapter(),
    SourceType.MASTODON: MastodonAdapter(),
    SourceType.PODCAST: PodcastAdapter(),
}

_missing = set(SourceType) - set(ADAPTERS)
if _missing:
    raise RuntimeError(f"No adapter registered for: {sorted(t.value for t in _missing)}")


# Followed sources used by GET /trending when the caller sends none
SAMPLE_SOURCES: List[Source] = [
    Source(id="techcrunch", name="TechCrunch", type=SourceType.ARTICLE,
           description="Breaking technology news, analysis, and opinions.",
           feed_url="https://techcrunch.com/feed/"),
    Source(id="wired", name="Wired", type=SourceType.ARTICLE,
           description="In-depth articles about the impact of technology on our world.",
           feed_url="https://www.wired.com/feed/rss"),
    Source(id="the-verge", name="The Verge", type=SourceType.ARTICLE,
           description="Covering the intersection of technology, science, art, and culture.",
           feed_url="https://www.theverge.com/rss/index.xml"),
    Source(id="r-programming", name="r/programming", type=SourceType.REDDIT,
           description="A community for sharing news and tutorials related to programming.",
           handle="r/programming"),
    Source(id="r-technology", name="r/technology", type=SourceType.REDDIT,
           description="The latest news and discussions on technology, gadgets, and startups.",
           handle="r/technology"),
    Source(id="bluesky-hot", name="Bluesky", type=SourceType.BLUESKY,
           description="Popular posts across Bluesky."),
    Source(id="mastodon-social", name="mastodon.social", type=SourceType.MASTODON,
           description="Trending posts on mastodon.social.",
           handle="@Mastodon@mastodon.social"),
    Source(id="top-podcasts", name="Top Podcasts", type=SourceType.PODCAST,
           description="The current iTunes podcast chart."),
]
