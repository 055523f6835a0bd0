import os

# ---------------------------------------------------------------------------
# HTTP: every adapter request carries these
# ---------------------------------------------------------------------------

USER_AGENT = os.getenv("HAGDA_USER_AGENT", "Hagda/1.0")  # Reddit rejects requests without one
HTTP_TIMEOUT_SECONDS = float(os.getenv("HAGDA_HTTP_TIMEOUT_SECONDS", "30"))

REDDIT_BASE_URL = "https://www.reddit.com"
BLUESKY_BASE_URL = "https://public.api.bsky.app/xrpc"
BLUESKY_POPULAR_FEED = "at://did:plc:z72i7hdynmk6r22z27h6tvur/app.bsky.feed.generator/whats-hot"
ITUNES_TOP_PODCASTS_URL = "https://itunes.apple.com/us/rss/toppodcasts/limit={limit}/json"

# Fallbacks for sources that don't name a community or server
REDDIT_DEFAULT_SUBREDDIT = os.getenv("HAGDA_REDDIT_DEFAULT_SUBREDDIT", "technology")
MASTODON_DEFAULT_SERVER = os.getenv("HAGDA_MASTODON_DEFAULT_SERVER", "mastodon.social")

# ---------------------------------------------------------------------------
# Trending
# ---------------------------------------------------------------------------

FETCH_LIMIT = int(os.getenv("HAGDA_FETCH_LIMIT", "10"))                 # items requested per source
MAX_TRENDING_ITEMS = int(os.getenv("HAGDA_MAX_TRENDING_ITEMS", "20"))   # hard cap on the ranked list
CACHE_TTL_MINUTES = float(os.getenv("HAGDA_CACHE_TTL_MINUTES", "15"))

LOG_LEVEL = os.getenv("HAGDA_LOG_LEVEL", "INFO")
