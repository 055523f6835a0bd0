import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hagda import config
from hagda.aggregator import TrendingAggregator
from hagda.brief import BriefGenerator
from hagda.cache import TrendingManager
from hagda.routes import brief, trending

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    # One trending cache and one brief generator for this process; routes reach them through dependencies
    logger.info(f"Creating trending manager (cache TTL {config.CACHE_TTL_MINUTES:g} min)...")
    aggregator = TrendingAggregator()
    app.state.trending_manager = TrendingManager(aggregator=aggregator)
    app.state.brief_generator = BriefGenerator(aggregator=aggregator)

    yield

    # --- Shutdown ---
    logger.info("Shutting down Hagda API...")


app = FastAPI(
    title="Hagda Trending API",
    description="Ranks trending articles, posts and podcasts across followed sources, and builds daily briefs.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(trending.router)
app.include_router(brief.router)
