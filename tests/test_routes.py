"""
Unit tests for the API routes: stubbed aggregators, no network calls. Fast.

Run with: pytest tests/test_routes.py -v
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hagda.adapters import SAMPLE_SOURCES
from hagda.aggregator import AggregationResult
from hagda.brief import BriefGenerator
from hagda.cache import TrendingManager
from hagda.errors import NetworkError, NetworkErrorKind
from hagda.routes import brief
from hagda.routes.trending import get_manager, router
from hagda.schemas import ContentItem, Source, SourceType
from hagda.scorer import TrendingContentItem, TrendingScore

# Minimal test app: no lifespan
_app = FastAPI()
_app.include_router(router)
_app.include_router(brief.router)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def make_result(*ids, errors=None) -> AggregationResult:
    items = [
        TrendingContentItem(
            item=ContentItem(
                id=item_id,
                title=f"Item {item_id}",
                subtitle="From Wired",
                published_at=datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc),
                type=SourceType.ARTICLE,
                source_id="wired",
            ),
            score=TrendingScore(engagement=0.5, recency=0.5, source_weight=1.0),
        )
        for item_id in ids
    ]
    return AggregationResult(items=items, errors=errors or [])


@pytest.fixture
def aggregator():
    aggregator = AsyncMock()
    aggregator.aggregate.return_value = make_result("a", "b")
    return aggregator


@pytest.fixture
def manager(aggregator):
    return TrendingManager(aggregator=aggregator)


@pytest.fixture
def client(manager):
    _app.dependency_overrides[get_manager] = lambda: manager
    yield TestClient(_app)
    _app.dependency_overrides.clear()


def make_payload(**kwargs) -> dict:
    """Returns a valid POST /trending body, overridable via kwargs."""
    defaults = {
        "sources": [
            {"id": "wired", "name": "Wired", "type": "article", "feed_url": "https://www.wired.com/feed/rss"},
            {"id": "r-tech", "name": "r/technology", "type": "reddit", "handle": "r/technology"},
        ],
        "force_refresh": False,
    }
    defaults.update(kwargs)
    return defaults


# ---------------------------------------------------------------------------
# POST /trending
# ---------------------------------------------------------------------------

class TestTrendingForSources:
    def test_returns_ranked_items(self, client):
        response = client.post("/trending", json=make_payload())

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == ["a", "b"]

    def test_sources_are_passed_to_aggregator(self, client, aggregator):
        client.post("/trending", json=make_payload())

        sources = aggregator.aggregate.await_args.args[0]
        assert [s.id for s in sources] == ["wired", "r-tech"]
        assert sources[1].type == SourceType.REDDIT

    def test_response_has_no_score_fields(self, client):
        item = client.post("/trending", json=make_payload()).json()[0]

        assert "score" not in item
        assert "total" not in item
        assert item["type"] == "article"
        assert item["source_id"] == "wired"

    def test_second_call_is_cached(self, client, aggregator):
        client.post("/trending", json=make_payload())
        client.post("/trending", json=make_payload())

        assert aggregator.aggregate.await_count == 1

    def test_force_refresh_reaggregates(self, client, aggregator):
        client.post("/trending", json=make_payload())
        client.post("/trending", json=make_payload(force_refresh=True))

        assert aggregator.aggregate.await_count == 2

    def test_unknown_source_type_returns_422(self, client):
        payload = make_payload(sources=[{"name": "x", "type": "newsletter"}])
        assert client.post("/trending", json=payload).status_code == 422

    def test_all_sources_failing_still_returns_200(self, client, aggregator):
        aggregator.aggregate.return_value = make_result(errors=[NetworkError(NetworkErrorKind.NO_CONNECTION)])

        response = client.post("/trending", json=make_payload())

        assert response.status_code == 200
        assert response.json() == []


# ---------------------------------------------------------------------------
# GET /trending
# ---------------------------------------------------------------------------

class TestTrendingForSampleSources:
    def test_uses_sample_sources(self, client, aggregator):
        response = client.get("/trending")

        assert response.status_code == 200
        assert aggregator.aggregate.await_args.args[0] == SAMPLE_SOURCES

    def test_post_after_get_uses_the_posted_sources(self, client, aggregator):
        aggregator.aggregate.side_effect = [make_result("sample"), make_result("mine")]

        client.get("/trending")
        response = client.post("/trending", json=make_payload())

        assert [item["id"] for item in response.json()] == ["mine"]
        assert [s.id for s in aggregator.aggregate.await_args.args[0]] == ["wired", "r-tech"]
        assert aggregator.aggregate.await_count == 2

    def test_force_refresh_query_param(self, client, aggregator):
        client.get("/trending")
        client.get("/trending", params={"force_refresh": "true"})

        assert aggregator.aggregate.await_count == 2


# ---------------------------------------------------------------------------
# GET /trending/status, POST /trending/invalidate
# ---------------------------------------------------------------------------

class TestStatus:
    def test_initial_status(self, client):
        status = client.get("/trending/status").json()

        assert status == {"is_loading": False, "error": None, "last_fetched_at": None}

    def test_reports_last_error(self, client, aggregator):
        aggregator.aggregate.return_value = make_result(
            "a", errors=[NetworkError(NetworkErrorKind.TIMEOUT, source_name="Wired")]
        )
        client.post("/trending", json=make_payload())

        status = client.get("/trending/status").json()

        assert status["error"] == "[Wired] The request took too long"
        assert status["last_fetched_at"] is not None


class TestInvalidate:
    def test_invalidate_forces_reaggregation(self, client, aggregator):
        client.post("/trending", json=make_payload())
        assert client.post("/trending/invalidate").json() == {"status": "ok"}
        client.post("/trending", json=make_payload())

        assert aggregator.aggregate.await_count == 2


# ---------------------------------------------------------------------------
# /brief
# ---------------------------------------------------------------------------

def recent_item(item_id, source_id, type=SourceType.ARTICLE) -> ContentItem:
    return ContentItem(
        id=item_id,
        title=f"Item {item_id}",
        subtitle=f"From {source_id}",
        published_at=datetime.now(timezone.utc) - timedelta(hours=2),
        type=type,
        source_id=source_id,
    )


@pytest.fixture
def brief_aggregator():
    aggregator = AsyncMock()
    source = Source(id="wired", name="Wired", type=SourceType.ARTICLE)
    aggregator.fetch_all.return_value = (
        [(source, [recent_item("a", "wired"), recent_item("r", "r-tech", SourceType.REDDIT)])],
        [],
    )
    return aggregator


@pytest.fixture
def brief_client(brief_aggregator):
    generator = BriefGenerator(aggregator=brief_aggregator, discovery=lambda: 0.0)
    _app.dependency_overrides[brief.get_generator] = lambda: generator
    yield TestClient(_app)
    _app.dependency_overrides.clear()


class TestBrief:
    def test_post_builds_brief_for_given_sources(self, brief_client, brief_aggregator):
        response = brief_client.post("/brief", json={**make_payload(), "mode": "rush"})

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "rush"
        assert [i["content"]["id"] for i in body["items"]] == ["a", "r"]
        assert body["items"][0]["reason"] == "top_story"
        assert body["read_time"] == 300
        assert body["read_time_minutes"] == 5
        assert [s.id for s in brief_aggregator.fetch_all.await_args.args[0]] == ["wired", "r-tech"]

    def test_get_uses_sample_sources(self, brief_client, brief_aggregator):
        response = brief_client.get("/brief", params={"mode": "weekend"})

        assert response.status_code == 200
        assert response.json()["mode"] == "weekend"
        assert brief_aggregator.fetch_all.await_args.args[0] == SAMPLE_SOURCES

    def test_unknown_mode_returns_422(self, brief_client):
        assert brief_client.get("/brief", params={"mode": "marathon"}).status_code == 422

    def test_current_is_404_until_generated(self, brief_client):
        assert brief_client.get("/brief/current").status_code == 404

        generated = brief_client.post("/brief", json=make_payload()).json()
        current = brief_client.get("/brief/current")

        assert current.status_code == 200
        assert current.json()["id"] == generated["id"]

    def test_engagement_on_current_item(self, brief_client):
        item_id = brief_client.post("/brief", json=make_payload()).json()["items"][0]["id"]

        response = brief_client.post(
            "/brief/engagement", json={"brief_item_id": item_id, "action": "clicked", "time_spent": 90}
        )

        assert response.status_code == 200
        assert response.json()["action"] == "clicked"
        assert response.json()["content_id"] == "a"

    def test_engagement_on_unknown_item_is_404(self, brief_client):
        response = brief_client.post("/brief/engagement", json={"brief_item_id": "nope", "action": "viewed"})
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------

class TestLifespan:
    def test_startup_builds_shared_services_and_shutdown_leaves_them_alone(self):
        from main import app

        with TestClient(app):
            manager = app.state.trending_manager
            generator = app.state.brief_generator
            assert generator.aggregator is manager.aggregator

        # Shutdown only logs
        assert app.state.trending_manager is manager
        assert app.state.brief_generator is generator
