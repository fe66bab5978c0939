"""
test_api.py - Unit tests for FastAPI endpoints

The lifespan's engine builder is patched to return an engine over the
fixture corpus with a fake generator.
"""
import pytest
from unittest.mock import patch

from fastapi.testclient import TestClient

from inquiry_engine.core.errors import CorpusUnavailable
from inquiry_engine.services.engine import MatchingEngine
from inquiry_engine.services.providers import InMemoryDatasetProvider

from conftest import GOOD_RESPONSE, FakeGenerator


@pytest.fixture
def engine(fixture_records):
    return MatchingEngine(
        InMemoryDatasetProvider(fixture_records),
        generation_provider=FakeGenerator(GOOD_RESPONSE),
    )


@pytest.fixture
def test_client(engine):
    """Create test client with the engine builder mocked."""
    with patch("inquiry_engine.core.startup.build_engine", return_value=engine):
        from inquiry_engine.main import app
        with TestClient(app) as client:
            yield client


def test_health(test_client):
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_reports_ready(test_client):
    response = test_client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["ready"] is True
    assert data["engine"]["records"] == 3


def test_recommend(test_client):
    response = test_client.post("/api/recommend", json={"inquiry_text": "קו 408 שינוי מסלול"})
    assert response.status_code == 200
    data = response.json()
    assert data["final_response"] == GOOD_RESPONSE
    assert data["response_source"] == "generated"
    assert data["validation"]["is_valid"] is True
    assert data["related_matches"][0]["case_id"] == "CAS-LINE-408-1"
    assert data["exact_match"]["case_id"] == "CAS-LINE-408-1"
    assert any("408" in r for r in data["related_matches"][0]["reasons"])


def test_recommend_respects_max_recommendations(test_client):
    response = test_client.post(
        "/api/recommend", json={"inquiry_text": "קו 408 שינוי מסלול", "max_recommendations": 1}
    )
    assert len(response.json()["related_matches"]) <= 1


def test_recommend_requires_inquiry(test_client):
    response = test_client.post("/api/recommend", json={"inquiry_text": ""})
    assert response.status_code == 422


def test_session_header_tracks_history(test_client):
    headers = {"X-Session-Id": "citizen-1"}
    test_client.post("/api/recommend", json={"inquiry_text": "קו 408 שינוי מסלול"}, headers=headers)
    data = test_client.get("/api/sessions").json()
    assert data["active_sessions"] == 1
    assert data["sessions"][0]["session_id"] == "citizen-1"


def test_cache_stats_and_clear(test_client):
    test_client.post("/api/recommend", json={"inquiry_text": "קו 408 שינוי מסלול"})
    assert test_client.get("/api/cache/stats").json()["size"] == 1
    assert test_client.post("/api/cache/clear").json() == {"status": "cleared"}
    assert test_client.get("/api/cache/stats").json()["size"] == 0


def test_analytics(test_client):
    test_client.post("/api/recommend", json={"inquiry_text": "קו 408 שינוי מסלול"})
    data = test_client.get("/api/analytics").json()
    assert data["total_queries"] == 1


def test_engine_failure_returns_503(test_client, engine):
    with patch.object(engine, "answer", side_effect=RuntimeError("boom")):
        response = test_client.post("/api/recommend", json={"inquiry_text": "קו 408"})
    assert response.status_code == 503
    assert "boom" in response.json()["detail"]


def test_corpus_failure_aborts_startup():
    with patch("inquiry_engine.core.startup.build_engine", side_effect=CorpusUnavailable("no corpus")):
        from inquiry_engine.main import app
        with pytest.raises(Exception):
            with TestClient(app):
                pass


def test_generate_official_response(test_client):
    response = test_client.post(
        "/api/generate-official-response",
        json={
            "original_inquiry": "קו 408 שינוי מסלול",
            "selected_response": "פנייתך בנושא שינוי מסלול קו 408 התקבלה.",
            "case_id": "CAS-LINE-408-1",
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert data["official_response"] == GOOD_RESPONSE
    assert data["source"] == "generated"
    assert data["validation"]["is_valid"] is True


def test_generate_official_response_requires_fields(test_client):
    response = test_client.post(
        "/api/generate-official-response", json={"original_inquiry": "קו 408"}
    )
    assert response.status_code == 422


def test_refresh(test_client):
    response = test_client.post("/api/refresh")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "refreshed"
    assert data["records_loaded"] == 3
    assert data["last_refresh"] is not None


def test_refresh_failure_returns_503(test_client, engine):
    with patch.object(engine, "refresh", side_effect=CorpusUnavailable("sheet unreachable")):
        response = test_client.post("/api/refresh")
    assert response.status_code == 503
    assert "sheet unreachable" in response.json()["detail"]


def test_data_sample(test_client):
    data = test_client.get("/api/data-sample").json()
    assert data["records_loaded"] == 3
    assert len(data["sample"]) == 3
    assert data["sample"][1]["case_id"] == "CAS-LINE-408-1"
