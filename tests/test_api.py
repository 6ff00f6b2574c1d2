"""
Tests for FastAPI Assessment API — integration tests for the HTTP surface.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from conftest import FakeReasoningService, make_analysis
from joshua.api.dependencies import get_pipeline
from joshua.core.risk_scorer import RiskScorer
from joshua.engine.pipeline import AssessmentPipeline
from joshua.errors import AuthenticationError, ServiceUnavailableError
from joshua.main import app

client = TestClient(app)


@pytest.fixture
def use_service():
    def install(results):
        pipeline = AssessmentPipeline(
            service=FakeReasoningService(results),
            scorer=RiskScorer(iterations=100),
            analyses=3,
        )
        app.dependency_overrides[get_pipeline] = lambda: pipeline

    yield install
    app.dependency_overrides.clear()


@pytest.fixture
def assess_body(aggregated_data, history):
    return {
        "data": aggregated_data.model_dump(mode="json"),
        "history": history.model_dump(mode="json"),
    }


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "model" in data
    assert data["breaker"] == "closed"


def test_metrics_endpoint():
    response = client.get("/metrics")
    assert response.status_code == 200
    data = response.json()
    assert "total_requests" in data["calls"]
    assert data["breaker"]["name"] == "reasoning"


def test_assess_success(use_service, assess_body):
    use_service([make_analysis(90), make_analysis(95), make_analysis(100)])
    response = client.post("/assess", json=assess_body)

    assert response.status_code == 200
    data = response.json()
    assert data["consensus"]["consensus_seconds"] == 95
    assert "seconds_to_midnight" in data["assessment"]
    assert len(data["assessment"]["confidence_interval"]) == 2
    assert data["report"]["analyses_succeeded"] == 3


def test_assess_without_history(use_service, aggregated_data):
    use_service([make_analysis(90), make_analysis(95), make_analysis(100)])
    response = client.post("/assess", json={"data": aggregated_data.model_dump(mode="json")})

    assert response.status_code == 200
    assert response.json()["assessment"]["trend_direction"] == "uncertain"


def test_assess_failure_reports_stage(use_service, assess_body):
    use_service([AuthenticationError("bad key", 401)] * 3)
    response = client.post("/assess", json=assess_body)

    assert response.status_code == 502
    data = response.json()
    assert data["message"] == "assessment_failed"
    assert data["stage"] == "analysis"
    assert data["error_kind"] == "authentication"
    assert data["report"]["input_valid"] is True


def test_assess_unavailable_service(use_service, assess_body, caplog):
    use_service([ServiceUnavailableError("reasoning", 30.0)] * 3)
    with caplog.at_level(logging.WARNING, logger="joshua.api.assess"):
        response = client.post("/assess", json=assess_body)

    assert response.status_code == 503
    assert response.json()["error_kind"] == "unavailable"
    assert "failed at analysis stage (unavailable), answering 503" in caplog.text


def test_assess_empty_collection(use_service, assess_body):
    use_service([])
    assess_body["data"]["items"] = []
    response = client.post("/assess", json=assess_body)

    assert response.status_code == 502
    assert response.json()["stage"] == "collection"


def test_assess_rejects_malformed_body():
    response = client.post("/assess", json={"data": {"items": "nope"}})
    assert response.status_code == 422


def test_assess_rejects_undecodable_body():
    response = client.post(
        "/assess",
        content=b"\xff\xfe\x00not utf-8",
        headers={"content-type": "application/octet-stream"},
    )
    assert response.status_code == 422
