"""
Unit tests for the learning platform API client.
"""

import pytest
import pytest_asyncio
from httpx import ConnectTimeout, Request, Response

from src.flow.errors import CollaboratorError
from src.integrations.flow_api_client import FlowApiClient, FlowApiConfig
from src.integrations.services import (
    AnalyticsOutcome,
    ClassificationRequest,
    NodeTelemetry,
    ReviewResponses,
    TutorRequest,
)

BASE_URL = "http://platform.test"


def respond(method, url, status=200, payload=None):
    request = Request(method, f"{BASE_URL}{url}")
    return Response(status, json=payload if payload is not None else {}, request=request)


@pytest_asyncio.fixture
async def client():
    """Platform client instance."""
    client = FlowApiClient(FlowApiConfig(base_url=BASE_URL, api_key="secret-key", timeout_seconds=5))
    yield client
    await client.close()


@pytest.fixture
def telemetry():
    return NodeTelemetry(
        learner_id="learner-1",
        activity_id="activity-1",
        node_id="quiz",
        node_type="quiz",
        performance_data={"score": 80},
    )


class TestFlowApiConfig:

    def test_defaults(self):
        config = FlowApiConfig()
        assert config.base_url == "http://localhost:3000"
        assert config.analytics_endpoint == "/api/analytics/track-node"

    def test_api_key_header(self, client):
        assert client.client.headers["X-API-Key"] == "secret-key"

    def test_no_api_key_header_without_key(self):
        client = FlowApiClient(FlowApiConfig(base_url=BASE_URL))
        assert "X-API-Key" not in client.client.headers


class TestTutorAndClassifier:

    @pytest.mark.asyncio
    async def test_tutor_parses_reply(self, client, monkeypatch):
        sent = {}

        async def mock_post(url, **kwargs):
            sent["url"] = url
            sent["json"] = kwargs["json"]
            return respond("POST", url, payload={
                "response": "Good thinking. What else do leaves need?",
                "performanceScore": 82,
                "conceptsMastered": ["light"],
            })

        monkeypatch.setattr(client.client, "post", mock_post)

        reply = await client.tutor(TutorRequest(message="They need light", activity_id="a1", session_id="s1"))

        assert sent["url"] == "/api/ai-chat"
        assert sent["json"]["activityId"] == "a1"
        assert sent["json"]["message"] == "They need light"
        assert reply.performance_score == 82.0
        assert reply.concepts_mastered == ["light"]

    @pytest.mark.asyncio
    async def test_tutor_without_score(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return respond("POST", url, payload={"response": "Tell me more."})

        monkeypatch.setattr(client.client, "post", mock_post)

        reply = await client.tutor(TutorRequest(message="hm", activity_id="a1", session_id="s1"))
        assert reply.performance_score is None

    @pytest.mark.asyncio
    async def test_non_numeric_score_raises_collaborator_error(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return respond("POST", url, payload={"response": "hi", "performanceScore": "n/a"})

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(CollaboratorError) as exc:
            await client.tutor(TutorRequest(message="hi", activity_id="a1", session_id="s1"))
        assert exc.value.service == "tutor"

    @pytest.mark.asyncio
    async def test_malformed_misconception_list_raises_collaborator_error(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            return respond("GET", url, payload=["not an object"])

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(CollaboratorError):
            await client.list_open("learner-1", "activity-1")

    @pytest.mark.asyncio
    async def test_server_error_raises_collaborator_error(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return respond("POST", url, status=500, payload={"error": "Internal server error"})

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(CollaboratorError) as exc:
            await client.tutor(TutorRequest(message="hi", activity_id="a1", session_id="s1"))
        assert exc.value.status_code == 500
        assert exc.value.service == "tutor"

    @pytest.mark.asyncio
    async def test_timeout_raises_collaborator_error(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            raise ConnectTimeout("Timeout")

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(CollaboratorError) as exc:
            await client.classify(ClassificationRequest("a1", "chat", "answer"))
        assert exc.value.status_code is None

    @pytest.mark.asyncio
    async def test_classify_accepts_legacy_field(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return respond("POST", url, payload={"shouldTakeMasteryPath": True, "confidence": 0.9})

        monkeypatch.setattr(client.client, "post", mock_post)

        result = await client.classify(ClassificationRequest("a1", "chat", "answer", threshold=75))
        assert result.should_transition is True
        assert result.confidence == 0.9


class TestMisconceptions:

    @pytest.mark.asyncio
    async def test_list_open_bare_list(self, client, monkeypatch):
        sent = {}

        async def mock_get(url, **kwargs):
            sent["params"] = kwargs["params"]
            return respond("GET", url, payload=[
                {"concept": "Osmosis", "misconception_description": "Solutes move", "severity": "HIGH"},
                {"concept": "Diffusion", "description": "x", "resolved_at": "2026-01-01T00:00:00"},
            ])

        monkeypatch.setattr(client.client, "get", mock_get)

        items = await client.list_open("learner-1", "activity-1")

        assert sent["params"] == {"student_id": "learner-1", "activity_id": "activity-1", "resolved": "false"}
        assert [m.concept for m in items] == ["Osmosis"]
        assert items[0].severity == "high"

    @pytest.mark.asyncio
    async def test_list_open_wrapped(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            return respond("GET", url, payload={"misconceptions": [{"concept": "Light", "description": "y"}]})

        monkeypatch.setattr(client.client, "get", mock_get)

        items = await client.list_open("learner-1", "activity-1")
        assert items[0].concept == "Light"
        assert items[0].severity == "medium"

    @pytest.mark.asyncio
    async def test_list_open_failure_raises(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            return respond("GET", url, status=503)

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(CollaboratorError):
            await client.list_open("learner-1", "activity-1")


class TestAnalytics:

    @pytest.mark.asyncio
    async def test_success(self, client, telemetry, monkeypatch):
        sent = {}

        async def mock_post(url, **kwargs):
            sent["json"] = kwargs["json"]
            return respond("POST", url, payload={"success": True})

        monkeypatch.setattr(client.client, "post", mock_post)

        assert await client.submit(telemetry) == AnalyticsOutcome.SUCCESS
        assert sent["json"]["student_id"] == "learner-1"
        assert "student_response" not in sent["json"]

    @pytest.mark.asyncio
    async def test_already_tracked(self, client, telemetry, monkeypatch):
        async def mock_post(url, **kwargs):
            return respond("POST", url, payload={"success": True, "message": "Analytics already tracked"})

        monkeypatch.setattr(client.client, "post", mock_post)

        assert await client.submit(telemetry) == AnalyticsOutcome.ALREADY_TRACKED

    @pytest.mark.asyncio
    async def test_errors_do_not_raise(self, client, telemetry, monkeypatch):
        async def mock_post(url, **kwargs):
            return respond("POST", url, status=500)

        monkeypatch.setattr(client.client, "post", mock_post)

        assert await client.submit(telemetry) == AnalyticsOutcome.ERROR

    @pytest.mark.asyncio
    async def test_unsuccessful_body(self, client, telemetry, monkeypatch):
        async def mock_post(url, **kwargs):
            return respond("POST", url, payload={"success": False})

        monkeypatch.setattr(client.client, "post", mock_post)

        assert await client.submit(telemetry) == AnalyticsOutcome.ERROR


class TestReviewAnalysis:

    @pytest.mark.asyncio
    async def test_analyze_payload_and_result(self, client, monkeypatch):
        sent = {}

        async def mock_post(url, **kwargs):
            sent["url"] = url
            sent["json"] = kwargs["json"]
            return respond("POST", url, payload={
                "analysis": {
                    "misconceptions": [{"concept": "Stomata", "misconception": "Thinks they absorb light"}],
                    "concepts_understood": ["Chlorophyll"],
                }
            })

        monkeypatch.setattr(client.client, "post", mock_post)

        responses = ReviewResponses(
            review_type="flashcards",
            flashcard_terms=[{"term": "Stomata", "student_definition": "absorb light"}],
        )
        analysis = await client.analyze("learner-1", "activity-1", "review", responses)

        assert sent["url"] == "/api/ai/analyze-review-responses"
        assert sent["json"]["review_type"] == "flashcards"
        assert sent["json"]["node_id"] == "review"
        assert sent["json"]["flashcard_terms"][0]["term"] == "Stomata"
        assert analysis.misconceptions[0].description == "Thinks they absorb light"
        assert analysis.concepts_understood == ["Chlorophyll"]


class TestHealthCheck:

    @pytest.mark.asyncio
    async def test_healthy(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            return respond("GET", url, payload={"status": "ok"})

        monkeypatch.setattr(client.client, "get", mock_get)
        assert await client.health_check() is True

    @pytest.mark.asyncio
    async def test_unreachable(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            raise ConnectTimeout("Timeout")

        monkeypatch.setattr(client.client, "get", mock_get)
        assert await client.health_check() is False
