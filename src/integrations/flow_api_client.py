"""
Learning platform API client for the activity flow engine.

Implements every collaborator protocol in src.integrations.services over
the platform's HTTP routes: AI tutoring, phase-transition classification,
misconception tracking, node analytics and review analysis.

Usage:
    async with FlowApiClient(FlowApiConfig(base_url=url, api_key=key)) as api:
        services = api.collaborators()
        engine = ActivityEngine(graph, session, services)
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel

from src.flow.errors import CollaboratorError

from .services import (
    AnalyticsOutcome,
    ClassificationRequest,
    ClassificationResult,
    Collaborators,
    Misconception,
    NodeTelemetry,
    ReviewAnalysis,
    ReviewResponses,
    TutorReply,
    TutorRequest,
)

ALREADY_TRACKED_MESSAGE = "already tracked"

T = TypeVar("T")


class FlowApiConfig(BaseModel):
    """Connection settings for the learning platform."""

    base_url: str = "http://localhost:3000"
    api_key: str | None = None
    timeout_seconds: float = 30.0

    # Endpoints
    tutor_endpoint: str = "/api/ai-chat"
    classify_endpoint: str = "/api/ai/check-phase-transition"
    misconceptions_endpoint: str = "/api/misconceptions"
    resolve_misconceptions_endpoint: str = "/api/misconceptions/resolve"
    analytics_endpoint: str = "/api/analytics/track-node"
    review_analysis_endpoint: str = "/api/ai/analyze-review-responses"

    @classmethod
    def from_settings(cls, settings: Any) -> FlowApiConfig:
        return cls(
            base_url=settings.flow_api_base_url,
            api_key=settings.flow_api_key,
            timeout_seconds=settings.flow_api_timeout_seconds,
        )


class FlowApiClient:
    """HTTP client for the learning platform's activity routes."""

    def __init__(self, config: FlowApiConfig | None = None):
        self.config = config or FlowApiConfig()
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["X-API-Key"] = self.config.api_key
        self.client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            follow_redirects=True,
        )

    async def __aenter__(self) -> FlowApiClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def collaborators(self) -> Collaborators:
        """This client in every collaborator role."""
        return Collaborators(
            tutor=self,
            classifier=self,
            misconceptions=self,
            analytics=self,
            review_analyzer=self,
        )

    # =========================================================================
    # Transport
    # =========================================================================

    async def _post(self, service: str, endpoint: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self.client.post(endpoint, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"{service} request to {endpoint} failed with HTTP {status}")
            raise CollaboratorError(service, f"HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.warning(f"{service} request to {endpoint} failed: {e}")
            raise CollaboratorError(service, str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise CollaboratorError(service, "Response was not valid JSON") from e

    async def _get(self, service: str, endpoint: str, params: dict[str, Any]) -> Any:
        try:
            response = await self.client.get(endpoint, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"{service} request to {endpoint} failed with HTTP {status}")
            raise CollaboratorError(service, f"HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.warning(f"{service} request to {endpoint} failed: {e}")
            raise CollaboratorError(service, str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise CollaboratorError(service, "Response was not valid JSON") from e

    # =========================================================================
    # Collaborator roles
    # =========================================================================

    def _parse(self, service: str, parser: Callable[[Any], T], data: Any) -> T:
        try:
            return parser(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"{service} returned an unexpected payload: {e}")
            raise CollaboratorError(service, f"Unexpected response payload: {e}") from e

    async def tutor(self, request: TutorRequest) -> TutorReply:
        data = await self._post("tutor", self.config.tutor_endpoint, request.to_dict())
        return self._parse("tutor", TutorReply.from_dict, data or {})

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        data = await self._post("classifier", self.config.classify_endpoint, request.to_dict())
        return self._parse("classifier", ClassificationResult.from_dict, data or {})

    async def list_open(self, learner_id: str, activity_id: str) -> list[Misconception]:
        """
        Unresolved misconceptions for the learner on this activity.

        The route has answered both a bare list and {misconceptions: [...]}.
        """
        data = await self._get(
            "misconceptions",
            self.config.misconceptions_endpoint,
            {"student_id": learner_id, "activity_id": activity_id, "resolved": "false"},
        )

        def parse(data: Any) -> list[Misconception]:
            items = data.get("misconceptions", []) if isinstance(data, dict) else data or []
            return [Misconception.from_dict(item) for item in items if not item.get("resolved_at")]

        return self._parse("misconceptions", parse, data)

    async def mark_resolved(self, learner_id: str, activity_id: str) -> None:
        await self._post(
            "misconceptions",
            self.config.resolve_misconceptions_endpoint,
            {"student_id": learner_id, "activity_id": activity_id},
        )

    async def submit(self, telemetry: NodeTelemetry) -> AnalyticsOutcome:
        """Analytics never raises; failures come back as AnalyticsOutcome.ERROR."""
        try:
            data = await self._post("analytics", self.config.analytics_endpoint, telemetry.to_dict())
        except CollaboratorError:
            return AnalyticsOutcome.ERROR

        message = str((data or {}).get("message", "")).lower() if isinstance(data, dict) else ""
        if ALREADY_TRACKED_MESSAGE in message:
            return AnalyticsOutcome.ALREADY_TRACKED
        if isinstance(data, dict) and data.get("success") is False:
            return AnalyticsOutcome.ERROR
        return AnalyticsOutcome.SUCCESS

    async def analyze(
        self,
        learner_id: str,
        activity_id: str,
        node_id: str,
        responses: ReviewResponses,
        context: str = "",
    ) -> ReviewAnalysis:
        payload = {
            "student_id": learner_id,
            "activity_id": activity_id,
            "node_id": node_id,
            "context": context,
            **responses.to_dict(),
        }
        data = await self._post("review_analysis", self.config.review_analysis_endpoint, payload)
        return self._parse("review_analysis", ReviewAnalysis.from_dict, data or {})

    async def health_check(self) -> bool:
        """
        Check if the platform is reachable.

        Returns:
            True if API is healthy, False otherwise
        """
        try:
            response = await self.client.get("/api/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
