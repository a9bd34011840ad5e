"""
Collaborator contracts for the activity flow engine.

The engine only depends on these protocols. `FlowApiClient` implements all
of them over HTTP; `offline` provides local implementations.
Payloads mirror the JSON the platform endpoints speak (camelCase for the
AI routes, snake_case for analytics and misconceptions).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol


# =============================================================================
# AI tutoring
# =============================================================================


@dataclass
class TutorRequest:
    message: str
    activity_id: str
    session_id: str
    learning_objectives: list[str] = field(default_factory=list)
    performance_history: list[dict[str, Any]] = field(default_factory=list)
    node_config: dict[str, Any] = field(default_factory=dict)
    history: list[dict[str, str]] = field(default_factory=list)
    context_sources: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "activityId": self.activity_id,
            "sessionId": self.session_id,
            "learningObjectives": self.learning_objectives,
            "performanceHistory": self.performance_history,
            "nodeConfig": self.node_config,
            "history": self.history,
            "context": self.context_sources,
        }


@dataclass
class TutorReply:
    response: str
    performance_score: float | None = None
    concepts_mastered: list[str] = field(default_factory=list)
    concepts_struggling: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TutorReply:
        score = data.get("performanceScore")
        if score is None:
            score = data.get("confidenceScore")
        return cls(
            response=data.get("response", ""),
            performance_score=float(score) if score is not None else None,
            concepts_mastered=data.get("conceptsMastered") or data.get("concepts_mastered") or [],
            concepts_struggling=data.get("conceptsStruggling") or data.get("concepts_struggling") or [],
        )


class TutorService(Protocol):
    async def tutor(self, request: TutorRequest) -> TutorReply:
        ...


# =============================================================================
# Classification / phase transition
# =============================================================================


@dataclass
class ClassificationRequest:
    activity_id: str
    node_id: str
    student_response: str
    performance_history: list[dict[str, Any]] = field(default_factory=list)
    threshold: float = 70.0
    context_sources: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "nodeId": self.node_id,
            "studentResponse": self.student_response,
            "performanceHistory": self.performance_history,
            "threshold": self.threshold,
            "contextSources": self.context_sources,
        }


@dataclass
class ClassificationResult:
    should_transition: bool | None = None
    next_node_id: str | None = None
    label: str | None = None
    confidence: float | None = None
    reasoning: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClassificationResult:
        should = data.get("shouldTransition")
        if should is None:
            should = data.get("shouldTakeMasteryPath")
        return cls(
            should_transition=should,
            next_node_id=data.get("nextNodeId"),
            label=data.get("label"),
            confidence=data.get("confidence"),
            reasoning=data.get("reasoning", ""),
        )


class ClassifierService(Protocol):
    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        ...


# =============================================================================
# Misconceptions
# =============================================================================


SEVERITIES = ("low", "medium", "high")


def normalize_severity(value: str | None) -> str:
    """Map free-form severities onto low/medium/high (default medium)."""
    if not value:
        return "medium"
    value = value.strip().lower()
    return value if value in SEVERITIES else "medium"


@dataclass
class Misconception:
    concept: str
    description: str
    severity: str = "medium"
    id: str | None = None
    correct_understanding: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Misconception:
        evidence = data.get("evidence") if isinstance(data.get("evidence"), dict) else {}
        return cls(
            concept=data.get("concept") or "Concept needs review",
            description=(
                data.get("description")
                or data.get("misconception_description")
                or data.get("misconception")
                or ""
            ),
            severity=normalize_severity(data.get("severity")),
            id=data.get("id"),
            correct_understanding=(
                data.get("correct_understanding") or evidence.get("correct_understanding", "")
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MisconceptionService(Protocol):
    async def list_open(self, learner_id: str, activity_id: str) -> list[Misconception]:
        """Misconceptions not yet resolved for this learner and activity."""
        ...

    async def mark_resolved(self, learner_id: str, activity_id: str) -> None:
        ...


# =============================================================================
# Analytics
# =============================================================================


class AnalyticsOutcome(str, Enum):
    SUCCESS = "success"
    ALREADY_TRACKED = "already_tracked"
    ERROR = "error"

    @property
    def accepted(self) -> bool:
        return self != AnalyticsOutcome.ERROR


@dataclass
class NodeTelemetry:
    learner_id: str
    activity_id: str
    node_id: str
    node_type: str
    performance_data: dict[str, Any] = field(default_factory=dict)
    student_response: str | None = None
    context_sources: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "student_id": self.learner_id,
            "activity_id": self.activity_id,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "performance_data": self.performance_data,
            "context_sources": self.context_sources,
        }
        if self.student_response is not None:
            payload["student_response"] = self.student_response
        return payload


class AnalyticsService(Protocol):
    async def submit(self, telemetry: NodeTelemetry) -> AnalyticsOutcome:
        ...


# =============================================================================
# Review analysis
# =============================================================================


@dataclass
class ReviewResponses:
    review_type: str  # "flashcards" | "teacher_review"
    flashcard_terms: list[dict[str, str]] = field(default_factory=list)
    teacher_responses: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"review_type": self.review_type}
        if self.review_type == "flashcards":
            data["flashcard_terms"] = self.flashcard_terms
        else:
            data["teacher_responses"] = self.teacher_responses
        return data

    def answers(self) -> list[str]:
        if self.review_type == "flashcards":
            return [item.get("student_definition", "") for item in self.flashcard_terms]
        return [item.get("response", "") for item in self.teacher_responses]


@dataclass
class ReviewAnalysis:
    misconceptions: list[Misconception] = field(default_factory=list)
    concepts_understood: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)
    recommended_review: list[str] = field(default_factory=list)
    overall_assessment: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewAnalysis:
        # Endpoints have wrapped the result as {analysis: ...} or {data: ...}
        data = data.get("analysis") or data.get("data") or data
        return cls(
            misconceptions=[Misconception.from_dict(m) for m in data.get("misconceptions") or []],
            concepts_understood=data.get("concepts_understood") or [],
            strengths=data.get("strengths") or [],
            recommended_review=data.get("recommended_review") or [],
            overall_assessment=data.get("overall_assessment") or "",
        )


class ReviewAnalyzer(Protocol):
    async def analyze(
        self,
        learner_id: str,
        activity_id: str,
        node_id: str,
        responses: ReviewResponses,
        context: str = "",
    ) -> ReviewAnalysis:
        ...


@dataclass
class Collaborators:
    """The external services one engine instance talks to."""
    tutor: TutorService
    classifier: ClassifierService
    misconceptions: MisconceptionService
    analytics: AnalyticsService
    review_analyzer: ReviewAnalyzer | None = None
