"""
Base protocol and types for node handlers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from src.flow.graph import ActivityGraph, Node
from src.flow.session import PerformanceRecord, SessionState
from src.integrations.services import Collaborators, ReviewAnalysis, ReviewResponses

if TYPE_CHECKING:
    from src.flow.resolver import TraversalResolver


class ActionKind(str, Enum):
    """What the learner did."""
    ACKNOWLEDGE = "acknowledge"  # "I watched / read it"
    ANSWER = "answer"  # Store quiz answers without submitting
    SUBMIT = "submit"  # Submit text or quiz answers
    MESSAGE = "message"  # Send a message to the tutor
    CONTINUE = "continue"  # Explicitly move on
    REVIEW_COMPLETE = "review_complete"  # Review sub-flow finished


@dataclass
class ReviewCompletion:
    """What the review sub-flow hands back when it finishes."""
    responses: ReviewResponses
    analysis: ReviewAnalysis | None = None


@dataclass
class LearnerAction:
    """A single learner action against the current node."""
    kind: ActionKind
    text: str = ""
    answers: dict[str, str] = field(default_factory=dict)
    review: ReviewCompletion | None = None

    @classmethod
    def acknowledge(cls) -> LearnerAction:
        return cls(ActionKind.ACKNOWLEDGE)

    @classmethod
    def answer(cls, answers: dict[str, str]) -> LearnerAction:
        return cls(ActionKind.ANSWER, answers=dict(answers))

    @classmethod
    def submit(cls, text: str = "", answers: dict[str, str] | None = None) -> LearnerAction:
        return cls(ActionKind.SUBMIT, text=text, answers=dict(answers or {}))

    @classmethod
    def message(cls, text: str) -> LearnerAction:
        return cls(ActionKind.MESSAGE, text=text)

    @classmethod
    def proceed(cls) -> LearnerAction:
        return cls(ActionKind.CONTINUE)

    @classmethod
    def review_complete(cls, completion: ReviewCompletion) -> LearnerAction:
        return cls(ActionKind.REVIEW_COMPLETE, review=completion)


@dataclass
class StepResult:
    """
    Effects of handling one action.

    `score_delta` is always applied; `points` only the first time a node
    awards them in a session.
    """
    advance: bool = False
    score_delta: float = 0.0
    points: float = 0.0
    performance: PerformanceRecord | None = None
    path_label: str | None = None
    quiz_answers: dict[str, str] = field(default_factory=dict)
    next_node_id: str | None = None
    reply: str | None = None
    transcript: list[dict[str, str]] = field(default_factory=list)
    review_analysis: ReviewAnalysis | None = None
    telemetry: dict[str, Any] = field(default_factory=dict)
    student_response: str | None = None

    # Outcome messages
    message: str | None = None
    rejected: bool = False  # Validation: input incomplete
    failed: bool = False  # Collaborator failure: retryable

    @classmethod
    def reject(cls, message: str, **kwargs: Any) -> StepResult:
        return cls(message=message, rejected=True, **kwargs)

    @classmethod
    def fail(cls, message: str) -> StepResult:
        return cls(message=message, failed=True)


@dataclass
class HandlerContext:
    """Read-only collaborators and defaults a handler may use."""
    graph: ActivityGraph
    services: Collaborators
    resolver: TraversalResolver
    performance_threshold: float = 70.0
    default_performance_score: float = 70.0


def now_iso() -> str:
    return datetime.now().isoformat()


def node_float(node: Node, key: str, default: float) -> float:
    """Numeric config value, or `default` if unset or malformed."""
    value = node.config.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def node_points(node: Node) -> float:
    """Configured points for a node (0 if unset or malformed)."""
    return node_float(node, "points", 0.0)


class NodeHandler(Protocol):
    """Protocol for node type handlers."""

    async def handle(
        self,
        node: Node,
        action: LearnerAction,
        session: SessionState,
        ctx: HandlerContext,
    ) -> StepResult:
        """Handle a learner action on `node`. Must not mutate `session`."""
        ...
