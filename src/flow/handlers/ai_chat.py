"""
AI tutoring dialogue handler.

Each learner message goes to the tutoring service together with the
running context: prior exchanges on this node, performance so far and the
node's configuration. The dialogue never advances on its own; the learner
must ask to continue.

With branching enabled, every scored reply re-classifies the learner onto
the "mastery" or "novel" path against `performance_threshold`.
"""

from __future__ import annotations

from loguru import logger

from src.flow.errors import CollaboratorError
from src.flow.graph import Node, NodeType
from src.flow.session import PerformanceRecord, SessionState
from src.integrations.services import TutorRequest

from . import register
from .base import ActionKind, HandlerContext, LearnerAction, StepResult, node_float, now_iso


def classify_path(score: float, threshold: float) -> str:
    return "mastery" if score >= threshold else "novel"


def _as_list(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    return [str(item) for item in value]


@register(NodeType.AI_CHAT)
class AIChatHandler:
    """Handler for AI tutoring nodes."""

    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        if action.kind == ActionKind.CONTINUE:
            transcript = session.transcripts.get(node.id, [])
            return StepResult(
                advance=True,
                telemetry={
                    "score": session.latest_score(node.id),
                    "exchanges": sum(1 for turn in transcript if turn.get("role") == "learner"),
                    "path": session.current_path_label,
                },
            )

        if action.kind not in (ActionKind.MESSAGE, ActionKind.SUBMIT):
            return StepResult.reject("Send a message to the tutor, or continue when you are ready.")

        text = action.text.strip()
        if not text:
            return StepResult.reject("Type a message for the tutor first.")

        request = TutorRequest(
            message=text,
            activity_id=session.activity_id,
            session_id=session.session_id,
            learning_objectives=_as_list(node.config.get("learning_objectives")),
            performance_history=session.history_payload(),
            node_config=node.config,
            history=list(session.transcripts.get(node.id, [])),
            context_sources=ctx.graph.context_sources,
        )

        try:
            reply = await ctx.services.tutor.tutor(request)
        except CollaboratorError as e:
            logger.warning(f"Tutor call failed on node {node.id}: {e}")
            return StepResult.fail("The tutor is not responding right now. Please try again.")

        score = reply.performance_score
        if score is None:
            score = ctx.default_performance_score

        path_label = None
        if node.branching_enabled:
            threshold = node_float(node, "performance_threshold", ctx.performance_threshold)
            path_label = classify_path(score, threshold)
            logger.debug(f"Node {node.id}: performance {score} vs {threshold} -> {path_label}")

        return StepResult(
            reply=reply.response,
            performance=PerformanceRecord(
                node_id=node.id,
                node_type=node.type.value,
                score=score,
                timestamp=now_iso(),
                response=text,
            ),
            path_label=path_label,
            transcript=[
                {"role": "learner", "content": text},
                {"role": "tutor", "content": reply.response},
            ],
            telemetry={
                "concepts_mastered": reply.concepts_mastered,
                "concepts_struggling": reply.concepts_struggling,
            },
        )
