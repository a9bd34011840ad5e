"""
Condition node handler.

Sends the accumulated session signals to the classification service and
advances to whichever connection it designates.
"""

from __future__ import annotations

from loguru import logger

from src.flow.errors import CollaboratorError
from src.flow.graph import PATH_LABELS, Node, NodeType
from src.flow.session import SessionState
from src.integrations.services import ClassificationRequest, ClassificationResult

from . import register
from .base import ActionKind, HandlerContext, LearnerAction, StepResult, node_float


@register(NodeType.CONDITION)
class ConditionHandler:
    """Handler for classifier-driven branch points."""

    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        if action.kind not in (ActionKind.SUBMIT, ActionKind.MESSAGE, ActionKind.CONTINUE):
            return StepResult.reject("Share your response to continue.")

        text = action.text.strip()
        threshold = node_float(node, "performance_threshold", ctx.performance_threshold)
        request = ClassificationRequest(
            activity_id=session.activity_id,
            node_id=node.id,
            student_response=text,
            performance_history=session.history_payload(),
            threshold=threshold,
            context_sources=ctx.graph.context_sources,
        )

        try:
            result = await ctx.services.classifier.classify(request)
        except CollaboratorError as e:
            logger.warning(f"Classifier call failed on node {node.id}: {e}")
            return StepResult.fail("We could not evaluate your response. Please try again.")

        next_node_id = self.designated_target(node, result, ctx)
        return StepResult(
            advance=True,
            next_node_id=next_node_id,
            path_label=self.path_label(result),
            student_response=text or None,
            telemetry={
                "should_transition": result.should_transition,
                "label": result.label,
                "confidence": result.confidence,
                "reasoning": result.reasoning,
            },
        )

    def path_label(self, result: ClassificationResult) -> str | None:
        """Mastery/novel outcome of the classification, if it has one."""
        if result.label in PATH_LABELS:
            return result.label
        if result.should_transition is not None:
            return "mastery" if result.should_transition else "novel"
        return None

    def designated_target(self, node: Node, result: ClassificationResult, ctx: HandlerContext) -> str | None:
        """
        Resolve the classifier's answer to a target node.

        None means the classifier designated nothing usable, and the
        resolver's default (first connection) applies.
        """
        targets = {conn.target for conn in ctx.graph.outgoing(node.id)}
        if result.next_node_id and result.next_node_id in targets:
            return result.next_node_id

        target = ctx.resolver.target_for_label(node, result.label)
        if target:
            return target

        if result.should_transition is not None:
            label = "mastery" if result.should_transition else "novel"
            return ctx.resolver.target_for_label(node, label)

        return None
