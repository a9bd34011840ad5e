"""
Free-text node handler: custom prompts, assignments, reflections and
collaboration steps. Any non-empty response advances and earns the
node's points.
"""

from src.flow.graph import Node, NodeType
from src.flow.session import SessionState

from . import register
from .base import ActionKind, HandlerContext, LearnerAction, StepResult, node_points


@register(NodeType.CUSTOM, NodeType.ASSIGNMENT, NodeType.REFLECTION, NodeType.COLLABORATION)
class FreeTextHandler:

    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        text = action.text.strip()
        if action.kind not in (ActionKind.SUBMIT, ActionKind.MESSAGE) or not text:
            return StepResult.reject("Write a response before continuing.")

        return StepResult(
            advance=True,
            points=node_points(node),
            student_response=text,
            telemetry={"word_count": len(text.split()), "characters": len(text)},
        )
