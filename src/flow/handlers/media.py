"""
Video and document node handler.

Advance on a single acknowledgement. No text is required.
"""

from src.flow.graph import Node, NodeType
from src.flow.session import SessionState

from . import register
from .base import ActionKind, HandlerContext, LearnerAction, StepResult, node_points

_ACK_KINDS = {ActionKind.ACKNOWLEDGE, ActionKind.CONTINUE, ActionKind.SUBMIT}


@register(NodeType.VIDEO, NodeType.DOCUMENT)
class MediaHandler:
    """Handler for content the learner watches or reads."""

    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        if action.kind not in _ACK_KINDS:
            noun = "video" if node.type == NodeType.VIDEO else "document"
            return StepResult.reject(f"Mark the {noun} as done to continue.")

        note = action.text.strip() or None
        return StepResult(
            advance=True,
            points=node_points(node),
            telemetry={"acknowledged": True, "content_type": node.type.value},
            student_response=note,
        )
