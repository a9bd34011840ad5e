"""
Start and end node handlers.

The end node never completes by itself: reaching it hands control to the
completion gate, which the engine runs.
"""

from src.flow.graph import Node, NodeType
from src.flow.session import SessionState

from . import register
from .base import HandlerContext, LearnerAction, StepResult


@register(NodeType.START)
class StartHandler:
    """Start needs no input and always advances."""

    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        return StepResult(advance=True)


@register(NodeType.END)
class EndHandler:
    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        return StepResult()
