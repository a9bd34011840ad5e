"""
Review node handler.

The review itself (flashcards or prompted responses) runs as a sub-flow,
see src.flow.review. This handler only accepts its completion and passes
any misconception analysis on, so the completion gate does not repeat it.
"""

from src.flow.graph import Node, NodeType
from src.flow.session import SessionState

from . import register
from .base import ActionKind, HandlerContext, LearnerAction, StepResult, node_points


@register(NodeType.REVIEW)
class ReviewHandler:

    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        if action.kind != ActionKind.REVIEW_COMPLETE or action.review is None:
            return StepResult.reject("Finish the review to continue.")

        completion = action.review
        analysis = completion.analysis
        answers = completion.responses.answers()
        return StepResult(
            advance=True,
            points=node_points(node),
            review_analysis=analysis,
            student_response="\n".join(answer for answer in answers if answer) or None,
            telemetry={
                "review_type": completion.responses.review_type,
                "responses": len(answers),
                "misconceptions": len(analysis.misconceptions) if analysis else None,
            },
        )
