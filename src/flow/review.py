"""
Review sub-flow: flashcards or teacher-prompted responses.

Collects the learner's answers for a review node, asks the analysis
service for misconceptions and produces the ReviewCompletion the review
handler consumes. A failed analysis never blocks completion; the gate
will query for misconceptions itself instead.

Usage:
    review = ReviewSession(node, learner_id, activity_id, analyzer)
    for index, item in enumerate(review.items):
        review.record(index, input(item))
    completion = await review.finish()
    await engine.act(LearnerAction.review_complete(completion))
"""

from __future__ import annotations

from loguru import logger

from src.integrations.services import ReviewAnalyzer, ReviewResponses

from .errors import CollaboratorError, NodeValidationError
from .graph import Node, NodeType
from .handlers.base import ReviewCompletion

FLASHCARDS = "flashcards"
TEACHER_REVIEW = "teacher_review"


def flashcard_terms(config: dict) -> list[str]:
    """Terms may be authored as plain strings or {id, term} objects."""
    terms = []
    for item in config.get("flashcard_terms") or []:
        term = item.get("term") if isinstance(item, dict) else item
        if term and str(term).strip():
            terms.append(str(term).strip())
    return terms


def teacher_prompts(config: dict) -> list[str]:
    prompts = config.get("prompts") or ""
    if isinstance(prompts, list):
        return [str(p).strip() for p in prompts if str(p).strip()]
    return [line.strip() for line in str(prompts).splitlines() if line.strip()]


class ReviewSession:
    """Collects one learner's responses for a review node."""

    def __init__(
        self,
        node: Node,
        learner_id: str,
        activity_id: str,
        analyzer: ReviewAnalyzer | None = None,
    ):
        if node.type != NodeType.REVIEW:
            raise ValueError(f"ReviewSession needs a review node, got {node.type.value}")
        self.node = node
        self.learner_id = learner_id
        self.activity_id = activity_id
        self.analyzer = analyzer

        self.review_type = node.config.get("review_type") or FLASHCARDS
        if self.review_type == FLASHCARDS:
            self.items = flashcard_terms(node.config)
        else:
            self.items = teacher_prompts(node.config)
        self.responses: list[str] = [""] * len(self.items)

    def record(self, index: int, text: str) -> None:
        if not 0 <= index < len(self.items):
            raise IndexError(f"Review item {index} out of range (0-{len(self.items) - 1})")
        self.responses[index] = text.strip()

    @property
    def is_complete(self) -> bool:
        return all(self.responses)

    def build_responses(self) -> ReviewResponses:
        if self.review_type == FLASHCARDS:
            return ReviewResponses(
                review_type=FLASHCARDS,
                flashcard_terms=[
                    {"term": term, "student_definition": answer}
                    for term, answer in zip(self.items, self.responses)
                ],
            )
        return ReviewResponses(
            review_type=TEACHER_REVIEW,
            teacher_responses=[
                {"prompt": prompt, "response": answer}
                for prompt, answer in zip(self.items, self.responses)
            ],
        )

    async def finish(self) -> ReviewCompletion:
        """
        Analyze the responses and build the completion payload.

        Raises:
            NodeValidationError: If any item is still unanswered
        """
        if not self.is_complete:
            missing = [item for item, answer in zip(self.items, self.responses) if not answer]
            raise NodeValidationError("Answer every review item before finishing.", missing)

        responses = self.build_responses()
        analysis = None
        if self.analyzer is not None:
            try:
                analysis = await self.analyzer.analyze(
                    self.learner_id,
                    self.activity_id,
                    self.node.id,
                    responses,
                    context=str(self.node.config.get("context") or ""),
                )
            except CollaboratorError as e:
                logger.warning(f"Review analysis failed for node {self.node.id}; continuing without it: {e}")

        return ReviewCompletion(responses=responses, analysis=analysis)
