"""
Offline collaborators.

Local stand-ins for the platform services, used by `flow play --offline`
and the test suite. Scoring uses the same text heuristic the platform
falls back to when no model is available.
"""

from __future__ import annotations

import re
from datetime import datetime

from loguru import logger

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

ANALYSIS_MARKERS = ("because", "therefore", "however")
UNSURE_MARKERS = ("don't know", "dont know", "not sure", "no idea", "idk")


def response_score(text: str) -> int:
    """
    Heuristic 0-100 quality score for a free-text response.

    +20 for more than 50 words, +15 for asking a question, +25 for causal
    or contrastive reasoning, +20 past 100 characters, +20 past 200.
    """
    score = 0
    if len(text.split(" ")) > 50:
        score += 20
    if "?" in text:
        score += 15
    if any(marker in text for marker in ANALYSIS_MARKERS):
        score += 25
    if len(text) > 100:
        score += 20
    if len(text) > 200:
        score += 20
    return score


class HeuristicTutor:
    """Scripted tutor that scores each message with `response_score`."""

    def __init__(self):
        self.requests: list[TutorRequest] = []

    async def tutor(self, request: TutorRequest) -> TutorReply:
        self.requests.append(request)
        score = response_score(request.message)
        objectives = request.learning_objectives or request.node_config.get("learning_objectives") or []
        focus = objectives[0] if objectives else "the main idea"

        if score >= 70:
            reply = f"Good reasoning. How would you apply that to {focus} in a new situation?"
            mastered, struggling = [focus], []
        elif score >= 40:
            reply = f"You're on the right track. Can you explain why that holds for {focus}?"
            mastered, struggling = [], []
        else:
            reply = f"Let's slow down. In your own words, what do you already know about {focus}?"
            mastered, struggling = [], [focus]

        return TutorReply(
            response=reply,
            performance_score=float(score),
            concepts_mastered=mastered,
            concepts_struggling=struggling,
        )


class HeuristicClassifier:
    """Mastery/novel classification from `response_score` against the threshold."""

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        score = response_score(request.student_response)
        mastery = score >= request.threshold
        return ClassificationResult(
            should_transition=mastery,
            label="mastery" if mastery else "novel",
            confidence=round(score / 100, 2),
            reasoning="Used simple scoring method",
        )


class InMemoryMisconceptionStore:
    """Misconceptions per (learner, activity), with resolution timestamps."""

    def __init__(self):
        self._items: dict[tuple[str, str], list[tuple[Misconception, datetime | None]]] = {}

    def add(self, learner_id: str, activity_id: str, misconception: Misconception) -> None:
        self._items.setdefault((learner_id, activity_id), []).append((misconception, None))

    async def list_open(self, learner_id: str, activity_id: str) -> list[Misconception]:
        return [m for m, resolved_at in self._items.get((learner_id, activity_id), []) if resolved_at is None]

    async def mark_resolved(self, learner_id: str, activity_id: str) -> None:
        now = datetime.now()
        items = self._items.get((learner_id, activity_id), [])
        self._items[(learner_id, activity_id)] = [(m, resolved_at or now) for m, resolved_at in items]
        logger.debug(f"Resolved {len(items)} misconception(s) for {learner_id} on {activity_id}")


class InMemoryAnalyticsSink:
    """
    Collects telemetry locally.

    Set `failures` to make the next N submissions fail.
    """

    def __init__(self):
        self.records: list[NodeTelemetry] = []
        self.failures = 0
        self.calls = 0
        self._seen: set[tuple[str, str, str, str]] = set()

    async def submit(self, telemetry: NodeTelemetry) -> AnalyticsOutcome:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            return AnalyticsOutcome.ERROR

        key = (telemetry.learner_id, telemetry.activity_id, telemetry.node_id, telemetry.node_type)
        if key in self._seen:
            return AnalyticsOutcome.ALREADY_TRACKED
        self._seen.add(key)
        self.records.append(telemetry)
        return AnalyticsOutcome.SUCCESS


class KeywordReviewAnalyzer:
    """
    Flags review answers that are blank, very short or openly unsure.

    Flagged items are also saved to `store` when one is given, the same way
    the platform persists misconceptions found during review.
    """

    def __init__(self, store: InMemoryMisconceptionStore | None = None, min_words: int = 3):
        self.store = store
        self.min_words = min_words

    def _weak(self, answer: str) -> str | None:
        text = answer.strip().lower()
        if not text:
            return "high"
        if any(marker in text for marker in UNSURE_MARKERS):
            return "high"
        if len(re.findall(r"\w+", text)) < self.min_words:
            return "medium"
        return None

    async def analyze(
        self,
        learner_id: str,
        activity_id: str,
        node_id: str,
        responses: ReviewResponses,
        context: str = "",
    ) -> ReviewAnalysis:
        if responses.review_type == "flashcards":
            pairs = [(item.get("term", ""), item.get("student_definition", "")) for item in responses.flashcard_terms]
        else:
            pairs = [(item.get("prompt", ""), item.get("response", "")) for item in responses.teacher_responses]

        misconceptions = []
        understood = []
        for concept, answer in pairs:
            severity = self._weak(answer)
            if severity is None:
                understood.append(concept)
                continue
            misconceptions.append(
                Misconception(
                    concept=concept,
                    description=f"The answer for '{concept}' was too thin to show understanding.",
                    severity=severity,
                )
            )

        if self.store is not None:
            for misconception in misconceptions:
                self.store.add(learner_id, activity_id, misconception)

        return ReviewAnalysis(
            misconceptions=misconceptions,
            concepts_understood=understood,
            overall_assessment=(
                "All concepts explained." if not misconceptions
                else f"{len(misconceptions)} concept(s) need another look."
            ),
        )


def offline_collaborators() -> Collaborators:
    """A full set of local collaborators sharing one misconception store."""
    store = InMemoryMisconceptionStore()
    return Collaborators(
        tutor=HeuristicTutor(),
        classifier=HeuristicClassifier(),
        misconceptions=store,
        analytics=InMemoryAnalyticsSink(),
        review_analyzer=KeywordReviewAnalyzer(store),
    )
