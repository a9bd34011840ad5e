"""
Unit tests for the offline collaborators.
"""

import pytest

from src.integrations.offline import (
    HeuristicClassifier,
    HeuristicTutor,
    InMemoryAnalyticsSink,
    InMemoryMisconceptionStore,
    response_score,
)
from src.integrations.services import (
    AnalyticsOutcome,
    ClassificationRequest,
    Misconception,
    NodeTelemetry,
    TutorRequest,
)

RICH_ANSWER = (
    "Leaves look green because chlorophyll absorbs red and blue light and reflects green. "
    "Therefore the plant mostly uses the red and blue parts of sunlight to drive the light reactions, "
    "however some accessory pigments widen the range a little. Does that mean green light is useless "
    "to a plant, or just less efficient for it to capture?"
)


class TestResponseScore:

    def test_short_answer_scores_nothing(self):
        assert response_score("yes") == 0

    def test_rich_answer_scores_everything(self):
        assert response_score(RICH_ANSWER) == 100

    def test_reasoning_and_question(self):
        assert response_score("because of light?") == 40


class TestHeuristicServices:

    @pytest.mark.asyncio
    async def test_tutor_scores_message(self):
        tutor = HeuristicTutor()
        reply = await tutor.tutor(TutorRequest(message=RICH_ANSWER, activity_id="a", session_id="s"))
        assert reply.performance_score == 100.0
        assert reply.response
        assert tutor.requests[0].message == RICH_ANSWER

    @pytest.mark.asyncio
    async def test_classifier_against_threshold(self):
        classifier = HeuristicClassifier()
        strong = await classifier.classify(ClassificationRequest("a", "n", RICH_ANSWER, threshold=70))
        weak = await classifier.classify(ClassificationRequest("a", "n", "dunno", threshold=70))

        assert strong.should_transition is True
        assert strong.label == "mastery"
        assert weak.should_transition is False
        assert weak.label == "novel"


class TestInMemoryStores:

    @pytest.mark.asyncio
    async def test_misconceptions_scoped_and_resolvable(self):
        store = InMemoryMisconceptionStore()
        store.add("l1", "a1", Misconception(concept="X", description="x"))
        store.add("l2", "a1", Misconception(concept="Y", description="y"))

        assert [m.concept for m in await store.list_open("l1", "a1")] == ["X"]
        await store.mark_resolved("l1", "a1")
        assert await store.list_open("l1", "a1") == []
        assert len(await store.list_open("l2", "a1")) == 1

    @pytest.mark.asyncio
    async def test_analytics_sink(self):
        sink = InMemoryAnalyticsSink()
        telemetry = NodeTelemetry("l1", "a1", "n1", "quiz")
        sink.failures = 1

        assert await sink.submit(telemetry) == AnalyticsOutcome.ERROR
        assert await sink.submit(telemetry) == AnalyticsOutcome.SUCCESS
        assert await sink.submit(telemetry) == AnalyticsOutcome.ALREADY_TRACKED
        assert len(sink.records) == 1
        assert sink.calls == 3
