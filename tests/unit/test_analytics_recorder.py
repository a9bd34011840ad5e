"""
Unit tests for idempotent analytics recording.
"""

import asyncio

import pytest

from src.flow.analytics import AnalyticsRecorder, DedupeKey, IdempotencyStore
from src.integrations.services import AnalyticsOutcome, NodeTelemetry


class CountingAnalytics:
    """Analytics service that answers from a script of outcomes."""

    def __init__(self, *outcomes, delay: float = 0.0):
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls = 0

    async def submit(self, telemetry):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else AnalyticsOutcome.SUCCESS
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def telemetry():
    return NodeTelemetry(
        learner_id="learner-1",
        activity_id="activity-1",
        node_id="quiz",
        node_type="quiz",
        performance_data={"score": 100},
    )


@pytest.fixture
def key(telemetry):
    return DedupeKey.for_telemetry(telemetry)


class TestDedupeKey:

    def test_string_form(self, key):
        assert str(key) == "learner-1:activity-1:quiz:quiz"

    def test_telemetry_payload_shape(self, telemetry):
        payload = telemetry.to_dict()
        assert payload["student_id"] == "learner-1"
        assert payload["performance_data"] == {"score": 100}
        assert "student_response" not in payload


class TestAnalyticsRecorder:

    @pytest.mark.asyncio
    async def test_success_then_repeat_submits_once(self, key, telemetry):
        service = CountingAnalytics()
        recorder = AnalyticsRecorder(service, IdempotencyStore())

        assert await recorder.record(key, telemetry) is True
        assert await recorder.record(key, telemetry) is False
        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_failure_then_repeat_submits_twice(self, key, telemetry):
        service = CountingAnalytics(AnalyticsOutcome.ERROR, AnalyticsOutcome.SUCCESS)
        store = IdempotencyStore()
        recorder = AnalyticsRecorder(service, store)

        assert await recorder.record(key, telemetry) is False
        assert str(key) not in store
        assert await recorder.record(key, telemetry) is True
        assert service.calls == 2
        assert str(key) in store

    @pytest.mark.asyncio
    async def test_exception_releases_key(self, key, telemetry):
        service = CountingAnalytics(ConnectionError("offline"))
        store = IdempotencyStore()
        recorder = AnalyticsRecorder(service, store)

        assert await recorder.record(key, telemetry) is False
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_cancelled_submission_releases_key(self, key, telemetry):
        keys = set()
        service = CountingAnalytics(delay=10)
        recorder = AnalyticsRecorder(service, IdempotencyStore(keys))

        task = asyncio.ensure_future(recorder.record(key, telemetry))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert service.calls == 1
        assert keys == set()

    @pytest.mark.asyncio
    async def test_already_tracked_keeps_key(self, key, telemetry):
        service = CountingAnalytics(AnalyticsOutcome.ALREADY_TRACKED)
        store = IdempotencyStore()
        recorder = AnalyticsRecorder(service, store)

        assert await recorder.record(key, telemetry) is True
        assert str(key) in store

    @pytest.mark.asyncio
    async def test_concurrent_double_submit_short_circuits(self, key, telemetry):
        service = CountingAnalytics(delay=0.01)
        recorder = AnalyticsRecorder(service, IdempotencyStore())

        results = await asyncio.gather(recorder.record(key, telemetry), recorder.record(key, telemetry))

        assert sorted(results) == [False, True]
        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_store_shares_session_keys(self, key, telemetry):
        keys = set()
        recorder = AnalyticsRecorder(CountingAnalytics(), IdempotencyStore(keys))
        await recorder.record(key, telemetry)
        assert keys == {str(key)}
