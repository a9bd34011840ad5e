"""
Completion gate.

Before an activity is reported finished, open misconceptions for the
learner are checked. Analysis runs asynchronously on the platform, so the
query is retried a few times with a growing delay. Any open item suspends
completion until the learner has reviewed it. A failing query fails open:
the learner is never stranded on the last step.
"""

from __future__ import annotations

import asyncio
from enum import Enum

from loguru import logger

from src.integrations.services import Misconception, MisconceptionService

from .retry import RetryPolicy, Sleep, poll

_SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


class GateState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    REVIEW_REQUIRED = "review_required"
    CLEARED = "cleared"


class CompletionGate:
    """Bounded, retried misconception check for one activity instance."""

    def __init__(
        self,
        service: MisconceptionService,
        learner_id: str,
        activity_id: str,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.service = service
        self.learner_id = learner_id
        self.activity_id = activity_id
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

        self.state = GateState.IDLE
        self.attempts = 0
        self.open_misconceptions: list[Misconception] = []
        self._preloaded: list[Misconception] | None = None

    def preload(self, misconceptions: list[Misconception]) -> None:
        """
        Use an analysis the review step already computed.

        Consumed by the next check() instead of querying the service.
        """
        self._preloaded = list(misconceptions)

    async def check(self) -> GateState:
        """Run the check and return the resulting state."""
        self.state = GateState.CHECKING
        self.attempts = 0

        if self._preloaded is not None:
            found, self._preloaded = self._preloaded, None
            logger.debug(f"Completion gate using review analysis ({len(found)} misconception(s))")
            return self._settle(found)

        async def query() -> list[Misconception]:
            self.attempts += 1
            return await self.service.list_open(self.learner_id, self.activity_id)

        try:
            found = await poll(query, self.policy, until=bool, sleep=self._sleep)
        except asyncio.CancelledError:
            self.state = GateState.IDLE
            raise
        except Exception as e:
            logger.warning(
                f"Misconception check failed on attempt {self.attempts}/{self.policy.max_attempts} "
                f"for learner {self.learner_id}, activity {self.activity_id}; failing open: {e}"
            )
            return self._settle([])

        return self._settle(found or [])

    def _settle(self, found: list[Misconception]) -> GateState:
        self.open_misconceptions = sorted(found, key=lambda m: _SEVERITY_ORDER.get(m.severity, 1))
        if self.open_misconceptions:
            self.state = GateState.REVIEW_REQUIRED
            logger.info(f"Completion held: {len(self.open_misconceptions)} misconception(s) to review")
        else:
            self.state = GateState.CLEARED
        return self.state

    async def resolve(self) -> None:
        """Mark the learner's open misconceptions resolved."""
        await self.service.mark_resolved(self.learner_id, self.activity_id)
        self.open_misconceptions = []
        self.state = GateState.IDLE
