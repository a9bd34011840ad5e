"""
Idempotent per-node analytics submission.

A node visit is identified by (learner, activity, node, node type). The key
is claimed before the network call so a rapid double submit short-circuits;
a failed submission releases the key so the next opportunity retries it.
Analytics problems are logged and never reach the learner.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from src.integrations.services import AnalyticsOutcome, AnalyticsService, NodeTelemetry


@dataclass(frozen=True)
class DedupeKey:
    learner_id: str
    activity_id: str
    node_id: str
    node_type: str

    def __str__(self) -> str:
        return f"{self.learner_id}:{self.activity_id}:{self.node_id}:{self.node_type}"

    @classmethod
    def for_telemetry(cls, telemetry: NodeTelemetry) -> DedupeKey:
        return cls(telemetry.learner_id, telemetry.activity_id, telemetry.node_id, telemetry.node_type)


class IdempotencyStore:
    """
    Session-scoped set of claimed dedupe keys.

    Wraps the session's own key set so claims survive save/resume.
    """

    def __init__(self, keys: set[str] | None = None):
        self._keys = keys if keys is not None else set()

    def claim(self, key: str) -> bool:
        """Claim a key. Returns False if it was already held."""
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: str) -> None:
        self._keys.discard(key)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class AnalyticsRecorder:
    """Submits node telemetry at most once per dedupe key."""

    def __init__(self, service: AnalyticsService, store: IdempotencyStore):
        self.service = service
        self.store = store

    async def record(self, key: DedupeKey, payload: NodeTelemetry) -> bool:
        """
        Submit telemetry unless this key was already accepted.

        Returns:
            True if this call's submission was accepted
        """
        token = str(key)
        if not self.store.claim(token):
            logger.debug(f"Analytics already recorded for {token}")
            return False

        try:
            outcome = await self.service.submit(payload)
        except asyncio.CancelledError:
            logger.debug(f"Analytics submission for {token} cancelled, releasing key")
            self.store.release(token)
            raise
        except Exception as e:
            logger.warning(f"Analytics submission for {token} failed, will retry later: {e}")
            self.store.release(token)
            return False

        if not isinstance(outcome, AnalyticsOutcome) or not outcome.accepted:
            logger.warning(f"Analytics submission for {token} rejected ({outcome}), will retry later")
            self.store.release(token)
            return False

        logger.debug(f"Analytics recorded for {token} ({outcome.value})")
        return True
