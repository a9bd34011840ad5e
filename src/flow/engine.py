"""
Activity flow engine.

Drives one learner through one activity graph:

    learner action -> node handler -> StepResult
        -> apply effects to the session (only if still on the same visit)
        -> resolve and enter the next node
        -> record analytics for the completed node
        -> on reaching the end node, run the completion gate

The engine is event driven and single threaded. Collaborator calls can be
in flight while the learner keeps acting, so every continuation checks the
visit counter before touching the session: a result for a node the learner
has already left is dropped.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from loguru import logger

from src.integrations.services import Collaborators, Misconception, NodeTelemetry

from .analytics import AnalyticsRecorder, DedupeKey, IdempotencyStore
from .completion import CompletionGate, GateState
from .errors import CollaboratorError, CorruptGraphError, FlowError
from .graph import ActivityGraph, Node, NodeType
from .handlers import get_handler
from .handlers.base import HandlerContext, LearnerAction, StepResult
from .resolver import ScoreBands, TraversalResolver
from .retry import RetryPolicy, Sleep
from .session import SessionState
from .timer import ActiveTimer

CompletionCallback = Callable[[float, int], Any]


class EngineStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    REVIEW_REQUIRED = "review_required"
    COMPLETED = "completed"
    FAILED = "failed"


class OutcomeStatus(str, Enum):
    ADVANCED = "advanced"
    STAYED = "stayed"
    REJECTED = "rejected"  # Validation: fix the input and resubmit
    ERROR = "error"  # Collaborator failure: retry
    STALE = "stale"  # The learner had already moved on
    REVIEW_REQUIRED = "review_required"
    COMPLETED = "completed"


@dataclass
class ActionOutcome:
    """What happened in response to a learner action."""
    status: OutcomeStatus
    node_id: str | None
    message: str | None = None
    reply: str | None = None
    misconceptions: list[Misconception] = field(default_factory=list)

    @property
    def retryable(self) -> bool:
        return self.status == OutcomeStatus.ERROR


@dataclass
class EngineConfig:
    """Branching thresholds and gate policy. Product defaults, not protocol constants."""
    score_bands: ScoreBands = field(default_factory=ScoreBands)
    performance_threshold: float = 70.0
    default_performance_score: float = 70.0
    gate_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_settings(cls, settings: Any) -> EngineConfig:
        return cls(
            score_bands=ScoreBands(
                high=settings.quiz_high_score_threshold,
                medium=settings.quiz_medium_score_threshold,
            ),
            performance_threshold=settings.ai_performance_threshold,
            default_performance_score=settings.ai_default_performance_score,
            gate_policy=RetryPolicy(
                max_attempts=settings.completion_gate_max_attempts,
                delay_step_seconds=settings.completion_gate_delay_step_seconds,
            ),
        )


class ActivityEngine:
    """
    Runtime for a single activity instance.

    Args:
        graph: The authored activity
        session: Fresh or resumed session state
        services: External collaborators
        on_complete: Called once with (score, active_seconds) when the gate clears
        config: Thresholds and gate policy
        timer: Active-time timer (injectable clock for tests)
        sleep: Delay function for the gate's retry schedule
    """

    def __init__(
        self,
        graph: ActivityGraph,
        session: SessionState,
        services: Collaborators,
        on_complete: CompletionCallback | None = None,
        config: EngineConfig | None = None,
        timer: ActiveTimer | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.graph = graph
        self.session = session
        self.services = services
        self.config = config or EngineConfig()
        self.timer = timer or ActiveTimer()

        self.resolver = TraversalResolver(graph, self.config.score_bands)
        self.recorder = AnalyticsRecorder(services.analytics, IdempotencyStore(session.dedupe_keys))
        self.gate = CompletionGate(
            services.misconceptions,
            session.learner_id,
            session.activity_id,
            policy=self.config.gate_policy,
            sleep=sleep,
        )
        self.ctx = HandlerContext(
            graph=graph,
            services=services,
            resolver=self.resolver,
            performance_threshold=self.config.performance_threshold,
            default_performance_score=self.config.default_performance_score,
        )

        self.status = EngineStatus.IDLE
        self._on_complete = on_complete
        self._visit = 0
        self._gate_checked_for: str | None = None
        self._gate_task: asyncio.Future | None = None
        self._pending_telemetry: dict[str, NodeTelemetry] = {}
        self._failure: CorruptGraphError | None = None
        self._completed = session.completed

    # =========================================================================
    # State
    # =========================================================================

    @property
    def current_node(self) -> Node:
        if self.session.current_node_id is None:
            raise FlowError("Engine has not been started")
        return self._require(self.session.current_node_id)

    @property
    def progress_percent(self) -> float:
        return self.session.progress_percent(len(self.graph))

    def set_visible(self, visible: bool) -> None:
        """Host visibility/focus changed."""
        self.timer.set_visible(visible)
        self.session.active_seconds = self.timer.elapsed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> ActionOutcome:
        """Enter the start node, or resume where the session left off."""
        self._check_alive()
        if self._completed:
            self.status = EngineStatus.COMPLETED
            return ActionOutcome(OutcomeStatus.COMPLETED, self.session.current_node_id)

        if self.session.current_node_id is None:
            try:
                start = self.graph.start_node()
            except CorruptGraphError as e:
                self._fail(e)
                raise
            self.timer.start()
            self.status = EngineStatus.RUNNING
            self._enter(start)
        else:
            node = self.current_node
            logger.info(f"Resuming session {self.session.session_id} at node {node.id}")
            self.timer.resume_from(self.session.active_seconds)
            self.status = EngineStatus.RUNNING
            self._visit += 1

        if self.current_node.type == NodeType.END:
            return await self._arrive_at_end()
        return ActionOutcome(OutcomeStatus.STAYED, self.session.current_node_id)

    async def close(self) -> None:
        """Teardown: cancel a pending completion check and stop counting time."""
        self._visit += 1
        if self._gate_task is not None and not self._gate_task.done():
            self._gate_task.cancel()
        self.session.active_seconds = self.timer.stop()

    # =========================================================================
    # Learner actions
    # =========================================================================

    async def act(self, action: LearnerAction) -> ActionOutcome:
        """Process one learner action against the current node."""
        self._check_alive()
        if self.status == EngineStatus.IDLE:
            raise FlowError("Call start() before act()")
        if self.status == EngineStatus.COMPLETED:
            return ActionOutcome(OutcomeStatus.COMPLETED, self.session.current_node_id, "This activity is already complete.")

        node = self.current_node
        if node.type == NodeType.END:
            return await self._arrive_at_end()

        handler = get_handler(node.type)
        if handler is None:
            error = CorruptGraphError(f"No handler for node type '{node.type.value}'", node.id)
            self._fail(error)
            raise error

        visit = self._visit
        try:
            with self.timer.loading():
                result = await handler.handle(node, action, self.session, self.ctx)
        except CollaboratorError as e:
            logger.warning(f"Collaborator failure on node {node.id}: {e}")
            result = StepResult.fail("Something went wrong. Please try again.")
        except FlowError:
            raise
        except Exception as e:
            # Only a corrupt graph may end the session
            logger.warning(f"Unexpected {e.__class__.__name__} on node {node.id}: {e}")
            result = StepResult.fail("Something went wrong. Please try again.")

        if visit != self._visit:
            logger.debug(f"Dropping stale {action.kind.value} result for node {node.id}")
            return ActionOutcome(OutcomeStatus.STALE, node.id)

        if result.failed:
            return ActionOutcome(OutcomeStatus.ERROR, node.id, result.message)
        if result.rejected:
            return ActionOutcome(OutcomeStatus.REJECTED, node.id, result.message)

        self._apply(node, result)
        if not result.advance:
            return ActionOutcome(OutcomeStatus.STAYED, node.id, result.message, reply=result.reply)

        # No await between applying effects and entering the next node
        next_node = self._advance_from(node, result)
        await self._record_analytics(node, result)

        if next_node.type == NodeType.END and self.session.current_node_id == next_node.id:
            outcome = await self._arrive_at_end()
            if outcome.message is None:
                outcome.message = result.message
            return outcome
        return ActionOutcome(OutcomeStatus.ADVANCED, next_node.id, result.message, reply=result.reply)

    async def complete_misconception_review(self) -> ActionOutcome:
        """
        The learner finished reviewing the open misconceptions.

        Marks them resolved and re-runs the completion check on the end node.
        """
        self._check_alive()
        if self.status != EngineStatus.REVIEW_REQUIRED:
            return ActionOutcome(OutcomeStatus.STAYED, self.session.current_node_id, "Nothing to review.")

        try:
            await self.gate.resolve()
        except CollaboratorError as e:
            logger.warning(f"Could not mark misconceptions resolved: {e}")
            return ActionOutcome(
                OutcomeStatus.ERROR,
                self.session.current_node_id,
                "We could not save your review. Please try again.",
            )

        self.status = EngineStatus.RUNNING
        self._gate_checked_for = None
        return await self._arrive_at_end()

    # =========================================================================
    # Internals
    # =========================================================================

    def _apply(self, node: Node, result: StepResult) -> None:
        s = self.session
        s.score += result.score_delta
        if result.points and node.id not in s.awarded_node_ids:
            s.score += result.points
            s.awarded_node_ids.add(node.id)
        if result.performance is not None:
            s.performance_history.append(result.performance)
        if result.path_label:
            s.current_path_label = result.path_label
        if result.quiz_answers:
            s.quiz_answers.update(result.quiz_answers)
        if result.transcript:
            s.transcripts.setdefault(node.id, []).extend(result.transcript)
        if result.review_analysis is not None:
            self.gate.preload(result.review_analysis.misconceptions)
        s.active_seconds = self.timer.elapsed

    def _advance_from(self, node: Node, result: StepResult) -> Node:
        next_id = result.next_node_id or self.resolver.next_node_id(node, self.session)
        if next_id is None:
            error = CorruptGraphError(f"Node '{node.id}' has no outgoing connection to follow", node.id)
            self._fail(error)
            raise error
        next_node = self._require(next_id)
        self._enter(next_node)
        return next_node

    def _enter(self, node: Node) -> None:
        previous = self.session.current_node_id
        self.session.current_node_id = node.id
        self.session.visited_node_ids.add(node.id)
        self._visit += 1
        if node.id != previous:
            self._gate_checked_for = None
        logger.debug(f"{previous or '-'} -> {node.id} ({node.type.value})")

    async def _record_analytics(self, node: Node, result: StepResult) -> None:
        if node.type in (NodeType.START, NodeType.END):
            return

        # Earlier failures get another chance first
        for token, pending in list(self._pending_telemetry.items()):
            del self._pending_telemetry[token]
            await self._submit(pending)

        telemetry = NodeTelemetry(
            learner_id=self.session.learner_id,
            activity_id=self.session.activity_id,
            node_id=node.id,
            node_type=node.type.value,
            performance_data=result.telemetry,
            student_response=result.student_response,
            context_sources=self.graph.context_sources,
        )
        await self._submit(telemetry)

    async def _submit(self, telemetry: NodeTelemetry) -> None:
        key = DedupeKey.for_telemetry(telemetry)
        accepted = await self.recorder.record(key, telemetry)
        if not accepted and str(key) not in self.recorder.store:
            self._pending_telemetry[str(key)] = telemetry

    async def _arrive_at_end(self) -> ActionOutcome:
        node = self.current_node
        if self._gate_checked_for == node.id:
            if self.status == EngineStatus.REVIEW_REQUIRED:
                return self._review_outcome(node)
            if self.status == EngineStatus.COMPLETED:
                return ActionOutcome(OutcomeStatus.COMPLETED, node.id)
            return ActionOutcome(OutcomeStatus.STAYED, node.id, "Checking your work...")

        self._gate_checked_for = node.id
        visit = self._visit
        self._gate_task = asyncio.ensure_future(self.gate.check())
        try:
            state = await self._gate_task
        except asyncio.CancelledError:
            logger.info(f"Completion check for session {self.session.session_id} cancelled")
            return ActionOutcome(OutcomeStatus.STALE, node.id)
        finally:
            self._gate_task = None

        if visit != self._visit:
            return ActionOutcome(OutcomeStatus.STALE, node.id)

        if state == GateState.REVIEW_REQUIRED:
            self.status = EngineStatus.REVIEW_REQUIRED
            return self._review_outcome(node)

        await self._complete()
        return ActionOutcome(OutcomeStatus.COMPLETED, node.id)

    def _review_outcome(self, node: Node) -> ActionOutcome:
        count = len(self.gate.open_misconceptions)
        return ActionOutcome(
            OutcomeStatus.REVIEW_REQUIRED,
            node.id,
            f"Let's review {count} concept{'s' if count != 1 else ''} before you finish.",
            misconceptions=list(self.gate.open_misconceptions),
        )

    async def _complete(self) -> None:
        if self._completed:
            return
        self._completed = True
        self.session.active_seconds = self.timer.stop()
        self.session.completed = True
        self.status = EngineStatus.COMPLETED

        active_seconds = int(self.session.active_seconds)
        logger.info(
            f"Activity {self.session.activity_id} complete for {self.session.learner_id}: "
            f"score={self.session.score:g}, active={active_seconds}s"
        )
        if self._on_complete is not None:
            returned = self._on_complete(self.session.score, active_seconds)
            if inspect.isawaitable(returned):
                await returned

    def _require(self, node_id: str) -> Node:
        try:
            return self.graph.require(node_id)
        except CorruptGraphError as e:
            self._fail(e)
            raise

    def _fail(self, error: CorruptGraphError) -> None:
        if self._failure is None:
            logger.error(f"Corrupt activity graph, halting session {self.session.session_id}: {error}")
        self._failure = error
        self.status = EngineStatus.FAILED
        self.timer.stop()

    def _check_alive(self) -> None:
        if self._failure is not None:
            raise self._failure
