"""
Activity Flow: branching learning-activity runtime.

Components:
- graph: activity graph model (nodes, labeled connections)
- validation: authoring-time graph checks
- handlers: one handler per node type
- resolver: branching on quiz score bands and AI-assessed paths
- analytics: idempotent per-node telemetry
- completion: misconception gate before an activity is reported complete
- engine: the runtime that ties them together
- session_store: session persistence for save/resume
"""

from .engine import ActionOutcome, ActivityEngine, EngineConfig, EngineStatus, OutcomeStatus
from .errors import CollaboratorError, CorruptGraphError, FlowError, GraphValidationError, NodeValidationError
from .graph import ActivityGraph, Connection, Node, NodeType
from .handlers import HANDLERS, get_handler
from .handlers.base import ActionKind, LearnerAction, ReviewCompletion
from .review import ReviewSession
from .session import PerformanceRecord, SessionState, create_session_state
from .session_store import SessionStore
from .validation import GraphIssue, validate_graph

__all__ = [
    "ActionKind",
    "ActionOutcome",
    "ActivityEngine",
    "ActivityGraph",
    "CollaboratorError",
    "Connection",
    "CorruptGraphError",
    "EngineConfig",
    "EngineStatus",
    "FlowError",
    "GraphIssue",
    "GraphValidationError",
    "HANDLERS",
    "LearnerAction",
    "Node",
    "NodeType",
    "NodeValidationError",
    "OutcomeStatus",
    "PerformanceRecord",
    "ReviewCompletion",
    "ReviewSession",
    "SessionState",
    "SessionStore",
    "create_session_state",
    "get_handler",
    "validate_graph",
]
