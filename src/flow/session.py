"""
Per-learner session state for one activity instance.

Created when the learner starts an activity, mutated only by the engine
(node executor effects and traversal), and persisted or discarded once the
activity is reported complete.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class PerformanceRecord:
    """One scored signal collected during the activity."""
    node_id: str
    node_type: str
    score: float
    timestamp: str  # ISO format
    response: Any = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SessionState:
    """Serializable session state."""

    session_id: str
    learner_id: str
    activity_id: str
    started_at: str  # ISO format
    last_saved_at: str  # ISO format

    current_node_id: str | None = None
    visited_node_ids: set[str] = field(default_factory=set)
    score: float = 0.0
    active_seconds: float = 0.0
    performance_history: list[PerformanceRecord] = field(default_factory=list)
    current_path_label: str | None = None  # "mastery" | "novel"
    quiz_answers: dict[str, str] = field(default_factory=dict)
    dedupe_keys: set[str] = field(default_factory=set)

    awarded_node_ids: set[str] = field(default_factory=set)
    transcripts: dict[str, list[dict[str, str]]] = field(default_factory=dict)
    completed: bool = False

    def latest_score(self, node_id: str) -> float | None:
        """Most recent score recorded for a node, if any."""
        for record in reversed(self.performance_history):
            if record.node_id == node_id:
                return record.score
        return None

    def progress_percent(self, total_nodes: int) -> float:
        if total_nodes <= 0:
            return 0.0
        return min(100.0, len(self.visited_node_ids) / total_nodes * 100)

    def history_payload(self) -> list[dict[str, Any]]:
        """Performance history in the shape collaborators expect."""
        return [
            {
                "type": record.node_type,
                "nodeId": record.node_id,
                "score": record.score,
                "timestamp": record.timestamp,
            }
            for record in self.performance_history
        ]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        for key in ("visited_node_ids", "dedupe_keys", "awarded_node_ids"):
            data[key] = sorted(data[key])
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SessionState:
        """Create from dictionary."""
        data = dict(data)
        for key in ("visited_node_ids", "dedupe_keys", "awarded_node_ids"):
            data[key] = set(data.get(key) or [])
        data["performance_history"] = [
            PerformanceRecord(**record) for record in data.get("performance_history") or []
        ]
        return cls(**data)


def create_session_state(learner_id: str, activity_id: str) -> SessionState:
    """Create a new session state."""
    now = datetime.now().isoformat()
    return SessionState(
        session_id=str(uuid.uuid4())[:8],
        learner_id=learner_id,
        activity_id=activity_id,
        started_at=now,
        last_saved_at=now,
    )
