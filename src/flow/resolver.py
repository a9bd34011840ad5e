"""
Traversal resolver: which node runs next.

Applied after a node's handler signals completion. Branching is driven by
connection labels; whenever several connections could match, the one
declared first in the graph wins.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .graph import SCORE_LABELS, ActivityGraph, Connection, Node, NodeType
from .session import SessionState


@dataclass(frozen=True)
class ScoreBands:
    """Quiz score thresholds (percent). Product defaults, configurable per deployment."""
    high: float = 80.0
    medium: float = 60.0

    def classify(self, score: float) -> str:
        if score >= self.high:
            return "high_score"
        if score >= self.medium:
            return "medium_score"
        return "low_score"


class TraversalResolver:
    """Computes the next node id for a completed node."""

    def __init__(self, graph: ActivityGraph, bands: ScoreBands | None = None):
        self.graph = graph
        self.bands = bands or ScoreBands()

    def next_node_id(self, node: Node, session: SessionState) -> str | None:
        """
        Resolve the successor of a completed node.

        Returns:
            Target node id, or None when the node has no outgoing connection
        """
        outgoing = self.graph.outgoing(node.id)
        if not outgoing:
            return None

        if node.type == NodeType.QUIZ and any(c.label in SCORE_LABELS for c in outgoing):
            score = session.latest_score(node.id)
            bucket = self.bands.classify(score if score is not None else 0.0)
            chosen = _first_labeled(outgoing, bucket)
            logger.debug(f"Quiz {node.id} scored {score} -> {bucket}")
            return (chosen or outgoing[0]).target

        if node.type == NodeType.AI_CHAT and node.branching_enabled and session.current_path_label:
            chosen = _first_labeled(outgoing, session.current_path_label)
            logger.debug(f"AI chat {node.id} on path {session.current_path_label}")
            return (chosen or outgoing[0]).target

        return outgoing[0].target

    def target_for_label(self, node: Node, label: str | None) -> str | None:
        """Target of the first connection carrying `label`, if any."""
        if not label:
            return None
        chosen = _first_labeled(self.graph.outgoing(node.id), label)
        return chosen.target if chosen else None


def _first_labeled(connections: list[Connection], label: str) -> Connection | None:
    for conn in connections:
        if conn.label == label:
            return conn
    return None
