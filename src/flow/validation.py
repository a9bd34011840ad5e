"""
Authoring-time graph validation.

These checks belong to the builder. The runtime never calls them: it only
fails when the node it is standing on, or the edge it needs, is missing.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum

from .errors import GraphValidationError
from .graph import PATH_LABELS, SCORE_LABELS, ActivityGraph, NodeType


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class GraphIssue:
    """A single validation finding."""
    severity: IssueSeverity
    code: str
    message: str
    node_id: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == IssueSeverity.ERROR


def validate_graph(graph: ActivityGraph, strict: bool = False) -> list[GraphIssue]:
    """
    Check an authored graph for structural problems.

    Args:
        graph: The graph to check
        strict: Raise GraphValidationError when any error is found

    Returns:
        All issues found, errors first
    """
    issues: list[GraphIssue] = []

    def error(code: str, message: str, node_id: str | None = None) -> None:
        issues.append(GraphIssue(IssueSeverity.ERROR, code, message, node_id))

    def warning(code: str, message: str, node_id: str | None = None) -> None:
        issues.append(GraphIssue(IssueSeverity.WARNING, code, message, node_id))

    starts = [n for n in graph.nodes if n.type == NodeType.START]
    if not starts:
        error("missing_start", "Activity has no start node")
    elif len(starts) > 1:
        ids = ", ".join(n.id for n in starts)
        error("multiple_starts", f"Activity has {len(starts)} start nodes ({ids})")

    if not graph.end_nodes():
        error("missing_end", "Activity has no end node")

    for node_id, count in Counter(n.id for n in graph.nodes).items():
        if count > 1:
            error("duplicate_node", f"Node id '{node_id}' is used {count} times", node_id)

    for conn in graph.connections:
        if graph.by_id(conn.source) is None:
            error("unknown_source", f"Connection starts at unknown node '{conn.source}'", conn.source)
        if graph.by_id(conn.target) is None:
            error("unknown_target", f"Connection points to unknown node '{conn.target}'", conn.source)

    for node in graph.nodes:
        outgoing = graph.outgoing(node.id)
        if node.type != NodeType.END and not outgoing:
            error("dead_end", f"'{node.title or node.id}' has no outgoing connection", node.id)

        labels = Counter(c.label for c in outgoing if c.label)
        for label, count in labels.items():
            if count > 1:
                error("duplicate_label", f"'{node.id}' has {count} connections labeled '{label}'", node.id)

        if node.type == NodeType.QUIZ:
            if not node.config.get("questions"):
                error("empty_quiz", f"Quiz '{node.title or node.id}' has no questions", node.id)
            _check_branch_labels(node.id, labels, SCORE_LABELS, warning)
        elif node.type == NodeType.AI_CHAT and node.branching_enabled:
            _check_branch_labels(node.id, labels, PATH_LABELS, warning)

    if starts:
        reachable = _reachable_from(graph, starts[0].id)
        for node in graph.nodes:
            if node.id not in reachable and node.type != NodeType.START:
                error("orphan", f"'{node.title or node.id}' cannot be reached from start", node.id)

        cycle_node = _find_cycle(graph, starts[0].id)
        if cycle_node is not None:
            warning(
                "cycle",
                f"A learner path loops back to '{cycle_node}'; revisits re-run the node",
                cycle_node,
            )

    issues.sort(key=lambda issue: 0 if issue.is_error else 1)

    if strict and any(issue.is_error for issue in issues):
        raise GraphValidationError([issue for issue in issues if issue.is_error])

    return issues


def _check_branch_labels(node_id: str, labels: Counter, expected: tuple[str, ...], warning) -> None:
    # Unlabeled-only nodes are fine: they simply do not branch
    present = [label for label in expected if label in labels]
    if present and len(present) < len(expected):
        missing = ", ".join(label for label in expected if label not in labels)
        warning("partial_branching", f"'{node_id}' is missing branch label(s): {missing}", node_id)


def _reachable_from(graph: ActivityGraph, start_id: str) -> set[str]:
    seen = {start_id}
    stack = [start_id]
    while stack:
        current = stack.pop()
        for conn in graph.outgoing(current):
            if conn.target not in seen:
                seen.add(conn.target)
                stack.append(conn.target)
    return seen


def _find_cycle(graph: ActivityGraph, start_id: str) -> str | None:
    """Return a node that closes a cycle reachable from start, if any."""
    visiting: set[str] = set()
    done: set[str] = set()
    # Iterative DFS: (node, iterator over outgoing targets)
    stack = [(start_id, iter([c.target for c in graph.outgoing(start_id)]))]
    visiting.add(start_id)
    while stack:
        node_id, targets = stack[-1]
        advanced = False
        for target in targets:
            if target in visiting:
                return target
            if target not in done and graph.by_id(target) is not None:
                visiting.add(target)
                stack.append((target, iter([c.target for c in graph.outgoing(target)])))
                advanced = True
                break
        if not advanced:
            stack.pop()
            visiting.discard(node_id)
            done.add(node_id)
    return None
