"""
Activity graph model.

The graph is the only contract between authoring and execution: the editor
produces `{nodes: [...], connections: [...]}` JSON and the runtime reads it.
Editor-only keys (position, size, color, shape) are ignored on load.

The runtime never mutates a graph. Lookups fail closed: a missing current
node is a corrupt graph, not something to guess around.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .errors import CorruptGraphError


class NodeType(str, Enum):
    """Step types an author can place in an activity."""
    START = "start"
    END = "end"
    VIDEO = "video"
    DOCUMENT = "document"
    QUIZ = "quiz"
    AI_CHAT = "ai_chat"
    CONDITION = "condition"
    CUSTOM = "custom"
    REVIEW = "review"
    COLLABORATION = "collaboration"
    ASSIGNMENT = "assignment"
    REFLECTION = "reflection"


# Connection labels understood by branching nodes
SCORE_LABELS = ("low_score", "medium_score", "high_score")
PATH_LABELS = ("mastery", "novel")


class Node(BaseModel):
    """A typed step in the activity."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    type: NodeType
    title: str = ""
    description: str = ""
    config: dict[str, Any] = Field(default_factory=dict)

    @property
    def branching_enabled(self) -> bool:
        """AI chat nodes only branch when the author switched it on."""
        return bool(self.config.get("enable_branching"))


class Connection(BaseModel):
    """A directed, optionally labeled edge."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")
    label: str | None = None
    id: str | None = None


class ActivityGraph(BaseModel):
    """Immutable node/connection graph with indexed lookups."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = None
    title: str = ""
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    context_sources: list[dict[str, Any]] = Field(default_factory=list)

    _by_id: dict[str, Node] = PrivateAttr(default_factory=dict)
    _outgoing: dict[str, list[Connection]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        by_id: dict[str, Node] = {}
        for node in self.nodes:
            # First declaration wins; duplicates are reported by validate_graph
            by_id.setdefault(node.id, node)
        outgoing: dict[str, list[Connection]] = {}
        for conn in self.connections:
            outgoing.setdefault(conn.source, []).append(conn)
        self._by_id = by_id
        self._outgoing = outgoing

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityGraph:
        """
        Build a graph from authoring JSON.

        Accepts either the bare `{nodes, connections}` shape or an activity
        record that nests it under `content` (as stored by the builder).
        """
        if "content" in data and isinstance(data["content"], dict):
            content = dict(data["content"])
            content.setdefault("id", data.get("id"))
            content.setdefault("title", data.get("title", ""))
            data = content
        return cls.model_validate(data)

    @classmethod
    def from_json(cls, text: str) -> ActivityGraph:
        return cls.from_dict(json.loads(text))

    @classmethod
    def load(cls, path: Path | str) -> ActivityGraph:
        """Load a graph from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire keys (`from`/`to`)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    # =========================================================================
    # Queries
    # =========================================================================

    def by_id(self, node_id: str) -> Node | None:
        return self._by_id.get(node_id)

    def outgoing(self, node_id: str) -> list[Connection]:
        """Outgoing connections in declaration order."""
        return list(self._outgoing.get(node_id, ()))

    def require(self, node_id: str) -> Node:
        """Lookup that treats a miss as a corrupt graph."""
        node = self._by_id.get(node_id)
        if node is None:
            raise CorruptGraphError(f"Node '{node_id}' does not exist in the activity graph", node_id)
        return node

    def start_node(self) -> Node:
        for node in self.nodes:
            if node.type == NodeType.START:
                return node
        raise CorruptGraphError("Activity graph has no start node")

    def end_nodes(self) -> list[Node]:
        return [node for node in self.nodes if node.type == NodeType.END]

    def __len__(self) -> int:
        return len(self.nodes)
