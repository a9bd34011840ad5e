"""
Node type handlers for the activity flow engine.

Each node type has exactly one handler, registered against its NodeType.
A handler reads the node, the learner's action and the session, and
returns a StepResult describing what should change. Handlers never mutate
the session themselves; the engine applies the result.
"""

from typing import TYPE_CHECKING

from src.flow.graph import NodeType

if TYPE_CHECKING:
    from .base import NodeHandler


# Handler registry - populated by @register decorator
HANDLERS: dict[NodeType, "NodeHandler"] = {}


def register(*node_types: NodeType):
    """Decorator to register a handler for one or more node types."""
    def decorator(cls):
        instance = cls()
        for node_type in node_types:
            HANDLERS[node_type] = instance
        return cls
    return decorator


def get_handler(node_type: str | NodeType) -> "NodeHandler | None":
    """Get the handler for a node type."""
    if isinstance(node_type, str) and not isinstance(node_type, NodeType):
        try:
            node_type = NodeType(node_type.lower())
        except ValueError:
            return None
    return HANDLERS.get(node_type)


# Import handlers to trigger registration
from . import terminal
from . import media
from . import quiz
from . import ai_chat
from . import condition
from . import free_text
from . import review

__all__ = [
    "HANDLERS",
    "get_handler",
    "register",
]
