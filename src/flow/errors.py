"""
Exception taxonomy for the activity flow engine.

Only CorruptGraphError is allowed to abort a session. Everything else is
local and recoverable: validation blocks an advance, collaborator failures
are retryable, analytics and completion-gate failures are logged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .validation import GraphIssue


class FlowError(Exception):
    """Base class for flow engine errors."""


class CorruptGraphError(FlowError):
    """The current node, or an edge the runtime needs, is missing."""

    def __init__(self, message: str, node_id: str | None = None):
        super().__init__(message)
        self.node_id = node_id


class NodeValidationError(FlowError):
    """Learner input is incomplete or empty. Shown to the learner, state unchanged."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class CollaboratorError(FlowError):
    """An external service call failed. The learner may retry."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class GraphValidationError(FlowError):
    """Authoring-time validation found error-severity issues."""

    def __init__(self, issues: list[GraphIssue]):
        self.issues = issues
        summary = "; ".join(issue.message for issue in issues[:3])
        if len(issues) > 3:
            summary += f" (+{len(issues) - 3} more)"
        super().__init__(f"Activity graph is invalid: {summary}")
