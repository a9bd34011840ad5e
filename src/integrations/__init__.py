"""
External collaborators for the activity flow engine.

Modules:
- services: protocols and payload types the engine depends on
- flow_api_client: HTTP implementation of every collaborator
- offline: local implementations for demos and air-gapped runs
"""
from .services import (
    AnalyticsOutcome,
    Collaborators,
    Misconception,
    NodeTelemetry,
    ReviewAnalysis,
    ReviewResponses,
)

__all__ = [
    "AnalyticsOutcome",
    "Collaborators",
    "Misconception",
    "NodeTelemetry",
    "ReviewAnalysis",
    "ReviewResponses",
]
