"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.flow.graph import ActivityGraph
from src.flow.session import create_session_state
from src.integrations.offline import offline_collaborators


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def sample_activity_path():
    """The bundled photosynthesis activity."""
    return PROJECT_ROOT / "activities" / "photosynthesis.json"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep stand-in that records requested delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def services():
    """Offline collaborators (fresh per test)."""
    return offline_collaborators()


def build_graph(nodes: list[dict], connections: list[dict], **extra) -> ActivityGraph:
    return ActivityGraph.from_dict({"nodes": nodes, "connections": connections, **extra})


@pytest.fixture
def make_graph():
    """Factory: make_graph(nodes, connections, **extra) -> ActivityGraph"""
    return build_graph


@pytest.fixture
def quiz_questions():
    """Two questions: a capital city and a true/false fact."""
    return [
        {
            "id": "q1",
            "type": "short_answer",
            "question": "What is the capital of France?",
            "correct_answer": "Paris",
        },
        {
            "id": "q2",
            "type": "true_false",
            "question": "The Seine flows through Paris.",
            "correct_answer": "true",
        },
    ]


@pytest.fixture
def quiz_graph(quiz_questions):
    """start -> quiz -> (high|medium|low) -> end"""
    return build_graph(
        nodes=[
            {"id": "start", "type": "start", "title": "Start"},
            {"id": "quiz", "type": "quiz", "title": "Capitals", "config": {"questions": quiz_questions}},
            {"id": "advanced", "type": "reflection", "title": "Advanced"},
            {"id": "practice", "type": "reflection", "title": "Practice"},
            {"id": "remedial", "type": "document", "title": "Remedial"},
            {"id": "end", "type": "end", "title": "End"},
        ],
        connections=[
            {"from": "start", "to": "quiz"},
            {"from": "quiz", "to": "remedial", "label": "low_score"},
            {"from": "quiz", "to": "practice", "label": "medium_score"},
            {"from": "quiz", "to": "advanced", "label": "high_score"},
            {"from": "advanced", "to": "end"},
            {"from": "practice", "to": "end"},
            {"from": "remedial", "to": "end"},
        ],
    )


@pytest.fixture
def chat_graph():
    """start -> ai_chat (branching, threshold 70) -> mastery|novel -> end"""
    return build_graph(
        nodes=[
            {"id": "start", "type": "start"},
            {
                "id": "chat",
                "type": "ai_chat",
                "title": "Tutor",
                "config": {"enable_branching": True, "performance_threshold": 70},
            },
            {"id": "deep", "type": "assignment", "title": "Deep dive"},
            {"id": "basics", "type": "document", "title": "Basics"},
            {"id": "end", "type": "end"},
        ],
        connections=[
            {"from": "start", "to": "chat"},
            {"from": "chat", "to": "deep", "label": "mastery"},
            {"from": "chat", "to": "basics", "label": "novel"},
            {"from": "deep", "to": "end"},
            {"from": "basics", "to": "end"},
        ],
    )


@pytest.fixture
def linear_graph():
    """start -> video -> end"""
    return build_graph(
        nodes=[
            {"id": "start", "type": "start"},
            {"id": "video", "type": "video", "title": "Intro", "config": {"points": 5}},
            {"id": "end", "type": "end"},
        ],
        connections=[
            {"from": "start", "to": "video"},
            {"from": "video", "to": "end"},
        ],
    )


@pytest.fixture
def session():
    return create_session_state("learner-1", "activity-1")
