"""
Unit tests for the activity graph model.
"""

import json

import pytest

from src.flow.errors import CorruptGraphError
from src.flow.graph import ActivityGraph, NodeType


class TestLoading:
    """Tests for building graphs from authoring JSON."""

    def test_bare_shape(self, quiz_graph):
        assert len(quiz_graph) == 6
        assert quiz_graph.start_node().id == "start"
        assert [n.id for n in quiz_graph.end_nodes()] == ["end"]

    def test_wire_keys_map_to_source_and_target(self, quiz_graph):
        conn = quiz_graph.outgoing("start")[0]
        assert conn.source == "start"
        assert conn.target == "quiz"

    def test_nested_content_record(self):
        graph = ActivityGraph.from_dict({
            "id": "act-9",
            "title": "Nested",
            "content": {
                "nodes": [{"id": "s", "type": "start"}, {"id": "e", "type": "end"}],
                "connections": [{"from": "s", "to": "e"}],
            },
        })
        assert graph.id == "act-9"
        assert graph.title == "Nested"
        assert graph.outgoing("s")[0].target == "e"

    def test_editor_keys_ignored(self):
        graph = ActivityGraph.from_dict({
            "nodes": [
                {"id": "s", "type": "start", "position": {"x": 1, "y": 2}, "color": "#fff"},
                {"id": "e", "type": "end", "size": {"w": 10}},
            ],
            "connections": [{"from": "s", "to": "e", "style": "dashed"}],
        })
        assert graph.by_id("s").type == NodeType.START

    def test_unknown_node_type_rejected(self):
        with pytest.raises(ValueError):
            ActivityGraph.from_dict({"nodes": [{"id": "x", "type": "hologram"}], "connections": []})

    def test_load_bundled_activity(self, sample_activity_path):
        graph = ActivityGraph.load(sample_activity_path)
        assert graph.id == "photosynthesis-intro"
        assert graph.by_id("check").type == NodeType.QUIZ
        assert graph.context_sources

    def test_round_trip_uses_wire_keys(self, linear_graph):
        data = linear_graph.to_dict()
        assert data["connections"][0]["from"] == "start"
        assert data["connections"][0]["to"] == "video"
        assert ActivityGraph.from_json(json.dumps(data)).outgoing("video")[0].target == "end"


class TestQueries:
    """Tests for lookups."""

    def test_outgoing_preserves_declaration_order(self, quiz_graph):
        labels = [c.label for c in quiz_graph.outgoing("quiz")]
        assert labels == ["low_score", "medium_score", "high_score"]

    def test_outgoing_returns_copy(self, quiz_graph):
        quiz_graph.outgoing("quiz").clear()
        assert len(quiz_graph.outgoing("quiz")) == 3

    def test_outgoing_of_end_is_empty(self, quiz_graph):
        assert quiz_graph.outgoing("end") == []

    def test_require_missing_node_is_corrupt(self, quiz_graph):
        with pytest.raises(CorruptGraphError) as exc:
            quiz_graph.require("nowhere")
        assert exc.value.node_id == "nowhere"

    def test_missing_start_is_corrupt(self, make_graph):
        graph = make_graph([{"id": "e", "type": "end"}], [])
        with pytest.raises(CorruptGraphError):
            graph.start_node()

    def test_branching_flag(self, chat_graph, quiz_graph):
        assert chat_graph.by_id("chat").branching_enabled is True
        assert quiz_graph.by_id("quiz").branching_enabled is False

    def test_graph_is_immutable(self, quiz_graph):
        with pytest.raises(Exception):
            quiz_graph.title = "changed"
