"""
Unit tests for the navigation graph.

Tests cover:
- Node / connection editing and version bumps
- Closest-node lookup with floor penalty
- JSON import / export
- Grid graph builder
"""

import json

import pytest

from inav_core.proto import Position
from inav_core.navigation import (
    NavigationGraph,
    NavConnection,
    TransitionType,
    create_grid_graph,
)


class TestGraphEditing:
    """Tests for graph construction and edits."""

    def test_connect_nodes_is_bidirectional(self, elevator_graph):
        """connect_nodes adds an edge in each direction."""
        a, b = elevator_graph.get_node("A"), elevator_graph.get_node("B")

        assert a.connection_to("B").distance == pytest.approx(10.0)
        assert b.connection_to("A").distance == pytest.approx(10.0)

    def test_floor_transition_detected(self, elevator_graph):
        """Edges between floors are flagged with their type."""
        edge = elevator_graph.get_node("B").connection_to("C")

        assert edge.is_floor_transition
        assert edge.transition_type == TransitionType.ELEVATOR
        assert edge.distance == 0.0

    def test_add_connection_is_directed(self):
        """add_connection only links one way."""
        graph = NavigationGraph()
        graph.add_node("X", Position(0, 0))
        graph.add_node("Y", Position(3, 4))

        assert graph.add_connection("X", "Y")
        assert graph.get_node("X").connection_to("Y").distance == pytest.approx(5.0)
        assert graph.get_node("Y").connection_to("X") is None

    def test_unknown_ids_return_false(self):
        """Edits on missing nodes are reported, not raised."""
        graph = NavigationGraph()
        graph.add_node("X", Position(0, 0))

        assert not graph.add_connection("X", "missing")
        assert not graph.connect_nodes("missing", "X")
        assert not graph.remove_node("missing")

    def test_duplicate_node_raises(self):
        """Node ids are unique."""
        graph = NavigationGraph()
        graph.add_node("X", Position(0, 0))

        with pytest.raises(ValueError, match="Duplicate"):
            graph.add_node("X", Position(1, 1))

    def test_remove_connection_and_node(self, elevator_graph):
        """Removing a node drops edges that point at it."""
        assert elevator_graph.remove_connection("A", "B")
        assert elevator_graph.get_node("A").connection_to("B") is None
        assert elevator_graph.get_node("B").connection_to("A") is None

        assert elevator_graph.remove_node("C")
        assert "C" not in elevator_graph
        assert elevator_graph.get_node("B").connection_to("C") is None
        assert elevator_graph.get_node("D").connection_to("C") is None

    def test_every_edit_bumps_version(self):
        """The version counter increases on each structural change."""
        graph = NavigationGraph()
        versions = [graph.version]

        graph.add_node("X", Position(0, 0))
        versions.append(graph.version)
        graph.add_node("Y", Position(1, 0))
        versions.append(graph.version)
        graph.connect_nodes("X", "Y")
        versions.append(graph.version)
        graph.set_traversable("Y", False)
        versions.append(graph.version)
        graph.remove_connection("X", "Y")
        versions.append(graph.version)

        assert versions == sorted(set(versions))

    def test_negative_distance_raises(self):
        """Edges cannot have negative length."""
        with pytest.raises(ValueError, match="non-negative"):
            NavConnection("X", -1.0)


class TestFindClosestNode:
    """Tests for nearest-node lookup."""

    def test_exact_position_returns_node(self, elevator_graph):
        """A position equal to a node's position always returns that node."""
        for node in elevator_graph:
            assert elevator_graph.find_closest_node(node.position).id == node.id

    def test_stacked_nodes_resolved_by_floor(self, elevator_graph):
        """B and C share x/y; the floor decides."""
        assert elevator_graph.find_closest_node(Position(10.0, 0.0, 0)).id == "B"
        assert elevator_graph.find_closest_node(Position(10.0, 0.0, 1)).id == "C"

    def test_floor_penalty_prefers_same_floor(self, elevator_graph):
        """A same-floor node 9 m away beats an other-floor node 1 m away."""
        assert elevator_graph.find_closest_node(Position(19.0, 0.0, 0)).id == "B"

    def test_empty_graph_returns_none(self):
        """No nodes, no match."""
        assert NavigationGraph().find_closest_node(Position(0, 0)) is None


class TestSerialization:
    """Tests for dict / JSON round trips."""

    def test_json_round_trip(self, elevator_graph):
        """Export then import preserves nodes and edges."""
        elevator_graph.set_traversable("D", False)

        restored = NavigationGraph.from_json(elevator_graph.to_json())

        assert sorted(restored.nodes) == ["A", "B", "C", "D"]
        assert not restored.get_node("D").traversable
        edge = restored.get_node("B").connection_to("C")
        assert edge.transition_type == TransitionType.ELEVATOR
        assert edge.is_floor_transition

    def test_bare_id_connections(self):
        """Connections may be listed as plain target ids."""
        data = {"nodes": [
            {"id": "X", "x": 0, "y": 0, "floor": 0, "connections": ["Y"]},
            {"id": "Y", "x": 6, "y": 8, "floor": 0, "connections": []},
        ]}

        graph = NavigationGraph.from_json(json.dumps(data))

        assert graph.get_node("X").connection_to("Y").distance == pytest.approx(10.0)

    def test_dangling_connection_skipped(self, caplog):
        """Edges to unknown nodes are skipped with a warning."""
        data = {"nodes": [{"id": "X", "x": 0, "y": 0, "connections": ["ghost"]}]}

        graph = NavigationGraph.from_dict(data)

        assert graph.get_node("X").connections == []
        assert "ghost" in caplog.text

    def test_missing_field_raises(self):
        """Malformed node entries are rejected."""
        with pytest.raises(ValueError, match="Invalid node"):
            NavigationGraph.from_dict({"nodes": [{"id": "X", "y": 0}]})


class TestGridGraph:
    """Tests for the grid builder."""

    def test_grid_layout(self):
        """rows x cols nodes with ids node_{floor}_{r}_{c} and even spacing."""
        graph = create_grid_graph(3, 4, floor=2, width=30.0, height=20.0)

        assert len(graph) == 12
        corner = graph.get_node("node_2_2_3")
        assert corner.position == Position(30.0, 20.0, 2)
        assert graph.get_node("node_2_1_1").position == Position(10.0, 10.0, 2)

    def test_grid_links_right_and_down(self):
        """Interior nodes have four neighbours, corners two."""
        graph = create_grid_graph(3, 3, width=10.0, height=10.0)

        assert len(graph.get_node("node_0_1_1").connections) == 4
        assert len(graph.get_node("node_0_0_0").connections) == 2

    def test_multiple_floors_share_graph(self):
        """Passing a graph adds another floor."""
        graph = create_grid_graph(2, 2)
        create_grid_graph(2, 2, floor=1, graph=graph)

        assert graph.floors == [0, 1]
        assert len(graph) == 8

    def test_invalid_size_raises(self):
        """At least one row and column are required."""
        with pytest.raises(ValueError, match="at least one"):
            create_grid_graph(0, 3)
