"""
Unit tests for turn-by-turn guidance and route metrics.

Tests cover:
- Instruction sequences for straight, turning and multi-floor paths
- Turn classification and distance formatting
- Remaining distance, ETA and arrival checks
"""

import pytest

from inav_core.proto import Position, InstructionType, Direction
from inav_core.navigation import (
    NavigationGraph,
    NavNode,
    PathfindingEngine,
    generate_instructions,
    remaining_distance,
    eta_seconds,
    is_destination_reached,
)
from inav_core.navigation.instruction_generator import classify_turn, format_distance, turn_angle
from inav_core.navigation.navigation_metrics import closest_path_index


def l_shaped_path():
    """P0(0,0) -> P1(10,0) -> P2(10,10), a right turn with y pointing down."""
    graph = NavigationGraph()
    graph.add_node("P0", Position(0, 0, 0))
    graph.add_node("P1", Position(10, 0, 0))
    graph.add_node("P2", Position(10, 10, 0))
    graph.connect_nodes("P0", "P1")
    graph.connect_nodes("P1", "P2")
    return [graph.get_node(i) for i in ("P0", "P1", "P2")]


# =============================================================================
# Instruction Generation
# =============================================================================


class TestGenerateInstructions:
    """Tests for instruction sequences."""

    def test_empty_path(self):
        """No path, no instructions."""
        assert generate_instructions([]) == []

    def test_single_node_path(self):
        """A trivial route still starts and ends."""
        node = NavNode("X", Position(0, 0, 0))

        types = [i.type for i in generate_instructions([node])]

        assert types == [InstructionType.START, InstructionType.DESTINATION]

    def test_start_and_destination_texts(self):
        """The first and last instructions carry fixed texts and node ids."""
        instructions = generate_instructions(l_shaped_path())

        assert instructions[0].text == "Start navigation"
        assert instructions[0].node_id == "P0"
        assert instructions[-1].text == "You have reached your destination"
        assert instructions[-1].node_id == "P2"

    def test_turn_and_continue(self):
        """An L-shaped path turns at the corner then continues."""
        instructions = generate_instructions(l_shaped_path())

        assert [i.type for i in instructions] == [
            InstructionType.START,
            InstructionType.TURN,
            InstructionType.CONTINUE,
            InstructionType.DESTINATION,
        ]
        turn = instructions[1]
        assert turn.direction == Direction.RIGHT
        assert turn.node_id == "P1"
        assert instructions[2].text == "Continue for 10 meters"
        assert instructions[2].distance_m == pytest.approx(10.0)

    def test_floor_change_up(self, elevator_graph):
        """Elevator transitions name the type, direction and floor."""
        path = PathfindingEngine(elevator_graph).find_path("A", "D")

        instructions = generate_instructions(path)

        assert [i.type for i in instructions] == [
            InstructionType.START,
            InstructionType.FLOOR_CHANGE,
            InstructionType.CONTINUE,
            InstructionType.DESTINATION,
        ]
        change = instructions[1]
        assert change.text == "Take the elevator up to floor 1"
        assert change.direction == Direction.UP
        assert change.node_id == "B"
        assert change.is_floor_change

    def test_floor_change_down(self, elevator_graph):
        """Going down reads 'down'."""
        path = PathfindingEngine(elevator_graph).find_path("D", "A")

        change = [i for i in generate_instructions(path) if i.is_floor_change][0]

        assert change.text == "Take the elevator down to floor 0"
        assert change.direction == Direction.DOWN

    def test_floor_change_without_edge_defaults_to_stairs(self):
        """Unconnected consecutive nodes fall back to stairs and 5 m."""
        path = [NavNode("X", Position(0, 0, 0)), NavNode("Y", Position(0, 0, 2))]

        change = generate_instructions(path)[1]

        assert change.text == "Take the stairs up to floor 2"
        assert change.distance_m == pytest.approx(5.0)

    def test_straight_corridor_has_no_turns(self, corridor_graph):
        """Collinear waypoints produce CONTINUE only."""
        path = PathfindingEngine(corridor_graph).find_path("N0", "N3")

        types = [i.type for i in generate_instructions(path)]

        assert InstructionType.TURN not in types
        assert types.count(InstructionType.CONTINUE) == 2


# =============================================================================
# Turn Classification
# =============================================================================


class TestTurnClassification:
    """Tests for turn angles and distance text."""

    @pytest.mark.parametrize("angle, direction", [
        (170.0, Direction.TURN_AROUND),
        (90.0, Direction.RIGHT),
        (-90.0, Direction.LEFT),
        (30.0, Direction.SLIGHT_RIGHT),
        (-30.0, Direction.SLIGHT_LEFT),
        (10.0, Direction.FORWARD),
        (-10.0, Direction.FORWARD),
    ])
    def test_classify_turn(self, angle, direction):
        """Thresholds at 150, 45 and 20 degrees."""
        assert classify_turn(angle) == direction

    def test_turn_angle_sign(self):
        """Turning towards +y is a right turn."""
        a, b, c = l_shaped_path()

        assert turn_angle(a, b, c) == pytest.approx(90.0)
        assert turn_angle(c, b, a) == pytest.approx(-90.0)

    @pytest.mark.parametrize("meters, text", [
        (7.6, "7 meters"),
        (23.0, "20 meters"),
        (147.0, "140 meters"),
    ])
    def test_format_distance(self, meters, text):
        """Distances are rounded down to 1, 5 or 10 m steps."""
        assert format_distance(meters) == text


# =============================================================================
# Route Metrics
# =============================================================================


MULTI_FLOOR_PATH = [
    Position(0, 0, 0),
    Position(10, 0, 0),
    Position(10, 0, 1),
    Position(20, 0, 1),
]


class TestRouteMetrics:
    """Tests for remaining distance, ETA and arrival."""

    def test_remaining_distance_counts_transitions(self):
        """Each floor change adds a fixed 20 m."""
        assert remaining_distance(MULTI_FLOOR_PATH, Position(0, 0, 0)) == pytest.approx(40.0)

    def test_remaining_distance_from_later_waypoint(self):
        """Progress is measured from the nearest waypoint on the same floor."""
        assert remaining_distance(MULTI_FLOOR_PATH, Position(11, 1, 1)) == pytest.approx(10.0)
        assert remaining_distance(MULTI_FLOOR_PATH, Position(19, 0, 1)) == 0.0

    def test_remaining_distance_empty_path(self):
        """An empty route has nothing left."""
        assert remaining_distance([], Position(0, 0, 0)) == 0.0

    def test_closest_index_falls_back_to_start(self):
        """Without a waypoint on the floor, the first waypoint is used."""
        index, _ = closest_path_index(MULTI_FLOOR_PATH, Position(5, 5, 3))

        assert index == 0

    def test_eta(self):
        """Walking time at 1.4 m/s plus 20 s per transition."""
        assert eta_seconds(MULTI_FLOOR_PATH) == pytest.approx(20.0 / 1.4 + 20.0)
        assert eta_seconds(MULTI_FLOOR_PATH, walking_speed_mps=2.0) == pytest.approx(10.0 + 20.0)

    def test_eta_invalid_speed_raises(self):
        """Walking speed must be positive."""
        with pytest.raises(ValueError, match="walking_speed_mps"):
            eta_seconds(MULTI_FLOOR_PATH, walking_speed_mps=0.0)

    def test_destination_reached(self):
        """Within 3 m on the same floor counts as arrived."""
        destination = Position(20, 0, 1)

        assert is_destination_reached(Position(20, 2, 1), destination)
        assert not is_destination_reached(Position(20, 4, 1), destination)
        assert not is_destination_reached(Position(20, 0, 0), destination)
