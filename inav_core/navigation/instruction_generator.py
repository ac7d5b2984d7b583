"""
Turn-by-turn instruction generation.

Walks a path and emits START, TURN, CONTINUE, FLOOR_CHANGE and
DESTINATION instructions. Turn angles use floor-plan coordinates with y
pointing down (screen convention), so a positive cross product is a
right turn.
"""

from typing import List, Sequence
import math

from inav_core.proto.navigation_instruction import (
    NavigationInstruction,
    InstructionType,
    Direction,
)
from inav_core.navigation.nav_graph import NavNode, TransitionType

# Turn classification thresholds (degrees)
U_TURN_DEG = 150.0
TURN_DEG = 45.0
SLIGHT_TURN_DEG = 20.0

# Segments longer than this get a CONTINUE instruction (m)
CONTINUE_MIN_DISTANCE_M = 5.0

# FLOOR_CHANGE distance when the path has no explicit edge (m)
DEFAULT_TRANSITION_DISTANCE_M = 5.0

DIRECTION_TEXT = {
    Direction.FORWARD: "Continue straight",
    Direction.LEFT: "Turn left",
    Direction.RIGHT: "Turn right",
    Direction.SLIGHT_LEFT: "Bear slightly left",
    Direction.SLIGHT_RIGHT: "Bear slightly right",
    Direction.TURN_AROUND: "Make a U-turn",
    Direction.UP: "Go up",
    Direction.DOWN: "Go down",
}


def turn_angle(a: NavNode, b: NavNode, c: NavNode) -> float:
    """Signed heading change at b in degrees (positive = right)."""
    v1x, v1y = b.position.x - a.position.x, b.position.y - a.position.y
    v2x, v2y = c.position.x - b.position.x, c.position.y - b.position.y
    dot = v1x * v2x + v1y * v2y
    cross = v1x * v2y - v1y * v2x
    return math.degrees(math.atan2(cross, dot))


def classify_turn(angle: float) -> Direction:
    if angle > U_TURN_DEG:
        return Direction.TURN_AROUND
    if angle > TURN_DEG:
        return Direction.RIGHT
    if angle < -TURN_DEG:
        return Direction.LEFT
    if angle > SLIGHT_TURN_DEG:
        return Direction.SLIGHT_RIGHT
    if angle < -SLIGHT_TURN_DEG:
        return Direction.SLIGHT_LEFT
    return Direction.FORWARD


def format_distance(meters: float) -> str:
    """Round to 1 m under 10 m, 5 m under 100 m, 10 m beyond."""
    if meters < 10:
        return f"{int(meters)} meters"
    if meters < 100:
        return f"{int(meters / 5) * 5} meters"
    return f"{int(meters / 10) * 10} meters"


def _segment_distance(current: NavNode, nxt: NavNode) -> float:
    connection = current.connection_to(nxt.id)
    if connection is not None:
        return connection.distance
    return current.position.planar_distance_to(nxt.position)


def _floor_change(current: NavNode, nxt: NavNode) -> NavigationInstruction:
    connection = current.connection_to(nxt.id)
    transition = TransitionType.STAIRS
    if connection is not None and connection.transition_type is not None:
        transition = connection.transition_type

    direction = Direction.UP if nxt.floor > current.floor else Direction.DOWN
    text = f"Take the {transition.value} {direction.value} to floor {nxt.floor}"

    return NavigationInstruction(
        type=InstructionType.FLOOR_CHANGE,
        direction=direction,
        distance_m=connection.distance if connection is not None else DEFAULT_TRANSITION_DISTANCE_M,
        text=text,
        node_id=current.id,
    )


def generate_instructions(path: Sequence[NavNode]) -> List[NavigationInstruction]:
    """
    Derive instructions from a path.

    Args:
        path: Nodes from start to destination (a PathResult works too)

    Returns:
        Instructions in travel order; empty for an empty path
    """
    nodes = list(path)
    if not nodes:
        return []

    instructions = [
        NavigationInstruction(InstructionType.START, Direction.FORWARD, 0.0, "Start navigation", nodes[0].id)
    ]

    for i in range(len(nodes) - 1):
        current, nxt = nodes[i], nodes[i + 1]

        if current.floor != nxt.floor:
            instructions.append(_floor_change(current, nxt))
            continue

        if i < len(nodes) - 2 and nodes[i + 2].floor == nxt.floor:
            direction = classify_turn(turn_angle(current, nxt, nodes[i + 2]))
            if direction != Direction.FORWARD:
                instructions.append(NavigationInstruction(
                    InstructionType.TURN, direction, 0.0, DIRECTION_TEXT[direction], nxt.id
                ))

        distance = _segment_distance(current, nxt)
        if distance > CONTINUE_MIN_DISTANCE_M and i > 0:
            instructions.append(NavigationInstruction(
                InstructionType.CONTINUE,
                Direction.FORWARD,
                distance,
                f"Continue for {format_distance(distance)}",
                nxt.id,
            ))

    instructions.append(NavigationInstruction(
        InstructionType.DESTINATION,
        Direction.FORWARD,
        0.0,
        "You have reached your destination",
        nodes[-1].id,
    ))
    return instructions
