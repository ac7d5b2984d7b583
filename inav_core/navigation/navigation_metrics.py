"""Remaining distance, ETA and arrival checks along a route."""

from typing import Sequence, Tuple
import math

from inav_core.proto.position import Position

WALKING_SPEED_MPS = 1.4

# Distance charged for one floor transition in remaining_distance (m)
FLOOR_TRANSITION_DISTANCE_M = 20.0

# Time charged for one floor transition in eta_seconds (s)
FLOOR_TRANSITION_TIME_S = 20.0

ARRIVAL_RADIUS_M = 3.0


def closest_path_index(path: Sequence[Position], position: Position) -> Tuple[int, float]:
    """
    Index of the waypoint nearest to a position, same floor only.

    Falls back to index 0 (planar distance) when no waypoint shares the
    position's floor.
    """
    best_index, best = 0, math.inf
    for i, point in enumerate(path):
        if point.floor != position.floor:
            continue
        d = point.planar_distance_to(position)
        if d < best:
            best_index, best = i, d

    if best == math.inf and path:
        return 0, path[0].planar_distance_to(position)
    return best_index, best


def remaining_distance(path: Sequence[Position], current: Position) -> float:
    """
    Distance left from the waypoint nearest to current.

    Each floor transition counts as FLOOR_TRANSITION_DISTANCE_M.
    """
    if not path:
        return 0.0

    start, _ = closest_path_index(path, current)
    total = 0.0
    for a, b in zip(path[start:], path[start + 1:]):
        if a.floor == b.floor:
            total += a.planar_distance_to(b)
        else:
            total += FLOOR_TRANSITION_DISTANCE_M
    return total


def eta_seconds(path: Sequence[Position], walking_speed_mps: float = WALKING_SPEED_MPS) -> float:
    """Walking time for a whole path plus a fixed time per floor transition."""
    if walking_speed_mps <= 0:
        raise ValueError(f"walking_speed_mps must be positive: {walking_speed_mps}")
    if not path:
        return 0.0

    distance = 0.0
    transitions = 0
    for a, b in zip(path, path[1:]):
        if a.floor != b.floor:
            transitions += 1
        distance += a.planar_distance_to(b)

    return distance / walking_speed_mps + transitions * FLOOR_TRANSITION_TIME_S


def is_destination_reached(position: Position, destination: Position, radius_m: float = ARRIVAL_RADIUS_M) -> bool:
    """True when on the destination floor and within radius_m of it."""
    return position.distance_to(destination) <= radius_m
