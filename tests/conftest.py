"""
Pytest configuration and shared fixtures for the indoor navigation core tests.

Provides anchor layouts, noiseless ranges and small navigation graphs
reused across the positioning and pathfinding test modules.
"""

import sys
import math
from pathlib import Path
from typing import List, Tuple

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from inav_core.metrics import get_metrics
from inav_core.proto import Position, AnchorRange, AnchorRegistry
from inav_core.navigation import NavigationGraph, TransitionType


# =============================================================================
# Metrics
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metrics():
    """
    Reset the global metrics collector around every test.

    Components cache the collector at construction, so the instance is
    reset in place rather than replaced.
    """
    get_metrics().reset()
    yield get_metrics()
    get_metrics().reset()


# =============================================================================
# Anchor Fixtures
# =============================================================================


@pytest.fixture
def triangle_anchors() -> AnchorRegistry:
    """
    Equilateral anchor triangle on floor 0.

    - B0 at origin
    - B1 at (10, 0)
    - B2 at (5, 8.66)
    """
    return AnchorRegistry({
        "B0": Position(0.0, 0.0, 0),
        "B1": Position(10.0, 0.0, 0),
        "B2": Position(5.0, 8.66, 0),
    })


def make_ranges(anchors: AnchorRegistry, truth: Tuple[float, float]) -> List[AnchorRange]:
    """Noiseless ranges from every anchor to a true 2D point, nearest first."""
    ranges = [
        AnchorRange(aid, anchors[aid], math.hypot(truth[0] - anchors[aid].x, truth[1] - anchors[aid].y))
        for aid in anchors
    ]
    ranges.sort(key=lambda r: r.distance_m)
    return ranges


# =============================================================================
# Graph Fixtures
# =============================================================================


@pytest.fixture
def elevator_graph() -> NavigationGraph:
    """
    Two-floor corridor joined by a zero-length elevator.

    A(0,0,F0) - B(10,0,F0) =elevator= C(10,0,F1) - D(20,0,F1)
    """
    graph = NavigationGraph()
    graph.add_node("A", Position(0.0, 0.0, 0))
    graph.add_node("B", Position(10.0, 0.0, 0))
    graph.add_node("C", Position(10.0, 0.0, 1))
    graph.add_node("D", Position(20.0, 0.0, 1))
    graph.connect_nodes("A", "B")
    graph.connect_nodes("B", "C", transition_type=TransitionType.ELEVATOR)
    graph.connect_nodes("C", "D")
    return graph


@pytest.fixture
def corridor_graph() -> NavigationGraph:
    """
    Straight single-floor corridor with one unique path.

    N0(0,0) - N1(10,0) - N2(20,0) - N3(30,0)
    """
    graph = NavigationGraph()
    for i in range(4):
        graph.add_node(f"N{i}", Position(10.0 * i, 0.0, 0))
    for i in range(3):
        graph.connect_nodes(f"N{i}", f"N{i + 1}")
    return graph
