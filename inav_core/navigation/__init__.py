"""
Navigation Module: Waypoint graph, A* routing, caching, guidance.

Key classes:
- NavigationGraph: Arena of waypoint nodes with versioned edits
- PathfindingEngine: A* with floor-transition cost modeling
- PathCache / Rerouter: Result memoization and live re-planning
- generate_instructions: Turn-by-turn guidance from a path
"""

from .nav_graph import (
    NavigationGraph,
    NavNode,
    NavConnection,
    TransitionType,
    create_grid_graph,
    FLOOR_MISMATCH_PENALTY_M,
)
from .pathfinder import (
    PathfindingEngine,
    PathfindingConfig,
    PathResult,
    HeuristicBounds,
)
from .path_cache import (
    PathCache,
    Rerouter,
    RerouteConfig,
    RerouteReason,
    RouteUpdate,
    distance_to_segment,
    nearest_on_path,
)
from .instruction_generator import generate_instructions
from .navigation_metrics import (
    remaining_distance,
    eta_seconds,
    is_destination_reached,
)

__all__ = [
    # Graph
    'NavigationGraph',
    'NavNode',
    'NavConnection',
    'TransitionType',
    'create_grid_graph',
    'FLOOR_MISMATCH_PENALTY_M',
    # Search
    'PathfindingEngine',
    'PathfindingConfig',
    'PathResult',
    'HeuristicBounds',
    # Caching and rerouting
    'PathCache',
    'Rerouter',
    'RerouteConfig',
    'RerouteReason',
    'RouteUpdate',
    'distance_to_segment',
    'nearest_on_path',
    # Guidance
    'generate_instructions',
    'remaining_distance',
    'eta_seconds',
    'is_destination_reached',
]
