"""
A* Pathfinding over the Navigation Graph.

Edge cost:
    cost = distance * factor
    factor = 1.0                                  same floor
           = base * type_factor                   floor transition
           = base * 0.8                           transition of the preferred type
    base   = 5.0 (10.0 with prefer_accessible_routes)
    type_factor: stairs 1.0, escalator 1.2, elevator 1.5, unknown 1.5

Heuristic:
    h(n) = scale * euclid_2d(n, goal) + floor_penalty * |floor(n) - floor(goal)|

With enforce_admissible_heuristic the scale and floor penalty are derived
from the graph so that every edge satisfies

    cost(e) >= scale * euclid_2d(e) + floor_penalty * |dfloor(e)|

Summing over any path and applying the triangle inequality gives
h(n) <= true cost, and the per-edge form makes h consistent, so the
first time the goal is popped its cost is optimal. Without enforcement the
configured penalty (10 per floor) is used as is and the search is
best-effort.
"""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
import heapq
import itertools
import logging
import math

from inav_core.proto.position import Position
from inav_core.navigation.nav_graph import (
    NavigationGraph,
    NavNode,
    NavConnection,
    TransitionType,
)
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


def _default_type_factors() -> Dict[TransitionType, float]:
    return {
        TransitionType.STAIRS: 1.0,
        TransitionType.ESCALATOR: 1.2,
        TransitionType.ELEVATOR: 1.5,
    }


@dataclass
class PathfindingConfig:
    """
    Routing preferences and cost model.

    Attributes:
        prefer_accessible_routes: Raise the floor-transition base factor
        preferred_transition_type: Transition type discounted by
            preferred_type_discount
        floor_transition_factor: Base factor of transition edges
        accessible_floor_transition_factor: Base factor with
            prefer_accessible_routes
        preferred_type_discount: Multiplier for the preferred type
        transition_type_factors: Per-type factor
        unknown_transition_factor: Factor for transitions without a type
        heuristic_floor_penalty: Heuristic cost per floor of difference
        enforce_admissible_heuristic: Clamp the heuristic to the graph's
            cheapest edges so A* stays optimal
    """

    prefer_accessible_routes: bool = False
    preferred_transition_type: Optional[TransitionType] = None

    floor_transition_factor: float = 5.0
    accessible_floor_transition_factor: float = 10.0
    preferred_type_discount: float = 0.8
    transition_type_factors: Dict[TransitionType, float] = field(default_factory=_default_type_factors)
    unknown_transition_factor: float = 1.5

    heuristic_floor_penalty: float = 10.0
    enforce_admissible_heuristic: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if isinstance(self.preferred_transition_type, str):
            self.preferred_transition_type = TransitionType(self.preferred_transition_type)

        factors = {
            'floor_transition_factor': self.floor_transition_factor,
            'accessible_floor_transition_factor': self.accessible_floor_transition_factor,
            'preferred_type_discount': self.preferred_type_discount,
            'unknown_transition_factor': self.unknown_transition_factor,
            'heuristic_floor_penalty': self.heuristic_floor_penalty,
        }
        for t, value in self.transition_type_factors.items():
            factors[f"transition_type_factors[{t.value}]"] = value

        for name, value in factors.items():
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be finite and non-negative: {value}")

    def transition_factor(self, connection: NavConnection) -> float:
        """Cost multiplier of an edge."""
        if not connection.is_floor_transition:
            return 1.0

        if self.prefer_accessible_routes:
            base = self.accessible_floor_transition_factor
        else:
            base = self.floor_transition_factor

        if (self.preferred_transition_type is not None
                and connection.transition_type == self.preferred_transition_type):
            return base * self.preferred_type_discount

        if connection.transition_type is None:
            return base * self.unknown_transition_factor
        return base * self.transition_type_factors.get(
            connection.transition_type, self.unknown_transition_factor
        )

    def cache_key(self) -> Tuple:
        """Value identifying every setting that changes path costs."""
        return (
            self.prefer_accessible_routes,
            self.preferred_transition_type,
            self.floor_transition_factor,
            self.accessible_floor_transition_factor,
            self.preferred_type_discount,
            tuple(sorted((t.value, f) for t, f in self.transition_type_factors.items())),
            self.unknown_transition_factor,
            self.heuristic_floor_penalty,
            self.enforce_admissible_heuristic,
        )


@dataclass
class PathResult:
    """
    Result of a path search.

    Attributes:
        nodes: Start to destination inclusive; empty if no path
        cost: Total edge cost (0 for an empty or single-node path)
        expanded: Nodes expanded by the search
    """

    nodes: List[NavNode] = field(default_factory=list)
    cost: float = 0.0
    expanded: int = 0

    @property
    def found(self) -> bool:
        return len(self.nodes) > 0

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    @property
    def positions(self) -> List[Position]:
        return [n.position for n in self.nodes]

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def copy(self) -> "PathResult":
        """Shallow copy with its own node list."""
        return PathResult(list(self.nodes), self.cost, self.expanded)

    def suffix(self, start_index: int) -> "PathResult":
        """Remaining path from start_index; cost is left unset (0)."""
        return PathResult(self.nodes[start_index:])


@dataclass(frozen=True)
class HeuristicBounds:
    """Heuristic coefficients: h = scale * euclid_2d + floor_penalty * |dfloor|."""

    scale: float
    floor_penalty: float


class PathfindingEngine:
    """
    A* search over a NavigationGraph.

    Usage:
        engine = PathfindingEngine(graph, PathfindingConfig(prefer_accessible_routes=True))
        result = engine.find_path("entrance", "room_204")
        if not result.found:
            ...  # unreachable, not an error

    Notes:
        - Raises ValueError at construction for an empty graph
        - Terminates when the open set empties
    """

    def __init__(self, graph: NavigationGraph, config: Optional[PathfindingConfig] = None):
        """
        Initialize engine.

        Args:
            graph: Navigation graph (must contain at least one node)
            config: Routing preferences (uses defaults if None)

        Raises:
            ValueError: If the graph is empty
        """
        if graph is None or len(graph) == 0:
            raise ValueError("Pathfinding requires a non-empty navigation graph")

        self.graph = graph
        self.config = config or PathfindingConfig()
        self.metrics = get_metrics()

        self._bounds: Optional[HeuristicBounds] = None
        self._bounds_key = None

    def set_preferences(
        self,
        prefer_accessible_routes: Optional[bool] = None,
        preferred_transition_type: Optional[TransitionType] = None,
        clear_preferred_type: bool = False,
    ):
        """Update routing preferences in place."""
        if prefer_accessible_routes is not None:
            self.config.prefer_accessible_routes = prefer_accessible_routes
        if preferred_transition_type is not None or clear_preferred_type:
            self.config.preferred_transition_type = preferred_transition_type

    def edge_cost(self, connection: NavConnection) -> float:
        """Cost of traversing one edge."""
        return connection.distance * self.config.transition_factor(connection)

    # =========================================================================
    # Heuristic
    # =========================================================================

    def heuristic_bounds(self) -> HeuristicBounds:
        """
        Heuristic coefficients for the current graph and config.

        Recomputed only when the graph version or the cost settings change.
        """
        key = (self.graph.version, self.config.cache_key())
        if self._bounds is not None and key == self._bounds_key:
            return self._bounds

        if self.config.enforce_admissible_heuristic:
            bounds = self._admissible_bounds()
        else:
            bounds = HeuristicBounds(1.0, self.config.heuristic_floor_penalty)

        if bounds.floor_penalty < self.config.heuristic_floor_penalty:
            logger.debug(
                "Heuristic floor penalty lowered from %.2f to %.2f to stay admissible",
                self.config.heuristic_floor_penalty, bounds.floor_penalty,
            )

        self._bounds, self._bounds_key = bounds, key
        return bounds

    def _admissible_bounds(self) -> HeuristicBounds:
        edges = []
        for node in self.graph:
            for connection in node.connections:
                target = self.graph.get_node(connection.target_node_id)
                if target is None:
                    continue
                euclid = node.position.planar_distance_to(target.position)
                floors = abs(node.position.floor - target.position.floor)
                edges.append((self.edge_cost(connection), euclid, floors))

        scale = 1.0
        for cost, euclid, _ in edges:
            if euclid > 0:
                scale = min(scale, cost / euclid)

        penalty = self.config.heuristic_floor_penalty
        for cost, euclid, floors in edges:
            if floors > 0:
                penalty = min(penalty, (cost - scale * euclid) / floors)

        return HeuristicBounds(max(scale, 0.0), max(penalty, 0.0))

    def heuristic(self, node: NavNode, goal: NavNode, bounds: Optional[HeuristicBounds] = None) -> float:
        bounds = bounds or self.heuristic_bounds()
        planar = node.position.planar_distance_to(goal.position)
        floors = abs(node.position.floor - goal.position.floor)
        return bounds.scale * planar + bounds.floor_penalty * floors

    # =========================================================================
    # Search
    # =========================================================================

    def find_path(self, start_id: str, end_id: str) -> PathResult:
        """
        Lowest-cost route between two nodes.

        Args:
            start_id: Start node id
            end_id: Destination node id

        Returns:
            PathResult; empty when either id is unknown or the destination
            is unreachable
        """
        self.metrics.increment('path_searches')

        start = self.graph.get_node(start_id)
        goal = self.graph.get_node(end_id)
        if start is None or goal is None:
            logger.debug("Unknown node in path request: %s -> %s", start_id, end_id)
            self.metrics.increment_drop('unknown_node')
            return PathResult()

        if start_id == end_id:
            return PathResult([start])

        bounds = self.heuristic_bounds()
        counter = itertools.count()

        g_score: Dict[str, float] = {start_id: 0.0}
        came_from: Dict[str, str] = {}
        open_heap = [(self.heuristic(start, goal, bounds), next(counter), start_id)]
        expanded = 0

        while open_heap:
            _, _, current_id = heapq.heappop(open_heap)

            if current_id == end_id:
                result = PathResult(self._reconstruct(came_from, end_id), g_score[end_id], expanded)
                self.metrics.record_histogram('path_cost', result.cost)
                self.metrics.record_histogram('astar_expanded', expanded)
                return result

            current = self.graph.get_node(current_id)
            if current is None:
                continue
            # Blocked nodes may only start or end a route
            if not current.traversable and current_id != start_id:
                continue

            expanded += 1
            current_g = g_score[current_id]

            for connection in current.connections:
                neighbour = self.graph.get_node(connection.target_node_id)
                if neighbour is None:
                    continue
                if not neighbour.traversable and neighbour.id != end_id:
                    continue

                tentative = current_g + self.edge_cost(connection)
                if tentative < g_score.get(neighbour.id, math.inf):
                    g_score[neighbour.id] = tentative
                    came_from[neighbour.id] = current_id
                    f = tentative + self.heuristic(neighbour, goal, bounds)
                    heapq.heappush(open_heap, (f, next(counter), neighbour.id))

        logger.debug("No path %s -> %s after %d expansions", start_id, end_id, expanded)
        self.metrics.increment_drop('no_path')
        return PathResult(expanded=expanded)

    def find_path_between(self, start: Position, destination: Position) -> PathResult:
        """Route between the graph nodes closest to two positions."""
        start_node = self.graph.find_closest_node(start)
        end_node = self.graph.find_closest_node(destination)
        if start_node is None or end_node is None:
            return PathResult()
        return self.find_path(start_node.id, end_node.id)

    def path_cost(self, node_ids: List[str]) -> float:
        """
        Cost of an explicit node sequence.

        Raises:
            ValueError: If two consecutive nodes are not connected
        """
        total = 0.0
        for a, b in zip(node_ids, node_ids[1:]):
            node = self.graph.get_node(a)
            connection = node.connection_to(b) if node is not None else None
            if connection is None:
                raise ValueError(f"No connection {a} -> {b}")
            total += self.edge_cost(connection)
        return total

    def _reconstruct(self, came_from: Dict[str, str], current_id: str) -> List[NavNode]:
        ids = [current_id]
        while current_id in came_from:
            current_id = came_from[current_id]
            ids.append(current_id)
        ids.reverse()
        return [self.graph.get_node(i) for i in ids]
