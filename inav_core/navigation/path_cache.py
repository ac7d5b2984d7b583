"""
Path Cache and Rerouting.

PathCache memoizes successful searches per (start_id, end_id) in a small
LRU. Entries are dropped wholesale when the graph version or the cost
settings change; empty (unreachable) results are never stored. Hits and
stored entries are copies, so editing a returned result never alters the
cache.

Rerouter follows one active route and recomputes it when:
    1. The live position is further than deviation_threshold_m from the
       nearest point of the remaining path on the current floor
    2. The live floor has no node on the remaining path; routing resumes
       from the graph node on the new floor closest to the live position
       (nodes already passed are not reused)
"""

from typing import List, Optional, Tuple
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
import logging
import math

from inav_core.proto.position import Position
from inav_core.navigation.nav_graph import NavNode
from inav_core.navigation.pathfinder import PathfindingEngine, PathResult
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


class PathCache:
    """
    LRU of recent path results.

    Usage:
        cache = PathCache(engine, max_entries=8)
        result = cache.get_path("A", "D")   # search
        result = cache.get_path("A", "D")   # cached
    """

    def __init__(self, engine: PathfindingEngine, max_entries: int = 8):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1: {max_entries}")

        self.engine = engine
        self.max_entries = max_entries
        self.metrics = get_metrics()

        self._entries: "OrderedDict[Tuple[str, str], PathResult]" = OrderedDict()
        self._validity_key = self._current_key()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        self._check_valid()
        return key in self._entries

    def _current_key(self) -> Tuple:
        return (self.engine.graph.version, self.engine.config.cache_key())

    def _check_valid(self):
        key = self._current_key()
        if key != self._validity_key:
            if self._entries:
                logger.debug("Graph or routing preferences changed, clearing %d cached paths", len(self._entries))
            self._entries.clear()
            self._validity_key = key

    def get_path(self, start_id: str, end_id: str) -> PathResult:
        """Cached path, searching on a miss."""
        self._check_valid()
        key = (start_id, end_id)

        cached = self._entries.get(key)
        if cached is not None:
            self._entries.move_to_end(key)
            self.metrics.increment('path_cache_hits')
            return cached.copy()

        self.metrics.increment('path_cache_misses')
        result = self.engine.find_path(start_id, end_id)
        if result.found:
            self._entries[key] = result.copy()
            if len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return result

    def invalidate(self):
        """Drop every cached entry."""
        self._entries.clear()
        self._validity_key = self._current_key()


@dataclass
class RerouteConfig:
    """
    Rerouting thresholds.

    Attributes:
        deviation_threshold_m: Distance from the remaining path that
            triggers a new search (m)
    """

    deviation_threshold_m: float = 10.0

    def __post_init__(self):
        """Validate configuration."""
        if not math.isfinite(self.deviation_threshold_m) or self.deviation_threshold_m <= 0:
            raise ValueError(f"deviation_threshold_m must be positive: {self.deviation_threshold_m}")


class RerouteReason(Enum):
    """Why the active route was recomputed."""

    DEVIATION = "deviation"
    FLOOR_CHANGE = "floor_change"


@dataclass
class RouteUpdate:
    """
    Outcome of one Rerouter.update() call.

    Attributes:
        path: Remaining route (after any reroute)
        rerouted: True if a new search was made
        reason: Why, if rerouted
        deviation_m: Distance from the remaining path before rerouting
            (inf on a floor change)
    """

    path: PathResult = field(default_factory=PathResult)
    rerouted: bool = False
    reason: Optional[RerouteReason] = None
    deviation_m: float = 0.0


def distance_to_segment(point: Position, a: Position, b: Position) -> float:
    """2D distance from a point to segment a-b."""
    ax, ay = a.x, a.y
    dx, dy = b.x - ax, b.y - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0.0:
        return math.hypot(point.x - ax, point.y - ay)
    t = ((point.x - ax) * dx + (point.y - ay) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(point.x - (ax + t * dx), point.y - (ay + t * dy))


def nearest_on_path(nodes: List[NavNode], position: Position) -> Tuple[float, Optional[int]]:
    """
    Distance from a position to a path, on the position's floor only.

    Returns:
        (distance, index of the segment start or node), or (inf, None) if
        no path node is on that floor
    """
    best, best_index = math.inf, None
    floor = position.floor

    for i, node in enumerate(nodes):
        if node.position.floor != floor:
            continue
        d = node.position.planar_distance_to(position)
        if i + 1 < len(nodes) and nodes[i + 1].position.floor == floor:
            d = min(d, distance_to_segment(position, node.position, nodes[i + 1].position))
        if d < best:
            best, best_index = d, i

    return best, best_index


class Rerouter:
    """
    Keeps one active route in sync with the live position.

    Usage:
        rerouter = Rerouter(PathCache(engine))
        rerouter.start("entrance", "room_204")

        for position in live_positions:
            update = rerouter.update(position)
            if update.rerouted:
                show(update.path)
    """

    def __init__(self, cache: PathCache, config: Optional[RerouteConfig] = None):
        self.cache = cache
        self.config = config or RerouteConfig()
        self.metrics = get_metrics()

        self.route: PathResult = PathResult()
        self.destination_id: Optional[str] = None
        self.progress_index = 0

    @property
    def graph(self):
        return self.cache.engine.graph

    @property
    def active(self) -> bool:
        return self.route.found

    def remaining(self) -> List[NavNode]:
        return self.route.nodes[self.progress_index:]

    def start(self, start_id: str, destination_id: str) -> PathResult:
        """Compute and activate a route."""
        self.destination_id = destination_id
        self.route = self.cache.get_path(start_id, destination_id)
        self.progress_index = 0
        return self.route

    def start_from_position(self, position: Position, destination_id: str) -> PathResult:
        """Activate a route from the node nearest to a position."""
        node = self._closest_on_floor(position)
        if node is None:
            self.clear()
            return self.route
        return self.start(node.id, destination_id)

    def clear(self):
        self.route = PathResult()
        self.destination_id = None
        self.progress_index = 0

    def update(self, position: Position) -> RouteUpdate:
        """
        Check the live position against the active route.

        Returns:
            RouteUpdate with the remaining path; an inactive rerouter
            returns an empty update
        """
        if self.destination_id is None or not self.route.found:
            return RouteUpdate()

        remaining = self.remaining()
        deviation, index = nearest_on_path(remaining, position)

        if index is None:
            resume = self._closest_on_floor(position)
            return self._reroute(resume, RerouteReason.FLOOR_CHANGE, deviation)

        if deviation > self.config.deviation_threshold_m:
            resume = self._closest_on_floor(position)
            return self._reroute(resume, RerouteReason.DEVIATION, deviation)

        self.progress_index += index
        self.metrics.record_histogram('route_deviation_m', deviation)
        return RouteUpdate(self.route.suffix(self.progress_index), False, None, deviation)

    def _reroute(self, resume: Optional[NavNode], reason: RerouteReason, deviation: float) -> RouteUpdate:
        logger.debug(
            "Rerouting (%s, deviation %.1fm) from %s to %s",
            reason.value, deviation, resume.id if resume else None, self.destination_id,
        )
        self.metrics.increment('reroutes')

        if resume is None:
            self.route = PathResult()
        else:
            self.route = self.cache.get_path(resume.id, self.destination_id)
        self.progress_index = 0
        return RouteUpdate(self.route, True, reason, deviation)

    def _closest_on_floor(self, position: Position) -> Optional[NavNode]:
        candidates = self.graph.nodes_on_floor(position.floor)
        if not candidates:
            return self.graph.find_closest_node(position)
        return min(candidates, key=lambda n: n.position.planar_distance_to(position))
