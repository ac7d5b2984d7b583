"""
Navigation Graph (Arena of Waypoint Nodes).

Nodes live in a dict keyed by stable string ids; connections refer to
their target by id, never by object reference. Every structural edit
bumps `version`, which lets caches detect a stale graph.

JSON layout (to_json / from_json):

    {"nodes": [
        {"id": "A", "x": 0.0, "y": 0.0, "floor": 0, "traversable": true,
         "connections": [
             {"target": "B", "distance": 10.0,
              "floor_transition": false, "transition_type": null}
         ]}
    ]}

A connection may also be given as a bare target id string; its distance
then defaults to the 2D distance between the nodes.
"""

from typing import Dict, Iterator, List, Optional
from dataclasses import dataclass, field
from enum import Enum
import json
import logging
import math

from inav_core.proto.position import Position

logger = logging.getLogger(__name__)

# find_closest_node penalty for a node on another floor (m)
FLOOR_MISMATCH_PENALTY_M = 100.0


class TransitionType(Enum):
    """Vertical transition kind of a floor-transition edge."""

    STAIRS = "stairs"
    ESCALATOR = "escalator"
    ELEVATOR = "elevator"


@dataclass(frozen=True)
class NavConnection:
    """
    Directed edge to another node.

    Attributes:
        target_node_id: Id of the node this edge leads to
        distance: Walking length of the edge (m)
        is_floor_transition: True if the edge changes floor
        transition_type: Stairs / escalator / elevator, if known
    """

    target_node_id: str
    distance: float
    is_floor_transition: bool = False
    transition_type: Optional[TransitionType] = None

    def __post_init__(self):
        """Validate connection."""
        if not math.isfinite(self.distance) or self.distance < 0:
            raise ValueError(f"Connection distance must be finite and non-negative: {self.distance}")

    def to_dict(self) -> dict:
        return {
            'target': self.target_node_id,
            'distance': self.distance,
            'floor_transition': self.is_floor_transition,
            'transition_type': self.transition_type.value if self.transition_type else None,
        }


@dataclass
class NavNode:
    """
    Waypoint node.

    Attributes:
        id: Stable node id
        position: Node position (floor included)
        traversable: False for nodes that may only start or end a route
        connections: Outgoing edges
    """

    id: str
    position: Position
    traversable: bool = True
    connections: List[NavConnection] = field(default_factory=list)

    @property
    def floor(self) -> int:
        return self.position.floor

    def connection_to(self, target_id: str) -> Optional[NavConnection]:
        """Outgoing edge to target_id, if any."""
        for connection in self.connections:
            if connection.target_node_id == target_id:
                return connection
        return None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'x': self.position.x,
            'y': self.position.y,
            'floor': self.position.floor,
            'traversable': self.traversable,
            'connections': [c.to_dict() for c in self.connections],
        }


class NavigationGraph:
    """
    In-memory navigation graph.

    Usage:
        graph = NavigationGraph()
        graph.add_node("A", Position(0, 0, 0))
        graph.add_node("B", Position(10, 0, 0))
        graph.connect_nodes("A", "B")

        node = graph.find_closest_node(Position(9, 1, 0))

    Notes:
        - Single-writer: edits must not race with searches
        - Edits on unknown ids return False instead of raising
    """

    def __init__(self):
        self._nodes: Dict[str, NavNode] = {}
        self.version = 0

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[NavNode]:
        return iter(self._nodes.values())

    @property
    def nodes(self) -> Dict[str, NavNode]:
        """Snapshot of the node table."""
        return dict(self._nodes)

    def get_node(self, node_id: str) -> Optional[NavNode]:
        return self._nodes.get(node_id)

    def nodes_on_floor(self, floor: int) -> List[NavNode]:
        return [n for n in self._nodes.values() if n.position.floor == floor]

    @property
    def floors(self) -> List[int]:
        return sorted({n.position.floor for n in self._nodes.values()})

    def _touch(self):
        self.version += 1

    # =========================================================================
    # Editing
    # =========================================================================

    def add_node(self, node_id: str, position: Position, traversable: bool = True) -> NavNode:
        """
        Add a node.

        Raises:
            ValueError: If the id is empty or already present
        """
        if not node_id:
            raise ValueError("Node id cannot be empty")
        if node_id in self._nodes:
            raise ValueError(f"Duplicate node id: {node_id}")

        node = NavNode(node_id, position, traversable)
        self._nodes[node_id] = node
        self._touch()
        return node

    def set_traversable(self, node_id: str, traversable: bool) -> bool:
        """Mark a node (non-)traversable."""
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.traversable = traversable
        self._touch()
        return True

    def add_connection(
        self,
        from_id: str,
        to_id: str,
        distance: Optional[float] = None,
        transition_type: Optional[TransitionType] = None,
        is_floor_transition: Optional[bool] = None,
    ) -> bool:
        """
        Add (or replace) a directed edge.

        Args:
            from_id: Source node id
            to_id: Target node id
            distance: Edge length (defaults to the 2D distance)
            transition_type: Transition kind for floor-changing edges
            is_floor_transition: Defaults to True when the floors differ

        Returns:
            False if either node is unknown
        """
        source = self._nodes.get(from_id)
        target = self._nodes.get(to_id)
        if source is None or target is None:
            return False

        if distance is None:
            distance = source.position.planar_distance_to(target.position)
        if is_floor_transition is None:
            is_floor_transition = source.position.floor != target.position.floor

        connection = NavConnection(to_id, float(distance), is_floor_transition, transition_type)
        source.connections = [c for c in source.connections if c.target_node_id != to_id]
        source.connections.append(connection)
        self._touch()
        return True

    def connect_nodes(
        self,
        node1_id: str,
        node2_id: str,
        distance: Optional[float] = None,
        transition_type: Optional[TransitionType] = None,
    ) -> bool:
        """Add edges in both directions."""
        if node1_id not in self._nodes or node2_id not in self._nodes:
            return False
        self.add_connection(node1_id, node2_id, distance, transition_type)
        self.add_connection(node2_id, node1_id, distance, transition_type)
        return True

    def remove_connection(self, node1_id: str, node2_id: str, bidirectional: bool = True) -> bool:
        """
        Remove the edge node1 -> node2 (and node2 -> node1).

        Returns:
            True if at least one edge was removed
        """
        removed = False
        pairs = [(node1_id, node2_id)]
        if bidirectional:
            pairs.append((node2_id, node1_id))

        for a, b in pairs:
            node = self._nodes.get(a)
            if node is None:
                continue
            kept = [c for c in node.connections if c.target_node_id != b]
            if len(kept) != len(node.connections):
                node.connections = kept
                removed = True

        if removed:
            self._touch()
        return removed

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge pointing at it."""
        if self._nodes.pop(node_id, None) is None:
            return False
        for node in self._nodes.values():
            node.connections = [c for c in node.connections if c.target_node_id != node_id]
        self._touch()
        return True

    def clear(self):
        self._nodes.clear()
        self._touch()

    # =========================================================================
    # Queries
    # =========================================================================

    def find_closest_node(
        self,
        position: Position,
        floor_penalty: float = FLOOR_MISMATCH_PENALTY_M,
    ) -> Optional[NavNode]:
        """
        Linear scan for the node nearest to a position.

        Score = 2D distance + floor_penalty if the floors differ. A node
        exactly at the position always wins. Callers needing a node on a
        specific floor should filter with nodes_on_floor() first.

        Returns:
            Closest node, or None for an empty graph
        """
        best = None
        best_score = math.inf
        for node in self._nodes.values():
            score = node.position.planar_distance_to(position)
            if node.position.floor != position.floor:
                score += floor_penalty
            if score < best_score:
                best, best_score = node, score
        return best

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        return {'nodes': [node.to_dict() for node in self._nodes.values()]}

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict) -> "NavigationGraph":
        """
        Build a graph from its dict form.

        Connections to unknown nodes are skipped with a warning.

        Raises:
            ValueError: On missing node fields or invalid values
        """
        graph = cls()
        entries = data.get('nodes', [])

        try:
            for entry in entries:
                graph.add_node(
                    str(entry['id']),
                    Position(float(entry['x']), float(entry['y']), int(entry.get('floor', 0))),
                    bool(entry.get('traversable', True)),
                )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid node entry: {e}") from e

        for entry in entries:
            source_id = str(entry['id'])
            for raw in entry.get('connections', []):
                if isinstance(raw, str):
                    raw = {'target': raw}
                if 'target' not in raw:
                    raise ValueError(f"Connection of node {source_id} has no target")
                transition = raw.get('transition_type')
                added = graph.add_connection(
                    source_id,
                    str(raw['target']),
                    raw.get('distance'),
                    TransitionType(transition) if transition else None,
                    raw.get('floor_transition'),
                )
                if not added:
                    logger.warning("Skipping connection %s -> %s: unknown node", source_id, raw['target'])

        return graph

    @classmethod
    def from_json(cls, text: str) -> "NavigationGraph":
        return cls.from_dict(json.loads(text))


def create_grid_graph(
    rows: int,
    cols: int,
    floor: int = 0,
    width: float = 10.0,
    height: float = 10.0,
    graph: Optional[NavigationGraph] = None,
) -> NavigationGraph:
    """
    Lay out a rows x cols grid of nodes over width x height meters.

    Node ids are node_{floor}_{row}_{col}; each node is linked both ways to
    its right and bottom neighbours. Passing an existing graph adds the
    grid to it, so several floors can share one graph.

    Raises:
        ValueError: If rows or cols is below 1
    """
    if rows < 1 or cols < 1:
        raise ValueError(f"Grid needs at least one row and column: {rows}x{cols}")

    graph = graph if graph is not None else NavigationGraph()
    row_spacing = height / (rows - 1) if rows > 1 else 0.0
    col_spacing = width / (cols - 1) if cols > 1 else 0.0

    def node_id(r: int, c: int) -> str:
        return f"node_{floor}_{r}_{c}"

    for r in range(rows):
        for c in range(cols):
            graph.add_node(node_id(r, c), Position(c * col_spacing, r * row_spacing, floor))

    for r in range(rows):
        for c in range(cols):
            if c < cols - 1:
                graph.connect_nodes(node_id(r, c), node_id(r, c + 1))
            if r < rows - 1:
                graph.connect_nodes(node_id(r, c), node_id(r + 1, c))

    return graph
