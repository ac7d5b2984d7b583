"""
Anchor Range Message Schema.

An AnchorRange pairs a transmitter with a known position (beacon or
access point) and the distance estimated from its latest reading. It is
the common input of every position estimator.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple
import math

from .position import Position


@dataclass(frozen=True)
class AnchorRange:
    """
    Distance measurement to one anchor.

    Attributes:
        anchor_id: Anchor (source) identifier
        position: Known anchor position
        distance_m: Estimated distance from receiver to anchor (m)
        rssi: Clamped RSSI the distance was derived from (dBm), if any
        weight_hint: Caller-supplied confidence multiplier (>= 0)
    """

    anchor_id: str
    position: Position
    distance_m: float
    rssi: Optional[int] = None
    weight_hint: float = 1.0

    def __post_init__(self):
        """Validate range."""
        if not math.isfinite(self.distance_m) or self.distance_m < 0:
            raise ValueError(f"Distance must be finite and non-negative: {self.distance_m}")
        if self.weight_hint < 0:
            raise ValueError(f"Weight hint cannot be negative: {self.weight_hint}")


class AnchorRegistry(Mapping):
    """
    Read-only snapshot of known anchor positions.

    Maintained by an external registry; estimators never mutate it.

    Usage:
        registry = AnchorRegistry({"B1": Position(0, 0, 0), "B2": Position(10, 0, 0)})
        if "B1" in registry:
            pos = registry["B1"]
    """

    def __init__(self, anchors: Optional[Mapping[str, Position]] = None):
        self._anchors: Dict[str, Position] = dict(anchors or {})

    def __getitem__(self, anchor_id: str) -> Position:
        return self._anchors[anchor_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._anchors)

    def __len__(self) -> int:
        return len(self._anchors)

    def on_floor(self, floor: int) -> "AnchorRegistry":
        """Registry restricted to anchors on one floor."""
        return AnchorRegistry({aid: p for aid, p in self._anchors.items() if p.floor == floor})

    @classmethod
    def from_tuples(cls, entries: Iterable[Tuple[str, float, float, int]]) -> "AnchorRegistry":
        """Build from (anchor_id, x, y, floor) tuples."""
        return cls({aid: Position(x, y, floor) for aid, x, y, floor in entries})

    def __repr__(self) -> str:
        return f"AnchorRegistry({len(self._anchors)} anchors)"
