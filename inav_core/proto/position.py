"""
Building Position Value Type.

A 2D position on a numbered floor. Floor equality gates every proximity
comparison: positions on different floors have no finite 2D distance.
"""

from dataclasses import dataclass
from typing import Tuple
import math


@dataclass(frozen=True)
class Position:
    """
    Position inside the building.

    Attributes:
        x: X coordinate on the floor plan (m)
        y: Y coordinate on the floor plan (m)
        floor: Floor number (0 = ground)
    """

    x: float
    y: float
    floor: int = 0

    def __post_init__(self):
        """Validate position."""
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Position coordinates must be finite: ({self.x}, {self.y})")

    def distance_to(self, other: "Position") -> float:
        """
        2D Euclidean distance to another position.

        Returns:
            Distance in meters, or math.inf if the floors differ
        """
        if self.floor != other.floor:
            return math.inf
        return math.hypot(self.x - other.x, self.y - other.y)

    def planar_distance_to(self, other: "Position") -> float:
        """2D distance ignoring floors."""
        return math.hypot(self.x - other.x, self.y - other.y)

    def is_same_floor(self, other: "Position") -> bool:
        """Check if two positions are on the same floor."""
        return self.floor == other.floor

    @property
    def xy(self) -> Tuple[float, float]:
        """Get (x, y) tuple."""
        return (self.x, self.y)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {'x': self.x, 'y': self.y, 'floor': self.floor}

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        """Create from dictionary."""
        return cls(float(data['x']), float(data['y']), int(data.get('floor', 0)))
