"""
Position Estimate Output Schema.

Defines the output of every position estimator and of the sensor fusion
combiner. Estimates are immutable once created.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum
import math
import time


class EstimatorKind(Enum):
    """Positioning algorithm that produced an estimate."""

    TRILATERATION = "trilateration"
    WEIGHTED_CENTROID = "weighted_centroid"
    FINGERPRINTING = "fingerprinting"
    KALMAN_FILTER = "kalman_filter"
    FUSION = "fusion"


@dataclass(frozen=True)
class PositionEstimate:
    """
    2D position estimate.

    Attributes:
        x: X coordinate (m)
        y: Y coordinate (m)
        accuracy_m: Estimated horizontal accuracy (m, lower is better)
        algorithm: Estimator that produced this result
        timestamp_ms: Creation time (ms)

        # Optional context
        floor: Floor determined by weighted anchor vote, if known
        num_anchors_used: Number of anchors contributing to the estimate

    Notes:
        - Absence of an estimate is signalled with None, never with a
          sentinel estimate.
    """

    x: float
    y: float
    accuracy_m: float
    algorithm: EstimatorKind
    timestamp_ms: int

    floor: Optional[int] = None
    num_anchors_used: int = 0

    def __post_init__(self):
        """Validate position estimate."""
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Estimate coordinates must be finite: ({self.x}, {self.y})")

        if not math.isfinite(self.accuracy_m) or self.accuracy_m < 0:
            raise ValueError(f"Accuracy must be finite and non-negative: {self.accuracy_m}")

        if self.num_anchors_used < 0:
            raise ValueError(f"Num anchors cannot be negative: {self.num_anchors_used}")

    @property
    def position_2d(self) -> Tuple[float, float]:
        """Get (x, y) in meters."""
        return (self.x, self.y)

    def with_algorithm(self, algorithm: EstimatorKind) -> "PositionEstimate":
        """Copy of this estimate relabelled with another algorithm."""
        return PositionEstimate(
            x=self.x,
            y=self.y,
            accuracy_m=self.accuracy_m,
            algorithm=algorithm,
            timestamp_ms=self.timestamp_ms,
            floor=self.floor,
            num_anchors_used=self.num_anchors_used,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'x': self.x,
            'y': self.y,
            'accuracy_m': self.accuracy_m,
            'algorithm': self.algorithm.value,
            'timestamp_ms': self.timestamp_ms,
            'floor': self.floor,
            'num_anchors_used': self.num_anchors_used,
        }


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)
