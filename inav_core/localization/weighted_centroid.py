"""
Weighted Centroid Estimator.

Estimates position as the weighted average of anchor positions. Works with
any number of anchors (>= 1), so it also serves as the fallback when
trilateration is numerically degenerate.
"""

from typing import Dict, List, Optional, Sequence
from enum import Enum
import numpy as np

from inav_core.proto.anchor_range import AnchorRange
from inav_core.proto.position_estimate import PositionEstimate, EstimatorKind, now_ms
from inav_core.localization.signal_model import MIN_DISTANCE_M
from inav_core.metrics import get_metrics


class CentroidWeighting(Enum):
    """Weighting scheme for anchor contributions."""

    INVERSE_SQUARE_DISTANCE = "inverse_square_distance"
    INVERSE_DISTANCE = "inverse_distance"


def anchor_weights(
    ranges: Sequence[AnchorRange],
    weighting: CentroidWeighting = CentroidWeighting.INVERSE_SQUARE_DISTANCE,
) -> np.ndarray:
    """
    Raw (unnormalized) weight of each anchor.

    Closer anchors (stronger signals) weigh more. Distances are floored at
    MIN_DISTANCE_M; the anchor's weight hint multiplies the result.
    """
    distances = np.array([max(r.distance_m, MIN_DISTANCE_M) for r in ranges], dtype=float)
    hints = np.array([r.weight_hint for r in ranges], dtype=float)

    if weighting == CentroidWeighting.INVERSE_DISTANCE:
        return hints / distances
    return hints / distances ** 2


def vote_floor(floors: Sequence[int], weights: Sequence[float]) -> Optional[int]:
    """
    Weighted floor vote.

    Ties go to the floor seen first.
    """
    votes: Dict[int, float] = {}
    for floor, weight in zip(floors, weights):
        votes[floor] = votes.get(floor, 0.0) + float(weight)
    if not votes:
        return None
    return max(votes, key=votes.get)


def weighted_centroid(
    ranges: List[AnchorRange],
    weighting: CentroidWeighting = CentroidWeighting.INVERSE_SQUARE_DISTANCE,
    timestamp_ms: Optional[int] = None,
) -> Optional[PositionEstimate]:
    """
    Weighted centroid of anchor positions.

    Args:
        ranges: Anchors with known positions and distances
        weighting: Weighting scheme
        timestamp_ms: Estimate timestamp (defaults to now)

    Returns:
        PositionEstimate, or None if there are no anchors or the total
        weight is zero

    Notes:
        - Accuracy is the mean anchor distance
        - A single anchor yields exactly that anchor's position
    """
    metrics = get_metrics()

    if not ranges:
        metrics.increment_drop('insufficient_anchors')
        return None

    weights = anchor_weights(ranges, weighting)
    total = float(np.sum(weights))

    if not np.isfinite(total) or total <= 0.0:
        metrics.increment_drop('zero_weight')
        return None

    # Normalize first so a single anchor gets weight exactly 1.0
    normalized = weights / total
    xs = np.array([r.position.x for r in ranges], dtype=float)
    ys = np.array([r.position.y for r in ranges], dtype=float)

    x = float(np.dot(normalized, xs))
    y = float(np.dot(normalized, ys))
    accuracy = float(np.mean([r.distance_m for r in ranges]))

    return PositionEstimate(
        x=x,
        y=y,
        accuracy_m=accuracy,
        algorithm=EstimatorKind.WEIGHTED_CENTROID,
        timestamp_ms=timestamp_ms if timestamp_ms is not None else now_ms(),
        floor=vote_floor([r.position.floor for r in ranges], normalized),
        num_anchors_used=len(ranges),
    )
