"""
Trilateration Estimator (Linearized 3-Anchor Solve).

Subtracting the circle equations (x - xi)^2 + (y - yi)^2 = ri^2 of anchor
pairs (1,2) and (2,3) gives the linear system

    2(x2 - x1) x + 2(y2 - y1) y = r1^2 - r2^2 - x1^2 - y1^2 + x2^2 + y2^2
    2(x3 - x2) x + 2(y3 - y2) y = r2^2 - r3^2 - x2^2 - y2^2 + x3^2 + y3^2

which is solved directly. Collinear or coincident anchors make the system
singular; in that case the estimator falls back to an inverse-distance
weighted centroid over all anchors instead of failing.
"""

from typing import List, Optional, Tuple
import logging
import numpy as np

from inav_core.proto.anchor_range import AnchorRange
from inav_core.proto.position_estimate import PositionEstimate, EstimatorKind, now_ms
from inav_core.localization.signal_model import MIN_DISTANCE_M
from inav_core.localization.weighted_centroid import weighted_centroid, CentroidWeighting
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)

MIN_ANCHORS = 3

# Relative determinant threshold for a singular system
DET_EPSILON = 1e-9


def _linear_system(ranges: List[AnchorRange]) -> Tuple[np.ndarray, np.ndarray]:
    """Build the 2x2 system from the first three anchors."""
    (x1, y1), (x2, y2), (x3, y3) = (r.position.xy for r in ranges[:3])
    r1, r2, r3 = (max(r.distance_m, MIN_DISTANCE_M) for r in ranges[:3])

    A = np.array([
        [2.0 * (x2 - x1), 2.0 * (y2 - y1)],
        [2.0 * (x3 - x2), 2.0 * (y3 - y2)],
    ])
    b = np.array([
        r1 ** 2 - r2 ** 2 - x1 ** 2 - y1 ** 2 + x2 ** 2 + y2 ** 2,
        r2 ** 2 - r3 ** 2 - x2 ** 2 - y2 ** 2 + x3 ** 2 + y3 ** 2,
    ])
    return A, b


def is_degenerate(A: np.ndarray) -> bool:
    """Check if the 2x2 system is numerically singular."""
    scale = max(float(np.max(np.abs(A))) ** 2, 1.0)
    return abs(float(np.linalg.det(A))) <= DET_EPSILON * scale


def trilaterate(
    ranges: List[AnchorRange],
    timestamp_ms: Optional[int] = None,
) -> Optional[PositionEstimate]:
    """
    Estimate position from the first three anchor ranges.

    Args:
        ranges: At least 3 anchors with known positions (nearest first
            gives the best conditioned system)
        timestamp_ms: Estimate timestamp (defaults to now)

    Returns:
        PositionEstimate tagged TRILATERATION, a WEIGHTED_CENTROID estimate
        when the system is degenerate, or None with fewer than 3 anchors

    Notes:
        - Distances are floored at 0.1 m
        - Accuracy is the mean distance over all supplied anchors
        - Floor is taken from the nearest anchor
    """
    metrics = get_metrics()
    t_ms = timestamp_ms if timestamp_ms is not None else now_ms()

    if len(ranges) < MIN_ANCHORS:
        metrics.increment_drop('insufficient_anchors')
        return None

    A, b = _linear_system(ranges)

    if is_degenerate(A):
        metrics.increment_drop('degenerate_geometry')
        return _fallback(ranges, t_ms, "singular system")

    try:
        solution = np.linalg.solve(A, b)
    except np.linalg.LinAlgError:
        metrics.increment_drop('degenerate_geometry')
        return _fallback(ranges, t_ms, "solver error")

    if not np.all(np.isfinite(solution)):
        metrics.increment_drop('degenerate_geometry')
        return _fallback(ranges, t_ms, "non-finite solution")

    nearest = min(ranges, key=lambda r: r.distance_m)
    accuracy = float(np.mean([r.distance_m for r in ranges]))

    metrics.increment('trilateration_success')
    return PositionEstimate(
        x=float(solution[0]),
        y=float(solution[1]),
        accuracy_m=accuracy,
        algorithm=EstimatorKind.TRILATERATION,
        timestamp_ms=t_ms,
        floor=nearest.position.floor,
        num_anchors_used=MIN_ANCHORS,
    )


def _fallback(ranges: List[AnchorRange], timestamp_ms: int, reason: str) -> Optional[PositionEstimate]:
    """Inverse-distance weighted centroid over all anchors."""
    logger.debug("Trilateration degenerate (%s), falling back to weighted centroid", reason)
    get_metrics().increment('trilateration_fallbacks')
    return weighted_centroid(ranges, CentroidWeighting.INVERSE_DISTANCE, timestamp_ms)
