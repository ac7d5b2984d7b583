"""
Sensor Fusion Combiner.

Runs every estimator that has enough input, blends their outputs by
confidence and smooths the blend with the position Kalman filter:

    Trilateration       weight = n_anchors / max(accuracy, 0.1)   (3+ anchors)
    Weighted centroid   weight = 0.7 * n_anchors                  (1+ anchors)
    Fingerprinting      weight = 5 / max(accuracy, 0.1)           (database present)

The blended position and accuracy are weighted means. Floors are decided
by weighted vote.
"""

from typing import List, Mapping, Optional, Tuple
from dataclasses import dataclass
import logging
import numpy as np

from inav_core.proto.anchor_range import AnchorRange
from inav_core.proto.position_estimate import PositionEstimate, EstimatorKind, now_ms
from inav_core.localization.trilateration import trilaterate, MIN_ANCHORS
from inav_core.localization.weighted_centroid import weighted_centroid, vote_floor
from inav_core.localization.fingerprint_matcher import FingerprintMatcher
from inav_core.localization.kalman_filter import PositionKalmanFilter, KalmanConfig, FilterStatus
from inav_core.localization.estimators import scan_from_ranges
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class FusionWeights:
    """
    Confidence weighting of estimator outputs.

    Attributes:
        trilateration_scale: Multiplier of n_anchors / accuracy
        centroid_per_anchor: Weight per anchor for the centroid
        fingerprint_scale: Numerator of the fingerprint inverse accuracy
        min_accuracy_m: Accuracy floor before inversion (m)
    """

    trilateration_scale: float = 1.0
    centroid_per_anchor: float = 0.7
    fingerprint_scale: float = 5.0
    min_accuracy_m: float = 0.1

    def __post_init__(self):
        """Validate configuration."""
        for name in ('trilateration_scale', 'centroid_per_anchor', 'fingerprint_scale'):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be finite and non-negative: {value}")
        if self.min_accuracy_m <= 0:
            raise ValueError(f"min_accuracy_m must be positive: {self.min_accuracy_m}")

    def trilateration(self, estimate: PositionEstimate, num_anchors: int) -> float:
        return self.trilateration_scale * num_anchors / max(estimate.accuracy_m, self.min_accuracy_m)

    def centroid(self, num_anchors: int) -> float:
        return self.centroid_per_anchor * num_anchors

    def fingerprint(self, estimate: PositionEstimate) -> float:
        return self.fingerprint_scale / max(estimate.accuracy_m, self.min_accuracy_m)


def blend_estimates(
    candidates: List[Tuple[PositionEstimate, float]],
    timestamp_ms: int,
) -> Optional[PositionEstimate]:
    """
    Weighted mean of candidate estimates.

    Returns:
        FUSION estimate, or None if there are no candidates or the total
        weight is zero
    """
    if not candidates:
        return None

    weights = np.array([w for _, w in candidates], dtype=float)
    total = float(np.sum(weights))
    if not np.isfinite(total) or total <= 0.0:
        get_metrics().increment_drop('zero_weight')
        return None

    normalized = weights / total
    estimates = [e for e, _ in candidates]

    floors = [e.floor for e in estimates if e.floor is not None]
    floor_weights = [w for e, w in zip(estimates, normalized) if e.floor is not None]

    return PositionEstimate(
        x=float(np.dot(normalized, [e.x for e in estimates])),
        y=float(np.dot(normalized, [e.y for e in estimates])),
        accuracy_m=float(np.dot(normalized, [e.accuracy_m for e in estimates])),
        algorithm=EstimatorKind.FUSION,
        timestamp_ms=timestamp_ms,
        floor=vote_floor(floors, floor_weights),
        num_anchors_used=max(e.num_anchors_used for e in estimates),
    )


class SensorFusionCombiner:
    """
    Multi-estimator combiner with Kalman smoothing.

    Usage:
        combiner = SensorFusionCombiner(matcher=fingerprint_matcher)

        for ranges in cycles:
            estimate = combiner.combine(ranges)
            if estimate is None:
                continue  # no estimator had input

        combiner.reset()  # method switch

    Notes:
        - Owns one PositionKalmanFilter; not thread-safe
        - The filter resets itself after an input gap above the
          staleness threshold
    """

    def __init__(
        self,
        weights: Optional[FusionWeights] = None,
        kalman_config: Optional[KalmanConfig] = None,
        matcher: Optional[FingerprintMatcher] = None,
    ):
        """
        Initialize combiner.

        Args:
            weights: Estimator weighting (uses defaults if None)
            kalman_config: Smoothing filter configuration
            matcher: Fingerprint matcher; fingerprinting is skipped if None
        """
        self.weights = weights or FusionWeights()
        self.matcher = matcher
        self.kalman = PositionKalmanFilter(kalman_config)
        self.metrics = get_metrics()

    @property
    def status(self) -> FilterStatus:
        """Filter state (UNINITIALIZED until the first fused estimate)."""
        return FilterStatus.TRACKING if self.kalman.is_initialized() else FilterStatus.UNINITIALIZED

    def collect(
        self,
        ranges: List[AnchorRange],
        scan: Optional[Mapping[str, int]] = None,
        timestamp_ms: Optional[int] = None,
    ) -> List[Tuple[PositionEstimate, float]]:
        """
        Run all applicable estimators.

        Returns:
            (estimate, weight) pairs in trilateration, centroid,
            fingerprint order
        """
        candidates = []
        n = len(ranges)

        if n >= MIN_ANCHORS:
            tri = trilaterate(ranges, timestamp_ms)
            # A degenerate solve returns the centroid, which joins below
            if tri is not None and tri.algorithm == EstimatorKind.TRILATERATION:
                candidates.append((tri, self.weights.trilateration(tri, n)))

        if n >= 1:
            centroid = weighted_centroid(ranges, timestamp_ms=timestamp_ms)
            if centroid is not None:
                candidates.append((centroid, self.weights.centroid(n)))

        if self.matcher is not None and len(self.matcher) > 0:
            fp_scan = scan if scan is not None else scan_from_ranges(ranges)
            if fp_scan:
                fingerprint = self.matcher.estimate(fp_scan, timestamp_ms)
                if fingerprint is not None:
                    candidates.append((fingerprint, self.weights.fingerprint(fingerprint)))

        return candidates

    def combine(
        self,
        ranges: List[AnchorRange],
        scan: Optional[Mapping[str, int]] = None,
        timestamp_ms: Optional[int] = None,
    ) -> Optional[PositionEstimate]:
        """
        Produce one fused, smoothed estimate.

        Args:
            ranges: Anchor ranges, nearest first
            scan: RSSI per source for fingerprinting (defaults to the RSSI
                carried by ranges)
            timestamp_ms: Cycle timestamp (defaults to now)

        Returns:
            FUSION estimate, or None if no estimator produced a result
        """
        t_ms = timestamp_ms if timestamp_ms is not None else now_ms()

        candidates = self.collect(ranges, scan, t_ms)
        if not candidates:
            logger.debug("No estimator produced a result (%d anchors)", len(ranges))
            return None

        blended = blend_estimates(candidates, t_ms)
        if blended is None:
            return None

        self.metrics.record_histogram('fusion_candidates', len(candidates))
        return self.kalman.update(blended, EstimatorKind.FUSION)

    def reset(self):
        """Return the smoothing filter to UNINITIALIZED."""
        self.kalman.reset()
