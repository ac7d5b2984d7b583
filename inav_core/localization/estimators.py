"""
Estimator dispatch.

Maps an EstimatorKind to the stateless estimator that implements it. The
stateful kinds (KALMAN_FILTER, FUSION) own filter state and are driven by
PositioningSession / SensorFusionCombiner; here they only expose the raw
estimate those components feed into their filters.
"""

from typing import Callable, Dict, List, Mapping, Optional
import logging

from inav_core.proto.anchor_range import AnchorRange
from inav_core.proto.position_estimate import PositionEstimate, EstimatorKind
from inav_core.localization.trilateration import trilaterate, MIN_ANCHORS
from inav_core.localization.weighted_centroid import weighted_centroid
from inav_core.localization.fingerprint_matcher import FingerprintMatcher
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


def _centroid(ranges: List[AnchorRange], timestamp_ms: Optional[int]) -> Optional[PositionEstimate]:
    return weighted_centroid(ranges, timestamp_ms=timestamp_ms)


def base_estimate(ranges: List[AnchorRange], timestamp_ms: Optional[int] = None) -> Optional[PositionEstimate]:
    """
    Raw estimate used as Kalman filter input.

    Trilateration with 3+ anchors, weighted centroid otherwise.
    """
    if len(ranges) >= MIN_ANCHORS:
        return trilaterate(ranges, timestamp_ms)
    return weighted_centroid(ranges, timestamp_ms=timestamp_ms)


RANGE_ESTIMATORS: Dict[EstimatorKind, Callable[[List[AnchorRange], Optional[int]], Optional[PositionEstimate]]] = {
    EstimatorKind.TRILATERATION: trilaterate,
    EstimatorKind.WEIGHTED_CENTROID: _centroid,
    EstimatorKind.KALMAN_FILTER: base_estimate,
}


def scan_from_ranges(ranges: List[AnchorRange]) -> Dict[str, int]:
    """RSSI per anchor id for ranges that carry one."""
    return {r.anchor_id: r.rssi for r in ranges if r.rssi is not None}


def estimate_position(
    kind: EstimatorKind,
    ranges: List[AnchorRange],
    matcher: Optional[FingerprintMatcher] = None,
    scan: Optional[Mapping[str, int]] = None,
    timestamp_ms: Optional[int] = None,
) -> Optional[PositionEstimate]:
    """
    Run the estimator selected by kind.

    Args:
        kind: Estimator to run (FUSION is not dispatchable here)
        ranges: Anchor ranges, nearest first
        matcher: Fingerprint matcher, required for FINGERPRINTING
        scan: RSSI per source for fingerprinting (defaults to the RSSI
            carried by ranges)
        timestamp_ms: Estimate timestamp (defaults to now)

    Returns:
        PositionEstimate, or None when the estimator lacks input

    Raises:
        ValueError: If kind is FUSION
    """
    if kind == EstimatorKind.FUSION:
        raise ValueError("FUSION combines several estimators; use SensorFusionCombiner")

    if kind == EstimatorKind.FINGERPRINTING:
        if matcher is None or len(matcher) == 0:
            logger.debug("Fingerprinting selected without a fingerprint database")
            get_metrics().increment_drop('no_fingerprint_match')
            return None
        return matcher.estimate(scan if scan is not None else scan_from_ranges(ranges), timestamp_ms)

    return RANGE_ESTIMATORS[kind](ranges, timestamp_ms)
