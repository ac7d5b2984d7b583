"""
Positioning Session.

Per-session positioning cycle: readings -> ranges -> selected estimator
(or fusion) -> smoothing. The session owns every piece of cross-cycle
state (Kalman filters, previous output) so each user/device gets its own
instance. Cycles on one session must not overlap; synchronization is the
caller's job.

Smoothing:
    out = prev * (1 - alpha) + new * alpha

applied to x, y and accuracy for every method except KALMAN_FILTER.
"""

from typing import Iterable, Mapping, Optional, Sequence
from dataclasses import dataclass, replace
import logging
import math

from inav_core.proto.position import Position
from inav_core.proto.signal_reading import SignalReading
from inav_core.proto.position_estimate import PositionEstimate, EstimatorKind, now_ms
from inav_core.localization.signal_model import SignalModel
from inav_core.localization.fingerprint_matcher import (
    FingerprintMatcher,
    FingerprintConfig,
    FingerprintSample,
)
from inav_core.localization.kalman_filter import PositionKalmanFilter, KalmanConfig
from inav_core.localization.sensor_fusion import SensorFusionCombiner, FusionWeights
from inav_core.localization.estimators import estimate_position
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class PositioningConfig:
    """
    Tunable positioning parameters.

    Attributes:
        method: Selected estimator (FUSION by default)
        path_loss_exponent: Slope of the RSSI/distance conversion
        smoothing_factor: Blend weight of the new output in [0, 1]
        staleness_threshold_s: Input gap that resets the Kalman filters (s)
        min_dt_s: Kalman time-step floor (s)
        fingerprint_k: Neighbours blended by the fingerprint matcher
    """

    method: EstimatorKind = EstimatorKind.FUSION
    path_loss_exponent: float = 2.0
    smoothing_factor: float = 0.2
    staleness_threshold_s: float = 5.0
    min_dt_s: float = 0.1
    fingerprint_k: int = 1

    def __post_init__(self):
        """Validate configuration."""
        if isinstance(self.method, str):
            self.method = EstimatorKind(self.method)
        if not math.isfinite(self.path_loss_exponent) or self.path_loss_exponent < 0:
            raise ValueError(
                f"path_loss_exponent must be a finite non-negative number: {self.path_loss_exponent}"
            )
        if not (0.0 <= self.smoothing_factor <= 1.0):
            raise ValueError(f"smoothing_factor must be in [0, 1]: {self.smoothing_factor}")
        if self.staleness_threshold_s <= 0:
            raise ValueError(f"staleness_threshold_s must be positive: {self.staleness_threshold_s}")
        if self.min_dt_s <= 0:
            raise ValueError(f"min_dt_s must be positive: {self.min_dt_s}")
        if self.fingerprint_k < 1:
            raise ValueError(f"fingerprint_k must be at least 1: {self.fingerprint_k}")

    def kalman_config(self) -> KalmanConfig:
        return KalmanConfig(min_dt_s=self.min_dt_s, staleness_threshold_s=self.staleness_threshold_s)

    @classmethod
    def from_dict(cls, data: Mapping) -> "PositioningConfig":
        """Build from a config.py style dictionary (unknown keys ignored)."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def smooth(previous: PositionEstimate, new: PositionEstimate, alpha: float) -> PositionEstimate:
    """Exponential blend of two consecutive outputs; keeps the new metadata."""
    return PositionEstimate(
        x=previous.x * (1.0 - alpha) + new.x * alpha,
        y=previous.y * (1.0 - alpha) + new.y * alpha,
        accuracy_m=previous.accuracy_m * (1.0 - alpha) + new.accuracy_m * alpha,
        algorithm=new.algorithm,
        timestamp_ms=new.timestamp_ms,
        floor=new.floor,
        num_anchors_used=new.num_anchors_used,
    )


class PositioningSession:
    """
    Positioning state for one tracked device.

    Usage:
        session = PositioningSession(anchors, PositioningConfig(), fingerprints=db)

        # once per scan cycle
        estimate = session.process(readings)

        session.set_method(EstimatorKind.TRILATERATION)  # resets filters

    Notes:
        - process() returns None when the selected estimator lacks input;
          the previous output is kept for the next blend
        - Blending across a floor change or an input gap longer than
          staleness_threshold_s restarts from the new estimate
        - The config is copied; set_method() affects this session only
    """

    def __init__(
        self,
        anchors: Mapping[str, Position],
        config: Optional[PositioningConfig] = None,
        fingerprints: Optional[Sequence[FingerprintSample]] = None,
        fusion_weights: Optional[FusionWeights] = None,
    ):
        """
        Initialize session.

        Args:
            anchors: Anchor registry snapshot (source id -> position)
            config: Positioning configuration (uses defaults if None)
            fingerprints: Fingerprint database for FINGERPRINTING / FUSION
            fusion_weights: Estimator weighting for FUSION
        """
        # Own copy: set_method() must not leak into other sessions
        self.config = replace(config) if config is not None else PositioningConfig()
        self.anchors = anchors
        self.signal_model = SignalModel(self.config.path_loss_exponent)
        self.metrics = get_metrics()

        self.matcher = None
        if fingerprints:
            self.matcher = FingerprintMatcher(fingerprints, FingerprintConfig(k=self.config.fingerprint_k))

        self.kalman = PositionKalmanFilter(self.config.kalman_config())
        self.fusion = SensorFusionCombiner(
            weights=fusion_weights,
            kalman_config=self.config.kalman_config(),
            matcher=self.matcher,
        )

        self.last_estimate: Optional[PositionEstimate] = None

    @property
    def method(self) -> EstimatorKind:
        return self.config.method

    def set_method(self, method: EstimatorKind):
        """Switch estimator; clears the previous output and filter state."""
        if method == self.config.method:
            return
        logger.debug("Positioning method %s -> %s", self.config.method.value, method.value)
        self.config.method = method
        self.reset()

    def update_anchors(self, anchors: Mapping[str, Position]):
        """Replace the anchor registry snapshot."""
        self.anchors = anchors

    def reset(self):
        """Drop all cross-cycle state."""
        self.last_estimate = None
        self.kalman.reset()
        self.fusion.reset()

    def process(
        self,
        readings: Iterable[SignalReading],
        timestamp_ms: Optional[int] = None,
    ) -> Optional[PositionEstimate]:
        """
        Run one positioning cycle.

        Args:
            readings: Latest scan results
            timestamp_ms: Cycle timestamp (defaults to now)

        Returns:
            PositionEstimate, or None if the selected method had no input
        """
        t_ms = timestamp_ms if timestamp_ms is not None else now_ms()
        readings = list(readings)
        self.metrics.increment('position_cycles')

        ranges = self.signal_model.to_ranges(readings, self.anchors)
        scan = self._scan(readings)
        method = self.config.method

        if self.last_estimate is not None and self._is_stale(self.last_estimate, t_ms):
            logger.debug("Previous output is %dms old, restarting smoothing", t_ms - self.last_estimate.timestamp_ms)
            self.metrics.increment('stale_resets')
            self.last_estimate = None

        if method == EstimatorKind.FUSION:
            raw = self.fusion.combine(ranges, scan, t_ms)
        elif method == EstimatorKind.KALMAN_FILTER:
            base = estimate_position(method, ranges, timestamp_ms=t_ms)
            raw = self.kalman.update(base) if base is not None else None
        else:
            raw = estimate_position(method, ranges, self.matcher, scan, t_ms)

        if raw is None:
            return None

        if method == EstimatorKind.KALMAN_FILTER:
            result = raw
        else:
            result = self._smooth(raw)

        self.last_estimate = result
        self.metrics.increment('position_estimates')
        self.metrics.record_histogram('estimate_accuracy_m', result.accuracy_m)
        return result

    def _is_stale(self, previous: PositionEstimate, t_ms: int) -> bool:
        return t_ms - previous.timestamp_ms > self.config.staleness_threshold_s * 1000.0

    def _smooth(self, new: PositionEstimate) -> PositionEstimate:
        previous = self.last_estimate
        if previous is None:
            return new
        if previous.floor is not None and new.floor is not None and previous.floor != new.floor:
            return new
        return smooth(previous, new, self.config.smoothing_factor)

    @staticmethod
    def _scan(readings: Iterable[SignalReading]) -> dict:
        """Strongest clamped RSSI per source (beacons and access points)."""
        scan = {}
        for reading in readings:
            rssi = reading.clamped_rssi
            if reading.source_id not in scan or rssi > scan[reading.source_id]:
                scan[reading.source_id] = rssi
        return scan
