"""
Position Kalman Filter (Constant-Velocity, Per Axis).

Each axis (x, y) carries its own 1D state [position, velocity] with a 2x2
error covariance:

    predict:  x' = x + v * dt
    gain:     k  = P / (P + R),   R = r0 + r_scale * accuracy
    update:   x+ = x' + k * (z - x')
              v+ = (x+ - x) / dt
              P+ = (1 - k) * P + Q

dt is clamped to a minimum so bursty inputs cannot blow up the velocity.
The state is owned by the filter instance; a gap longer than the
staleness threshold or an explicit reset returns it to UNINITIALIZED.
"""

from typing import Optional, Tuple
from dataclasses import dataclass
from enum import Enum
import logging
import numpy as np

from inav_core.proto.position_estimate import PositionEstimate, EstimatorKind
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


class FilterStatus(Enum):
    """Per-axis filter state machine."""

    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"


@dataclass
class KalmanConfig:
    """
    Configuration for the position Kalman filter.

    Attributes:
        process_noise: Q added to the covariance each update
        base_measurement_noise: Constant part of R
        accuracy_noise_scale: R grows by this much per meter of accuracy
        min_dt_s: Lower bound on the time step (s)
        staleness_threshold_s: Input gap treated as a discontinuity (s)
    """

    process_noise: float = 0.01
    base_measurement_noise: float = 0.1
    accuracy_noise_scale: float = 0.1
    min_dt_s: float = 0.1
    staleness_threshold_s: float = 5.0

    def __post_init__(self):
        """Validate configuration."""
        if self.process_noise < 0:
            raise ValueError(f"process_noise cannot be negative: {self.process_noise}")
        if self.base_measurement_noise <= 0:
            raise ValueError(f"base_measurement_noise must be positive: {self.base_measurement_noise}")
        if self.accuracy_noise_scale < 0:
            raise ValueError(f"accuracy_noise_scale cannot be negative: {self.accuracy_noise_scale}")
        if self.min_dt_s <= 0:
            raise ValueError(f"min_dt_s must be positive: {self.min_dt_s}")
        if self.staleness_threshold_s <= 0:
            raise ValueError(f"staleness_threshold_s must be positive: {self.staleness_threshold_s}")

    def measurement_noise(self, accuracy_m: float) -> float:
        """Measurement noise R derived from estimate accuracy."""
        return self.base_measurement_noise + self.accuracy_noise_scale * accuracy_m


@dataclass
class KalmanState:
    """
    1D constant-velocity filter state for one axis.

    Attributes:
        position: Filtered position (m)
        velocity: Derived velocity (m/s)
        error_covariance: 2x2 covariance [[P_pos, P_pv], [P_vp, P_vel]]
        initialized: False until the first measurement
    """

    position: float = 0.0
    velocity: float = 0.0
    error_covariance: np.ndarray = None
    initialized: bool = False

    def __post_init__(self):
        if self.error_covariance is None:
            self.error_covariance = np.eye(2)

    @property
    def status(self) -> FilterStatus:
        return FilterStatus.TRACKING if self.initialized else FilterStatus.UNINITIALIZED

    def reset(self):
        """Return to UNINITIALIZED."""
        self.position = 0.0
        self.velocity = 0.0
        self.error_covariance = np.eye(2)
        self.initialized = False


def update_axis(
    state: KalmanState,
    measurement: float,
    accuracy_m: float,
    dt_s: float,
    config: KalmanConfig,
) -> Tuple[float, float]:
    """
    Run one predict/update step on a single axis.

    Args:
        state: Axis state (mutated in place)
        measurement: Measured position on this axis (m)
        accuracy_m: Accuracy of the measurement (m)
        dt_s: Time since the previous update (s)
        config: Filter configuration

    Returns:
        (filtered position, Kalman gain); the gain is 0 on initialization
    """
    if not state.initialized:
        state.position = measurement
        state.velocity = 0.0
        state.error_covariance = np.eye(2)
        state.initialized = True
        return measurement, 0.0

    dt = max(dt_s, config.min_dt_s)
    P = state.error_covariance

    predicted = state.position + state.velocity * dt

    gain = P[0, 0] / (P[0, 0] + config.measurement_noise(accuracy_m))
    updated = predicted + gain * (measurement - predicted)

    state.velocity = (updated - state.position) / dt
    state.position = updated

    new_P = P.copy()
    new_P[0, 0] = (1.0 - gain) * P[0, 0] + config.process_noise
    new_P[1, 1] = (1.0 - gain) * P[1, 1] + config.process_noise
    state.error_covariance = new_P

    return updated, gain


class PositionKalmanFilter:
    """
    2D position smoother built from two per-axis filters.

    Usage:
        kf = PositionKalmanFilter(KalmanConfig())

        for estimate in raw_estimates:
            smoothed = kf.update(estimate)

        kf.reset()  # e.g. when the positioning method changes

    Notes:
        - The first update returns the measurement unchanged
        - A gap above staleness_threshold_s resets both axes first
        - Not thread-safe; one owner per session
    """

    def __init__(self, config: Optional[KalmanConfig] = None):
        """
        Initialize filter.

        Args:
            config: Filter configuration (uses defaults if None)
        """
        self.config = config or KalmanConfig()
        self.metrics = get_metrics()

        self.x_state = KalmanState()
        self.y_state = KalmanState()

        self._last_timestamp_ms: Optional[int] = None

    def is_initialized(self) -> bool:
        """Check if both axes are tracking."""
        return self.x_state.initialized and self.y_state.initialized

    @property
    def velocity(self) -> Tuple[float, float]:
        """Current (vx, vy) estimate in m/s."""
        return (self.x_state.velocity, self.y_state.velocity)

    def update(
        self,
        measurement: PositionEstimate,
        algorithm: EstimatorKind = EstimatorKind.KALMAN_FILTER,
    ) -> PositionEstimate:
        """
        Smooth a raw estimate.

        Args:
            measurement: Raw estimate from an estimator or the combiner
            algorithm: Label for the returned estimate

        Returns:
            Filtered PositionEstimate
        """
        if self._last_timestamp_ms is not None and self.is_initialized():
            dt_s = (measurement.timestamp_ms - self._last_timestamp_ms) / 1000.0
            if dt_s > self.config.staleness_threshold_s:
                logger.debug("Input gap %.1fs exceeds staleness threshold, resetting filter", dt_s)
                self.metrics.increment('stale_resets')
                self.reset()
        else:
            dt_s = self.config.min_dt_s

        x, gain_x = update_axis(self.x_state, measurement.x, measurement.accuracy_m, dt_s, self.config)
        y, gain_y = update_axis(self.y_state, measurement.y, measurement.accuracy_m, dt_s, self.config)

        self._last_timestamp_ms = measurement.timestamp_ms

        gain = 0.5 * (gain_x + gain_y)
        self.metrics.increment('kalman_updates')
        self.metrics.record_histogram('kalman_gain', gain)

        return PositionEstimate(
            x=x,
            y=y,
            accuracy_m=measurement.accuracy_m * (1.0 - gain),
            algorithm=algorithm,
            timestamp_ms=measurement.timestamp_ms,
            floor=measurement.floor,
            num_anchors_used=measurement.num_anchors_used,
        )

    def reset(self):
        """Reset both axes to UNINITIALIZED."""
        self.x_state.reset()
        self.y_state.reset()
        self._last_timestamp_ms = None
        self.metrics.increment('kalman_resets')
