"""
Localization Module: Signal model, position estimators, fusion, smoothing.

Key classes:
- SignalModel: RSSI -> distance (log-distance path loss)
- trilaterate / weighted_centroid: Range-based estimators
- FingerprintMatcher: RSSI pattern matching against a sample database
- PositionKalmanFilter: Per-axis constant-velocity smoothing
- SensorFusionCombiner: Confidence-weighted blend of all estimators
- PositioningSession: Per-device positioning cycle with owned state
"""

from .signal_model import (
    SignalModel,
    rssi_to_distance,
    distance_to_rssi,
    MIN_PATH_LOSS_EXPONENT,
    MIN_DISTANCE_M,
)
from .weighted_centroid import (
    weighted_centroid,
    anchor_weights,
    vote_floor,
    CentroidWeighting,
)
from .trilateration import trilaterate
from .fingerprint_matcher import (
    FingerprintMatcher,
    FingerprintConfig,
    FingerprintSample,
    generate_fingerprint_database,
)
from .kalman_filter import (
    PositionKalmanFilter,
    KalmanConfig,
    KalmanState,
    FilterStatus,
    update_axis,
)
from .estimators import estimate_position, base_estimate
from .sensor_fusion import (
    SensorFusionCombiner,
    FusionWeights,
    blend_estimates,
)
from .positioning_pipeline import (
    PositioningSession,
    PositioningConfig,
)

__all__ = [
    # Signal model
    'SignalModel',
    'rssi_to_distance',
    'distance_to_rssi',
    'MIN_PATH_LOSS_EXPONENT',
    'MIN_DISTANCE_M',
    # Estimators
    'weighted_centroid',
    'anchor_weights',
    'vote_floor',
    'CentroidWeighting',
    'trilaterate',
    'FingerprintMatcher',
    'FingerprintConfig',
    'FingerprintSample',
    'generate_fingerprint_database',
    'estimate_position',
    'base_estimate',
    # Smoothing and fusion
    'PositionKalmanFilter',
    'KalmanConfig',
    'KalmanState',
    'FilterStatus',
    'update_axis',
    'SensorFusionCombiner',
    'FusionWeights',
    'blend_estimates',
    'PositioningSession',
    'PositioningConfig',
]
