"""
Protocol Module: Value types exchanged with the core.

Inputs (readings, anchor registry) arrive from external scanners and
registries; outputs (estimates, instructions) go to external consumers.
All types here are immutable value objects.
"""

from .position import Position
from .signal_reading import (
    SignalReading,
    SignalSource,
    clamp_rssi,
    RSSI_MIN_DBM,
    RSSI_MAX_DBM,
    DEFAULT_REFERENCE_POWER_DBM,
)
from .anchor_range import (
    AnchorRange,
    AnchorRegistry,
)
from .position_estimate import (
    PositionEstimate,
    EstimatorKind,
    now_ms,
)
from .navigation_instruction import (
    NavigationInstruction,
    InstructionType,
    Direction,
)

__all__ = [
    'Position',
    # Inputs
    'SignalReading',
    'SignalSource',
    'clamp_rssi',
    'RSSI_MIN_DBM',
    'RSSI_MAX_DBM',
    'DEFAULT_REFERENCE_POWER_DBM',
    'AnchorRange',
    'AnchorRegistry',
    # Outputs
    'PositionEstimate',
    'EstimatorKind',
    'now_ms',
    'NavigationInstruction',
    'InstructionType',
    'Direction',
]
