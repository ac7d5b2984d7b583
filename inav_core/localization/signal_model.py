"""
Signal Model (Log-Distance Path Loss).

Converts a received signal strength and a calibrated reference power into
an estimated distance:

    d = 10 ** ((P_ref - RSSI) / (10 * n))

where n is the path-loss exponent (2.0 in free space, 2.7-4.0 indoors).
"""

from typing import Dict, Iterable, List, Mapping
from dataclasses import dataclass
import logging
import math

from inav_core.proto.signal_reading import (
    SignalReading,
    clamp_rssi,
    DEFAULT_REFERENCE_POWER_DBM,
)
from inav_core.proto.anchor_range import AnchorRange
from inav_core.proto.position import Position
from inav_core.metrics import get_metrics

logger = logging.getLogger(__name__)

# Below this the exponent makes the distance explode
MIN_PATH_LOSS_EXPONENT = 0.1

# Trilateration and centroid weights divide by distance
MIN_DISTANCE_M = 0.1


def rssi_to_distance(
    rssi: int,
    reference_power: int = DEFAULT_REFERENCE_POWER_DBM,
    path_loss_exponent: float = 2.0,
) -> float:
    """
    Estimate distance from RSSI with the log-distance path-loss law.

    Args:
        rssi: Received signal strength (dBm), clamped to [-100, 0]
        reference_power: Calibrated power at 1 m (dBm)
        path_loss_exponent: Environment exponent, clamped to >= 0.1

    Returns:
        Finite, non-negative distance in meters
    """
    if not math.isfinite(path_loss_exponent):
        n = MIN_PATH_LOSS_EXPONENT
    else:
        n = max(path_loss_exponent, MIN_PATH_LOSS_EXPONENT)

    exponent = (reference_power - clamp_rssi(rssi)) / (10.0 * n)
    return 10.0 ** exponent


def distance_to_rssi(
    distance_m: float,
    reference_power: int = DEFAULT_REFERENCE_POWER_DBM,
    path_loss_exponent: float = 2.0,
) -> int:
    """
    Expected RSSI at a distance (inverse of rssi_to_distance).

    Used to synthesize fingerprint databases and simulated scans.
    Distances under MIN_DISTANCE_M are treated as MIN_DISTANCE_M.
    """
    d = max(distance_m, MIN_DISTANCE_M)
    n = max(path_loss_exponent, MIN_PATH_LOSS_EXPONENT)
    return clamp_rssi(int(round(reference_power - 10.0 * n * math.log10(d))))


@dataclass
class SignalModel:
    """
    Path-loss model with a validated exponent.

    Attributes:
        path_loss_exponent: Environment exponent (must be finite, >= 0)

    Usage:
        model = SignalModel(path_loss_exponent=2.5)
        ranges = model.to_ranges(readings, registry)
    """

    path_loss_exponent: float = 2.0

    def __post_init__(self):
        """Validate configuration."""
        if not math.isfinite(self.path_loss_exponent) or self.path_loss_exponent < 0:
            raise ValueError(
                f"path_loss_exponent must be a finite non-negative number: {self.path_loss_exponent}"
            )
        if self.path_loss_exponent < MIN_PATH_LOSS_EXPONENT:
            logger.debug(
                "path_loss_exponent %.3f below minimum, clamping to %.1f",
                self.path_loss_exponent, MIN_PATH_LOSS_EXPONENT,
            )

    def distance(self, reading: SignalReading) -> float:
        """Distance estimate (m) for a single reading."""
        return rssi_to_distance(reading.rssi, reading.reference_power_at_1m, self.path_loss_exponent)

    def to_ranges(
        self,
        readings: Iterable[SignalReading],
        anchors: Mapping[str, Position],
    ) -> List[AnchorRange]:
        """
        Convert readings into anchor ranges, nearest first.

        Readings from sources missing in the anchor registry are dropped.
        When a source was scanned more than once, the strongest reading wins.

        Args:
            readings: Latest scan results
            anchors: Known anchor positions keyed by source id

        Returns:
            AnchorRange list sorted by ascending distance
        """
        strongest: Dict[str, SignalReading] = {}
        metrics = get_metrics()

        for reading in readings:
            if reading.source_id not in anchors:
                metrics.increment_drop('unknown_anchor')
                continue
            previous = strongest.get(reading.source_id)
            if previous is None or reading.rssi > previous.rssi:
                strongest[reading.source_id] = reading

        ranges = [
            AnchorRange(
                anchor_id=source_id,
                position=anchors[source_id],
                distance_m=self.distance(reading),
                rssi=reading.clamped_rssi,
            )
            for source_id, reading in strongest.items()
        ]
        ranges.sort(key=lambda r: r.distance_m)
        return ranges
