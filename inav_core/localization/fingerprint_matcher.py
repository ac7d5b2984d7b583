"""
Fingerprint Matching Estimator.

Matches the current RSSI pattern against a precomputed database of
(position, expected RSSI per source) samples. The distance between a scan
and a sample is the mean absolute RSSI deviation over the sources both
contain; samples sharing no source are skipped.

With k = 1 the best sample's position is returned as-is. With k > 1 the
k best samples are averaged, weighted by inverse deviation.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from dataclasses import dataclass
import numpy as np

from inav_core.proto.position import Position
from inav_core.proto.position_estimate import PositionEstimate, EstimatorKind, now_ms
from inav_core.proto.signal_reading import SignalReading, DEFAULT_REFERENCE_POWER_DBM
from inav_core.localization.signal_model import distance_to_rssi
from inav_core.localization.weighted_centroid import vote_floor
from inav_core.metrics import get_metrics


@dataclass(frozen=True)
class FingerprintSample:
    """
    Surveyed (or synthesized) signal pattern at a known position.

    Attributes:
        position: Survey position
        expected_rssi: Expected RSSI per source id (dBm)
    """

    position: Position
    expected_rssi: Mapping[str, int]


@dataclass
class FingerprintConfig:
    """
    Configuration for fingerprint matching.

    Attributes:
        k: Number of nearest samples to blend (1 = best match only)
        accuracy_scale_db: Deviation (dB) per meter of reported accuracy
        min_accuracy_m: Lower bound of reported accuracy (m)
    """

    k: int = 1
    accuracy_scale_db: float = 10.0
    min_accuracy_m: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        if self.k < 1:
            raise ValueError(f"k must be at least 1: {self.k}")
        if self.accuracy_scale_db <= 0:
            raise ValueError(f"accuracy_scale_db must be positive: {self.accuracy_scale_db}")
        if self.min_accuracy_m < 0:
            raise ValueError(f"min_accuracy_m cannot be negative: {self.min_accuracy_m}")


def mean_abs_deviation(scan: Mapping[str, int], sample: FingerprintSample) -> Optional[float]:
    """
    Mean absolute RSSI deviation over shared sources.

    Returns:
        Deviation in dB, or None if scan and sample share no source
    """
    shared = [sid for sid in sample.expected_rssi if sid in scan]
    if not shared:
        return None
    observed = np.array([scan[sid] for sid in shared], dtype=float)
    expected = np.array([sample.expected_rssi[sid] for sid in shared], dtype=float)
    return float(np.mean(np.abs(observed - expected)))


class FingerprintMatcher:
    """
    k-nearest-neighbour matcher over a fingerprint database.

    Usage:
        matcher = FingerprintMatcher(database, FingerprintConfig(k=1))
        estimate = matcher.estimate({"B1": -65, "B2": -72})
        if estimate is not None:
            print(estimate.position_2d, estimate.accuracy_m)
    """

    def __init__(
        self,
        database: Iterable[FingerprintSample],
        config: Optional[FingerprintConfig] = None,
    ):
        """
        Initialize matcher.

        Args:
            database: Fingerprint samples (order matters for tie-breaking)
            config: Matching configuration (uses defaults if None)
        """
        self.database: List[FingerprintSample] = list(database)
        self.config = config or FingerprintConfig()
        self.metrics = get_metrics()

    def __len__(self) -> int:
        return len(self.database)

    def rank(self, scan: Mapping[str, int]) -> List[Tuple[float, int]]:
        """
        Rank samples by deviation.

        Returns:
            (deviation, sample index) pairs, best first; ties keep
            database order
        """
        scored = []
        for index, sample in enumerate(self.database):
            deviation = mean_abs_deviation(scan, sample)
            if deviation is not None:
                scored.append((deviation, index))
        # sort is stable and index breaks ties toward first-encountered
        scored.sort()
        return scored

    def estimate(
        self,
        scan: Mapping[str, int],
        timestamp_ms: Optional[int] = None,
    ) -> Optional[PositionEstimate]:
        """
        Estimate position from a scan.

        Args:
            scan: Observed RSSI per source id (dBm)
            timestamp_ms: Estimate timestamp (defaults to now)

        Returns:
            PositionEstimate tagged FINGERPRINTING, or None if the scan or
            database is empty or nothing matches
        """
        if not scan or not self.database:
            self.metrics.increment_drop('no_fingerprint_match')
            return None

        ranked = self.rank(scan)
        if not ranked:
            self.metrics.increment_drop('no_fingerprint_match')
            return None

        best_deviation = ranked[0][0]
        neighbours = ranked[:self.config.k]

        if len(neighbours) == 1:
            position = self.database[neighbours[0][1]].position
            x, y, floor = position.x, position.y, position.floor
        else:
            x, y, floor = self._blend(neighbours)

        accuracy = max(best_deviation / self.config.accuracy_scale_db, self.config.min_accuracy_m)
        self.metrics.record_histogram('fingerprint_deviation_db', best_deviation)

        return PositionEstimate(
            x=x,
            y=y,
            accuracy_m=accuracy,
            algorithm=EstimatorKind.FINGERPRINTING,
            timestamp_ms=timestamp_ms if timestamp_ms is not None else now_ms(),
            floor=floor,
            num_anchors_used=len(scan),
        )

    def estimate_from_readings(
        self,
        readings: Iterable[SignalReading],
        timestamp_ms: Optional[int] = None,
    ) -> Optional[PositionEstimate]:
        """Estimate from raw readings (clamped RSSI, strongest per source)."""
        scan: Dict[str, int] = {}
        for reading in readings:
            rssi = reading.clamped_rssi
            if reading.source_id not in scan or rssi > scan[reading.source_id]:
                scan[reading.source_id] = rssi
        return self.estimate(scan, timestamp_ms)

    def _blend(self, neighbours: List[Tuple[float, int]]) -> Tuple[float, float, Optional[int]]:
        """Inverse-deviation weighted average of neighbour positions."""
        # Exact matches dominate without dividing by zero
        weights = np.array([10.0 if dev < 0.1 else 1.0 / dev for dev, _ in neighbours])
        positions = [self.database[index].position for _, index in neighbours]
        normalized = weights / np.sum(weights)

        x = float(np.dot(normalized, [p.x for p in positions]))
        y = float(np.dot(normalized, [p.y for p in positions]))
        floor = vote_floor([p.floor for p in positions], normalized)
        return x, y, floor


def generate_fingerprint_database(
    width_m: float,
    height_m: float,
    anchors: Mapping[str, Position],
    floor: int = 0,
    step_m: float = 1.0,
    reference_power: int = DEFAULT_REFERENCE_POWER_DBM,
    path_loss_exponent: float = 2.0,
) -> List[FingerprintSample]:
    """
    Synthesize a grid fingerprint database from the path-loss model.

    Samples are laid out row by row starting at (0, 0) with spacing
    step_m, covering [0, width_m) x [0, height_m). Only anchors on the
    requested floor contribute.

    Args:
        width_m: Floor plan width (m)
        height_m: Floor plan height (m)
        anchors: Anchor positions keyed by source id
        floor: Floor to generate
        step_m: Grid spacing (m)
        reference_power: Calibrated power at 1 m (dBm)
        path_loss_exponent: Path-loss exponent

    Returns:
        List of FingerprintSample
    """
    if step_m <= 0:
        raise ValueError(f"step_m must be positive: {step_m}")

    floor_anchors = {aid: p for aid, p in anchors.items() if p.floor == floor}
    database = []

    for x in np.arange(0.0, width_m, step_m):
        for y in np.arange(0.0, height_m, step_m):
            location = Position(float(x), float(y), floor)
            expected = {
                aid: distance_to_rssi(location.distance_to(anchor_pos), reference_power, path_loss_exponent)
                for aid, anchor_pos in floor_anchors.items()
            }
            database.append(FingerprintSample(location, expected))

    return database
