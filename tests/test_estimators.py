"""
Unit tests for the position estimators.

Tests cover:
- Trilateration accuracy and degenerate-geometry fallback
- Weighted centroid weighting, floor vote and guards
- Fingerprint matching (best match, ties, k-NN blend)
- EstimatorKind dispatch
"""

import math

import numpy as np
import pytest

from conftest import make_ranges
from inav_core.metrics import get_metrics
from inav_core.proto import Position, AnchorRange, AnchorRegistry, EstimatorKind
from inav_core.localization import (
    trilaterate,
    weighted_centroid,
    CentroidWeighting,
    FingerprintMatcher,
    FingerprintConfig,
    FingerprintSample,
    generate_fingerprint_database,
    estimate_position,
)


# =============================================================================
# Trilateration
# =============================================================================


class TestTrilateration:
    """Tests for the 3-anchor linear solve."""

    @pytest.mark.parametrize("truth", [(3.0, 2.0), (5.0, 2.89), (1.0, 1.0), (9.0, 6.0)])
    def test_noiseless_ranges_reproduce_position(self, triangle_anchors, truth):
        """Exact distances recover the true point to floating-point tolerance."""
        estimate = trilaterate(make_ranges(triangle_anchors, truth), timestamp_ms=1000)

        assert estimate is not None
        assert estimate.algorithm == EstimatorKind.TRILATERATION
        assert estimate.x == pytest.approx(truth[0], abs=1e-6)
        assert estimate.y == pytest.approx(truth[1], abs=1e-6)
        assert estimate.floor == 0
        assert estimate.timestamp_ms == 1000

    def test_equal_distances_scenario(self, triangle_anchors):
        """Three anchors each 5 m away locate the triangle's circumcentre."""
        ranges = [AnchorRange(aid, triangle_anchors[aid], 5.0) for aid in ("B0", "B1", "B2")]

        estimate = trilaterate(ranges)

        assert estimate is not None
        assert math.hypot(estimate.x - 5.0, estimate.y - 2.89) < 0.1

    def test_accuracy_is_mean_distance(self, triangle_anchors):
        """Reported accuracy is the mean anchor distance."""
        ranges = make_ranges(triangle_anchors, (3.0, 2.0))
        estimate = trilaterate(ranges)

        assert estimate.accuracy_m == pytest.approx(np.mean([r.distance_m for r in ranges]))

    def test_fewer_than_three_anchors_returns_none(self, triangle_anchors):
        """Two anchors are not enough."""
        ranges = make_ranges(triangle_anchors, (3.0, 2.0))[:2]

        assert trilaterate(ranges) is None
        assert get_metrics().get_drop_count('insufficient_anchors') == 1

    def test_collinear_anchors_fall_back_to_centroid(self):
        """A singular system recovers with an inverse-distance centroid."""
        ranges = [
            AnchorRange("B0", Position(0, 0), 4.0),
            AnchorRange("B1", Position(5, 0), 2.0),
            AnchorRange("B2", Position(10, 0), 6.0),
        ]

        estimate = trilaterate(ranges)

        assert estimate is not None
        assert estimate.algorithm == EstimatorKind.WEIGHTED_CENTROID
        # inverse-distance weights 1/4, 1/2, 1/6
        w = np.array([0.25, 0.5, 1 / 6])
        assert estimate.x == pytest.approx(float(np.dot(w, [0, 5, 10]) / w.sum()))
        assert estimate.y == pytest.approx(0.0)
        assert get_metrics().get_drop_count('degenerate_geometry') == 1
        assert get_metrics().get_counter('trilateration_fallbacks') == 1

    def test_coincident_anchors_fall_back(self):
        """Anchors at the same spot never produce a non-finite position."""
        ranges = [AnchorRange(f"B{i}", Position(2, 2), 1.0 + i) for i in range(3)]

        estimate = trilaterate(ranges)

        assert estimate is not None
        assert (estimate.x, estimate.y) == pytest.approx((2.0, 2.0))

    def test_zero_distance_is_floored(self, triangle_anchors):
        """A 0 m range is treated as 0.1 m and still yields a finite estimate."""
        ranges = [AnchorRange(aid, triangle_anchors[aid], 0.0 if aid == "B0" else 10.0)
                  for aid in ("B0", "B1", "B2")]

        estimate = trilaterate(ranges)

        assert estimate is not None
        assert math.isfinite(estimate.x) and math.isfinite(estimate.y)

    def test_floor_from_nearest_anchor(self):
        """The estimate takes the nearest anchor's floor."""
        ranges = [
            AnchorRange("B0", Position(0, 0, 2), 1.0),
            AnchorRange("B1", Position(10, 0, 3), 9.0),
            AnchorRange("B2", Position(5, 8, 3), 8.0),
        ]

        assert trilaterate(ranges).floor == 2


# =============================================================================
# Weighted Centroid
# =============================================================================


class TestWeightedCentroid:
    """Tests for the weighted centroid estimator."""

    def test_single_anchor_returns_its_position(self):
        """One anchor yields exactly that anchor's position."""
        ranges = [AnchorRange("B0", Position(3.7, -1.3, 2), 4.2)]

        estimate = weighted_centroid(ranges)

        assert estimate.x == 3.7
        assert estimate.y == -1.3
        assert estimate.floor == 2
        assert estimate.accuracy_m == pytest.approx(4.2)

    def test_equal_distances_give_midpoint(self):
        """Equal weights average the anchors."""
        ranges = [AnchorRange("B0", Position(0, 0), 5.0), AnchorRange("B1", Position(10, 4), 5.0)]

        estimate = weighted_centroid(ranges)

        assert (estimate.x, estimate.y) == pytest.approx((5.0, 2.0))

    def test_inverse_square_pulls_harder_than_inverse(self):
        """Inverse-square weighting favours the closer anchor more strongly."""
        ranges = [AnchorRange("B0", Position(0, 0), 1.0), AnchorRange("B1", Position(10, 0), 4.0)]

        square = weighted_centroid(ranges, CentroidWeighting.INVERSE_SQUARE_DISTANCE)
        linear = weighted_centroid(ranges, CentroidWeighting.INVERSE_DISTANCE)

        assert square.x == pytest.approx(10 * (1 / 16) / (1 + 1 / 16))
        assert linear.x == pytest.approx(10 * 0.25 / 1.25)
        assert square.x < linear.x

    def test_weight_hint_scales_contribution(self):
        """Weight hints multiply the distance weight."""
        ranges = [
            AnchorRange("B0", Position(0, 0), 5.0, weight_hint=3.0),
            AnchorRange("B1", Position(8, 0), 5.0, weight_hint=1.0),
        ]

        assert weighted_centroid(ranges).x == pytest.approx(2.0)

    def test_no_anchors_returns_none(self):
        """Empty input is absence, not an error."""
        assert weighted_centroid([]) is None
        assert get_metrics().get_drop_count('insufficient_anchors') == 1

    def test_zero_total_weight_returns_none(self):
        """All-zero weight hints are guarded."""
        ranges = [AnchorRange("B0", Position(0, 0), 2.0, weight_hint=0.0)]

        assert weighted_centroid(ranges) is None
        assert get_metrics().get_drop_count('zero_weight') == 1

    def test_floor_vote(self):
        """The floor with the largest total weight wins."""
        ranges = [
            AnchorRange("B0", Position(0, 0, 0), 1.0),
            AnchorRange("B1", Position(5, 0, 1), 3.0),
            AnchorRange("B2", Position(5, 5, 1), 3.0),
        ]

        assert weighted_centroid(ranges).floor == 0


# =============================================================================
# Fingerprint Matching
# =============================================================================


@pytest.fixture
def small_database():
    return [
        FingerprintSample(Position(0, 0), {"A": -60, "B": -80}),
        FingerprintSample(Position(10, 0), {"A": -80, "B": -60}),
        FingerprintSample(Position(5, 5), {"A": -70, "B": -70}),
    ]


class TestFingerprintMatcher:
    """Tests for fingerprint matching."""

    def test_exact_match_returns_sample_position(self, small_database):
        """A scan identical to a sample returns that sample with minimum accuracy."""
        matcher = FingerprintMatcher(small_database)

        estimate = matcher.estimate({"A": -80, "B": -60})

        assert estimate.algorithm == EstimatorKind.FINGERPRINTING
        assert (estimate.x, estimate.y) == (10.0, 0.0)
        assert estimate.accuracy_m == pytest.approx(0.5)

    def test_accuracy_scales_with_deviation(self, small_database):
        """Accuracy is mean deviation / 10 when above the floor."""
        matcher = FingerprintMatcher(small_database[:1])

        estimate = matcher.estimate({"A": -80, "B": -100})

        assert estimate.accuracy_m == pytest.approx(2.0)

    def test_ties_go_to_first_sample(self):
        """Equal deviations keep database order."""
        database = [
            FingerprintSample(Position(1, 1), {"A": -65}),
            FingerprintSample(Position(9, 9), {"A": -75}),
        ]

        estimate = FingerprintMatcher(database).estimate({"A": -70})

        assert (estimate.x, estimate.y) == (1.0, 1.0)

    def test_samples_without_shared_sources_skipped(self, small_database):
        """Only shared sources count; unmatched scans return None."""
        matcher = FingerprintMatcher(small_database)

        assert matcher.estimate({"Z": -60}) is None
        assert get_metrics().get_drop_count('no_fingerprint_match') == 1

    def test_empty_scan_returns_none(self, small_database):
        """An empty scan matches nothing."""
        assert FingerprintMatcher(small_database).estimate({}) is None

    def test_k_nearest_blend(self):
        """k > 1 averages neighbours by inverse deviation (exact match weighs 10)."""
        database = [
            FingerprintSample(Position(0, 0), {"A": -60}),
            FingerprintSample(Position(10, 0), {"A": -65}),
        ]
        matcher = FingerprintMatcher(database, FingerprintConfig(k=2))

        estimate = matcher.estimate({"A": -60})

        assert estimate.x == pytest.approx(0.2 * 10 / 10.2)

    def test_invalid_k_raises(self):
        """k must be at least one."""
        with pytest.raises(ValueError, match="k must be"):
            FingerprintConfig(k=0)

    def test_generated_database_locates_grid_point(self, triangle_anchors):
        """A noiseless scan at a grid point matches that grid point."""
        database = generate_fingerprint_database(10.0, 8.0, triangle_anchors, floor=0, step_m=1.0)
        assert len(database) == 10 * 8

        truth = Position(4.0, 3.0, 0)
        scan = {sample_id: rssi for sample_id, rssi in next(
            s for s in database if s.position == truth
        ).expected_rssi.items()}

        estimate = FingerprintMatcher(database).estimate(scan)

        assert (estimate.x, estimate.y) == (4.0, 3.0)
        assert estimate.floor == 0

    def test_generated_database_ignores_other_floors(self):
        """Anchors on other floors do not appear in the samples."""
        anchors = AnchorRegistry.from_tuples([("B0", 0, 0, 0), ("B1", 5, 5, 1)])

        database = generate_fingerprint_database(2.0, 2.0, anchors, floor=1)

        assert all(set(s.expected_rssi) == {"B1"} for s in database)


# =============================================================================
# Dispatch
# =============================================================================


class TestEstimatorDispatch:
    """Tests for EstimatorKind dispatch."""

    def test_dispatch_matches_direct_call(self, triangle_anchors):
        """Dispatch runs the selected estimator."""
        ranges = make_ranges(triangle_anchors, (3.0, 2.0))

        tri = estimate_position(EstimatorKind.TRILATERATION, ranges, timestamp_ms=5)
        centroid = estimate_position(EstimatorKind.WEIGHTED_CENTROID, ranges, timestamp_ms=5)

        assert tri == trilaterate(ranges, 5)
        assert centroid == weighted_centroid(ranges, timestamp_ms=5)

    def test_kalman_base_uses_centroid_below_three_anchors(self, triangle_anchors):
        """The Kalman input falls back to the centroid with 1-2 anchors."""
        ranges = make_ranges(triangle_anchors, (3.0, 2.0))[:2]

        estimate = estimate_position(EstimatorKind.KALMAN_FILTER, ranges)

        assert estimate.algorithm == EstimatorKind.WEIGHTED_CENTROID

    def test_fingerprinting_without_database_returns_none(self, triangle_anchors):
        """Fingerprinting without a matcher is absence, not an error."""
        ranges = make_ranges(triangle_anchors, (3.0, 2.0))

        assert estimate_position(EstimatorKind.FINGERPRINTING, ranges) is None

    def test_fusion_not_dispatchable(self):
        """FUSION needs the stateful combiner."""
        with pytest.raises(ValueError, match="SensorFusionCombiner"):
            estimate_position(EstimatorKind.FUSION, [])
