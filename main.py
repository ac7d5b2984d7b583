"""
Indoor navigation demo.

Builds a simulated two-floor building, walks a virtual user along a route
and runs the positioning session and rerouter on noisy beacon readings
every cycle.
"""

import logging
import argparse
from typing import Dict, Iterator, List

import numpy as np

import config
from inav_core.metrics import get_metrics
from inav_core.proto import Position, SignalReading, AnchorRegistry, EstimatorKind, PositionEstimate
from inav_core.localization import (
    PositioningSession,
    PositioningConfig,
    distance_to_rssi,
    generate_fingerprint_database,
)
from inav_core.navigation import (
    NavigationGraph,
    TransitionType,
    create_grid_graph,
    PathfindingEngine,
    PathfindingConfig,
    PathCache,
    Rerouter,
    RerouteConfig,
    generate_instructions,
    remaining_distance,
    eta_seconds,
    is_destination_reached,
)

logger = logging.getLogger(__name__)


def build_building(sim: Dict) -> NavigationGraph:
    """Grid graph per floor plus the configured vertical transitions."""
    graph = NavigationGraph()
    for floor in sim["floors"]:
        create_grid_graph(sim["grid_rows"], sim["grid_cols"], floor, sim["width_m"], sim["height_m"], graph)
    for lower, upper, kind in sim["transitions"]:
        graph.connect_nodes(lower, upper, transition_type=TransitionType(kind))
    return graph


def build_anchors(sim: Dict) -> AnchorRegistry:
    return AnchorRegistry({
        aid: Position(a["x"], a["y"], a["floor"]) for aid, a in sim["anchors"].items()
    })


def walk(route: List[Position], step_m: float) -> Iterator[Position]:
    """True positions every step_m along a route; floor changes are instant."""
    yield route[0]
    for a, b in zip(route, route[1:]):
        if a.floor != b.floor:
            yield b
            continue
        length = a.distance_to(b)
        steps = max(int(np.ceil(length / step_m)), 1)
        for i in range(1, steps + 1):
            t = i / steps
            yield Position(a.x + t * (b.x - a.x), a.y + t * (b.y - a.y), a.floor)


def simulate_readings(
    truth: Position,
    anchors: AnchorRegistry,
    reference_power: int,
    noise_std_db: float,
    rng: np.random.Generator,
) -> List[SignalReading]:
    """Noisy RSSI from every anchor on the user's floor."""
    readings = []
    for aid in anchors:
        anchor = anchors[aid]
        if anchor.floor != truth.floor:
            continue
        rssi = distance_to_rssi(truth.distance_to(anchor), reference_power)
        noisy = int(round(rssi + rng.normal(0.0, noise_std_db)))
        readings.append(SignalReading(aid, noisy, reference_power))
    return readings


class IndoorNavigationDemo:
    """Drives one simulated positioning + navigation session."""

    def __init__(self, method: EstimatorKind, accessible: bool):
        self.sim = config.SIMULATION_CONFIG
        nav = config.NAVIGATION_CONFIG

        self.graph = build_building(self.sim)
        self.anchors = build_anchors(self.sim)

        fingerprints = []
        for floor in self.sim["floors"]:
            fingerprints.extend(generate_fingerprint_database(
                self.sim["width_m"], self.sim["height_m"], self.anchors, floor,
                self.sim["fingerprint_step_m"], self.sim["reference_power_dbm"],
            ))

        positioning = PositioningConfig.from_dict(config.POSITIONING_CONFIG)
        positioning.method = method
        self.session = PositioningSession(self.anchors, positioning, fingerprints)

        self.engine = PathfindingEngine(self.graph, PathfindingConfig(
            prefer_accessible_routes=accessible or nav["prefer_accessible_routes"],
            preferred_transition_type=nav["preferred_transition_type"],
            heuristic_floor_penalty=nav["heuristic_floor_penalty"],
            enforce_admissible_heuristic=nav["enforce_admissible_heuristic"],
        ))
        self.rerouter = Rerouter(
            PathCache(self.engine, nav["path_cache_size"]),
            RerouteConfig(nav["deviation_threshold_m"]),
        )
        self.rng = np.random.default_rng(self.sim["seed"])

        logger.info("Demo building: %d nodes on floors %s, %d anchors",
                    len(self.graph), self.graph.floors, len(self.anchors))

    def run(self, max_cycles: int):
        start_id, end_id = self.sim["route"]
        route = self.rerouter.start(start_id, end_id)
        if not route.found:
            logger.error("No route %s -> %s", start_id, end_id)
            return

        print(f"Route {start_id} -> {end_id}: {len(route)} nodes, cost {route.cost:.1f}, "
              f"ETA {eta_seconds(route.positions):.0f}s")
        for instruction in generate_instructions(route):
            print(f"  [{instruction.type.value:12s}] {instruction.text}")

        destination = route.nodes[-1].position
        step_m = self.sim["walk_speed_mps"] * self.sim["cycle_interval_ms"] / 1000.0
        t_ms = 0

        for cycle, truth in enumerate(walk(route.positions, step_m)):
            if cycle >= max_cycles:
                break
            t_ms += self.sim["cycle_interval_ms"]

            readings = simulate_readings(
                truth, self.anchors, self.sim["reference_power_dbm"], self.sim["rssi_noise_std_db"], self.rng,
            )
            estimate = self.session.process(readings, t_ms)
            if estimate is None:
                logger.info("Cycle %d: no estimate", cycle)
                continue

            self._report(cycle, truth, estimate, destination)

            if is_destination_reached(truth, destination):
                print(f"Destination reached after {cycle + 1} cycles")
                break

        get_metrics().print_summary()

    def _report(self, cycle: int, truth: Position, estimate: PositionEstimate, destination: Position):
        floor = estimate.floor if estimate.floor is not None else truth.floor
        live = Position(estimate.x, estimate.y, floor)
        update = self.rerouter.update(live)
        error = float(np.hypot(estimate.x - truth.x, estimate.y - truth.y))

        remaining = remaining_distance(update.path.positions, live) if update.path.found else float('nan')
        print(f"Cycle {cycle:3d}: truth=({truth.x:5.1f},{truth.y:5.1f},F{truth.floor}) "
              f"est=({estimate.x:5.1f},{estimate.y:5.1f},F{floor}) err={error:4.1f}m "
              f"acc={estimate.accuracy_m:4.1f}m remaining={remaining:5.1f}m"
              + (f" REROUTE({update.reason.value})" if update.rerouted else ""))


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description='Indoor positioning and navigation demo')
    parser.add_argument('--method', '-m', type=str, default=config.POSITIONING_CONFIG["method"],
                        choices=[k.value for k in EstimatorKind],
                        help='Positioning method')
    parser.add_argument('--cycles', '-n', type=int, default=120,
                        help='Maximum simulation cycles')
    parser.add_argument('--accessible', '-a', action='store_true',
                        help='Prefer accessible routes')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, config.LOGGING_CONFIG["level"]),
        format=config.LOGGING_CONFIG["format"]
    )
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    demo = IndoorNavigationDemo(EstimatorKind(args.method), args.accessible)
    demo.run(args.cycles)


if __name__ == "__main__":
    main()
