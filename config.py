"""
Indoor navigation demo configuration.
"""

# Logging
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# Positioning (fed to PositioningConfig.from_dict)
POSITIONING_CONFIG = {
    "method": "fusion",               # trilateration / weighted_centroid / fingerprinting / kalman_filter / fusion
    "path_loss_exponent": 2.0,        # 2.0 free space, 2.7-4.0 indoors
    "smoothing_factor": 0.2,          # weight of the new output
    "staleness_threshold_s": 5.0,     # gap that resets the Kalman filters
    "min_dt_s": 0.1,
    "fingerprint_k": 1,
}

# Navigation
NAVIGATION_CONFIG = {
    "prefer_accessible_routes": False,
    "preferred_transition_type": None,    # "stairs" / "escalator" / "elevator"
    "heuristic_floor_penalty": 10.0,
    "enforce_admissible_heuristic": True,
    "deviation_threshold_m": 10.0,
    "path_cache_size": 8,
}

# Simulated building and walk
SIMULATION_CONFIG = {
    "floors": [0, 1],
    "width_m": 20.0,
    "height_m": 20.0,
    "grid_rows": 5,
    "grid_cols": 5,
    "fingerprint_step_m": 1.0,
    "reference_power_dbm": -59,
    "rssi_noise_std_db": 2.0,
    "cycle_interval_ms": 1000,
    "walk_speed_mps": 1.4,
    "seed": 42,
    # Vertical links between floors: (node on lower floor, node on upper floor, type)
    "transitions": [
        ("node_0_0_4", "node_1_0_4", "elevator"),
        ("node_0_4_0", "node_1_4_0", "stairs"),
    ],
    "route": ("node_0_0_0", "node_1_4_4"),
    "anchors": {
        "B0": {"x": 0.0, "y": 0.0, "floor": 0},
        "B1": {"x": 20.0, "y": 0.0, "floor": 0},
        "B2": {"x": 10.0, "y": 20.0, "floor": 0},
        "B3": {"x": 0.0, "y": 20.0, "floor": 1},
        "B4": {"x": 20.0, "y": 20.0, "floor": 1},
        "B5": {"x": 10.0, "y": 0.0, "floor": 1},
    },
}
