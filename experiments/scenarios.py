"""
experiments/scenarios.py

Holds scenario definitions (decision variables) to sweep during experiments.
Add arrival intensities, lane closures, and service-time settings here.
"""

from __future__ import annotations

BASELINE = {
    "name": "baseline",
    "overrides": {},  # override config keys here per scenario
}

RUSH_HOUR = {
    "name": "rush_hour",
    "overrides": {
        "arrivals": {
            "lane_prob": 0.30,
        },
    },
}

REDUCED_LANES = {
    "name": "reduced_lanes",
    "overrides": {
        # Half of Vermillion and Crimson shut for maintenance
        "closed_lanes": [
            "BCP_VERMILLION_entry_2", "BCP_VERMILLION_entry_3",
            "BCP_VERMILLION_exit_2", "BCP_VERMILLION_exit_3",
            "BCP_CRIMSON_entry_3", "BCP_CRIMSON_entry_4",
            "BCP_CRIMSON_exit_3", "BCP_CRIMSON_exit_4",
        ],
    },
}

FAST_TRACK_CUSTOMS = {
    "name": "fast_track_customs",
    "overrides": {
        "service_times": {
            "customs": {
                "car": 8,
                "bus": 24,
                "truck": 45,
            },
        },
    },
}

SCENARIOS = [BASELINE, RUSH_HOUR, REDUCED_LANES, FAST_TRACK_CUSTOMS]
