# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# topology.py
# -----------------------------------------------------------------------------
# Purpose:
#   Build the static network: crossing points (BCPs) and their lanes, from
#   the `crossing_points` and `service_times` sections of the YAML config.
#
# Design notes:
#   - Lane vehicle classes rotate by index (car, truck, car, bus) so every
#     BCP gets a mix of classes on both directions.
#   - Base service times are SECONDS per vehicle class and stage.
#
# Usage:
#   from bcpsim.topology import make_crossing_points, make_lanes
# -----------------------------------------------------------------------------

from __future__ import annotations
from typing import Dict, List

from .entities import DIRECTIONS, VEHICLE_CLASSES, CrossingPoint, Lane

# Class rotation by lane index modulo 4
_CLASS_CYCLE = ("car", "truck", "car", "bus")

DEFAULT_SERVICE_TIMES = {
    "border": {"car": 15, "bus": 40, "truck": 25},
    "customs": {"car": 10, "bus": 30, "truck": 60},
}


def make_crossing_points(cfg: dict) -> Dict[str, CrossingPoint]:
    """Return BCP id -> CrossingPoint, preserving config order."""
    entries = cfg.get("crossing_points") or []
    if not entries:
        raise ValueError("config has no crossing_points")
    return {
        e["id"]: CrossingPoint(e["id"], e["name"], e["country_a"], e["country_b"])
        for e in entries
    }


def make_lanes(cfg: dict) -> Dict[str, Lane]:
    """
    Create every lane of every crossing point.

    Parameters
    ----------
    cfg : dict
        Parsed YAML config with 'crossing_points', 'service_times' and an
        optional 'closed_lanes' list of lane ids.

    Returns
    -------
    dict[str, Lane]
        Mapping lane id -> Lane, entry lanes before exit lanes per BCP.
    """
    svc = cfg.get("service_times") or DEFAULT_SERVICE_TIMES
    for stage in ("border", "customs"):
        missing = [c for c in VEHICLE_CLASSES if c not in svc.get(stage, {})]
        if missing:
            raise ValueError(f"service_times.{stage} lacks {missing}")
    closed = set(cfg.get("closed_lanes") or ())
    lanes: Dict[str, Lane] = {}
    for e in cfg.get("crossing_points") or []:
        bcp_id = e["id"]
        prefix = e.get("prefix", bcp_id[-3:])
        for direction in DIRECTIONS:
            count = e.get(f"{direction}_lanes", 0)
            tag = "EN" if direction == "entry" else "EX"
            for i in range(int(count)):
                vtype = _CLASS_CYCLE[i % 4]
                lane_id = f"{bcp_id}_{direction}_{i}"
                lanes[lane_id] = Lane(
                    id=lane_id,
                    bcp_id=bcp_id,
                    name=f"{prefix}-{tag}{i + 1}",
                    direction=direction,
                    vehicle_type=vtype,
                    border_service_time=float(svc["border"][vtype]),
                    customs_service_time=float(svc["customs"][vtype]),
                    is_open=lane_id not in closed,
                )
    return lanes


def lanes_for(lanes: Dict[str, Lane], bcp_id: str) -> List[Lane]:
    return [ln for ln in lanes.values() if ln.bcp_id == bcp_id]
