# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# network.py
# -----------------------------------------------------------------------------
# Purpose:
#   Router and lane wiring. Each lane owns a Checkpoint with two Stages
#   (border -> customs). The router places arrivals, advances every lane
#   once per tick, hands border completions to customs, reports
#   clearances, and purges cleared vehicles after the retention window.
#
# Design notes:
#   - Lanes are independent: one lane's decisions never read another's.
#   - The live set is a dict keyed by vehicle id in arrival order, so BCP
#     and lane views keep a stable order.
#
# Usage:
#   router = Router(cfg, lanes, metrics, rng)
#   router.on_arrival(vehicle, now); router.advance_all(now); router.purge(now)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging, random
from typing import Dict, Iterator, List, Optional

from .entities import CLEARED, IN_BORDER, IN_CUSTOMS, Lane, Vehicle
from .queues import Stage

logger = logging.getLogger(__name__)


class Checkpoint:
    """The two-stage pipeline of one lane."""

    def __init__(self, lane: Lane, metrics=None):
        self.lane = lane
        self.border = Stage("border", lane, metrics)
        self.customs = Stage("customs", lane, metrics)

    def stages(self):
        return (self.border, self.customs)

    def waiting_count(self) -> int:
        return len(self.border) + len(self.customs)

    def in_control_count(self) -> int:
        return sum(1 for st in self.stages() if st.current is not None)


class Router:
    def __init__(self, cfg: dict, lanes: Dict[str, Lane], metrics, rng: Optional[random.Random] = None):
        self.cfg = cfg
        self.lanes = lanes
        self.M = metrics
        self.rng = rng or random.Random()
        self.retention = float(cfg.get("sim", {}).get("retention_seconds", 15.0))
        self.checkpoints: Dict[str, Checkpoint] = {
            lane_id: Checkpoint(lane, metrics) for lane_id, lane in lanes.items()
        }
        self.vehicles: Dict[str, Vehicle] = {}

    # Incoming arrivals (already created by arrivals.py)
    def on_arrival(self, vehicle: Vehicle, now: float):
        assert vehicle.id not in self.vehicles, vehicle.id
        self.vehicles[vehicle.id] = vehicle
        self.checkpoints[vehicle.lane_id].border.enqueue(vehicle, now)

    def advance_all(self, now: float) -> List[Vehicle]:
        """Advance every lane by one tick; return the vehicles cleared."""
        cleared: List[Vehicle] = []
        for cp in self.checkpoints.values():
            done = self.advance(cp, now)
            if done is not None:
                cleared.append(done)
        return cleared

    def advance(self, cp: Checkpoint, now: float) -> Optional[Vehicle]:
        finished = cp.border.step(now, self.rng)
        if finished is not None:
            # Border done -> join the customs line of the same lane
            cp.customs.enqueue(finished, now)
        cleared = cp.customs.step(now, self.rng)
        if cleared is not None:
            self.M.note_cleared(cleared, cp.lane, now)
        return cleared

    def purge(self, now: float) -> int:
        """Drop cleared vehicles whose customs completion left the retention window."""
        threshold = now - self.retention
        stale = [
            vid for vid, v in self.vehicles.items()
            if v.status == CLEARED and v.customs_done_time is not None and v.customs_done_time <= threshold
        ]
        for vid in stale:
            del self.vehicles[vid]
        return len(stale)

    def vehicles_for(self, bcp_id: str) -> List[Vehicle]:
        return [v for v in self.vehicles.values() if v.bcp_id == bcp_id]

    def lane_vehicles(self, lane_id: str) -> List[Vehicle]:
        return [v for v in self.vehicles.values() if v.lane_id == lane_id and v.status != CLEARED]

    def checkpoints_for(self, bcp_id: str) -> Iterator[Checkpoint]:
        return (cp for cp in self.checkpoints.values() if cp.lane.bcp_id == bcp_id)

    def all_stages(self) -> List[Stage]:
        return [st for cp in self.checkpoints.values() for st in cp.stages()]

    def check_invariants(self):
        """At most one vehicle per lane in each stage; statuses match the stage servers."""
        in_border: Dict[str, int] = {}
        in_customs: Dict[str, int] = {}
        for v in self.vehicles.values():
            if v.status == IN_BORDER:
                in_border[v.lane_id] = in_border.get(v.lane_id, 0) + 1
            elif v.status == IN_CUSTOMS:
                in_customs[v.lane_id] = in_customs.get(v.lane_id, 0) + 1
        for lane_id, cp in self.checkpoints.items():
            assert in_border.get(lane_id, 0) == (cp.border.current is not None), lane_id
            assert in_customs.get(lane_id, 0) == (cp.customs.current is not None), lane_id
