# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# queues.py
# -----------------------------------------------------------------------------
# Purpose:
#   Minimal time-stepped primitives: Env (the simulation clock) and Stage,
#   a single-server FIFO checkpoint (capacity 1) with a waiting line ordered
#   by vehicle arrival time.
#
# Design notes:
#   - The clock advances by a fixed tick; a Stage is polled once per tick.
#     Completion and admission never happen for the same stage in one tick.
#   - The waiting line is a heap keyed by (arrival_time, seq) so the head is
#     the earliest arrival without rescanning the lane.
#   - Service durations come from policies.dynamic_service_time and are
#     sampled once per occupancy.
#
# Usage:
#   from bcpsim.queues import Env, Stage
# -----------------------------------------------------------------------------

from __future__ import annotations
import heapq, itertools, random
from typing import List, Optional, Tuple

from .entities import (
    CLEARED, IN_BORDER, IN_CUSTOMS, STAGES, WAITING_BORDER, WAITING_CUSTOMS, Lane, Vehicle,
)
from .policies import dynamic_service_time

_WAITING = {"border": WAITING_BORDER, "customs": WAITING_CUSTOMS}
_IN = {"border": IN_BORDER, "customs": IN_CUSTOMS}
_DONE = {"border": WAITING_CUSTOMS, "customs": CLEARED}


class Env:
    """Simulation clock.

    Attributes
    ----------
    t : float
        Simulation time (seconds).
    tick_seconds : float
        Clock increment per tick.
    ticks : int
        Number of ticks executed so far.
    """
    def __init__(self, tick_seconds: float = 1.0, t0: float = 0.0):
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self.t: float = t0
        self.tick_seconds = float(tick_seconds)
        self.ticks: int = 0

    def advance(self) -> float:
        self.t += self.tick_seconds
        self.ticks += 1
        return self.t


class Stage:
    """Single-server checkpoint for one lane and one stage.

    Parameters
    ----------
    name : str
        'border' or 'customs'.
    lane : Lane
        Owning lane; supplies the base service time and the open flag.

    Notes
    -----
    - `current` is the vehicle in service (at most one, by construction).
    - `busy_time` integrates occupied seconds for utilisation reporting.
    """
    def __init__(self, name: str, lane: Lane, metrics=None):
        assert name in STAGES, name
        self.name = name
        self.lane = lane
        self.metrics = metrics
        self.queue: List[Tuple[float, int, Vehicle]] = []
        # Tie-breaker so equal arrival times keep insertion order
        self._seq = itertools.count()
        self.current: Optional[Vehicle] = None
        self.busy_time: float = 0.0
        self.served: int = 0

    def __len__(self) -> int:
        return len(self.queue)

    def enqueue(self, vehicle: Vehicle, now: float):
        assert vehicle.status == _WAITING[self.name], (vehicle.id, vehicle.status)
        # Remember when this vehicle joined so its wait can be reported on admission
        vehicle.queue_entry_times[self.name] = now
        heapq.heappush(self.queue, (vehicle.arrival_time, next(self._seq), vehicle))

    def waiting(self) -> List[Vehicle]:
        """Waiting vehicles in service order."""
        return [v for _, _, v in sorted(self.queue)]

    def step(self, now: float, rng: Optional[random.Random] = None) -> Optional[Vehicle]:
        """
        Poll the server once.

        Returns the vehicle that finished service this tick, if any. When the
        server is idle and the lane is open, the head of the line is admitted
        instead.
        """
        if self.current is not None:
            return self._try_complete(now)
        if self.lane.is_open and self.queue:
            self._admit(now, rng)
        return None

    def _admit(self, now: float, rng: Optional[random.Random]):
        _, _, vehicle = heapq.heappop(self.queue)
        # Backlog seen by the entering unit excludes itself
        others = len(self.queue)
        vehicle.advance(_IN[self.name])
        vehicle.stage_start[self.name] = now
        vehicle.assigned_duration[self.name] = dynamic_service_time(
            self.lane.base_service_time(self.name), vehicle.risk, others, rng,
        )
        self.current = vehicle
        joined = vehicle.queue_entry_times.get(self.name)
        if self.metrics is not None and joined is not None:
            self.metrics.note_wait(self.name, vehicle, max(now - joined, 0.0), now)

    def _try_complete(self, now: float) -> Optional[Vehicle]:
        vehicle = self.current
        start = vehicle.stage_start.get(self.name)
        if start is None:
            return None
        elapsed = now - start
        if elapsed < vehicle.assigned_duration[self.name]:
            return None
        vehicle.advance(_DONE[self.name])
        if self.name == "border":
            del vehicle.stage_start["border"]
        else:
            vehicle.customs_done_time = now
        self.busy_time += elapsed
        self.served += 1
        self.current = None
        return vehicle
