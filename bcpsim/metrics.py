# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# metrics.py
# -----------------------------------------------------------------------------
# Purpose:
#   Collect and summarize KPIs: per-BCP cleared / high-risk counters, stage
#   waits, simulated revenue, entry/exit throughput, and bounded time series
#   for the selected crossing point.
#
# Design notes:
#   - Keep side-effect methods (note_*) for instrumentation from the router
#     and arrival process; they run inside the tick, so counters are always
#     consistent with the live vehicle set once the tick returns.
#   - Per-tick accumulators are flushed into the series by close_tick().
#   - Summaries return JSON-serializable dicts for easy tabulation.
#
# Usage:
#   M = Metrics(cfg, bcps); ...; M.close_tick(t, waiting, in_control); M.summary()
# -----------------------------------------------------------------------------

from __future__ import annotations
import random
from collections import defaultdict, deque
from typing import Any, Deque, Dict, Iterable, Optional

from .entities import HIGH, Lane, Vehicle


class Metrics:
    def __init__(self, cfg: dict, bcp_ids: Iterable[str], rng: Optional[random.Random] = None):
        self.cfg = cfg
        self.rng = rng or random.Random()
        history_len = int(cfg.get("sim", {}).get("history_len", 60))
        self.history_len = history_len
        # Cumulative per-BCP counters
        self.bcp_stats: Dict[str, Dict[str, int]] = {b: {"cleared": 0, "high_risk": 0} for b in bcp_ids}
        self.arrivals = 0
        self.declarations = 0
        self.alerts_raised = 0
        self.cleared_by_class = defaultdict(int)
        self.throughput_total = defaultdict(int)  # 'entry' / 'exit'
        self.revenue_total = 0.0
        self.wait_totals = defaultdict(float)     # accumulated queue waits per stage
        self.wait_counts = defaultdict(int)
        self.max_wait = defaultdict(float)
        # Per-tick accumulators
        self._revenue_tick = 0.0
        self._throughput_tick = {"entry": 0, "exit": 0}
        # Bounded series (most recent history_len samples)
        self.queue_history: Deque[Dict[str, float]] = deque(maxlen=history_len)
        self.revenue_history: Deque[Dict[str, float]] = deque(maxlen=history_len)
        self.throughput_history: Deque[Dict[str, float]] = deque(maxlen=history_len)
        # Unbounded queue-depth trace for offline analysis (experiments only)
        self.keep_trace = bool(cfg.get("sim", {}).get("keep_trace", False))
        self.trace: list[Dict[str, float]] = []

    def note_arrival(self, vehicle: Vehicle):
        self.arrivals += 1
        if vehicle.risk == HIGH:
            self.bcp_stats[vehicle.bcp_id]["high_risk"] += 1

    def note_declarations(self, n: int):
        self.declarations += n

    def note_alerts(self, n: int):
        self.alerts_raised += n

    def note_wait(self, stage: str, vehicle: Vehicle, wait: float, t: float):
        self.wait_totals[stage] += wait
        self.wait_counts[stage] += 1
        if wait > self.max_wait[stage]:
            self.max_wait[stage] = wait

    def note_cleared(self, vehicle: Vehicle, lane: Lane, t: float):
        """Customs completion: count it and sample the revenue it brought in."""
        self.bcp_stats[lane.bcp_id]["cleared"] += 1
        self.cleared_by_class[vehicle.vehicle_type] += 1
        self._throughput_tick[lane.direction] += 1
        self.throughput_total[lane.direction] += 1
        amount = 0.0
        if vehicle.vehicle_type == "truck":
            amount = float(self.rng.randrange(200, 4700))
        elif vehicle.vehicle_type == "car" and self.rng.random() < 0.1:
            amount = float(self.rng.randrange(0, 500))
        self._revenue_tick += amount

    def close_tick(self, t: float, waiting: int, in_control: int):
        """Append one sample to each series and reset the per-tick accumulators."""
        self.revenue_total += self._revenue_tick
        self.queue_history.append({"time": t, "waiting": waiting, "in_control": in_control})
        self.revenue_history.append({"time": t, "amount": self.revenue_total})
        self.throughput_history.append({
            "time": t,
            "entry": self._throughput_tick["entry"],
            "exit": self._throughput_tick["exit"],
        })
        if self.keep_trace:
            self.trace.append({
                "time": t,
                "waiting": waiting,
                "in_control": in_control,
                "revenue_total": self.revenue_total,
            })
        self._revenue_tick = 0.0
        self._throughput_tick = {"entry": 0, "exit": 0}

    def series(self) -> Dict[str, list]:
        return {
            "queue": list(self.queue_history),
            "revenue": list(self.revenue_history),
            "throughput": list(self.throughput_history),
        }

    def summary(self, stages: Optional[Iterable[Any]] = None, horizon: float = 0.0) -> Dict:
        avg_waits = {
            stage: (self.wait_totals[stage] / self.wait_counts[stage]) if self.wait_counts[stage] else 0.0
            for stage in ("border", "customs")
        }
        stage_utilization: Dict[str, float] = {}
        if stages and horizon > 0:
            busy = defaultdict(float)
            count = defaultdict(int)
            for st in stages:
                busy[st.name] += st.busy_time
                count[st.name] += 1
            for name in busy:
                stage_utilization[name] = busy[name] / (horizon * count[name])
        cleared = sum(s["cleared"] for s in self.bcp_stats.values())
        return {
            "arrivals": self.arrivals,
            "cleared": cleared,
            "high_risk": sum(s["high_risk"] for s in self.bcp_stats.values()),
            "declarations": self.declarations,
            "alerts_raised": self.alerts_raised,
            "revenue_total": self.revenue_total,
            "revenue_per_cleared": (self.revenue_total / cleared) if cleared else 0.0,
            "avg_wait_seconds": avg_waits,
            "max_wait_seconds": dict(self.max_wait),
            "throughput": dict(self.throughput_total),
            "cleared_by_class": dict(self.cleared_by_class),
            "bcp_stats": {k: dict(v) for k, v in self.bcp_stats.items()},
            "stage_utilization": stage_utilization,
            "time_series": list(self.trace),
        }
