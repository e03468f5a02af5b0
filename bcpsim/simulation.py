# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# simulation.py
# -----------------------------------------------------------------------------
# Purpose:
#   The simulation engine. Owns topology, live vehicles, declarations,
#   alerts and counters; exposes tick / snapshot / query / command
#   operations; runs headless replications (run_for) or a wall-clock loop
#   (run_realtime / RealtimeClock).
#
# Design notes:
#   - One tick is one critical section: generation, lane advancement,
#     aggregation and retention all happen under self._lock, so readers
#     always see a state where every lane has advanced.
#   - All randomness flows from one injected random.Random.
#   - The situation report is produced from a snapshot on a worker thread,
#     never inside a tick.
#
# Usage:
#   from bcpsim.simulation import Simulation, run_for
#   sim = Simulation(cfg); sim.tick(); sim.snapshot()
#   results = run_for(cfg, seconds=3600)
# -----------------------------------------------------------------------------

from __future__ import annotations
import copy, logging, random, threading, time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from statistics import mean
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .alerts import AlertFeed
from .arrivals import ArrivalProcess
from .declarations import DeclarationFilter, build_manual_declaration, filter_declarations
from .entities import CLEARED, HIGH, RISK_BANDS, Alert, Declaration, Vehicle
from .metrics import Metrics
from .network import Router
from .queues import Env
from .report import generate_situation_report
from .topology import make_crossing_points, make_lanes

logger = logging.getLogger(__name__)


class Simulation:
    def __init__(self, cfg: Dict, rng: Optional[random.Random] = None):
        sim_cfg = cfg.get("sim", {})
        self.cfg = cfg
        self.rng = rng or random.Random(sim_cfg.get("seed", 0))
        self.bcps = make_crossing_points(cfg)
        self.lanes = make_lanes(cfg)
        self.env = Env(sim_cfg.get("tick_seconds", 1.0))
        self.M = Metrics(cfg, self.bcps, self.rng)
        self.alerts = AlertFeed(sim_cfg.get("alerts_cap", 50))
        self.router = Router(cfg, self.lanes, self.M, self.rng)
        self.arrivals = ArrivalProcess(cfg, self.lanes, self.bcps, self.alerts, self.rng)
        self.declarations: List[Declaration] = []
        selected = sim_cfg.get("selected_bcp")
        self.selected_bcp = selected if selected in self.bcps else next(iter(self.bcps))
        self._lock = threading.RLock()
        self._manual_ids = 0
        logger.info("Simulation ready: %d crossing points, %d lanes, selected %s",
                    len(self.bcps), len(self.lanes), self.selected_bcp)

    @property
    def now(self) -> float:
        return self.env.t

    # ------------------------------------------------------------------ tick
    def tick(self) -> float:
        """Run one tick: arrivals, lane advancement, aggregation, retention."""
        with self._lock:
            now = self.env.advance()
            vehicles, decls, alerts = self.arrivals.on_tick(now)
            for v in vehicles:
                self.router.on_arrival(v, now)
                self.M.note_arrival(v)
            self.declarations.extend(decls)
            self.M.note_declarations(len(decls))
            if alerts:
                self.alerts.extend(alerts)
                self.M.note_alerts(len(alerts))

            cleared = self.router.advance_all(now)

            waiting = in_control = 0
            for cp in self.router.checkpoints_for(self.selected_bcp):
                waiting += cp.waiting_count()
                in_control += cp.in_control_count()
            self.M.close_tick(now, waiting, in_control)
            purged = self.router.purge(now)
            if cleared or purged:
                logger.debug("t=%.1f cleared=%d purged=%d live=%d",
                             now, len(cleared), purged, len(self.router.vehicles))
            return now

    def run(self, ticks: int):
        for _ in range(int(ticks)):
            self.tick()

    # -------------------------------------------------------------- commands
    def select_bcp(self, bcp_id: str):
        if bcp_id not in self.bcps:
            raise KeyError(f"unknown crossing point {bcp_id!r}")
        with self._lock:
            self.selected_bcp = bcp_id

    def set_lane_open(self, lane_id: str, is_open: bool):
        """Open or close a lane; a closed lane keeps serving whoever is in a booth."""
        if lane_id not in self.lanes:
            raise KeyError(f"unknown lane {lane_id!r}")
        with self._lock:
            self.lanes[lane_id].is_open = bool(is_open)
        logger.info("Lane %s %s", lane_id, "opened" if is_open else "closed")

    def submit_declaration(self, data: Mapping) -> Tuple[Optional[Declaration], Dict[str, str]]:
        """Lodge a manual declaration. On validation failure nothing is stored."""
        with self._lock:
            self._manual_ids += 1
            decl, errors = build_manual_declaration(
                data, self.now, decl_id=f"D_MANUAL_{self._manual_ids:05d}",
            )
            if decl is None:
                logger.warning("Manual declaration rejected: %s", ", ".join(sorted(errors)))
                return None, errors
            # Manual lodgings go to the front; generated ones are appended
            self.declarations.insert(0, decl)
            self.M.note_declarations(1)
        logger.info("Manual declaration %s accepted (channel=%s)", decl.mrn, decl.channel)
        return decl, {}

    # --------------------------------------------------------------- queries
    def snapshot(self, bcp_id: Optional[str] = None) -> Dict:
        """Read-only view of one crossing point (the selected one by default)."""
        with self._lock:
            bcp_id = bcp_id or self.selected_bcp
            if bcp_id not in self.bcps:
                logger.warning("Snapshot requested for unknown crossing point %s", bcp_id)
                raise KeyError(f"unknown crossing point {bcp_id!r}")
            now = self.now
            vehicles = self.router.vehicles_for(bcp_id)
            waiting = [v for v in vehicles if v.is_waiting()]
            in_control = [v for v in vehicles if v.in_control()]
            cleared = [v for v in vehicles if v.status == CLEARED]
            risk_counts = {band: 0 for band in RISK_BANDS}
            for v in vehicles:
                risk_counts[v.risk] += 1
            lanes = []
            for cp in self.router.checkpoints_for(bcp_id):
                lanes.append({
                    "id": cp.lane.id,
                    "name": cp.lane.name,
                    "direction": cp.lane.direction,
                    "vehicle_type": cp.lane.vehicle_type,
                    "is_open": cp.lane.is_open,
                    "waiting_border": len(cp.border),
                    "waiting_customs": len(cp.customs),
                    "in_border": cp.border.current.id if cp.border.current else None,
                    "in_customs": cp.customs.current.id if cp.customs.current else None,
                    "has_high_risk": any(v.risk == HIGH for v in self.router.lane_vehicles(cp.lane.id)),
                })
            return copy.deepcopy({
                "bcp": self.bcps[bcp_id],
                "time": now,
                "lanes": lanes,
                "waiting": waiting,
                "in_control": in_control,
                "cleared": cleared,
                "avg_wait_sec": mean(now - v.arrival_time for v in waiting) if waiting else 0.0,
                "risk_counts": risk_counts,
                "stats": dict(self.M.bcp_stats[bcp_id]),
                "series": self.M.series() if bcp_id == self.selected_bcp else {},
            })

    def network_summary(self) -> List[Dict]:
        """One row per crossing point: load, cleared and high-risk counters, average wait."""
        with self._lock:
            now = self.now
            rows = []
            for bcp_id, bcp in self.bcps.items():
                vehicles = self.router.vehicles_for(bcp_id)
                waiting = [v for v in vehicles if v.is_waiting()]
                rows.append({
                    "id": bcp_id,
                    "name": bcp.name,
                    "waiting": len(waiting),
                    "active": sum(1 for v in vehicles if v.in_control()),
                    "cleared": self.M.bcp_stats[bcp_id]["cleared"],
                    "high_risk": self.M.bcp_stats[bcp_id]["high_risk"],
                    "avg_wait_sec": mean(now - v.arrival_time for v in waiting) if waiting else 0.0,
                })
            return rows

    def query_declarations(self, flt: Optional[DeclarationFilter] = None) -> List[Declaration]:
        """Declarations in store order (manual lodgings first, then generated ones oldest first)."""
        with self._lock:
            return filter_declarations(list(self.declarations), flt)

    def latest_alerts(self) -> List[Alert]:
        with self._lock:
            return self.alerts.latest()

    def vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        with self._lock:
            v = self.router.vehicles.get(vehicle_id)
            return copy.deepcopy(v) if v is not None else None

    def declaration_for(self, vehicle: Vehicle) -> Optional[Declaration]:
        with self._lock:
            return next(
                (d for d in self.declarations
                 if d.linked_vehicle_id == vehicle.id or (d.vehicle_plate and d.vehicle_plate == vehicle.plate)),
                None,
            )

    def high_risk_vehicles(self, bcp_id: Optional[str] = None) -> List[Vehicle]:
        with self._lock:
            bcp_id = bcp_id or self.selected_bcp
            return copy.deepcopy([v for v in self.router.vehicles_for(bcp_id) if v.risk == HIGH])

    def summary(self) -> Dict:
        with self._lock:
            return self.M.summary(self.router.all_stages(), horizon=self.now)

    # ---------------------------------------------------------------- report
    def situation_report(self, bcp_id: Optional[str] = None, session=None) -> str:
        """
        Blocking report call. The snapshot and its high-risk sample are read under
        one lock hold so they describe the same tick; the HTTP call runs unlocked.
        """
        with self._lock:
            snap = self.snapshot(bcp_id)
            high = self.high_risk_vehicles(snap["bcp"].id)
        return generate_situation_report(snap["bcp"], snap, high, self.cfg, session=session)

    def situation_report_async(self, bcp_id: Optional[str] = None,
                               executor: Optional[Executor] = None, session=None) -> Future:
        if executor is not None:
            return executor.submit(self.situation_report, bcp_id, session)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sitrep")
        fut = pool.submit(self.situation_report, bcp_id, session)
        pool.shutdown(wait=False)
        return fut


def run_for(cfg: Dict, seconds: Optional[float] = None) -> Dict:
    """Headless replication: tick for `seconds` of simulated time and summarize."""
    sim = Simulation(cfg)
    horizon = seconds if seconds is not None else cfg.get("sim", {}).get("horizon_seconds", 3600)
    ticks = int(round(float(horizon) / sim.env.tick_seconds))
    sim.run(ticks)
    return sim.summary()


def run_realtime(sim: Simulation, stop_event: threading.Event,
                 period: Optional[float] = None,
                 on_tick: Optional[Callable[[Simulation], None]] = None) -> None:
    """Tick once per `period` wall-clock seconds until `stop_event` is set."""
    period = float(period if period is not None else sim.env.tick_seconds)
    logger.info("Realtime clock started (period=%ss)", period)
    while not stop_event.is_set():
        started = time.monotonic()
        sim.tick()
        if on_tick is not None:
            try:
                on_tick(sim)
            except Exception as exc:
                logger.exception("Tick observer failed: %s", exc)
        stop_event.wait(max(0.0, period - (time.monotonic() - started)))
    logger.info("Realtime clock stopped at t=%.1f", sim.now)


class RealtimeClock:
    """Background thread driving run_realtime; stop() tears it down cleanly."""

    def __init__(self, sim: Simulation, period: Optional[float] = None,
                 on_tick: Optional[Callable[[Simulation], None]] = None):
        self.sim = sim
        self.period = period
        self.on_tick = on_tick
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=run_realtime,
            args=(self.sim, self._stop, self.period, self.on_tick),
            name="bcpsim-clock",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
