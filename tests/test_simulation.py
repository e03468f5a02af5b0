import threading
import time

import pytest

from bcpsim.config import apply_overrides
from bcpsim.declarations import DeclarationFilter
from bcpsim.entities import CLEARED, HIGH, IN_BORDER, IN_CUSTOMS
from bcpsim.simulation import RealtimeClock, Simulation, run_for

from conftest import make_vehicle

GOOD_FORM = {
    "mrn": "KA123456",
    "trader_name": "Alpha Trade Corp",
    "aeo": "NONE",
    "flow": "IMPORT",
    "hs_code": "8517",
    "goods_desc": "Mobile phones",
    "origin_country": "Germany",
    "destination_country": "Republic of KA",
    "value": 10000,
    "weight": 1200,
}


def _tick_until(sim, predicate, limit=500):
    for _ in range(limit):
        sim.tick()
        if predicate():
            return
    raise AssertionError("condition not reached")


def test_invariants_hold_over_long_run(cfg):
    sim = Simulation(cfg)
    for _ in range(600):
        sim.tick()
        sim.router.check_invariants()
        for cp in sim.router.checkpoints.values():
            for st in cp.stages():
                arrivals = [v.arrival_time for v in st.waiting()]
                assert arrivals == sorted(arrivals)
    summary = sim.summary()
    assert summary["arrivals"] > 0
    assert summary["cleared"] > 0
    assert summary["cleared"] == sum(summary["cleared_by_class"].values())
    assert summary["cleared"] == sum(summary["throughput"].values())
    for v in sim.router.vehicles.values():
        if v.status == IN_BORDER:
            assert v.start_border_time is not None
        if v.status == IN_CUSTOMS:
            assert v.start_customs_time is not None
            assert v.start_border_time is None


def test_cleared_vehicle_is_retained_for_fifteen_seconds(single_lane_cfg):
    sim = Simulation(single_lane_cfg)
    v = make_vehicle("V_RETAIN", sim.now)
    sim.router.on_arrival(v, sim.now)
    _tick_until(sim, lambda: v.status == CLEARED)
    done = v.customs_done_time
    assert done == sim.now
    assert sim.M.bcp_stats["BCP_TEST"]["cleared"] == 1
    sim.run(14)
    assert sim.now == done + 14
    assert "V_RETAIN" in sim.router.vehicles
    assert [c.id for c in sim.snapshot()["cleared"]] == ["V_RETAIN"]
    sim.tick()
    assert "V_RETAIN" not in sim.router.vehicles
    # Counters are cumulative and survive the purge
    assert sim.M.bcp_stats["BCP_TEST"]["cleared"] == 1


def test_alert_feed_is_capped_newest_first(cfg):
    cfg = apply_overrides(cfg, {"arrivals": {"lane_prob": 0.5}})
    sim = Simulation(cfg)
    sim.run(200)
    alerts = sim.latest_alerts()
    assert sim.M.alerts_raised > 50
    assert len(alerts) == 50
    times = [a.timestamp for a in alerts]
    assert times == sorted(times, reverse=True)
    assert len({a.id for a in alerts}) == 50


def test_series_are_bounded(cfg):
    sim = Simulation(cfg)
    sim.run(100)
    series = sim.snapshot()["series"]
    for name in ("queue", "revenue", "throughput"):
        assert len(series[name]) == 60
        assert series[name][-1]["time"] == 100.0
    amounts = [p["amount"] for p in series["revenue"]]
    assert amounts == sorted(amounts)


def test_invalid_manual_declaration_changes_nothing(cfg):
    sim = Simulation(cfg)
    sim.run(10)
    before = list(sim.declarations)
    count = sim.M.declarations
    decl, errors = sim.submit_declaration(dict(GOOD_FORM, mrn="BAD"))
    assert decl is None
    assert errors == {"mrn": "Format: KA + 6 digits"}
    assert sim.declarations == before
    assert sim.M.declarations == count


def test_valid_manual_declaration_is_scored_and_priced(cfg):
    sim = Simulation(cfg)
    sim.run(3)
    decl, errors = sim.submit_declaration(GOOD_FORM)
    assert errors == {}
    assert decl.id == "D_MANUAL_00001"
    assert decl.arrival_time == sim.now
    assert decl.duties == pytest.approx(650.0)
    assert decl.vat == pytest.approx(2023.5)
    assert decl.excise == 0.0
    assert decl.risk_band == "Low"
    assert decl.channel == "GREEN"
    assert decl.status == "SUBMITTED"
    assert sim.declarations[0] is decl
    assert sim.query_declarations()[0] is decl
    sim.run(20)
    rows = sim.query_declarations(DeclarationFilter(active_only=False))
    assert rows[0] is decl
    generated = rows[1:]
    assert generated
    assert [d.arrival_time for d in generated] == sorted(d.arrival_time for d in generated)


def test_closing_a_lane_stops_admissions(single_lane_cfg):
    sim = Simulation(single_lane_cfg)
    lane_id = "BCP_TEST_entry_0"
    sim.set_lane_open(lane_id, False)
    v = make_vehicle("V_CLOSED", sim.now)
    sim.router.on_arrival(v, sim.now)
    sim.run(20)
    assert v.status == "waiting_border"
    assert sim.snapshot()["lanes"][0]["is_open"] is False
    sim.set_lane_open(lane_id, True)
    _tick_until(sim, lambda: v.status == CLEARED, limit=50)
    with pytest.raises(KeyError):
        sim.set_lane_open("NOPE", True)


def test_same_seed_same_run(cfg):
    a = Simulation(cfg)
    b = Simulation(cfg)
    a.run(300)
    b.run(300)
    assert a.summary() == b.summary()
    assert list(a.router.vehicles) == list(b.router.vehicles)
    assert [d.mrn for d in a.declarations] == [d.mrn for d in b.declarations]


def test_unknown_crossing_point(cfg):
    sim = Simulation(cfg)
    with pytest.raises(KeyError):
        sim.snapshot("BCP_NOWHERE")
    with pytest.raises(KeyError):
        sim.select_bcp("BCP_NOWHERE")


def test_snapshot_of_other_bcp_has_no_series(cfg):
    sim = Simulation(cfg)
    sim.run(30)
    snap = sim.snapshot("BCP_INDIGO")
    assert snap["bcp"].id == "BCP_INDIGO"
    assert snap["series"] == {}
    assert len(snap["lanes"]) == 6
    sim.select_bcp("BCP_INDIGO")
    assert sim.snapshot()["series"]["queue"]


def test_snapshot_is_detached(cfg):
    sim = Simulation(cfg)
    sim.run(50)
    snap = sim.snapshot()
    total = sum(snap["risk_counts"].values())
    assert total == len(sim.router.vehicles_for(sim.selected_bcp))
    for v in snap["waiting"]:
        v.status = CLEARED
    assert all(v.status != CLEARED for v in sim.snapshot()["waiting"])


def test_network_summary_has_one_row_per_bcp(cfg):
    sim = Simulation(cfg)
    sim.run(120)
    rows = sim.network_summary()
    assert [r["id"] for r in rows] == list(sim.bcps)
    assert len(rows) == 6
    assert sum(r["cleared"] for r in rows) == sim.summary()["cleared"]


def test_high_risk_lookup_and_linked_declaration(cfg):
    sim = Simulation(cfg)
    sim.run(200)
    for v in sim.high_risk_vehicles():
        assert v.risk == HIGH
        assert v.bcp_id == sim.selected_bcp
    linked = [d for d in sim.declarations if d.linked_vehicle_id in sim.router.vehicles]
    assert linked
    d = linked[0]
    v = sim.vehicle(d.linked_vehicle_id)
    assert sim.declaration_for(v) is not None
    assert sim.vehicle("V_MISSING") is None


def test_run_for_reports_kpis(cfg):
    res = run_for(cfg, seconds=300)
    assert res["arrivals"] > 0
    assert set(res["avg_wait_seconds"]) == {"border", "customs"}
    for util in res["stage_utilization"].values():
        assert 0.0 <= util <= 1.0
    assert res["time_series"] == []


def test_realtime_clock_ticks_and_stops(single_lane_cfg):
    sim = Simulation(single_lane_cfg)
    seen = threading.Event()
    clock = RealtimeClock(sim, period=0.01, on_tick=lambda s: seen.set())
    clock.start()
    assert seen.wait(2.0)
    clock.stop(timeout=2.0)
    assert not clock.running
    stopped_at = sim.now
    assert stopped_at >= 1.0
    time.sleep(0.05)
    assert sim.now == stopped_at


def test_failing_observer_does_not_stop_the_clock(single_lane_cfg):
    sim = Simulation(single_lane_cfg)
    calls = []

    def observer(s):
        calls.append(s.now)
        raise RuntimeError("boom")

    clock = RealtimeClock(sim, period=0.005, on_tick=observer)
    clock.start()
    deadline = time.monotonic() + 2.0
    while len(calls) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    clock.stop(timeout=2.0)
    assert len(calls) >= 3


def test_report_sample_matches_snapshot_under_load(cfg, monkeypatch):
    cfg = apply_overrides(cfg, {"arrivals": {"lane_prob": 0.6}})
    sim = Simulation(cfg)
    seen = []

    def fake_report(bcp, snap, high, cfg=None, session=None):
        seen.append((snap["risk_counts"]["High"], len(high)))
        return "ok"

    monkeypatch.setattr("bcpsim.simulation.generate_situation_report", fake_report)
    clock = RealtimeClock(sim, period=0.001)
    clock.start()
    try:
        for _ in range(30):
            assert sim.situation_report() == "ok"
    finally:
        clock.stop(timeout=2.0)
    assert all(counted == sampled for counted, sampled in seen)
