import random

import pytest

from bcpsim.config import apply_overrides, load_cfg
from bcpsim.entities import Lane, Vehicle


@pytest.fixture
def cfg():
    return load_cfg()


@pytest.fixture
def single_lane_cfg(cfg):
    """One crossing point, one car lane, no random traffic."""
    return apply_overrides(cfg, {
        "crossing_points": [
            {"id": "BCP_TEST", "name": "Test Crossing", "country_a": "Republic of KA",
             "country_b": "State NB", "prefix": "TST", "entry_lanes": 1, "exit_lanes": 0},
        ],
        "arrivals": {"lane_prob": 0.0, "standalone_declaration_prob": 0.0},
        "service_times": {"border": {"car": 2, "bus": 2, "truck": 2},
                          "customs": {"car": 2, "bus": 2, "truck": 2}},
        "sim": {"selected_bcp": "BCP_TEST", "seed": 7},
    })


def make_lane(vehicle_type="car", border=10.0, customs=10.0, is_open=True):
    return Lane(
        id="BCP_TEST_entry_0", bcp_id="BCP_TEST", name="TST-EN1", direction="entry",
        vehicle_type=vehicle_type, border_service_time=border, customs_service_time=customs,
        is_open=is_open,
    )


def make_vehicle(vid, arrival, risk="Low", lane=None, vehicle_type="car"):
    lane = lane or make_lane(vehicle_type)
    return Vehicle(
        id=vid, bcp_id=lane.bcp_id, lane_id=lane.id, plate=f"KA-10-{vid[-2:]}",
        vehicle_type=vehicle_type, sub_type="Sedan", goods_type="Personal Effects",
        company_name="Private", origin="State NB", destination="Republic of KA",
        watchlist_hit=False, doc_anomaly=False, bio_mismatch=False, route_risk=0.1,
        risk=risk, risk_score={"Low": 5.0, "Medium": 40.0, "High": 80.0}[risk],
        arrival_time=arrival,
    )


@pytest.fixture
def rng():
    return random.Random(1234)
