import itertools
import random

import pytest

from bcpsim.entities import risk_band
from bcpsim.risk import border_risk, customs_risk


def _customs(**kw):
    base = {"aeo": 0, "hs_risk": 0.0, "origin_risk": 0.0, "underval_pct": 0.0,
            "pnr_hit": False, "doc_mismatch": False, "watchlist": False, "history": 0.0}
    base.update(kw)
    return base


def test_band_thresholds():
    assert risk_band(70) == "High"
    assert risk_band(69.99) == "Medium"
    assert risk_band(30) == "Medium"
    assert risk_band(29.99) == "Low"
    assert risk_band(0) == "Low"


def test_border_risk_all_flags_high_with_bounded_jitter():
    rng = random.Random(3)
    for _ in range(50):
        score, band = border_risk({
            "watchlist_hit": True, "doc_anomaly": True, "bio_mismatch": True,
            "route_risk": 0.7, "goods_flag": True,
        }, rng)
        # 40 + 20 + 15 + 7 + 10 plus jitter in [0, 5)
        assert 92.0 <= score < 97.0
        assert band == "High"


def test_border_risk_clean_vehicle_is_low():
    rng = random.Random(5)
    for _ in range(50):
        score, band = border_risk({
            "watchlist_hit": False, "doc_anomaly": False, "bio_mismatch": False,
            "route_risk": 0.0, "goods_flag": False,
        }, rng)
        assert 0.0 <= score < 5.0
        assert band == "Low"


def test_customs_reference_example():
    res = customs_risk(_customs(aeo=2, hs_risk=0.7, origin_risk=0.6, history=0.1))
    assert res["score"] == 0.0
    assert res["band"] == "Low"
    assert res["channel"] == "YELLOW"
    assert res["reasons"] == ["High Risk Commodity", "High Risk Origin"]


def test_customs_high_band_is_red():
    res = customs_risk(_customs(pnr_hit=True, watchlist=True, doc_mismatch=True))
    assert res["score"] == pytest.approx(75.0)
    assert res["band"] == "High"
    assert res["channel"] == "RED"


def test_intelligence_hits_never_green():
    for pnr, watch, aeo in itertools.product((True, False), (True, False), (0, 1, 2)):
        if not (pnr or watch):
            continue
        res = customs_risk(_customs(pnr_hit=pnr, watchlist=watch, aeo=aeo))
        assert res["channel"] == "RED"


def test_customs_score_is_clamped():
    res = customs_risk(_customs(pnr_hit=True, watchlist=True, doc_mismatch=True,
                                hs_risk=1.0, origin_risk=1.0, underval_pct=100, history=1.0))
    assert res["score"] == 100.0
    res = customs_risk(_customs(aeo=2))
    assert res["score"] == 0.0
    assert res["channel"] == "GREEN"


def test_undervaluation_saturates_and_adds_reason():
    low = customs_risk(_customs(underval_pct=15))
    capped = customs_risk(_customs(underval_pct=30))
    over = customs_risk(_customs(underval_pct=60))
    assert low["score"] == pytest.approx(2.5)
    assert capped["score"] == pytest.approx(5.0)
    assert over["score"] == pytest.approx(5.0)
    assert "Potential Undervaluation" not in capped["reasons"]
    assert "Potential Undervaluation" in over["reasons"]


def test_doc_mismatch_alone_is_yellow():
    res = customs_risk(_customs(doc_mismatch=True))
    assert res["band"] == "Low"
    assert res["channel"] == "YELLOW"
    assert res["reasons"] == ["Doc Discrepancy"]
