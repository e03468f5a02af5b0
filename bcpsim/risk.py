# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# risk.py
# -----------------------------------------------------------------------------
# Purpose:
#   The two scoring engines: border risk (per vehicle) and customs risk
#   (per declaration). Both return a clamped 0-100 score and its band; the
#   customs engine also returns a selectivity channel and reason list.
#
# Design notes:
#   - Pure functions of their feature dicts. The only randomness is the
#     5-point jitter in the border score, drawn from the injected RNG.
#   - Reasons are informational and do not feed the score.
#
# Usage:
#   from bcpsim.risk import border_risk, customs_risk
# -----------------------------------------------------------------------------

from __future__ import annotations
import random
from typing import Dict, List, Optional, Tuple

from .entities import GREEN, HIGH, MEDIUM, RED, YELLOW, risk_band

BORDER_WEIGHTS = {
    "watchlist": 40.0,
    "doc_anomaly": 20.0,
    "bio_mismatch": 15.0,
    "route_risk": 10.0,
    "goods_flag": 10.0,
    "random": 5.0,
}

CUSTOMS_WEIGHTS = {
    "pnr": 35.0,
    "watch": 25.0,
    "doc": 15.0,
    "hs": 10.0,
    "origin": 5.0,
    "underval": 5.0,
    "history": 5.0,
    "aeo": -10.0,
}

# Undervaluation saturates its weight at this percentage
UNDERVAL_CAP_PCT = 30.0


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


def border_risk(features: Dict, rng: Optional[random.Random] = None) -> Tuple[float, str]:
    """
    Score a vehicle at the border.

    Parameters
    ----------
    features : dict
        watchlist_hit, doc_anomaly, bio_mismatch, goods_flag (bool) and
        route_risk (float in [0, 0.7]).
    rng : random.Random, optional
        Source of the 0-5 point jitter; module RNG when omitted.

    Returns
    -------
    (score, band)
    """
    rng = rng or random
    w = BORDER_WEIGHTS
    score = (
        w["watchlist"] * bool(features.get("watchlist_hit"))
        + w["doc_anomaly"] * bool(features.get("doc_anomaly"))
        + w["bio_mismatch"] * bool(features.get("bio_mismatch"))
        + w["route_risk"] * float(features.get("route_risk", 0.0))
        + w["goods_flag"] * bool(features.get("goods_flag"))
        + w["random"] * rng.random()
    )
    score = _clamp(score)
    return score, risk_band(score)


def customs_reasons(features: Dict) -> List[str]:
    reasons: List[str] = []
    if features.get("pnr_hit"):
        reasons.append("PNR Intelligence Hit")
    if features.get("watchlist"):
        reasons.append("Trader Watchlist")
    if features.get("doc_mismatch"):
        reasons.append("Doc Discrepancy")
    if features.get("hs_risk", 0.0) > 0.5:
        reasons.append("High Risk Commodity")
    if features.get("origin_risk", 0.0) > 0.5:
        reasons.append("High Risk Origin")
    if features.get("underval_pct", 0.0) > UNDERVAL_CAP_PCT:
        reasons.append("Potential Undervaluation")
    return reasons


def select_channel(band: str, features: Dict) -> str:
    """First match wins: RED, then YELLOW, else GREEN."""
    if band == HIGH or features.get("pnr_hit") or features.get("watchlist"):
        return RED
    if band == MEDIUM or features.get("doc_mismatch") or features.get("hs_risk", 0.0) > 0.5:
        return YELLOW
    return GREEN


def customs_risk(features: Dict) -> Dict:
    """
    Score a customs declaration.

    `features` holds aeo (0=NONE, 1=S, 2=F), hs_risk, origin_risk, history in
    [0, 1], underval_pct in [0, 100] and the pnr_hit / doc_mismatch /
    watchlist flags. Returns a dict with score, band, channel and reasons.
    """
    w = CUSTOMS_WEIGHTS
    underval = min(1.0, max(0.0, float(features.get("underval_pct", 0.0)) / UNDERVAL_CAP_PCT))
    score = (
        w["pnr"] * bool(features.get("pnr_hit"))
        + w["watch"] * bool(features.get("watchlist"))
        + w["doc"] * bool(features.get("doc_mismatch"))
        + w["hs"] * float(features.get("hs_risk", 0.0))
        + w["origin"] * float(features.get("origin_risk", 0.0))
        + w["underval"] * underval
        + w["history"] * float(features.get("history", 0.0))
        + w["aeo"] * int(features.get("aeo", 0))
    )
    score = _clamp(score)
    band = risk_band(score)
    return {
        "score": score,
        "band": band,
        "channel": select_channel(band, features),
        "reasons": customs_reasons(features),
    }
