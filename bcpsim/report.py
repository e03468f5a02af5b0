# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# report.py
# -----------------------------------------------------------------------------
# Purpose:
#   Situation-report collaborator: turn a crossing-point snapshot and its
#   high-risk vehicles into a prompt, send it to a generative-text HTTP
#   endpoint, and return the markdown text.
#
# Design notes:
#   - Runs off the simulation timeline; callers pass an already-taken
#     snapshot, never the live engine.
#   - Every failure (missing credential, transport, bad payload) degrades to
#     a fixed placeholder string. Nothing here raises into the caller.
#
# Usage:
#   text = generate_situation_report(bcp, snap, high_risk, cfg)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging, os
from typing import Dict, List, Optional

import requests

from .entities import CrossingPoint, Vehicle

logger = logging.getLogger(__name__)

MISSING_KEY_TEXT = "API Key is missing. Please check your configuration to enable AI reports."
SERVICE_ERROR_TEXT = "Failed to generate AI report due to a service error."
EMPTY_TEXT = "No analysis available."

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_MODEL = "gemini-2.5-flash"


def build_prompt(bcp: CrossingPoint, snapshot: Dict, high_risk: List[Vehicle]) -> str:
    risk = snapshot.get("risk_counts", {})
    sample = "\n".join(
        f"- [{v.plate}] Type: {v.vehicle_type}, Goods: {v.goods_type}" for v in high_risk
    )
    return f"""
You are a Senior Operational Analyst for Border Control.
Analyze the current situational data for {bcp.name} ({bcp.country_a} <-> {bcp.country_b}).

Current Metrics:
- Vehicles Waiting: {len(snapshot.get("waiting", []))}
- Vehicles Under Control: {len(snapshot.get("in_control", []))}
- Cleared Recently: {len(snapshot.get("cleared", []))}
- Average Waiting Time: {snapshot.get("avg_wait_sec", 0.0):.1f} seconds
- Risk Profile: Low: {risk.get("Low", 0)}, Medium: {risk.get("Medium", 0)}, High: {risk.get("High", 0)}

High Risk Vehicles Detected (Sample):
{sample}

Please provide a concise, professional Situation Report (SITREP) in markdown format.
1. Summarize traffic flow efficiency.
2. Highlight specific security concerns based on the risk profile.
3. Recommend operational adjustments (e.g., open more lanes, intensify checks).
Keep it brief and actionable.
"""


def _extract_text(body: Dict) -> str:
    parts = body["candidates"][0]["content"]["parts"]
    return "".join(p.get("text", "") for p in parts)


def generate_situation_report(
    bcp: CrossingPoint,
    snapshot: Dict,
    high_risk: List[Vehicle],
    cfg: Optional[dict] = None,
    session: Optional[requests.Session] = None,
) -> str:
    rcfg = (cfg or {}).get("report", {})
    api_key = os.getenv(rcfg.get("api_key_env", "API_KEY"), "")
    if not api_key:
        return MISSING_KEY_TEXT

    url = rcfg.get("endpoint", DEFAULT_ENDPOINT).format(model=rcfg.get("model", DEFAULT_MODEL))
    payload = {"contents": [{"parts": [{"text": build_prompt(bcp, snapshot, high_risk)}]}]}
    http = session or requests
    try:
        response = http.post(
            url,
            params={"key": api_key},
            json=payload,
            timeout=float(rcfg.get("timeout_seconds", 20)),
        )
        response.raise_for_status()
        text = _extract_text(response.json())
    except requests.RequestException as exc:
        logger.warning("Situation report request failed for %s: %s", bcp.id, exc)
        return SERVICE_ERROR_TEXT
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
        logger.warning("Situation report response for %s was malformed: %s", bcp.id, exc)
        return SERVICE_ERROR_TEXT
    return text or EMPTY_TEXT
