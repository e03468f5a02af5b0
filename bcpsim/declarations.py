# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# declarations.py
# -----------------------------------------------------------------------------
# Purpose:
#   Read-side helpers over the declarations list (filter predicates, risk
#   ordering, band counts) and the write path for manually lodged
#   declarations: validation and construction through the customs engine.
#
# Design notes:
#   - Validation is a pydantic model; its errors are folded into a flat
#     {field: message} map so callers never see pydantic types.
#   - Manual declarations carry no intelligence signals: undervaluation 0,
#     no PNR / doc / watchlist hits, fixed trader history 0.1.
#
# Usage:
#   decl, errors = build_manual_declaration(form, now)
#   rows = filter_declarations(decls, DeclarationFilter(min_risk="Medium"))
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from .arrivals import HS_RISK, ORIGIN_RISK, compute_duties, compute_vat
from .entities import AEO_TIERS, HIGH, LOW, MEDIUM, RED, RISK_BANDS, Declaration
from .risk import customs_risk

# Reserved workflow states the consumer treats as "open"
ACTIVE_STATUSES = ("SUBMITTED", "INSPECTION")
_BAND_RANK = {LOW: 0, MEDIUM: 1, HIGH: 2}

# Fallback risk for codes / countries outside the reference tables
MANUAL_DEFAULT_HS_RISK = 0.2
MANUAL_DEFAULT_ORIGIN_RISK = 0.2
MANUAL_HISTORY = 0.1


@dataclass
class DeclarationFilter:
    trader: str = ""
    origin: str = ""
    destination: str = ""
    hs: str = ""
    goods: str = ""
    vehicle_type: str = "all"        # 'all' | 'car' | 'bus' | 'truck'
    min_risk: str = LOW
    red_only: bool = False
    sort_by_risk: bool = False
    active_only: bool = True


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def matches(decl: Declaration, flt: DeclarationFilter) -> bool:
    if flt.active_only and decl.status not in ACTIVE_STATUSES:
        return False
    if _BAND_RANK[decl.risk_band] < _BAND_RANK.get(flt.min_risk, 0):
        return False
    if flt.red_only and decl.channel != RED:
        return False
    if flt.vehicle_type != "all" and decl.vehicle_type != flt.vehicle_type:
        return False
    return (
        _contains(decl.trader_name, flt.trader)
        and _contains(decl.origin_country, flt.origin)
        and _contains(decl.destination_country, flt.destination)
        and flt.hs in decl.hs_code
        and _contains(decl.goods_desc, flt.goods)
    )


def filter_declarations(decls: Iterable[Declaration], flt: Optional[DeclarationFilter] = None) -> List[Declaration]:
    flt = flt or DeclarationFilter()
    rows = [d for d in decls if matches(d, flt)]
    if flt.sort_by_risk:
        # Stable: equal scores keep their submission order
        rows.sort(key=lambda d: d.risk_score, reverse=True)
    return rows


def risk_counts(decls: Iterable[Declaration]) -> Dict[str, int]:
    counts = {band: 0 for band in RISK_BANDS}
    for d in decls:
        counts[d.risk_band] += 1
    return counts


class ManualDeclarationIn(BaseModel):
    """Form payload for a manually lodged declaration."""

    mrn: str = Field(pattern=r"^KA\d{6}$")
    trader_name: str
    aeo: Literal["NONE", "S", "F"] = "NONE"
    flow: Literal["IMPORT", "EXPORT", "TRANSIT"] = "IMPORT"
    hs_code: str = Field(pattern=r"^\d{4,10}$")
    goods_desc: str = Field(min_length=3)
    origin_country: str = Field(min_length=1)
    destination_country: str = Field(min_length=1)
    value: float = Field(gt=0, le=100_000_000)
    weight: float = Field(gt=0, le=100_000)
    vehicle_plate: Optional[str] = None

    @field_validator("trader_name")
    @classmethod
    def _trader_long_enough(cls, v: str) -> str:
        if len(v.strip()) < 2:
            raise ValueError("trader name too short")
        return v


_FIELD_MESSAGES = {
    "mrn": "Format: KA + 6 digits",
    "trader_name": "Name too short (min 2)",
    "hs_code": "4-10 digits required",
    "origin_country": "Required",
    "destination_country": "Required",
    "goods_desc": "Description required",
    "flow": "Invalid Selection",
    "aeo": "Invalid Selection",
}
_LIMIT_MESSAGES = {"value": "Max limit 100M", "weight": "Max limit 100T"}


def _message(field: str, err: Mapping) -> str:
    if err["type"] == "missing" or err.get("input") in (None, ""):
        if field == "mrn":
            return "MRN is required"
        if field == "trader_name":
            return _FIELD_MESSAGES[field]
        return "Required"
    if field in _LIMIT_MESSAGES:
        if err["type"] == "greater_than":
            return "Must be > 0"
        if err["type"] == "less_than_equal":
            return _LIMIT_MESSAGES[field]
        return "Must be a number"
    return _FIELD_MESSAGES.get(field, err["msg"])


def validate_declaration(data: Mapping) -> Tuple[Optional[ManualDeclarationIn], Dict[str, str]]:
    """Return (payload, {}) when valid, else (None, {field: message})."""
    try:
        return ManualDeclarationIn.model_validate(dict(data)), {}
    except ValidationError as exc:
        errors: Dict[str, str] = {}
        for err in exc.errors():
            field = str(err["loc"][0]) if err["loc"] else "__root__"
            errors.setdefault(field, _message(field, err))
        return None, errors


def build_manual_declaration(data: Mapping, now: float, decl_id: Optional[str] = None
                             ) -> Tuple[Optional[Declaration], Dict[str, str]]:
    """
    Validate a form payload and, if it passes, score and price it.

    Returns (declaration, {}) on success and (None, errors) otherwise; nothing
    is created when validation fails.
    """
    form, errors = validate_declaration(data)
    if form is None:
        return None, errors

    hs_risk = HS_RISK.get(form.hs_code, MANUAL_DEFAULT_HS_RISK)
    features = {
        "aeo": AEO_TIERS[form.aeo],
        "hs_risk": hs_risk,
        "origin_risk": ORIGIN_RISK.get(form.origin_country, MANUAL_DEFAULT_ORIGIN_RISK),
        "underval_pct": 0.0,
        "pnr_hit": False,
        "doc_mismatch": False,
        "watchlist": False,
        "history": MANUAL_HISTORY,
    }
    res = customs_risk(features)
    duties = compute_duties(form.value, hs_risk)
    decl = Declaration(
        id=decl_id or f"D_MANUAL_{int(now * 1000)}",
        mrn=form.mrn,
        trader_name=form.trader_name,
        aeo=form.aeo,
        flow=form.flow,
        hs_code=form.hs_code,
        goods_desc=form.goods_desc,
        origin_country=form.origin_country,
        destination_country=form.destination_country,
        value=form.value,
        weight=form.weight,
        duties=duties,
        vat=compute_vat(form.value, duties),
        excise=0.0,
        risk_score=res["score"],
        risk_band=res["band"],
        risk_reasons=tuple(res["reasons"]),
        channel=res["channel"],
        arrival_time=now,
        vehicle_plate=form.vehicle_plate or None,
        vehicle_type="truck",
    )
    return decl, {}
