# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# arrivals.py
# -----------------------------------------------------------------------------
# Purpose:
#   Generate exogenous arrivals: vehicles on open lanes (Bernoulli per lane
#   per tick), the declarations that travel with them, stand-alone
#   pre-lodged declarations, and the alerts raised along the way.
#
# Design notes:
#   - Feature draws feed the risk engines in risk.py; lookup tables below
#     stand in for reference data (traders, HS risk, origin risk).
#   - Every draw goes through the injected random.Random so a seeded run is
#     reproducible end to end.
#
# Usage:
#   proc = ArrivalProcess(cfg, lanes, bcps, alerts, rng)
#   vehicles, declarations, new_alerts = proc.on_tick(now)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging, random, string
from typing import Dict, List, Optional, Tuple

from .alerts import AlertFeed
from .entities import (
    AEO_TIERS, FLOWS, HIGH, MEDIUM, Alert, BiometricDetail, CrossingPoint,
    Declaration, Lane, Vehicle,
)
from .risk import border_risk, customs_risk

logger = logging.getLogger(__name__)

GOODS_TYPES = [
    "General cargo", "Electronics", "Food products", "Textiles",
    "Pharmaceuticals", "Chemicals", "Agricultural goods", "Machinery Parts",
    "Construction Mat.",
]
TRUCK_SUBTYPES = [
    "Tautliner", "Refrigerated (Reefer)", "Oil Tanker", "Livestock Carrier",
    "Flatbed", "Container Carrier", "Box Truck", "Dump Truck",
]
CAR_SUBTYPES = ["Sedan", "SUV", "Estate", "Hatchback", "Minivan", "Luxury Saloon"]
BUS_SUBTYPES = ["Tour Coach", "Intercity Bus", "Minibus", "Shuttle"]
PLATE_PREFIXES = ["KA", "NB", "ZT", "XY", "QR"]
# Third countries used for transit legs
ROUTING_COUNTRIES = ["Germany", "France", "Poland", "Turkey", "Ukraine", "Italy", "Austria", "Romania"]

TRADERS = [
    {"eori": "KA0001", "name": "Alpha Trade Corp", "aeo": "F", "history": 0.0},
    {"eori": "KA0002", "name": "Borderline Logistics", "aeo": "S", "history": 0.1},
    {"eori": "KA0003", "name": "Nistru Demo Cargo", "aeo": "NONE", "history": 0.4},
    {"eori": "KA0004", "name": "Delta Freight Union", "aeo": "S", "history": 0.2},
    {"eori": "KA0005", "name": "Echo Supplies Ltd", "aeo": "NONE", "history": 0.1},
    {"eori": "KA0006", "name": "Foxtrot Imports", "aeo": "F", "history": 0.05},
]
HS_RISK = {
    "2203": 0.2,  # beverages
    "2402": 0.7,  # tobacco
    "2710": 0.6,  # fuels
    "3004": 0.4,  # pharma
    "6403": 0.3,  # footwear
    "8517": 0.5,  # phones
    "8703": 0.2,  # vehicles
    "0102": 0.1,  # live animals
}
ORIGIN_RISK = {"KA": 0.3, "NB": 0.4, "ZT": 0.6, "XY": 0.2, "QR": 0.5}
# Tobacco and fuels: PNR intelligence applies and excise is due
SENSITIVE_HS = ("2402", "2710")
EXCISE_RATE = 0.12
VAT_RATE = 0.19

BORDER_ISSUES = [
    "False Passport: MRZ Checksum Failure",
    "False Identity Card: UV Hologram missing",
    "Counterfeit Driving License detected",
    "Imposter detected: Facial biometrics mismatch",
    "Forged Visa / Residence Permit",
]
CUSTOMS_ISSUES = [
    ("Smuggling / Excise Goods", "Concealed Cigarettes (>50 cartons) found in chassis."),
    ("Smuggling / Excise Goods", "Undeclared Alcohol (>50L) found in luggage."),
    ("Cash Control", "Undeclared Cash > 10,000 EUR detected by K9 unit."),
    ("Commercial Fraud", "Undeclared commercial electronics (phones/laptops)."),
]

_ID_ALPHABET = string.ascii_uppercase + string.digits


def _token(rng: random.Random, k: int = 8) -> str:
    return "".join(rng.choices(_ID_ALPHABET, k=k))


def random_plate(rng: random.Random) -> str:
    letters = string.ascii_uppercase
    return f"{rng.choice(PLATE_PREFIXES)}-{rng.randrange(10, 100)}-{rng.choice(letters)}{rng.choice(letters)}"


def compute_duties(value: float, hs_risk: float) -> float:
    return round(value * (0.03 + 0.07 * hs_risk), 2)


def compute_vat(value: float, duties: float) -> float:
    return round((value + duties) * VAT_RATE, 2)


def compute_excise(value: float, hs_code: str) -> float:
    return round(value * EXCISE_RATE, 2) if hs_code in SENSITIVE_HS else 0.0


def _biometric(rng: random.Random, fail_prob: float) -> BiometricDetail:
    r = rng.random()
    if r < fail_prob:
        return BiometricDetail("Failed", rng.randrange(10, 40))
    if r < fail_prob + 0.05:
        return BiometricDetail("Pending", 0)
    return BiometricDetail("Verified", rng.randrange(85, 100))


def generate_vehicle(lane: Lane, bcp: CrossingPoint, now: float,
                     rng: Optional[random.Random] = None) -> Vehicle:
    """
    Draw a new vehicle for `lane` at `bcp`, scored by the border risk engine.

    Watchlist and biometric failure odds rise on high-risk routes
    (route_risk > 0.5); the goods flag is only possible on truck lanes.
    """
    rng = rng or random.Random()
    route_risk = round(rng.random() * 0.7, 2)
    risky_route = route_risk > 0.5
    watchlist_hit = rng.random() < (0.10 if risky_route else 0.03)
    doc_anomaly = rng.random() < 0.08
    goods_flag = lane.vehicle_type == "truck" and rng.random() < 0.15

    fail_prob = 0.15 if risky_route else 0.02
    bio = {m: _biometric(rng, fail_prob) for m in ("face", "iris", "fingerprints")}
    bio_mismatch = any(d.status == "Failed" for d in bio.values())

    score, band = border_risk({
        "watchlist_hit": watchlist_hit,
        "doc_anomaly": doc_anomaly,
        "bio_mismatch": bio_mismatch,
        "route_risk": route_risk,
        "goods_flag": goods_flag,
    }, rng)

    company = "Private"
    if lane.vehicle_type == "truck":
        sub_type = rng.choice(TRUCK_SUBTYPES)
        company = rng.choice(TRADERS)["name"]
        goods = rng.choice(GOODS_TYPES)
    elif lane.vehicle_type == "bus":
        sub_type = rng.choice(BUS_SUBTYPES)
        goods = "Passengers & Luggage"
    else:
        sub_type = rng.choice(CAR_SUBTYPES)
        goods = "Personal Effects"

    # Entry: neighbour -> home; exit: home -> neighbour. The outward leg may
    # be a transit country instead.
    is_entry = lane.direction == "entry"
    origin, destination = (bcp.country_b, bcp.country_a) if is_entry else (bcp.country_a, bcp.country_b)
    far_away = rng.choice(ROUTING_COUNTRIES)
    if rng.random() < 0.3:
        if is_entry:
            origin = far_away
        else:
            destination = far_away

    doc_status = rng.choice(["Ready", "Scanning", "Error"]) if rng.random() < 0.2 else "Ready"

    return Vehicle(
        id=f"V_{_token(rng)}",
        bcp_id=bcp.id,
        lane_id=lane.id,
        plate=random_plate(rng),
        vehicle_type=lane.vehicle_type,
        sub_type=sub_type,
        goods_type=goods,
        company_name=company,
        origin=origin,
        destination=destination,
        watchlist_hit=watchlist_hit,
        doc_anomaly=doc_anomaly,
        bio_mismatch=bio_mismatch,
        route_risk=route_risk,
        risk=band,
        risk_score=score,
        arrival_time=now,
        doc_status=doc_status,
        biometrics=bio,
    )


def generate_declaration(now: float, rng: Optional[random.Random] = None,
                         linked: Optional[Vehicle] = None) -> Declaration:
    """
    Draw a customs declaration, optionally tied to a vehicle.

    Truck-linked declarations reuse the hauler as trader; car/bus-linked ones
    are filed by a private individual.
    """
    rng = rng or random.Random()
    trader = None
    if linked is not None and linked.vehicle_type == "truck":
        trader = next((t for t in TRADERS if t["name"] == linked.company_name), None)
    if trader is None:
        trader = rng.choice(TRADERS)

    hs_code = rng.choice(list(HS_RISK))
    value = round(rng.uniform(2000, 80000), 2)
    origin = linked.origin if linked else rng.choice(list(ORIGIN_RISK))
    destination = linked.destination if linked else rng.choice(ROUTING_COUNTRIES)
    weight = rng.randrange(1000, 24000)

    hs_risk = HS_RISK[hs_code]
    features = {
        "aeo": AEO_TIERS[trader["aeo"]],
        "hs_risk": hs_risk,
        "origin_risk": ORIGIN_RISK.get(origin, 0.3),
        "underval_pct": rng.random() * 60,
        "pnr_hit": hs_code in SENSITIVE_HS and rng.random() < 0.2,
        "doc_mismatch": rng.random() < 0.1,
        "watchlist": rng.random() < 0.05,
        "history": trader["history"],
    }
    res = customs_risk(features)

    duties = compute_duties(value, hs_risk)
    vat = compute_vat(value, duties)
    excise = compute_excise(value, hs_code)

    vehicle_type = linked.vehicle_type if linked else rng.choice(["truck", "truck", "truck", "car", "bus"])
    trader_name = "Individual / Private" if linked and linked.vehicle_type in ("car", "bus") else trader["name"]

    return Declaration(
        id=f"D_{_token(rng, 6)}",
        mrn=f"KA{rng.randrange(100000, 1000000)}",
        trader_name=trader_name,
        aeo=trader["aeo"],
        flow=rng.choice(FLOWS),
        hs_code=hs_code,
        goods_desc=linked.goods_type if linked else f"{rng.choice(GOODS_TYPES)} (HS {hs_code})",
        origin_country=origin,
        destination_country=destination,
        value=value,
        weight=weight,
        duties=duties,
        vat=vat,
        excise=excise,
        risk_score=res["score"],
        risk_band=res["band"],
        risk_reasons=tuple(res["reasons"]),
        channel=res["channel"],
        arrival_time=now,
        linked_vehicle_id=linked.id if linked else None,
        vehicle_plate=linked.plate if linked else None,
        vehicle_type=vehicle_type,
    )


class ArrivalProcess:
    """Per-tick generation step over every open lane of every crossing point."""

    def __init__(self, cfg: dict, lanes: Dict[str, Lane], bcps: Dict[str, CrossingPoint],
                 alerts: AlertFeed, rng: random.Random):
        arr = cfg.get("arrivals", {})
        self.lane_prob = float(arr.get("lane_prob", 0.15))
        self.truck_decl_prob = float(arr.get("truck_declaration_prob", 0.85))
        self.other_decl_prob = float(arr.get("other_declaration_prob", 0.10))
        self.smuggling_prob = float(arr.get("smuggling_alert_prob", 0.40))
        self.standalone_prob = float(arr.get("standalone_declaration_prob", 0.05))
        self.lanes = lanes
        self.bcps = bcps
        self.alerts = alerts
        self.rng = rng

    def on_tick(self, now: float) -> Tuple[List[Vehicle], List[Declaration], List[Alert]]:
        rng = self.rng
        vehicles: List[Vehicle] = []
        decls: List[Declaration] = []
        new_alerts: List[Alert] = []

        for lane in self.lanes.values():
            if not lane.is_open or rng.random() >= self.lane_prob:
                continue
            v = generate_vehicle(lane, self.bcps[lane.bcp_id], now, rng)
            vehicles.append(v)
            alert = self._security_alert(v, lane, now)
            if alert is not None:
                new_alerts.append(alert)

            if lane.vehicle_type == "truck":
                if rng.random() < self.truck_decl_prob:
                    decls.append(generate_declaration(now, rng, v))
            else:
                # Personal declarations (tax refund, cash, high-value goods)
                if rng.random() < self.other_decl_prob:
                    decls.append(generate_declaration(now, rng, v))
                if v.risk in (HIGH, MEDIUM) and rng.random() < self.smuggling_prob:
                    title, msg = rng.choice(CUSTOMS_ISSUES)
                    new_alerts.append(self.alerts.make(
                        now, "CUSTOMS", title, f"Vehicle {v.plate}: {msg}",
                        "HIGH" if v.risk == HIGH else "MEDIUM",
                    ))

        # Pre-lodged declaration whose vehicle has not arrived yet
        if rng.random() < self.standalone_prob:
            d = generate_declaration(now, rng)
            decls.append(d)
            if d.risk_band == HIGH:
                new_alerts.append(self.alerts.make(
                    now, "CUSTOMS", "High Risk Cargo",
                    f"MRN {d.mrn}: {', '.join(d.risk_reasons)}", "MEDIUM",
                ))

        if vehicles or decls:
            logger.debug("t=%.1f arrivals=%d declarations=%d alerts=%d",
                         now, len(vehicles), len(decls), len(new_alerts))
        return vehicles, decls, new_alerts

    def _security_alert(self, v: Vehicle, lane: Lane, now: float) -> Optional[Alert]:
        if v.doc_anomaly:
            site = lane.bcp_id.split("_", 1)[-1]
            return self.alerts.make(
                now, "SECURITY", "Document Verification Alert",
                f"Vehicle {v.plate} ({site}): {self.rng.choice(BORDER_ISSUES)}", "HIGH",
            )
        if v.watchlist_hit:
            return self.alerts.make(
                now, "SECURITY", "Intelligence Hit",
                f"Vehicle {v.plate}: Person/Vehicle flagged in INTERPOL/Europol DB.", "HIGH",
            )
        return None
