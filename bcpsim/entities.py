# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# entities.py
# -----------------------------------------------------------------------------
# Purpose:
#   Entity definitions for the border-crossing simulation: CrossingPoint,
#   Lane, Vehicle, Declaration, Alert. These objects carry the attributes
#   needed for scheduling, risk triage, and aggregation.
#
# Design notes:
#   - Vehicles are the jobs that flow through each lane's two stages
#     (border -> customs). Their status follows a strict linear lifecycle.
#   - Declarations are advisory records linked to a vehicle by id/plate;
#     the core never mutates them after creation.
#   - Times are simulated seconds (float) from the engine clock.
#
# Usage:
#   from bcpsim.entities import Vehicle, Declaration, Lane
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

# Vehicle lifecycle, in order. A vehicle only ever moves one step forward.
WAITING_BORDER = "waiting_border"
IN_BORDER = "in_border"
WAITING_CUSTOMS = "waiting_customs"
IN_CUSTOMS = "in_customs"
CLEARED = "cleared"
LIFECYCLE = (WAITING_BORDER, IN_BORDER, WAITING_CUSTOMS, IN_CUSTOMS, CLEARED)

STAGES = ("border", "customs")
VEHICLE_CLASSES = ("car", "bus", "truck")
DIRECTIONS = ("entry", "exit")

LOW, MEDIUM, HIGH = "Low", "Medium", "High"
RISK_BANDS = (LOW, MEDIUM, HIGH)

GREEN, YELLOW, RED = "GREEN", "YELLOW", "RED"
DECLARATION_STATUSES = ("SUBMITTED", "RELEASED", "INSPECTION", "HELD", "SEIZED")
FLOWS = ("IMPORT", "EXPORT", "TRANSIT")
AEO_TIERS = {"NONE": 0, "S": 1, "F": 2}


def risk_band(score: float) -> str:
    """Map a 0-100 risk score onto Low / Medium / High (thresholds 30 and 70)."""
    if score >= 70:
        return HIGH
    if score >= 30:
        return MEDIUM
    return LOW


@dataclass(frozen=True)
class CrossingPoint:
    id: str
    name: str
    country_a: str                   # home jurisdiction
    country_b: str                   # neighbouring jurisdiction


@dataclass
class Lane:
    id: str
    bcp_id: str
    name: str
    direction: str                   # 'entry' | 'exit'
    vehicle_type: str                # 'car' | 'bus' | 'truck'
    border_service_time: float
    customs_service_time: float
    is_open: bool = True

    def base_service_time(self, stage: str) -> float:
        return self.border_service_time if stage == "border" else self.customs_service_time


@dataclass
class BiometricDetail:
    status: str                      # 'Verified' | 'Pending' | 'Failed'
    confidence: int                  # 0-100


@dataclass
class Vehicle:
    id: str
    bcp_id: str
    lane_id: str
    plate: str
    vehicle_type: str
    sub_type: str
    goods_type: str
    company_name: str
    origin: str
    destination: str
    watchlist_hit: bool
    doc_anomaly: bool
    bio_mismatch: bool
    route_risk: float
    risk: str
    risk_score: float
    arrival_time: float
    doc_status: str = "Ready"
    biometrics: Dict[str, BiometricDetail] = field(default_factory=dict)
    status: str = WAITING_BORDER
    # Stage bookkeeping: start times and the duration sampled on admission
    stage_start: Dict[str, float] = field(default_factory=dict)
    assigned_duration: Dict[str, float] = field(default_factory=dict)
    customs_done_time: Optional[float] = None
    queue_entry_times: Dict[str, float] = field(default_factory=dict)   # per-stage queue join timestamps

    @property
    def start_border_time(self) -> Optional[float]:
        return self.stage_start.get("border")

    @property
    def start_customs_time(self) -> Optional[float]:
        return self.stage_start.get("customs")

    @property
    def assigned_border_duration(self) -> Optional[float]:
        return self.assigned_duration.get("border")

    @property
    def assigned_customs_duration(self) -> Optional[float]:
        return self.assigned_duration.get("customs")

    def advance(self, new_status: str):
        """Move one step along the lifecycle; anything else is a bug."""
        idx = LIFECYCLE.index(self.status)
        assert idx + 1 < len(LIFECYCLE) and LIFECYCLE[idx + 1] == new_status, (
            f"illegal transition {self.status} -> {new_status} for {self.id}"
        )
        self.status = new_status

    def is_waiting(self) -> bool:
        return self.status in (WAITING_BORDER, WAITING_CUSTOMS)

    def in_control(self) -> bool:
        return self.status in (IN_BORDER, IN_CUSTOMS)


@dataclass(frozen=True)
class Declaration:
    id: str
    mrn: str
    trader_name: str
    aeo: str                         # 'NONE' | 'S' | 'F'
    flow: str                        # 'IMPORT' | 'EXPORT' | 'TRANSIT'
    hs_code: str
    goods_desc: str
    origin_country: str
    destination_country: str
    value: float
    weight: float                    # kg
    duties: float
    vat: float
    excise: float
    risk_score: float
    risk_band: str
    risk_reasons: Tuple[str, ...]
    channel: str                     # 'GREEN' | 'YELLOW' | 'RED'
    arrival_time: float
    status: str = "SUBMITTED"
    linked_vehicle_id: Optional[str] = None
    vehicle_plate: Optional[str] = None
    vehicle_type: Optional[str] = None

    def __post_init__(self):
        assert self.status in DECLARATION_STATUSES, self.status
        object.__setattr__(self, "risk_reasons", tuple(self.risk_reasons))


@dataclass(frozen=True)
class Alert:
    id: str
    timestamp: float
    type: str                        # 'SECURITY' | 'CUSTOMS' | 'SYSTEM'
    title: str
    message: str
    severity: str                    # 'LOW' | 'MEDIUM' | 'HIGH'
