# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# policies.py
# -----------------------------------------------------------------------------
# Purpose:
#   Operational policies for the checkpoints: how long an admitted vehicle
#   occupies a stage given its risk band and the backlog behind it.
#
# Design notes:
#   - Keep pure functions to ease testing (policy -> decision).
#   - Backlog discounts never apply to High-risk units.
#
# Usage:
#   from bcpsim.policies import service_multiplier, dynamic_service_time
# -----------------------------------------------------------------------------

from __future__ import annotations
import random
from typing import Optional

from .entities import HIGH, MEDIUM

RISK_MULTIPLIER = {HIGH: 2.5, MEDIUM: 1.5}
MIN_SERVICE_SECONDS = 2.0
JITTER = (0.85, 1.15)


def service_multiplier(risk: str, queue_length: int) -> float:
    mult = 1.0 * RISK_MULTIPLIER.get(risk, 1.0)
    if risk != HIGH:
        if queue_length > 8:
            mult *= 0.6
        elif queue_length > 4:
            mult *= 0.8
    return mult


def dynamic_service_time(base: float, risk: str, queue_length: int,
                         rng: Optional[random.Random] = None) -> float:
    """
    Sample the occupancy of one stage.

    `queue_length` is the number of OTHER units waiting for the same stage
    of the same lane at admission time.
    """
    rng = rng or random
    jitter = rng.uniform(*JITTER)
    return max(MIN_SERVICE_SECONDS, base * service_multiplier(risk, queue_length) * jitter)
