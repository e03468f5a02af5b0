# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# alerts.py
# -----------------------------------------------------------------------------
# Purpose:
#   Bounded, newest-first feed of Alert records raised during generation.
#
# Usage:
#   feed = AlertFeed(cap=50); feed.extend(new_alerts); feed.latest()
# -----------------------------------------------------------------------------

from __future__ import annotations
import itertools
from collections import deque
from typing import Deque, Iterable, List

from .entities import Alert

SEVERITIES = ("LOW", "MEDIUM", "HIGH")
ALERT_TYPES = ("SECURITY", "CUSTOMS", "SYSTEM")


class AlertFeed:
    def __init__(self, cap: int = 50):
        self.cap = max(1, int(cap))
        self._items: Deque[Alert] = deque(maxlen=self.cap)
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._items)

    def make(self, t: float, type_: str, title: str, message: str, severity: str) -> Alert:
        assert type_ in ALERT_TYPES and severity in SEVERITIES, (type_, severity)
        return Alert(f"ALT_{next(self._ids):06d}", t, type_, title, message, severity)

    def extend(self, alerts: Iterable[Alert]):
        """Publish one tick's batch ahead of older alerts, keeping batch order."""
        for a in reversed(list(alerts)):
            self._items.appendleft(a)

    def latest(self) -> List[Alert]:
        return list(self._items)
