# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# config.py
# -----------------------------------------------------------------------------
# Purpose:
#   Load the YAML configuration and merge scenario overrides on top of it.
#
# Usage:
#   from bcpsim.config import load_cfg, apply_overrides
#   cfg = apply_overrides(load_cfg(), {"arrivals": {"lane_prob": 0.3}})
# -----------------------------------------------------------------------------

from __future__ import annotations
import copy, os
from typing import Dict, Optional

import yaml

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_CFG_PATH = os.path.join(ROOT, "config", "baseline.yaml")


def load_cfg(path: Optional[str] = None) -> Dict:
    with open(path or DEFAULT_CFG_PATH, "r") as f:
        return yaml.safe_load(f)


def apply_overrides(cfg: Dict, overrides: Dict) -> Dict:
    """Apply scenario overrides (recursive merge) on top of the base config."""
    new = copy.deepcopy(cfg)

    def _merge(dst: Dict, src: Dict):
        for key, val in src.items():
            if isinstance(val, dict) and isinstance(dst.get(key), dict):
                _merge(dst[key], val)
            else:
                dst[key] = copy.deepcopy(val)

    _merge(new, overrides)
    return new
