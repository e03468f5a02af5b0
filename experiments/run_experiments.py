"""
experiments/run_experiments.py

Replication harness for the border-crossing model. Each scenario's overrides
are merged over config/baseline.yaml, the engine is run headless once per
seed, and the KPIs below are printed as mean +/- half-width confidence
intervals. One queue-depth/revenue PNG per scenario goes to
experiments/output/.
"""

from __future__ import annotations
import copy, logging, math, os, sys
from statistics import mean, stdev
from typing import Callable, Dict, List, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
from scipy.stats import t as student_t  # noqa: E402

try:
    # python -m experiments.run_experiments
    from .scenarios import SCENARIOS  # type: ignore
except ImportError:  # pragma: no cover
    # plain `python experiments/run_experiments.py`
    ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if ROOT not in sys.path:
        sys.path.insert(0, ROOT)
    from experiments.scenarios import SCENARIOS  # type: ignore

from bcpsim.config import apply_overrides, load_cfg
from bcpsim.simulation import run_for

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
OUTPUT_DIR = os.path.join(ROOT, "experiments", "output")

logger = logging.getLogger(__name__)

# (label, extractor, unit) printed for every scenario
KPIS: List[Tuple[str, Callable[[Dict], float], str]] = [
    ("Arrivals", lambda r: r["arrivals"], ""),
    ("Cleared", lambda r: r["cleared"], ""),
    ("High-risk detected", lambda r: r["high_risk"], ""),
    ("Declarations", lambda r: r["declarations"], ""),
    ("Alerts raised", lambda r: r["alerts_raised"], ""),
    ("Revenue (EUR)", lambda r: r["revenue_total"], ""),
    ("Avg wait border", lambda r: r["avg_wait_seconds"].get("border", 0.0), " s"),
    ("Avg wait customs", lambda r: r["avg_wait_seconds"].get("customs", 0.0), " s"),
    ("Max wait customs", lambda r: r["max_wait_seconds"].get("customs", 0.0), " s"),
]


def mean_ci(values: List[float], confidence_level: float) -> Tuple[float, float]:
    """Mean and Student-t half-width; the half-width is 0 below two samples."""
    if not values:
        return 0.0, 0.0
    mu = mean(values)
    n = len(values)
    if n < 2:
        return mu, 0.0
    alpha = 1.0 - min(max(confidence_level, 0.0), 0.999999)
    tcrit = float(student_t.ppf(1 - alpha / 2.0, n - 1))
    return mu, tcrit * stdev(values) / math.sqrt(n)


def average_dicts(results: List[Dict], key: str) -> Dict[str, float]:
    """Key-wise mean of a nested dict (throughput, utilisation) over replications."""
    acc: Dict[str, List[float]] = {}
    for res in results:
        for name, val in res.get(key, {}).items():
            acc.setdefault(name, []).append(float(val))
    return {name: sum(vals) / len(results) for name, vals in acc.items()}


def aggregate_trace(results: List[Dict], bin_seconds: float) -> List[Dict[str, float]]:
    """
    Average the per-tick queue-depth traces of all replications on a common
    grid of `bin_seconds`, so one curve per scenario can be plotted.
    """
    if not results or bin_seconds <= 0:
        return []
    buckets: Dict[int, List[Dict[str, float]]] = {}
    for res in results:
        for pt in res.get("time_series", []):
            buckets.setdefault(int(pt["time"] // bin_seconds), []).append(pt)
    return [
        {
            "time_minutes": (b + 1) * bin_seconds / 60.0,
            "waiting": mean(p["waiting"] for p in buckets[b]),
            "in_control": mean(p["in_control"] for p in buckets[b]),
            "revenue_total": mean(p["revenue_total"] for p in buckets[b]),
        }
        for b in sorted(buckets)
    ]


def plot_trace(trace: List[Dict[str, float]], scenario_name: str):
    """Write a PNG of queue load, active checks and cumulative revenue; returns its path."""
    if not trace:
        return None
    x = [pt["time_minutes"] for pt in trace]
    fig, ax = plt.subplots(figsize=(9, 5))
    ax.plot(x, [pt["waiting"] for pt in trace], label="Queue load", color="#fbbf24")
    ax.plot(x, [pt["in_control"] for pt in trace], label="Active checks", color="#60a5fa")
    ax.set_xlabel("Time (minutes)")
    ax.set_ylabel("Vehicles (selected crossing point)")
    ax.set_title(f"{scenario_name}: queue depth")
    ax.grid(True, linestyle="--", alpha=0.4)
    ax.legend(loc="upper left")
    rev = ax.twinx()
    rev.plot(x, [pt["revenue_total"] for pt in trace], label="Cumulative revenue", color="#6366f1", alpha=0.6)
    rev.set_ylabel("Revenue (EUR)")
    os.makedirs(OUTPUT_DIR, exist_ok=True)
    out_path = os.path.join(OUTPUT_DIR, f"{scenario_name.lower().replace(' ', '_')}_queue_depth.png")
    fig.tight_layout()
    fig.savefig(out_path, dpi=160)
    plt.close(fig)
    return out_path


def replicate(cfg: Dict, scenario: Dict, replications: int, horizon: float) -> Tuple[List[Dict], int]:
    """Run `replications` independent seeds of one scenario; returns (results, first seed)."""
    base = apply_overrides(cfg, scenario["overrides"])
    base.setdefault("sim", {})["keep_trace"] = True
    first_seed = int(base["sim"].get("seed", 0))
    results = []
    for rep in range(replications):
        run_cfg = copy.deepcopy(base)
        run_cfg["sim"]["seed"] = first_seed + rep
        results.append(run_for(run_cfg, horizon))
        logger.info("%s: replication %d/%d done", scenario["name"], rep + 1, replications)
    return results, first_seed


def main():
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    cfg = load_cfg()
    exp = cfg.get("experiments", {})
    replications = max(1, int(exp.get("replications", 1)))
    confidence = float(exp.get("confidence_level", 0.95))
    horizon = float(exp.get("horizon_seconds", cfg.get("sim", {}).get("horizon_seconds", 3600)))

    for sc in SCENARIOS:
        results, seed = replicate(cfg, sc, replications, horizon)
        print(f"Scenario: {sc['name']} (replications={replications}, {confidence * 100.0:.1f}% CI, "
              f"seeds {seed}-{seed + replications - 1}, horizon {horizon / 60.0:.0f} min)")
        for label, extract, unit in KPIS:
            mu, half = mean_ci([float(extract(r)) for r in results], confidence)
            print(f"  {label}: {mu:,.1f} ± {half:,.1f}{unit}")
        throughput = {k: round(v, 1) for k, v in average_dicts(results, "throughput").items()}
        utilization = {k: round(v * 100.0, 1) for k, v in average_dicts(results, "stage_utilization").items()}
        print(f"  Throughput (mean vehicles): {throughput}")
        print(f"  Stage utilization (mean % busy): {utilization}")
        plot_path = plot_trace(aggregate_trace(results, 60.0), sc["name"])
        if plot_path:
            print(f"  Queue-depth plot saved to: {plot_path}")
        print("-")


if __name__ == "__main__":
    main()
