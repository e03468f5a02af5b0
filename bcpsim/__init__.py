"""
bcpsim package initializer.

This package contains the border-crossing simulation engine: topology,
risk engines, entity generators, single-server checkpoint stages, the
per-lane router, metric aggregation, and the situation-report client.
"""
__all__ = [
    "entities", "topology", "risk", "policies", "arrivals", "queues",
    "network", "metrics", "alerts", "declarations", "report", "config",
    "simulation",
]
