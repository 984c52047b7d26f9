"""
Monitoring package.

Prometheus metrics for the engines.
"""

from mmbot.monitoring.metrics_rich import EngineMetrics, start_metrics_server

__all__ = [
    "EngineMetrics",
    "start_metrics_server",
]
