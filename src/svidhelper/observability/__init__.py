"""
Observability components for the SVID helper.

Provides Prometheus metrics for SVID rotation.
"""

from .metrics import HelperMetrics, start_metrics_server

__all__ = [
    "HelperMetrics",
    "start_metrics_server",
]
