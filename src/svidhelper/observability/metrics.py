# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""Prometheus metrics for the SVID helper.

Provides ``HelperMetrics``, a facade over rotation and feed counters that
refresh mode can expose for scraping. Each instance owns its registry, so
several helpers (or tests) never collide on metric names.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge
from prometheus_client import start_http_server as _start_http_server

logger = logging.getLogger(__name__)

ROTATION_RESULTS = ("written", "not_found", "failed")
FEED_ERROR_KINDS = ("cancelled", "error")


class HelperMetrics:
    """Prometheus metrics for SVID rotation.

    Metrics exposed:

    * ``svid_helper_rotations_total``: counter of handled updates,
      labelled by ``result`` (written, not_found, failed)
    * ``svid_helper_feed_errors_total``: counter of stream errors,
      labelled by ``kind`` (cancelled, error)
    * ``svid_helper_last_write_timestamp_seconds``: gauge set on every
      successful write

    Args:
        prefix: Metric name prefix. Defaults to ``svid_helper``.
        registry: Registry to register into. A fresh one is created if omitted.
    """

    def __init__(
        self,
        prefix: str = "svid_helper",
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.registry = registry or CollectorRegistry()
        self.rotations_total = Counter(
            f"{prefix}_rotations_total",
            "SVID updates handled, by result",
            ["result"],
            registry=self.registry,
        )
        self.feed_errors_total = Counter(
            f"{prefix}_feed_errors_total",
            "Errors reported by the Workload API stream, by kind",
            ["kind"],
            registry=self.registry,
        )
        self.last_write_timestamp = Gauge(
            f"{prefix}_last_write_timestamp_seconds",
            "Unix time of the last successful SVID write",
            registry=self.registry,
        )

    def record_rotation(self, result: str) -> None:
        """Count a handled update.

        Args:
            result: One of ``written``, ``not_found`` or ``failed``.
        """
        if result not in ROTATION_RESULTS:
            raise ValueError(f"Unknown rotation result: {result}")
        self.rotations_total.labels(result=result).inc()
        if result == "written":
            self.last_write_timestamp.set(time.time())

    def record_feed_error(self, cancelled: bool) -> None:
        self.feed_errors_total.labels(kind="cancelled" if cancelled else "error").inc()

    def value(self, name: str, labels: Optional[dict[str, str]] = None) -> float:
        """Return the current sample value for *name*, or 0.0 if unset."""
        sample = self.registry.get_sample_value(name, labels or {})
        return sample if sample is not None else 0.0


def start_metrics_server(metrics: HelperMetrics, port: int, addr: str = "0.0.0.0") -> None:
    """Serve *metrics* over HTTP on *port* from a daemon thread."""
    _start_http_server(port, addr=addr, registry=metrics.registry)
    logger.info("Prometheus metrics available on %s:%d", addr, port)


__all__ = ["HelperMetrics", "start_metrics_server"]
