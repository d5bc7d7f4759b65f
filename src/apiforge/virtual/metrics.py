"""
Prometheus metrics for virtual-field computation.

Emits, labelled by ``field``:

- ``apiforge_virtual_computation_seconds{field}``: compute callback duration
- ``apiforge_virtual_computations_total{field, outcome}``
- ``apiforge_virtual_cache_lookups_total{field, result}``
- ``apiforge_virtual_slow_computations_total{field}``
"""

from __future__ import annotations

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

logger = logging.getLogger("apiforge.virtual")

_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class VirtualFieldMetrics:
    """
    Collectors registered on one Prometheus registry.

    A metric name can only be registered once per registry, so engines
    sharing the process-wide registry share :func:`default_metrics`.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.duration = Histogram(
            "apiforge_virtual_computation_seconds",
            "Duration of virtual-field compute callbacks",
            ["field"],
            buckets=_BUCKETS,
            registry=registry,
        )
        self.computations = Counter(
            "apiforge_virtual_computations_total",
            "Virtual-field compute callback invocations",
            ["field", "outcome"],
            registry=registry,
        )
        self.cache_lookups = Counter(
            "apiforge_virtual_cache_lookups_total",
            "Virtual-field cache lookups",
            ["field", "result"],
            registry=registry,
        )
        self.slow_computations = Counter(
            "apiforge_virtual_slow_computations_total",
            "Compute callbacks slower than the configured threshold",
            ["field"],
            registry=registry,
        )

    def observe_computation(self, field: str, seconds: float, *, outcome: str) -> None:
        try:
            self.duration.labels(field=field).observe(seconds)
            self.computations.labels(field=field, outcome=outcome).inc()
        except Exception:  # noqa: BLE001
            logger.debug("Failed to record computation metrics", exc_info=True)

    def observe_cache_lookup(self, field: str, *, hit: bool) -> None:
        try:
            self.cache_lookups.labels(field=field, result="hit" if hit else "miss").inc()
        except Exception:  # noqa: BLE001
            logger.debug("Failed to record cache lookup metric", exc_info=True)

    def observe_slow_computation(self, field: str) -> None:
        try:
            self.slow_computations.labels(field=field).inc()
        except Exception:  # noqa: BLE001
            logger.debug("Failed to record slow computation metric", exc_info=True)


_default: VirtualFieldMetrics | None = None


def default_metrics() -> VirtualFieldMetrics:
    """Collectors on the process-wide registry, created on first use."""
    global _default
    if _default is None:
        _default = VirtualFieldMetrics()
    return _default
