"""Prometheus metrics for connection and statement lifecycles."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Info,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all sqlite_handles metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Handle metrics
        self.connections_open = Gauge(
            "sqlite_connections_open",
            "Number of open database handles",
            registry=self._registry,
        )

        # Statement metrics
        self.statements_prepared_total = Counter(
            "sqlite_statements_prepared_total",
            "Total number of statements prepared",
            registry=self._registry,
        )

        self.statements_finalized_total = Counter(
            "sqlite_statements_finalized_total",
            "Total number of statements finalized",
            registry=self._registry,
        )

        self.statements_open = Gauge(
            "sqlite_statements_open",
            "Number of prepared statements not yet finalized",
            registry=self._registry,
        )

        # Execution metrics
        self.raw_exec_total = Counter(
            "sqlite_raw_exec_total",
            "Total raw executions",
            ["status"],  # success, error
            registry=self._registry,
        )

        # Backup metrics
        self.backups_total = Counter(
            "sqlite_backups_total",
            "Total online backup operations",
            ["direction", "status"],  # direction: load, save
            registry=self._registry,
        )

        self.info = Info(
            "sqlite_engine",
            "Loaded SQLite engine information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
