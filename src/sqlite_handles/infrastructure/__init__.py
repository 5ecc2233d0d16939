"""Infrastructure layer - cross-cutting concerns."""

from __future__ import annotations

from sqlite_handles.infrastructure.config import Config, get_config
from sqlite_handles.infrastructure.logging import setup_logging, get_logger
from sqlite_handles.infrastructure.metrics import MetricsRegistry, get_metrics
from sqlite_handles.infrastructure.tracing import setup_tracing, get_tracer, trace_span


def setup_observability(config: Config | None = None) -> None:
    """Configure logging and tracing from a Config (defaults to the global one)."""
    config = config or get_config()
    observability = config.observability
    setup_logging(level=observability.log_level, log_format=observability.log_format)
    if observability.otel_endpoint:
        setup_tracing(
            service_name=observability.otel_service_name,
            otlp_endpoint=observability.otel_endpoint,
        )


__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "MetricsRegistry",
    "get_metrics",
    "setup_tracing",
    "get_tracer",
    "trace_span",
    "setup_observability",
]
