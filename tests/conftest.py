"""Pytest configuration and fixtures for sqlite_handles tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from prometheus_client import CollectorRegistry

from sqlite_handles.adapters.outbound import NativeLibrary, load_library
from sqlite_handles.application import Connection
from sqlite_handles.infrastructure.config import Config, EngineConfig
from sqlite_handles.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration with a short busy timeout."""
    return Config(engine=EngineConfig(busy_timeout_ms=100))


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture(scope="session")
def library() -> NativeLibrary:
    """Provide the loaded engine library."""
    return load_library()


@pytest.fixture
def connection(
    test_config: Config, metrics_registry: MetricsRegistry
) -> Generator[Connection, None, None]:
    """Provide a connection holding a fresh in-memory store."""
    conn = Connection(config=test_config, metrics=metrics_registry)
    conn.create()
    yield conn
    conn.close()


@pytest.fixture
def people(connection: Connection) -> Connection:
    """Provide a connection with a small populated table."""
    connection.raw_exec(
        "CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT, score REAL, photo BLOB);"
        "INSERT INTO people VALUES (1, 'ada', 9.5, x'0102');"
        "INSERT INTO people VALUES (2, 'linus', 7.25, NULL);"
    )
    return connection


@pytest.fixture
def metric_value(metrics_registry: MetricsRegistry) -> Callable[..., float]:
    """Provide a reader for sample values of the isolated metrics registry."""

    def read(name: str, **labels: str) -> float:
        value = metrics_registry._registry.get_sample_value(name, labels or None)
        return 0.0 if value is None else value

    return read


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
