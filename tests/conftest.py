"""
Pytest configuration shared by the streamflow test suite.

Every test gets fresh provider metrics; route tests run against a fresh
StreamResolver injected through FastAPI's dependency overrides.
"""

import pytest
from fastapi.testclient import TestClient

from streamflow.main import app
from streamflow.probe.service import ProbeService
from streamflow.providers.metrics import reset_provider_metrics
from streamflow.resolver import StreamResolver, get_stream_resolver


class FakeClock:
    """Manually advanced clock for TTL and debounce tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_metrics():
    reset_provider_metrics()
    yield
    reset_provider_metrics()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resolver():
    return StreamResolver(prober=ProbeService(timeout=1.0))


@pytest.fixture
def client(resolver):
    app.dependency_overrides[get_stream_resolver] = lambda: resolver
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
