"""
Natours Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── clock:          Deterministic millisecond clock for the rate limiter
    ├── store:          Fresh in-memory rate window store
    ├── make_request:   Factory for PipelineRequest objects
    ├── make_settings:  Factory for Settings with overrides
    └── make_client:    Factory for HTTPX AsyncClients bound to a fresh app
"""

import os
from contextlib import asynccontextmanager

# Override settings for testing BEFORE any app imports
os.environ["MODE"] = "production"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from httpx import ASGITransport, AsyncClient

from natours.config import Settings
from natours.pipeline.rate_limit import InMemoryRateWindowStore
from natours.pipeline.request import PipelineRequest


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRateWindowStore()


@pytest.fixture
def make_request():
    """
    Build a PipelineRequest without a server.

    Usage:
        request = make_request("POST", "/api/v1/tours", body=b'{"name": "x"}',
                               headers={"content-type": "application/json"})
    """

    def _make(method="GET", path="/api/v1/tours", query=None, body=None, headers=None,
              client_id="10.0.0.1"):
        return PipelineRequest(
            method=method,
            path=path,
            client_id=client_id,
            headers={key.lower(): value for key, value in (headers or {}).items()},
            query=query or {},
            raw_body=body,
        )

    return _make


@pytest.fixture
def make_settings():
    def _make(**overrides):
        values = {"mode": "production", "log_level": "WARNING"}
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_client():
    """
    Provides async HTTP test clients for endpoint testing.

    Usage:
        async with make_client(make_settings(mode="development")) as client:
            response = await client.get("/health")
    """
    from natours.main import create_app

    @asynccontextmanager
    async def _make(config, handler_groups=None, store=None, clock=None):
        app = create_app(config=config, handler_groups=handler_groups, store=store, clock=clock)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    return _make
