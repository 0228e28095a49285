"""
Global test configuration and fixtures for the session store service

This module provides shared test fixtures: a controllable clock, an in-memory
table backend, a repository wired to both, and an application client whose
storage is replaced by that repository.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from session_service.core.limiter import limiter
from session_service.main import app
from session_service.services.session_repository import SessionRepository
from session_service.storage.memory import InMemoryTableBackend

START_TIME = 1_760_000_000.0


class FakeClock:
    """Manually advanced clock returning epoch seconds"""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Storage Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def clock() -> FakeClock:
    """Simulated clock shared by the repository and the tests"""
    return FakeClock()


@pytest.fixture(scope="function")
def memory_backend() -> InMemoryTableBackend:
    """Fresh in-memory table for each test"""
    return InMemoryTableBackend()


@pytest.fixture(scope="function")
def repository(memory_backend, clock) -> SessionRepository:
    """Repository over the in-memory table with the simulated clock"""
    return SessionRepository(
        memory_backend,
        default_ttl_seconds=3600,
        max_ttl_seconds=86400,
        storage_timeout_seconds=1.0,
        max_id_attempts=3,
        clock=clock,
    )


# ============================================================================
# Application Client Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def client(memory_backend, repository) -> Generator[TestClient, None, None]:
    """Create FastAPI test client backed by the in-memory repository"""
    app.state.session_backend = memory_backend
    app.state.session_repository = repository
    limiter.reset()

    with TestClient(app) as test_client:
        yield test_client

    app.state.session_repository = None
    app.state.session_backend = None
    limiter.reset()


# ============================================================================
# Data Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def sample_session_request():
    """Valid create-session request body"""
    return {"username": "alice", "payload": "p1", "ttlSeconds": 3600}


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: fast tests of a single component"
    )
    config.addinivalue_line(
        "markers", "integration: tests through the HTTP application"
    )
    config.addinivalue_line(
        "markers", "api: mark test as exercising API endpoints"
    )
    config.addinivalue_line(
        "markers", "critical: mark test as critical path functionality"
    )
