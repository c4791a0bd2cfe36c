#!/usr/bin/env python3
"""
Pytest Configuration and Shared Fixtures

Provides shared fixtures and configuration for all tests.
"""

import pytest
import tempfile
import sys
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entitlement.service import EntitlementService
from entitlement.storage import EntitlementStore, MemoryBackend


# ============================================================================
# TEMPORARY DIRECTORIES
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# CLOCK
# ============================================================================

START_TIME = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


# ============================================================================
# STORAGE AND SERVICE
# ============================================================================

@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def store(memory_backend, clock):
    return EntitlementStore(memory_backend, clock=clock)


@pytest.fixture
def service(store):
    return EntitlementService(store)


# ============================================================================
# API CLIENT
# ============================================================================

@pytest.fixture
def api_client(service):
    """TestClient bound to an isolated in-memory service"""
    from fastapi.testclient import TestClient
    from web_ui.api.dependencies import get_service
    from web_ui.api.main import app

    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def session_headers():
    return {"X-Session-Id": "session-1"}
