"""
Global test configuration and fixtures for Storefront

This module provides shared test fixtures: settings overrides, a temporary
SQLite database, a session store driven by a controllable clock, and
FastAPI test clients.
"""

import os
import tempfile
from datetime import datetime, timedelta

# Environment must be in place before storefront.core.config is imported
_TEST_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-for-testing-only-0123456789")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DIR}/storefront.db")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from itsdangerous import Signer
from sqlalchemy import create_engine

from storefront.core.config import Settings
from storefront.core.utils.session_store import SessionStore
from storefront.main import create_app

TEST_SECRET = "test-session-secret-for-testing-only-0123456789"
COOKIE_NAME = "storefront.sid"


# ============================================================================
# Test Environment Setup
# ============================================================================

class FakeClock:
    """Naive-UTC clock that only moves when told to"""

    def __init__(self, start: datetime = datetime(2030, 1, 1, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


def make_settings(**overrides) -> Settings:
    values = {
        "ENVIRONMENT": "test",
        "SESSION_SECRET": TEST_SECRET,
        "SESSION_COOKIE_NAME": COOKIE_NAME,
        "SESSION_MAX_AGE": 86400,
        "SESSION_SWEEP_INTERVAL": 3600,
        "LOG_JSON": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="function")
def test_settings():
    """Production-like settings (Secure cookies) with a fixed secret"""
    return make_settings()


@pytest.fixture(scope="function")
def dev_settings():
    """Development settings (no Secure flag, live reload enabled)"""
    return make_settings(ENVIRONMENT="development")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def engine(tmp_path):
    """Engine bound to a fresh SQLite file for each test function"""
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'sessions.db'}",
        connect_args={"check_same_thread": False},
    )
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def store(engine, clock):
    """Session store on the temporary database, driven by the fake clock"""
    return SessionStore(engine, clock=clock)


# ============================================================================
# Application Client Fixtures
# ============================================================================

def add_session_routes(app):
    """Routes that exercise request.session the way page handlers would"""

    @app.get("/_session/count")
    async def count(request: Request):
        request.session["count"] = request.session.get("count", 0) + 1
        return {"count": request.session["count"]}

    @app.get("/_session/read")
    async def read(request: Request):
        return dict(request.session)

    @app.get("/_session/clear")
    async def clear(request: Request):
        request.session.clear()
        return {"cleared": True}

    @app.get("/_session/cart/new")
    async def new_cart(request: Request):
        request.session["cart"] = []
        return {"cart": request.session["cart"]}

    @app.get("/_session/cart/add/{item}")
    async def add_to_cart(request: Request, item: str):
        request.session["cart"].append(item)
        return {"cart": request.session["cart"]}

    @app.get("/_session/merge")
    async def merge(request: Request):
        session = request.session
        session |= {"user": "ada"}
        return dict(session)

    @app.get("/_session/logout")
    async def logout(request: Request):
        request.session.invalidate()
        return {"logged_out": True}

    return app


@pytest.fixture(scope="function")
def app(test_settings, store):
    return add_session_routes(create_app(test_settings, store))


@pytest.fixture(scope="function")
def client(app):
    """HTTPS test client, so Secure cookies round-trip"""
    with TestClient(app, base_url="https://testserver") as test_client:
        yield test_client


@pytest.fixture(scope="function")
def session_id_from():
    """Extract the session id from a signed cookie value"""
    signer = Signer(TEST_SECRET, salt="storefront.session")

    def _extract(cookie_value: str) -> str:
        return signer.unsign(cookie_value.encode("utf-8")).decode("utf-8")

    return _extract


@pytest.fixture(scope="function")
def sign_session_id():
    """Produce the cookie value the middleware would set for a session id"""
    signer = Signer(TEST_SECRET, salt="storefront.session")

    def _sign(session_id: str) -> str:
        return signer.sign(session_id.encode("utf-8")).decode("utf-8")

    return _sign


@pytest.fixture(scope="function")
def make_session_app(store):
    """Build an app with session routes from the given settings"""

    def _make(config: Settings):
        return add_session_routes(create_app(config, store))

    return _make


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: fast tests without the HTTP stack")
    config.addinivalue_line("markers", "integration: tests through the FastAPI application")
