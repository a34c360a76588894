"""Shared test fixtures.

This module contains pytest fixtures used across multiple test files.
"""

import os

# Settings are read at import time; configure before importing the app.
os.environ.setdefault("JWT_SECRET_KEY", "test-only-jwt-secret-key-with-enough-length-0123456789")
os.environ.setdefault("ADMIN_PASSWORD", "correct horse battery staple")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from src.auth_utils import create_admin_token
from src.clock import utcnow
from src.database.models import Base
from src.database.session import get_db
from src.database import crud


# ============================================================================
# Test Database Setup
# ============================================================================

@pytest.fixture(scope="function")
def test_db():
    """Create a test database for each test."""
    # Use in-memory SQLite for testing
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)

    # Override the get_db dependency
    def override_get_db():
        try:
            db = TestingSessionLocal()
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    db = TestingSessionLocal()
    yield db

    # Cleanup
    db.close()
    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(test_db):
    """Create a test client."""
    return TestClient(app)


@pytest.fixture(scope="function")
def admin_headers():
    """Authorization headers carrying a valid operator session."""
    return {"Authorization": f"Bearer {create_admin_token()}"}


# ============================================================================
# Access Code Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def make_code(test_db):
    """Factory for access codes stored directly through crud."""
    def _make(code, **kwargs):
        return crud.create_access_code(test_db, code, **kwargs)
    return _make


@pytest.fixture(scope="function")
def quota_code(make_code):
    """Short-term code with five uses and a future expiry."""
    return make_code(
        "QUOT-A555",
        name="Five uses",
        max_uses=5,
        expires_at=utcnow() + timedelta(days=30)
    )


@pytest.fixture(scope="function")
def single_use_code(make_code):
    """Short-term single-use code without expiry."""
    return make_code("SNGL-USE1", name="Single use", max_uses=1)


@pytest.fixture(scope="function")
def long_term_code(make_code):
    """Long-term single-use code without expiry."""
    return make_code("LONG-TRM1", name="Long term", max_uses=1, is_long_term=True)


@pytest.fixture(scope="function")
def unlimited_code(make_code):
    """Code with no quota."""
    return make_code("UNLM-TD00", name="Unlimited", max_uses=0)


@pytest.fixture(scope="function")
def expired_code(make_code):
    """Code that expired yesterday with quota left."""
    return make_code(
        "EXPR-D000",
        name="Expired",
        max_uses=10,
        expires_at=utcnow() - timedelta(days=1)
    )


@pytest.fixture(scope="function")
def inactive_code(test_db, make_code):
    """Deactivated code with quota left."""
    code = make_code("INAC-TIVE", name="Inactive", max_uses=10)
    crud.deactivate_access_code(test_db, code.id)
    return code


# ============================================================================
# Template Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def locked_template(test_db):
    """Template whose source requires an access code."""
    return crud.create_template(
        test_db,
        title="Landing page",
        code_content="<html>premium landing page</html>",
        requires_code=True
    )


@pytest.fixture(scope="function")
def free_template(test_db):
    """Template whose source is freely visible."""
    return crud.create_template(
        test_db,
        title="Starter",
        code_content="print('hello')",
        requires_code=False
    )
