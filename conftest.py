"""
Pytest Configuration
Configuration file for pytest test runner
"""

import os

import pytest

# Must be set before gymflow.database.connection builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SESSION_SECRET", "test-secret")
os.environ.setdefault("APP_TIMEZONE", "UTC")
os.environ.setdefault("LOG_LEVEL", "WARNING")


# Test markers
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "unit: Unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests"
    )
    config.addinivalue_line(
        "markers", "api: API tests"
    )
    config.addinivalue_line(
        "markers", "slow: Slow running tests"
    )


# Test collection
collect_ignore_glob = [
    "*/alembic/*",
    "*/venv/*",
    "*/__pycache__/*"
]


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Setup test environment before each test"""
    monkeypatch.setenv("TESTING", "true")
    monkeypatch.setenv("SESSION_SECRET", "test-secret")
    monkeypatch.setenv("APP_TIMEZONE", "UTC")
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("ENABLE_SIMULATOR", raising=False)
    monkeypatch.delenv("CHECKIN_MAX_RETRIES", raising=False)
    monkeypatch.delenv("MEMBERSHIP_DAYS", raising=False)
    monkeypatch.delenv("MEMBERSHIP_PRICES", raising=False)
    yield
