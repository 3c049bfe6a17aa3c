"""
Pytest Configuration and Shared Fixtures

Provides common test fixtures and configuration for the entire test suite.
"""

import tempfile
from pathlib import Path

import pytest

from ownerstatements.core import config as config_module


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_path:
        yield Path(temp_path)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """Set up test environment variables."""
    data_dir = tmp_path / "statements_data"

    # Ensure tests don't use real data or credentials
    monkeypatch.setenv("STATEMENTS_ENV", "test")
    monkeypatch.setenv("STATEMENTS_DATA_DIR", str(data_dir))
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{data_dir / 'statements.db'}")
    monkeypatch.setenv("CACHE_BACKEND", "sql")
    monkeypatch.setenv("VENDOR_IMPORT_MATCHER", "similarity")
    for name in ("GEMINI_API_KEY", "CACHE_PREFIX", "LOG_LEVEL", "DEBUG", "DATABASE_ECHO"):
        monkeypatch.delenv(name, raising=False)

    # Drop any configuration cached by an earlier test
    monkeypatch.setattr(config_module, "_config", None)


@pytest.fixture
def database_url(tmp_path) -> str:
    """SQLite URL for a per-test datastore."""
    return f"sqlite+aiosqlite:///{tmp_path / 'test_statements.db'}"


# Test markers for categorizing tests
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for complete workflows")
    config.addinivalue_line("markers", "currency: Tests for currency handling and precision")
    config.addinivalue_line("markers", "cache: Tests for the vendor import cache")
    config.addinivalue_line("markers", "matching: Tests for property resolution and matching")
    config.addinivalue_line("markers", "reconciliation: Tests for chunked commits and totals")
    config.addinivalue_line("markers", "slow: Tests that take significant time to run")
