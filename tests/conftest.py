"""
Pytest configuration and shared fixtures for wallet authentication tests.
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Set test environment before importing the package
os.environ["FLASK_ENV"] = "testing"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["IDENTITY_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["NONCE_SWEEP_INTERVAL"] = "0"
os.environ["FORCE_HTTPS"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from eth_account import Account  # noqa: E402
from eth_account.messages import encode_defunct  # noqa: E402

# Throwaway keys, never used outside tests
TEST_PRIVATE_KEY = "0x" + "11" * 32
OTHER_PRIVATE_KEY = "0x" + "22" * 32


class FakeClock:
    """Manually advanced UTC clock for nonce expiry tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def sign_message(private_key, message):
    """Sign ``message`` with EIP-191 personal_sign and return 0x-prefixed hex."""
    signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture
def app():
    """Create and configure a test Flask application instance."""
    from walletauth.factory import create_app

    flask_app = create_app()
    flask_app.config.update({"TESTING": True})

    with flask_app.app_context():
        yield flask_app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture
def account():
    """Local account whose key signs challenges."""
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def other_account():
    """A second, unrelated account."""
    return Account.from_key(OTHER_PRIVATE_KEY)


@pytest.fixture
def sign():
    return sign_message


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    from walletauth.nonces import NonceRegistry

    return NonceRegistry(app_name="MCPForge", ttl_seconds=300, clock=clock)


@pytest.fixture
def memory_store():
    from walletauth.storage import MemoryIdentityStore

    return MemoryIdentityStore()


@pytest.fixture
def sql_store(tmp_path):
    """SQL identity store over a throwaway SQLite file."""
    from walletauth.database import close_database, init_database
    from walletauth.db_storage import SQLIdentityStore

    close_database()
    init_database(f"sqlite:///{tmp_path / 'walletauth.db'}", create_tables=True)
    yield SQLIdentityStore()
    close_database()


@pytest.fixture
def mock_audit_logger():
    """Mock audit logger for testing."""
    return MagicMock()


# Pytest configuration hooks
def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "slow: tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        # Add 'unit' marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add 'integration' marker to tests in integration/ directory
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
