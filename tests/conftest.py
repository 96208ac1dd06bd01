"""
Drift Relay Test Configuration
==============================
Shared fixtures and pytest markers for the test suite.
"""

import pytest
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep console output out of test runs (file log still written)."""
    from src.shared.system.logging import Logger

    Logger.set_silent(True)
    yield
    Logger.set_silent(False)


@pytest.fixture
def registry():
    """Market registry loaded from the bundled data/markets.json."""
    from src.drift_engine.core.markets import MarketRegistry

    return MarketRegistry.from_file()


@pytest.fixture
def user_keypair():
    from solders.keypair import Keypair

    return Keypair()


@pytest.fixture
def authority(user_keypair):
    return user_keypair.pubkey()


@pytest.fixture
def mock_rpc():
    from tests.mocks import MockRpcGateway

    return MockRpcGateway()


@pytest.fixture
def venue(mock_rpc, registry):
    from src.drift_engine.core.venue import VenueQueryService

    return VenueQueryService(mock_rpc, registry)


@pytest.fixture
def builder(venue, mock_rpc):
    from src.execution.transaction_builder import TransactionBuilder

    return TransactionBuilder(venue, mock_rpc)


@pytest.fixture
def mock_signer(user_keypair):
    from tests.mocks import MockCustodialSigner

    return MockCustodialSigner(user_keypair)


@pytest.fixture
def fake_sleep():
    """Records requested delays instead of sleeping."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep
