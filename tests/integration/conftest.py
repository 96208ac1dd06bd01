"""
Integration Test Configuration
==============================
Fixtures for component wiring tests: a real SQLite ledger in tmp_path,
mocked RPC and signer.
"""

import pytest


# ============================================================================
# LEDGER
# ============================================================================


@pytest.fixture
def ledger(tmp_path):
    """
    Ephemeral transaction ledger.
    Pre-initialized with schema.
    """
    from src.shared.system.database.core import DatabaseCore
    from src.shared.system.database.repositories.transaction_repo import TransactionRepository

    db = DatabaseCore(str(tmp_path / "test_ledger.db"))
    repo = TransactionRepository(db)
    repo.init_table()
    yield repo
    # Cleanup handled by tmp_path


# ============================================================================
# PIPELINE WIRING
# ============================================================================


@pytest.fixture
def signing(mock_rpc, mock_signer, fake_sleep):
    from src.execution.retry_policy import RetryPolicy
    from src.execution.signing_service import SigningService

    return SigningService(
        mock_rpc,
        mock_signer,
        policy=RetryPolicy(max_retries=3, base_delay=1.0, sleep=fake_sleep),
        confirmation_timeout=1.0,
        poll_interval=0.1,
        sleep=fake_sleep,
    )


@pytest.fixture
def flows():
    from src.shared.state.flow_state import FlowStateMachine

    return FlowStateMachine(ttl_seconds=300, sweep_interval_seconds=60)


@pytest.fixture
def pipeline(builder, signing, ledger, flows):
    from src.execution.pipeline import TradePipeline

    return TradePipeline(builder, signing, ledger, flows)


@pytest.fixture
def wallet(authority):
    from src.execution.pipeline import WalletRef

    return WalletRef(wallet_id="wallet-42", address=authority)
