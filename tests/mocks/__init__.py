"""
Drift Relay Test Mocks
======================
Reusable fakes for isolated testing.
"""

from tests.mocks.mock_rpc import (
    MockRpcGateway,
    make_pyth_price_data,
    make_token_account_data,
    make_user_account_data,
)
from tests.mocks.mock_signer import MockCustodialSigner

__all__ = [
    "MockRpcGateway",
    "MockCustodialSigner",
    "make_user_account_data",
    "make_token_account_data",
    "make_pyth_price_data",
]
