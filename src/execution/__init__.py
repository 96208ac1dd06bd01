"""
Execution Pipeline
==================
Intent-to-chain execution layer.

Components:
- transaction_builder.TransactionBuilder: Intent -> unsigned single-signer transaction
- signing_service.SigningService: Custodial signing, broadcast and confirmation
- retry_policy.RetryPolicy: Bounded exponential backoff
- pipeline.TradePipeline: Build, record, submit, finalize

Only the error taxonomy is re-exported here; infrastructure adapters import
it, so the package root must not pull in the components above.
"""

from src.execution.errors import (
    ErrorType,
    RelayError,
    BuilderError,
    SigningError,
    classify_error,
    user_message,
)


__all__ = [
    "ErrorType",
    "RelayError",
    "BuilderError",
    "SigningError",
    "classify_error",
    "user_message",
]
