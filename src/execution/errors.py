"""
Relay Error Taxonomy
====================
Typed failures for the build → sign → submit pipeline.

(a) Validation     - surfaced immediately, never retried
(b) State conflict - caller must re-probe and restart the flow
(c) Transient      - retried with backoff, then surfaced
(d) Signer failure - fatal
"""

from enum import Enum


class ErrorType(Enum):
    """Standardized error codes persisted on failed ledger records."""

    # Validation
    MARKET_NOT_FOUND = "MARKET_NOT_FOUND"
    LIMIT_PRICE_REQUIRED = "LIMIT_PRICE_REQUIRED"
    BELOW_MINIMUM_ORDER_SIZE = "BELOW_MINIMUM_ORDER_SIZE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INCOMPLETE_INTENT = "INCOMPLETE_INTENT"
    INVALID_INTENT = "INVALID_INTENT"

    # State conflict
    POSITION_NOT_FOUND = "POSITION_NOT_FOUND"
    ACCOUNT_PROBE_FAILED = "ACCOUNT_PROBE_FAILED"

    # Transient network
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    RPC_ERROR = "RPC_ERROR"

    # Signer
    SIGNER_ERROR = "SIGNER_ERROR"

    # Chain
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    ONCHAIN_ERROR = "ONCHAIN_ERROR"

    UNKNOWN = "UNKNOWN"


class RelayError(Exception):
    """Base class. Subclasses pin an ErrorType."""

    error_type = ErrorType.UNKNOWN
    retryable = False


# ═══════════════════════════════════════════════════════════════════════════════
# BUILDER ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class BuilderError(RelayError):
    """Raised by the transaction builder before anything is signed."""


class MarketNotFoundError(BuilderError):
    error_type = ErrorType.MARKET_NOT_FOUND

    def __init__(self, market_index, market_type=None):
        kind = f"{market_type.name.lower()} " if market_type is not None else ""
        super().__init__(f"Unknown {kind}market {market_index}")
        self.market_index = market_index


class AccountProbeFailedError(BuilderError):
    error_type = ErrorType.ACCOUNT_PROBE_FAILED
    retryable = True


class PositionNotFoundError(BuilderError):
    error_type = ErrorType.POSITION_NOT_FOUND

    def __init__(self, market_index: int):
        super().__init__(f"No open position found for market {market_index}")
        self.market_index = market_index


class BelowMinimumOrderSizeError(BuilderError):
    error_type = ErrorType.BELOW_MINIMUM_ORDER_SIZE

    def __init__(self, amount: int, minimum: int):
        super().__init__(
            f"Order size ({amount}) is below minimum order size ({minimum})"
        )
        self.amount = amount
        self.minimum = minimum


class LimitPriceRequiredError(BuilderError):
    error_type = ErrorType.LIMIT_PRICE_REQUIRED

    def __init__(self):
        super().__init__("Limit price required for limit orders")


class InvalidAmountError(BuilderError):
    error_type = ErrorType.INVALID_AMOUNT


class InvalidIntentError(BuilderError):
    error_type = ErrorType.INVALID_INTENT

    def __init__(self, field_name: str, value):
        super().__init__(f"Invalid {field_name}: {value!r}")
        self.field_name = field_name
        self.value = value


class IncompleteIntentError(BuilderError):
    error_type = ErrorType.INCOMPLETE_INTENT

    def __init__(self, kind: str, missing):
        super().__init__(f"{kind} intent is missing fields: {', '.join(missing)}")
        self.missing = list(missing)


class SignerInvariantError(BuilderError):
    """An instruction asks for a signature from someone other than the fee payer."""


# ═══════════════════════════════════════════════════════════════════════════════
# NETWORK ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class RpcError(RelayError):
    """Ledger RPC failure. Retryability is decided by the message text."""
    error_type = ErrorType.RPC_ERROR


class VenueUnavailableError(RelayError):
    error_type = ErrorType.RPC_ERROR
    retryable = True


class ConfirmationTimeoutError(RelayError):
    error_type = ErrorType.TIMEOUT
    retryable = True

    def __init__(self, signature: str, timeout_s: float):
        super().__init__(f"Confirmation timeout after {timeout_s:.0f}s for {signature}")
        self.signature = signature


class TransactionFailedError(RelayError):
    error_type = ErrorType.ONCHAIN_ERROR

    def __init__(self, signature: str, err):
        super().__init__(f"Transaction {signature} failed on-chain: {err}")
        self.signature = signature
        self.err = err


# ═══════════════════════════════════════════════════════════════════════════════
# SIGNER ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class SigningError(RelayError):
    error_type = ErrorType.SIGNER_ERROR


class MissingSignatureError(SigningError):
    def __init__(self, fee_payer):
        super().__init__(f"Signer response has no signature for fee payer {fee_payer}")


class SignerResponseError(SigningError):
    """Malformed or failed response from the custodial signer."""


class SignatureVerificationError(SigningError):
    """Returned signature does not verify against the rebuilt message."""


class SignerUnavailableError(SigningError):
    """Transport failure talking to the signer; the request never completed."""
    retryable = True


# ═══════════════════════════════════════════════════════════════════════════════
# CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

def classify_error(error: BaseException) -> ErrorType:
    """Map any failure to the code persisted on the ledger record."""
    msg = str(error).lower()

    if "insufficient" in msg:
        return ErrorType.INSUFFICIENT_BALANCE
    if isinstance(error, RelayError) and error.error_type is not ErrorType.RPC_ERROR:
        return error.error_type
    if "timeout" in msg or "timed out" in msg:
        return ErrorType.TIMEOUT
    if "network" in msg or "connection" in msg or "econnreset" in msg:
        return ErrorType.NETWORK_ERROR
    if isinstance(error, RelayError) or "rpc" in msg or "429" in msg:
        return ErrorType.RPC_ERROR
    return ErrorType.UNKNOWN


_USER_MESSAGES = {
    ErrorType.INSUFFICIENT_BALANCE: "Insufficient balance in your wallet. Please add funds first.",
    ErrorType.TIMEOUT: "Transaction timeout. Check the explorer for status.",
    ErrorType.NETWORK_ERROR: "Network error. Please try again.",
    ErrorType.RPC_ERROR: "Solana network congested. Please try again.",
    ErrorType.SIGNER_ERROR: "Wallet service error. Please contact support.",
    ErrorType.POSITION_NOT_FOUND: "No open position found for this market.",
    ErrorType.ACCOUNT_PROBE_FAILED: "Could not read your trading account. Please try again.",
    ErrorType.MARKET_NOT_FOUND: "That market is not available.",
    ErrorType.LIMIT_PRICE_REQUIRED: "Limit orders need a limit price.",
    ErrorType.BELOW_MINIMUM_ORDER_SIZE: "Order size is below the market minimum.",
    ErrorType.INVALID_INTENT: "That request was not understood. Please start again.",
}


def user_message(error_type: ErrorType, error: BaseException = None) -> str:
    """Friendly sentence for the chat layer."""
    if error_type in _USER_MESSAGES:
        return _USER_MESSAGES[error_type]
    return f"Error: {error}" if error is not None else "Unexpected error."
