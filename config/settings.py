import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # DRIFT RELAY CONFIGURATION
    # ═══════════════════════════════════════════════════════════════════

    # Console output (file log is always written)
    SILENT_MODE = _env_bool("SILENT_MODE", False)

    # Paths
    DATA_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../data"))
    LOG_DIR = os.getenv("LOG_DIR", os.path.abspath(os.path.join(os.path.dirname(__file__), "../logs")))
    MARKETS_FILE = os.getenv("MARKETS_FILE", os.path.join(DATA_DIR, "markets.json"))
    LEDGER_DB_PATH = os.getenv("LEDGER_DB_PATH", os.path.join(DATA_DIR, "ledger.db"))

    # ═══════════════════════════════════════════════════════════════════
    # NETWORK
    # ═══════════════════════════════════════════════════════════════════
    RPC_URL = os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com")
    DRIFT_PROGRAM_ID = os.getenv(
        "DRIFT_PROGRAM_ID", "dRiftyHA39MWEi3m9aunc5MzRF1JYuBsbn6VPcn33UH"
    )
    DEFAULT_SUB_ACCOUNT_ID = int(os.getenv("DEFAULT_SUB_ACCOUNT_ID", "0"))

    # ═══════════════════════════════════════════════════════════════════
    # FLOW STATE MACHINE
    # ═══════════════════════════════════════════════════════════════════
    FLOW_TTL_SECONDS = float(os.getenv("FLOW_TTL_SECONDS", "300"))  # 5 minutes idle
    FLOW_SWEEP_INTERVAL_SECONDS = float(os.getenv("FLOW_SWEEP_INTERVAL_SECONDS", "60"))

    # ═══════════════════════════════════════════════════════════════════
    # SIGNING & SUBMISSION
    # ═══════════════════════════════════════════════════════════════════
    SIGN_MAX_RETRIES = int(os.getenv("SIGN_MAX_RETRIES", "3"))
    SIGN_BASE_DELAY_SECONDS = float(os.getenv("SIGN_BASE_DELAY_SECONDS", "1.0"))
    CONFIRMATION_TIMEOUT_SECONDS = float(os.getenv("CONFIRMATION_TIMEOUT_SECONDS", "60"))
    CONFIRMATION_POLL_SECONDS = float(os.getenv("CONFIRMATION_POLL_SECONDS", "0.5"))
    CONFIRMATION_COMMITMENT = os.getenv("CONFIRMATION_COMMITMENT", "confirmed")

    # Custodial signer (embedded wallet API)
    SIGNER_API_URL = os.getenv("SIGNER_API_URL", "https://api.privy.io/v1")
    SIGNER_APP_ID = os.getenv("SIGNER_APP_ID", "")
    SIGNER_APP_SECRET = os.getenv("SIGNER_APP_SECRET", "")
    SIGNER_TIMEOUT_SECONDS = float(os.getenv("SIGNER_TIMEOUT_SECONDS", "15"))
