"""
Flow State Machine
==================
Per-user conversational state for multi-step trade flows.

Each user has at most one Intent. Starting a flow discards whatever was
there before. Intents idle longer than the TTL are removed by a periodic
sweep, the only mutation not triggered by the user.

Two-phase input:
    flows.await_input(user_id, "amount")     # bot asks "How much?"
    flows.submit_input(user_id, "100")       # next message fills it
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config.settings import Settings
from src.shared.system.logging import Logger


class FlowKind(Enum):
    DEPOSIT = "DEPOSIT"
    OPEN_POSITION = "OPEN_POSITION"
    CLOSE_POSITION = "CLOSE_POSITION"


INTENT_FIELDS = (
    "market_index",
    "side",
    "size",
    "token",
    "amount",
    "percentage",
    "order_type",
    "limit_price",
)

REQUIRED_FIELDS: Dict[FlowKind, tuple] = {
    FlowKind.DEPOSIT: ("token", "amount"),
    FlowKind.OPEN_POSITION: ("market_index", "side", "size"),
    FlowKind.CLOSE_POSITION: ("market_index", "percentage"),
}


class InvalidInputError(ValueError):
    """User text could not be parsed for the awaited field."""

    def __init__(self, field_name: str, text: str, reason: str):
        super().__init__(f"Invalid {field_name} '{text}': {reason}")
        self.field_name = field_name
        self.text = text


@dataclass
class Intent:
    """A partially or fully collected trade request."""

    user_id: str
    chat_id: int
    kind: FlowKind
    fields: Dict[str, Any] = field(default_factory=dict)
    awaiting: Optional[str] = None
    created_at: float = 0.0
    expires_at: float = 0.0

    def get(self, name: str, default=None):
        return self.fields.get(name, default)

    def missing_fields(self) -> List[str]:
        missing = [name for name in REQUIRED_FIELDS[self.kind] if self.fields.get(name) is None]
        if (
            self.kind is FlowKind.OPEN_POSITION
            and self.fields.get("order_type") == "limit"
            and self.fields.get("limit_price") is None
        ):
            missing.append("limit_price")
        return missing


# ═══════════════════════════════════════════════════════════════════════════════
# INPUT PARSERS
# ═══════════════════════════════════════════════════════════════════════════════

def _parse_positive_decimal(field_name: str, text: str) -> Decimal:
    cleaned = text.strip().replace(",", "").lstrip("$")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise InvalidInputError(field_name, text, "not a number")
    if not value.is_finite() or value <= 0:
        raise InvalidInputError(field_name, text, "must be greater than zero")
    return value


def _parse_percentage(field_name: str, text: str) -> Decimal:
    value = _parse_positive_decimal(field_name, text.strip().rstrip("%"))
    if value > 100:
        raise InvalidInputError(field_name, text, "must be between 0 and 100")
    return value


def _parse_choice(*choices: str) -> Callable[[str, str], str]:
    def parse(field_name: str, text: str) -> str:
        value = text.strip().lower()
        if value not in choices:
            raise InvalidInputError(field_name, text, f"expected one of {', '.join(choices)}")
        return value
    return parse


def _parse_market_index(field_name: str, text: str) -> int:
    try:
        value = int(text.strip())
    except ValueError:
        raise InvalidInputError(field_name, text, "not a market index")
    if value < 0:
        raise InvalidInputError(field_name, text, "must not be negative")
    return value


def _parse_token(field_name: str, text: str) -> str:
    value = text.strip().upper()
    if not value.isalnum():
        raise InvalidInputError(field_name, text, "not a token symbol")
    return value


FIELD_PARSERS: Dict[str, Callable[[str, str], Any]] = {
    "market_index": _parse_market_index,
    "side": _parse_choice("long", "short"),
    "size": _parse_positive_decimal,
    "token": _parse_token,
    "amount": _parse_positive_decimal,
    "percentage": _parse_percentage,
    "order_type": _parse_choice("market", "limit"),
    "limit_price": _parse_positive_decimal,
}


# ═══════════════════════════════════════════════════════════════════════════════
# STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════════════

class FlowStateMachine:
    """
    Keyed store of in-progress intents.

    Point-wise operations are guarded by a lock so handlers running on
    worker threads and the asyncio sweeper never interleave on one entry.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        sweep_interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else Settings.FLOW_TTL_SECONDS
        self.sweep_interval_seconds = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else Settings.FLOW_SWEEP_INTERVAL_SECONDS
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._intents: Dict[str, Intent] = {}

        self._running = False
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def start_flow(self, user_id: str, chat_id: int, kind: FlowKind) -> Intent:
        """Begin a flow, discarding any previous intent for this user."""
        now = self._clock()
        intent = Intent(
            user_id=str(user_id),
            chat_id=chat_id,
            kind=kind,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        with self._lock:
            self._intents[intent.user_id] = intent
        Logger.info(f"[FLOW] User {user_id} started {kind.value}")
        return intent

    def update_data(self, user_id: str, **fields) -> Optional[Intent]:
        unknown = [name for name in fields if name not in INTENT_FIELDS]
        if unknown:
            raise ValueError(f"Unknown intent fields: {', '.join(unknown)}")

        with self._lock:
            intent = self._intents.get(str(user_id))
            if intent is None:
                Logger.warning(f"[FLOW] No active flow for user {user_id}, update ignored")
                return None
            intent.fields.update(fields)
            intent.expires_at = self._clock() + self.ttl_seconds
            return intent

    def await_input(self, user_id: str, field_name: str) -> Optional[Intent]:
        """Mark ``field_name`` as the value the user's next message provides."""
        if field_name not in FIELD_PARSERS:
            raise ValueError(f"Unknown intent field: {field_name}")

        with self._lock:
            intent = self._intents.get(str(user_id))
            if intent is None:
                Logger.warning(f"[FLOW] No active flow for user {user_id}, cannot await {field_name}")
                return None
            intent.awaiting = field_name
            intent.expires_at = self._clock() + self.ttl_seconds
            return intent

    def submit_input(self, user_id: str, text: str) -> Optional[Intent]:
        """
        Fill the awaited field from free text.

        Returns None if the user is not awaiting input. Raises
        InvalidInputError on unparseable text, leaving the intent as it was.
        """
        with self._lock:
            intent = self._intents.get(str(user_id))
            if intent is None or intent.awaiting is None:
                return None

            field_name = intent.awaiting
            value = FIELD_PARSERS[field_name](field_name, text)
            intent.fields[field_name] = value
            intent.awaiting = None
            intent.expires_at = self._clock() + self.ttl_seconds
            return intent

    def clear_flow(self, user_id: str) -> None:
        with self._lock:
            removed = self._intents.pop(str(user_id), None)
        if removed is not None:
            Logger.debug(f"[FLOW] Cleared {removed.kind.value} for user {user_id}")

    def finish_flow(self, intent: Intent) -> bool:
        """
        Clear ``intent`` only if it is still the user's current flow.

        A flow started while ``intent`` was executing is left in place.
        """
        with self._lock:
            if self._intents.get(intent.user_id) is not intent:
                return False
            del self._intents[intent.user_id]
        Logger.debug(f"[FLOW] Finished {intent.kind.value} for user {intent.user_id}")
        return True

    def sweep_expired(self) -> int:
        """Delete every intent past its expiry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [uid for uid, intent in self._intents.items() if intent.expires_at < now]
            for uid in expired:
                del self._intents[uid]

        if expired:
            Logger.info(f"[FLOW] Swept {len(expired)} expired flow(s)")
        return len(expired)

    # =========================================================================
    # READS
    # =========================================================================

    def current_flow(self, user_id: str) -> Optional[Intent]:
        with self._lock:
            return self._intents.get(str(user_id))

    def is_in_flow(self, user_id: str, kind: Optional[FlowKind] = None) -> bool:
        intent = self.current_flow(user_id)
        if intent is None:
            return False
        return kind is None or intent.kind is kind

    def missing_fields(self, user_id: str) -> List[str]:
        intent = self.current_flow(user_id)
        if intent is None:
            return []
        return intent.missing_fields()

    def is_complete(self, user_id: str) -> bool:
        intent = self.current_flow(user_id)
        return intent is not None and not intent.missing_fields()

    def __len__(self) -> int:
        with self._lock:
            return len(self._intents)

    # =========================================================================
    # SWEEPER
    # =========================================================================

    def start_sweeper(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        Logger.info(f"[FLOW] Sweeper started (every {self.sweep_interval_seconds:.0f}s)")

    async def stop_sweeper(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        Logger.info("[FLOW] Sweeper stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep_expired()
            except Exception as e:
                Logger.error(f"[FLOW] Sweep failed: {e}")
