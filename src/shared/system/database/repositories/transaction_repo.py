"""
Transaction Ledger
==================
Durable record of every submitted transaction's lifecycle.

    PENDING ──► CONFIRMED
        └─────► FAILED

Rows are created PENDING before signing starts. Every UPDATE is guarded by
``status = 'PENDING'`` so a terminal row is never revisited, and the guard is
enforced by SQLite's own atomic update rather than a read-then-write.
"""

import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from src.shared.system.database.repositories.base import BaseRepository
from src.shared.system.logging import Logger


class TxStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not TxStatus.PENDING


@dataclass
class TransactionRecord:
    """One row of the ledger."""

    id: str
    user_id: str
    wallet_id: str
    tx_type: str
    status: TxStatus = TxStatus.PENDING
    amount: Optional[str] = None
    token_symbol: Optional[str] = None
    market_index: Optional[int] = None
    retry_count: int = 0
    tx_hash: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    confirmed_at: Optional[float] = None

    @classmethod
    def from_row(cls, row: dict) -> "TransactionRecord":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            wallet_id=row["wallet_id"],
            tx_type=row["tx_type"],
            status=TxStatus(row["status"]),
            amount=row["amount"],
            token_symbol=row["token_symbol"],
            market_index=row["market_index"],
            retry_count=row["retry_count"],
            tx_hash=row["tx_hash"],
            error_type=row["error_type"],
            error_message=row["error_message"],
            metadata=json.loads(row["metadata"] or "{}"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            confirmed_at=row["confirmed_at"],
        )


class TransactionRepository(BaseRepository):
    """
    Handles transaction lifecycle bookkeeping for auditing and retry counts.
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS drift_transactions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            wallet_id TEXT NOT NULL,
            tx_hash TEXT,
            tx_type TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            market_index INTEGER,
            amount TEXT,
            token_symbol TEXT,
            retry_count INTEGER NOT NULL DEFAULT 0,
            error_type TEXT,
            error_message TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL,
            confirmed_at REAL
        )
        """,
        # NULL hashes do not collide in SQLite, so PENDING rows are unaffected
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_drift_tx_hash ON drift_transactions(tx_hash)",
        "CREATE INDEX IF NOT EXISTS idx_drift_tx_user ON drift_transactions(user_id, created_at)",
    )

    def create(
        self,
        user_id: str,
        wallet_id: str,
        tx_type: str,
        amount: Optional[str] = None,
        market_index: Optional[int] = None,
        token_symbol: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TransactionRecord:
        """Insert a new PENDING record."""
        now = time.time()
        record = TransactionRecord(
            id=uuid.uuid4().hex,
            user_id=str(user_id),
            wallet_id=str(wallet_id),
            tx_type=tx_type,
            amount=None if amount is None else str(amount),
            market_index=market_index,
            token_symbol=token_symbol,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )
        self._execute(
            """
            INSERT INTO drift_transactions (
                id, user_id, wallet_id, tx_type, status, market_index, amount,
                token_symbol, retry_count, metadata, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
            """,
            (
                record.id,
                record.user_id,
                record.wallet_id,
                record.tx_type,
                TxStatus.PENDING.value,
                record.market_index,
                record.amount,
                record.token_symbol,
                json.dumps(record.metadata),
                now,
                now,
            ),
            commit=True,
        )
        Logger.info(f"[LEDGER] Created {tx_type} record {record.id[:8]} for user {user_id}")
        return record

    def update_status(
        self,
        record_id: str,
        status: Optional[TxStatus] = None,
        tx_hash: Optional[str] = None,
        retry_count: Optional[int] = None,
        error_type: Optional[str] = None,
        error_message: Optional[str] = None,
        confirmed_at: Optional[float] = None,
    ) -> bool:
        """
        Apply a partial update to a PENDING record.

        Returns False (and changes nothing) when the record is missing or
        already terminal.
        """
        columns = []
        params: List[Any] = []
        if status is not None:
            columns.append("status = ?")
            params.append(status.value)
        if tx_hash is not None:
            columns.append("tx_hash = ?")
            params.append(tx_hash)
        if retry_count is not None:
            columns.append("retry_count = ?")
            params.append(retry_count)
        if error_type is not None:
            columns.append("error_type = ?")
            params.append(error_type)
        if error_message is not None:
            columns.append("error_message = ?")
            params.append(error_message)
        if confirmed_at is not None:
            columns.append("confirmed_at = ?")
            params.append(confirmed_at)
        if status is TxStatus.CONFIRMED and confirmed_at is None:
            columns.append("confirmed_at = ?")
            params.append(time.time())

        columns.append("updated_at = ?")
        params.append(time.time())
        params.extend([record_id, TxStatus.PENDING.value])

        updated = self._execute(
            f"UPDATE drift_transactions SET {', '.join(columns)} WHERE id = ? AND status = ?",
            tuple(params),
            commit=True,
        )
        if updated == 0:
            Logger.warning(f"[LEDGER] Update rejected for {record_id[:8]}: missing or terminal")
            return False

        if status is not None:
            Logger.info(f"[LEDGER] {record_id[:8]} -> {status.value}")
        return True

    def get(self, record_id: str) -> Optional[TransactionRecord]:
        row = self._fetchone("SELECT * FROM drift_transactions WHERE id = ?", (record_id,))
        return TransactionRecord.from_row(row) if row else None

    def get_by_hash(self, tx_hash: str) -> Optional[TransactionRecord]:
        row = self._fetchone("SELECT * FROM drift_transactions WHERE tx_hash = ?", (tx_hash,))
        return TransactionRecord.from_row(row) if row else None

    def list_for_user(
        self,
        user_id: str,
        limit: int = 50,
        status: Optional[TxStatus] = None,
    ) -> List[TransactionRecord]:
        """Newest first."""
        if status is None:
            rows = self._fetchall(
                "SELECT * FROM drift_transactions WHERE user_id = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (str(user_id), limit),
            )
        else:
            rows = self._fetchall(
                "SELECT * FROM drift_transactions WHERE user_id = ? AND status = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (str(user_id), status.value, limit),
            )
        return [TransactionRecord.from_row(r) for r in rows]
