"""
Trade Pipeline
==============
Completed intent ──► build ──► ledger PENDING ──► sign/submit ──► ledger final

Builder failures return before any record exists. Once a record is
created the submission is shielded from cancellation so the record always
reaches CONFIRMED or FAILED.
"""

import asyncio
import sqlite3
from dataclasses import dataclass
from typing import Optional

from solders.pubkey import Pubkey

from src.execution.errors import ErrorType, classify_error, user_message
from src.execution.signing_service import SigningService
from src.execution.transaction_builder import TransactionBuilder, UnsignedTransaction
from src.shared.state.flow_state import FlowStateMachine, Intent
from src.shared.system.database.repositories.transaction_repo import (
    TransactionRecord,
    TransactionRepository,
    TxStatus,
)
from src.shared.system.logging import Logger


@dataclass(frozen=True)
class WalletRef:
    """The user's custodial wallet."""
    wallet_id: str
    address: Pubkey
    sub_account_id: int = 0


@dataclass
class PipelineResult:
    """What the chat layer gets back."""
    success: bool
    tx_hash: Optional[str] = None
    record_id: Optional[str] = None
    error_type: Optional[ErrorType] = None
    error_message: Optional[str] = None

    @property
    def user_message(self) -> str:
        if self.success:
            return "Transaction confirmed."
        return user_message(self.error_type or ErrorType.UNKNOWN, self.error_message)


class TradePipeline:
    """
    Runs one intent end to end.

    Usage:
        pipeline = TradePipeline(builder, signing, ledger, flows)
        result = await pipeline.execute(intent, WalletRef("w1", pubkey))
    """

    def __init__(
        self,
        builder: TransactionBuilder,
        signing: SigningService,
        ledger: TransactionRepository,
        flows: Optional[FlowStateMachine] = None,
    ):
        self.builder = builder
        self.signing = signing
        self.ledger = ledger
        self.flows = flows

    async def execute(self, intent: Intent, wallet: WalletRef) -> PipelineResult:
        Logger.info(f"[PIPELINE] {intent.kind.value} for user {intent.user_id}")
        try:
            try:
                tx = await self.builder.build_transaction(intent, wallet.address, wallet.sub_account_id)
            except Exception as e:
                error_type = classify_error(e)
                Logger.warning(f"[PIPELINE] Build failed ({error_type.value}): {e}")
                return PipelineResult(success=False, error_type=error_type, error_message=str(e))

            record = await asyncio.to_thread(
                self.ledger.create,
                user_id=intent.user_id,
                wallet_id=wallet.wallet_id,
                tx_type=intent.kind.value,
                amount=str(tx.display_amount),
                market_index=tx.market_index,
                token_symbol=tx.token_symbol,
                metadata={
                    "chat_id": intent.chat_id,
                    "sub_account_id": wallet.sub_account_id,
                    "instruction_count": len(tx.instructions),
                    "side": intent.get("side"),
                    "order_type": intent.get("order_type"),
                },
            )
            return await asyncio.shield(self._submit(intent.user_id, tx, record))
        finally:
            if self.flows is not None:
                self.flows.finish_flow(intent)

    async def _submit(self, user_id: str, tx: UnsignedTransaction, record: TransactionRecord) -> PipelineResult:
        async def on_retry(attempt: int, error: BaseException):
            try:
                await asyncio.to_thread(self.ledger.update_status, record.id, retry_count=attempt)
            except sqlite3.Error as e:
                Logger.error(f"[PIPELINE] Retry count for {record.id[:8]} not saved: {e}")

        try:
            tx_hash = await self.signing.sign_and_send_with_retry(user_id, tx, on_retry=on_retry)
        except Exception as e:
            error_type = classify_error(e)
            await asyncio.to_thread(
                self.ledger.update_status,
                record.id,
                status=TxStatus.FAILED,
                error_type=error_type.value,
                error_message=str(e),
            )
            Logger.error(f"[PIPELINE] {tx.kind.value} {record.id[:8]} failed ({error_type.value}): {e}")
            return PipelineResult(
                success=False,
                record_id=record.id,
                error_type=error_type,
                error_message=str(e),
            )

        await asyncio.to_thread(
            self.ledger.update_status,
            record.id,
            status=TxStatus.CONFIRMED,
            tx_hash=tx_hash,
        )
        Logger.success(f"[PIPELINE] {tx.kind.value} {record.id[:8]} confirmed: {tx_hash}")
        return PipelineResult(success=True, tx_hash=tx_hash, record_id=record.id)
