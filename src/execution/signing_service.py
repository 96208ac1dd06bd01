"""
Signing & Submission Service
============================
Gets an unsigned transaction signed by the custodial wallet, broadcasts it
and waits for confirmation.

One cycle:
    1. fresh blockhash
    2. normalise signer flags (only the fee payer may sign)
    3. base64 unsigned tx ──► CustodialSigner ──► base64 signed tx
    4. extract the fee payer's signature
    5. rebuild from our own instructions, attach that signature, verify
    6. broadcast with preflight, poll until the commitment is reached

Step 5 means the bytes we broadcast are always the bytes we built; the
signer's copy only contributes a signature.
"""

import asyncio
import base64
import dataclasses
import time
from typing import Callable, List, Optional

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from config.settings import Settings
from src.execution.errors import (
    ConfirmationTimeoutError,
    MissingSignatureError,
    SignatureVerificationError,
    SignerResponseError,
    TransactionFailedError,
)
from src.execution.retry_policy import OnRetry, RetryPolicy
from src.execution.transaction_builder import UnsignedTransaction
from src.shared.infrastructure.signer import CustodialSigner
from src.shared.infrastructure.solana_rpc import SolanaRpcGateway
from src.shared.system.logging import Logger


def normalize_signers(instructions: List[Instruction], fee_payer: Pubkey) -> List[Instruction]:
    """Rewrite every account meta so ``is_signer`` is true only for the fee payer."""
    normalized = []
    for ix in instructions:
        accounts = [
            AccountMeta(meta.pubkey, is_signer=meta.pubkey == fee_payer, is_writable=meta.is_writable)
            for meta in ix.accounts
        ]
        normalized.append(Instruction(ix.program_id, ix.data, accounts))
    return normalized


def extract_fee_payer_signature(signed_b64: str, fee_payer: Pubkey) -> Signature:
    """Locate the fee payer's signature in a signer response."""
    try:
        signed = Transaction.from_bytes(base64.b64decode(signed_b64))
    except Exception as e:
        raise SignerResponseError(f"Unparseable signed transaction: {e}") from e

    keys = list(signed.message.account_keys)
    if fee_payer not in keys:
        raise MissingSignatureError(fee_payer)
    index = keys.index(fee_payer)
    if index >= len(signed.signatures):
        raise MissingSignatureError(fee_payer)

    signature = signed.signatures[index]
    if signature == Signature.default():
        raise MissingSignatureError(fee_payer)
    return signature


class SigningService:
    """
    Signs through a custodial signer and submits to the cluster.

    Usage:
        service = SigningService(rpc, signer)
        tx_hash = await service.sign_and_send_with_retry(user_id, unsigned_tx)
    """

    def __init__(
        self,
        rpc: SolanaRpcGateway,
        signer: CustodialSigner,
        policy: Optional[RetryPolicy] = None,
        confirmation_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        commitment: Optional[str] = None,
        sleep: Callable = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rpc = rpc
        self.signer = signer
        self.policy = policy or RetryPolicy(
            max_retries=Settings.SIGN_MAX_RETRIES,
            base_delay=Settings.SIGN_BASE_DELAY_SECONDS,
        )
        self.confirmation_timeout = confirmation_timeout or Settings.CONFIRMATION_TIMEOUT_SECONDS
        self.poll_interval = poll_interval or Settings.CONFIRMATION_POLL_SECONDS
        self.commitment = (commitment or Settings.CONFIRMATION_COMMITMENT).lower()
        self._sleep = sleep
        self._clock = clock

    async def sign_and_send(self, user_id: str, tx: UnsignedTransaction) -> str:
        """One full sign → submit → confirm cycle. Returns the signature."""
        fee_payer = tx.fee_payer
        blockhash: Hash = await self.rpc.get_latest_blockhash()
        instructions = normalize_signers(tx.instructions, fee_payer)

        message = Message.new_with_blockhash(instructions, fee_payer, blockhash)
        unsigned = Transaction.new_unsigned(message)
        unsigned_b64 = base64.b64encode(bytes(unsigned)).decode("ascii")

        signed_b64 = await self.signer.sign(user_id, unsigned_b64)
        signature = extract_fee_payer_signature(signed_b64, fee_payer)

        if not signature.verify(fee_payer, bytes(message)):
            raise SignatureVerificationError(
                f"Signature from signer does not verify for fee payer {fee_payer}"
            )
        verified = Transaction.populate(message, [signature])

        tx_hash = await self.rpc.send_raw_transaction(bytes(verified))
        Logger.info(f"[SIGNER] Submitted {tx.kind.value} {tx_hash[:16]}...")

        await self._wait_for_confirmation(tx_hash)
        Logger.success(f"[SIGNER] Confirmed {tx_hash[:16]}... ({self.commitment})")
        return tx_hash

    async def sign_and_send_with_retry(
        self,
        user_id: str,
        tx: UnsignedTransaction,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        on_retry: Optional[OnRetry] = None,
    ) -> str:
        policy = self.policy
        if max_retries is not None:
            policy = dataclasses.replace(policy, max_retries=max_retries)
        if base_delay is not None:
            policy = dataclasses.replace(policy, base_delay=base_delay)

        return await policy.run(lambda: self.sign_and_send(user_id, tx), on_retry=on_retry)

    async def _wait_for_confirmation(self, tx_hash: str) -> None:
        deadline = self._clock() + self.confirmation_timeout
        while True:
            status = await self.rpc.get_signature_status(tx_hash)
            if status is not None:
                if status.err is not None:
                    raise TransactionFailedError(tx_hash, status.err)
                if status.reached(self.commitment):
                    return
            if self._clock() >= deadline:
                raise ConfirmationTimeoutError(tx_hash, self.confirmation_timeout)
            await self._sleep(self.poll_interval)
