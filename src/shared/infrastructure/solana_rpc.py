"""
Solana RPC Gateway
==================
Thin async wrapper over ``solana.rpc.async_api.AsyncClient``.

Every library failure is re-raised as ``RpcError`` with the original text
preserved, so retry classification can match on it downstream.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from config.settings import Settings
from src.execution.errors import RpcError
from src.shared.system.logging import Logger

_RPC_FAILURES = (SolanaRpcException, RPCException, httpx.HTTPError, OSError, asyncio.TimeoutError)

# Ordering used to decide whether a status satisfies the requested commitment
_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


@dataclass(frozen=True)
class SignatureStatus:
    """Simplified getSignatureStatuses entry."""
    confirmation_status: Optional[str]
    err: Optional[str] = None

    def reached(self, commitment: str) -> bool:
        if self.confirmation_status is None:
            return False
        return _COMMITMENT_RANK.get(self.confirmation_status, -1) >= _COMMITMENT_RANK[commitment]


class SolanaRpcGateway:
    """
    Async ledger RPC.

    Usage:
        rpc = SolanaRpcGateway()
        blockhash = await rpc.get_latest_blockhash()
        sig = await rpc.send_raw_transaction(bytes(tx))
    """

    def __init__(self, rpc_url: Optional[str] = None, client: Optional[AsyncClient] = None):
        self.rpc_url = rpc_url or Settings.RPC_URL
        self.client = client or AsyncClient(self.rpc_url, commitment=Confirmed)

    async def close(self):
        await self.client.close()

    async def get_latest_blockhash(self) -> Hash:
        try:
            resp = await self.client.get_latest_blockhash(commitment=Confirmed)
        except _RPC_FAILURES as e:
            raise RpcError(f"getLatestBlockhash failed: {e}") from e
        return resp.value.blockhash

    async def send_raw_transaction(self, raw: bytes) -> str:
        """Broadcast with preflight simulation (which verifies signatures)."""
        opts = TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
        try:
            resp = await self.client.send_raw_transaction(raw, opts=opts)
        except _RPC_FAILURES as e:
            raise RpcError(f"sendTransaction failed: {e}") from e
        signature = str(resp.value)
        Logger.debug(f"[RPC] Sent {signature}")
        return signature

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        try:
            resp = await self.client.get_signature_statuses([Signature.from_string(signature)])
        except _RPC_FAILURES as e:
            raise RpcError(f"getSignatureStatuses failed: {e}") from e

        status = resp.value[0] if resp.value else None
        if status is None:
            return None
        level = None
        if status.confirmation_status is not None:
            level = str(status.confirmation_status).split(".")[-1].lower()
        err = str(status.err) if status.err is not None else None
        return SignatureStatus(confirmation_status=level, err=err)

    async def get_multiple_accounts(self, keys: Sequence[Pubkey]) -> List[Optional[bytes]]:
        """Raw account data per key, None where the account does not exist."""
        try:
            resp = await self.client.get_multiple_accounts(
                list(keys), commitment=Commitment(Settings.CONFIRMATION_COMMITMENT)
            )
        except _RPC_FAILURES as e:
            raise RpcError(f"getMultipleAccounts failed: {e}") from e
        return [bytes(acc.data) if acc is not None else None for acc in resp.value]
