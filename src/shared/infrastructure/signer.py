"""
Custodial Signer
================
The relay never holds user keys. Unsigned transactions are handed to an
embedded-wallet service which returns them signed by the user's wallet.

    SigningService ──base64 tx──► CustodialSigner.sign() ──► signed base64 tx
"""

import base64
import binascii
from typing import Callable, Optional, Protocol

import httpx

from config.settings import Settings
from src.execution.errors import SignerResponseError, SignerUnavailableError
from src.shared.system.logging import Logger


class CustodialSigner(Protocol):
    """Anything that can sign a serialized transaction for a user."""

    async def sign(self, user_id: str, transaction_b64: str) -> str:
        ...


class HttpCustodialSigner:
    """
    Embedded-wallet signer speaking the wallet RPC endpoint.

    POST {api_url}/wallets/{wallet_id}/rpc
        {"method": "signTransaction",
         "params": {"transaction": <b64>, "encoding": "base64"}}

    Authenticated with HTTP basic auth (app id / app secret) plus the
    ``privy-app-id`` header.

    Usage:
        signer = HttpCustodialSigner(wallet_resolver=lambda uid: wallets[uid])
        signed_b64 = await signer.sign("42", unsigned_b64)
    """

    def __init__(
        self,
        wallet_resolver: Optional[Callable[[str], str]] = None,
        api_url: Optional[str] = None,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.wallet_resolver = wallet_resolver or (lambda user_id: user_id)
        self.api_url = (api_url or Settings.SIGNER_API_URL).rstrip("/")
        self.app_id = app_id if app_id is not None else Settings.SIGNER_APP_ID
        self.app_secret = app_secret if app_secret is not None else Settings.SIGNER_APP_SECRET
        self.timeout = timeout or Settings.SIGNER_TIMEOUT_SECONDS
        self._transport = transport

    async def sign(self, user_id: str, transaction_b64: str) -> str:
        wallet_id = self.wallet_resolver(user_id)
        payload = {
            "method": "signTransaction",
            "params": {"transaction": transaction_b64, "encoding": "base64"},
        }
        Logger.info(f"[SIGNER] Requesting signature for user {user_id}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_url}/wallets/{wallet_id}/rpc",
                    json=payload,
                    auth=(self.app_id, self.app_secret),
                    headers={"privy-app-id": self.app_id},
                )
        except httpx.TransportError as e:
            raise SignerUnavailableError(f"Signer request failed: {e}") from e

        if response.status_code != 200:
            raise SignerResponseError(
                f"Signer returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            signed = response.json()["data"]["signed_transaction"]
            base64.b64decode(signed, validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise SignerResponseError(f"Malformed signer response: {e}") from e
        return signed
