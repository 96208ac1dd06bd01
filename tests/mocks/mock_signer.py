"""
Mock Custodial Signer
=====================
Signs with a real Keypair so signatures verify end to end.
"""

import base64
from typing import List, Optional

from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction import Transaction


class MockCustodialSigner:
    """
    Usage:
        signer = MockCustodialSigner(keypair)
        signer.errors = [SignerUnavailableError("connection reset")]
        signer.mode = "unsigned"     # return the tx untouched
    """

    def __init__(self, keypair: Keypair):
        self.keypair = keypair
        self.requests: List[str] = []
        self.errors: List[Exception] = []
        self.mode = "sign"
        self.tamper_with: Optional[Keypair] = None

    async def sign(self, user_id: str, transaction_b64: str) -> str:
        self.requests.append(transaction_b64)
        if self.errors:
            raise self.errors.pop(0)

        tx = Transaction.from_bytes(base64.b64decode(transaction_b64))
        if self.mode == "unsigned":
            return transaction_b64
        if self.mode == "garbage":
            return base64.b64encode(b"not a transaction").decode()

        signing_key = self.tamper_with or self.keypair
        signature = signing_key.sign_message(bytes(tx.message))
        signatures = [signature] + [Signature.default()] * (len(tx.signatures) - 1)
        signed = Transaction.populate(tx.message, signatures)
        return base64.b64encode(bytes(signed)).decode()
