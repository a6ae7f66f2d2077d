"""
Wallet signer backed by an eth_account local account.
"""

from typing import Optional

import structlog
from eth_account import Account

from payouts.core.exceptions import ConfigurationError, SubmissionFailedError


logger = structlog.get_logger(__name__)


class LocalAccountSigner:
    """Signs Safe transaction hashes with a locally held private key."""

    def __init__(self, private_key: str):
        try:
            self._account = Account.from_key(private_key)
        except Exception as e:
            raise ConfigurationError(f"Invalid signer private key: {e}")
        self.address = self._account.address
        logger.info("Signer initialized", address=self.address)

    @classmethod
    def from_settings(cls, private_key: Optional[str]) -> "LocalAccountSigner":
        if not private_key:
            raise ConfigurationError("Signer private key not configured (SIGNER_PRIVATE_KEY)")
        return cls(private_key)

    def sign_hash(self, message_hash: bytes) -> bytes:
        """Sign a 32-byte hash, returning the 65-byte r||s||v signature."""
        try:
            signed = self._account.unsafe_sign_hash(message_hash)
        except Exception as e:
            raise SubmissionFailedError(f"Signer rejected hash: {e}", {"signer": self.address})
        return bytes(signed.signature)
