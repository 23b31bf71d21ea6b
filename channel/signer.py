"""
Signer adapters for channel negotiation.

Signing is delegated to eth_account; this module only adapts it to the
negotiator's ``sign`` / ``verify`` / ``is_available`` interface.
"""

import logging
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError

from utils.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)


class Signer:
    """Interface the channel negotiator signs through."""

    address: Optional[str] = None

    def is_available(self) -> bool:
        return False

    def sign(self, payload: bytes) -> str:
        raise ExternalServiceFailure("No signer configured")

    def verify(self, payload: bytes, signature: str, address: str) -> bool:
        raise NotImplementedError


class LocalAccountSigner(Signer):
    """
    EIP-191 personal-message signer backed by a local session key.

    Args:
        private_key: Hex private key; a fresh key is generated when omitted
    """

    def __init__(self, private_key: Optional[str] = None):
        if private_key:
            self.account = Account.from_key(private_key)
        else:
            self.account = Account.create()
        self.address = self.account.address
        logger.debug(f"Session signer ready for {self.address}")

    def is_available(self) -> bool:
        return self.account is not None

    def sign(self, payload: bytes) -> str:
        try:
            signed = self.account.sign_message(encode_defunct(primitive=payload))
        except (TypeError, ValueError) as e:
            raise ExternalServiceFailure(f"Signing failed: {e}") from e
        return '0x' + bytes(signed.signature).hex()

    def verify(self, payload: bytes, signature: str, address: str) -> bool:
        """True if ``signature`` over ``payload`` recovers to ``address``."""
        # eth_account asserts on an out-of-range recovery byte
        try:
            recovered = Account.recover_message(encode_defunct(primitive=payload), signature=signature)
        except (AssertionError, BadSignature, ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Signature could not be recovered: {e}")
            return False
        return recovered.lower() == str(address).lower()
