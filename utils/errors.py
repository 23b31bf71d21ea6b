"""
Error taxonomy for FlashPoint.

Protocol violations are rejected locally and never change session state.
Peer and external service failures always lead to a defined fallback.
Arithmetic invariant violations are defects and are never recovered from.
"""


class FlashPointError(Exception):
    """Base exception for FlashPoint errors."""
    pass


class ProtocolViolation(FlashPointError):
    """Raised when a participant acts out of turn or sends malformed data."""
    pass


class PeerUnavailable(FlashPointError):
    """Raised when the counterparty disconnects or stops responding."""
    pass


class ExternalServiceFailure(FlashPointError):
    """Raised when the signer or the ledger service is unreachable or errors."""
    pass


class ArithmeticInvariantViolation(FlashPointError):
    """Raised when settlement amounts do not reconcile."""
    pass
