"""
Error taxonomy for wallet authentication.

Every error the authentication core raises derives from ``WalletAuthError`` and
carries the HTTP status category the transport layer should answer with.
Signature decoding errors are internal to ``walletauth.signature`` and never
reach callers of ``verify_signature``.
"""

from typing import Any, Dict, Optional

GENERIC_AUTH_FAILURE = "Authentication failed"


class WalletAuthError(Exception):
    """Base class for all authentication errors."""

    status_code = 500
    error = "internal_error"
    public_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.error, "message": self.message}


class InvalidAddress(WalletAuthError):
    """Address is not 40 hex characters (optionally 0x-prefixed)."""

    status_code = 400
    error = "invalid_address"
    public_message = "Invalid ethereum address"


class InvalidInput(WalletAuthError):
    """A registration field failed validation."""

    status_code = 400
    error = "invalid_input"
    public_message = "Invalid request"


class AuthenticationFailed(WalletAuthError):
    """
    Uniform authentication failure.

    The public message never says which step failed; ``reason`` is kept for
    audit logging only.
    """

    status_code = 401
    error = "authentication_failed"
    public_message = GENERIC_AUTH_FAILURE
    reason = "authentication_failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(GENERIC_AUTH_FAILURE)
        if message:
            self.reason = message


class InvalidOrExpiredNonce(AuthenticationFailed):
    reason = "invalid_or_expired_nonce"


class InvalidSignature(AuthenticationFailed):
    reason = "invalid_signature"


class IdentityConflict(WalletAuthError):
    """Username or wallet binding already exists."""

    status_code = 409
    error = "identity_conflict"
    public_message = "Identity already exists"


class StoreFailure(WalletAuthError):
    """Identity store I/O failure. The original exception is kept as ``__cause__``."""

    status_code = 500
    error = "store_failure"
    public_message = "Identity store unavailable"


# ---------------------------------------------------------------------------
# Signature verifier internals
# ---------------------------------------------------------------------------


class SignatureError(ValueError):
    """Malformed cryptographic input."""


class InvalidSignatureEncoding(SignatureError):
    pass


class InvalidSignatureLength(SignatureError):
    pass


class InvalidRecoveryID(SignatureError):
    pass


class RecoveryFailed(SignatureError):
    pass
