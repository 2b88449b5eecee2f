"""
Audit logging for wallet authentication.

Security events are written as one JSON object per line to the ``audit``
logger.  Nonces and signatures are never logged in full.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_logger = logging.getLogger("audit")
_audit_logger = None  # Will be initialized by init_audit_logger


def init_audit_logger():
    """Initialize the audit logger."""
    global _audit_logger

    _logger.setLevel(logging.INFO)

    # Add console handler if not already present
    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - AUDIT - %(levelname)s - %(message)s"))
        _logger.addHandler(handler)

    _audit_logger = AuditLogger()
    _logger.info("Audit logger initialized")
    return _audit_logger


def get_audit_logger():
    """Get the audit logger instance."""
    global _audit_logger

    if _audit_logger is None:
        init_audit_logger()
    return _audit_logger


def redact(value: Optional[str], keep: int = 12) -> Optional[str]:
    """Shorten a secret-ish value (nonce, signature, token) for logging."""
    if not value:
        return value
    if len(value) <= keep:
        return value
    return f"{value[:keep]}..."


class AuditLogger:
    """
    Audit logging interface for security events.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or _logger

    def log_event(self, event: str, **details: Any) -> None:
        """Generic structured audit event."""

        payload = {"event": event, **details, "timestamp": datetime.now(timezone.utc).isoformat()}
        self.logger.info(json.dumps(payload, default=str))

    def log_auth_attempt(self, address: str, method: str, success: bool, ip_address: Optional[str] = None):
        """Log authentication attempt."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"AUTH_ATTEMPT | address={address} | method={method} | status={status} | ip={ip_address}")

    def log_signature_verification(self, address: str, success: bool, signature_type: str = "eip191"):
        """Log cryptographic signature verification."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"SIG_VERIFY | address={address} | type={signature_type} | status={status}")

    def log_token_issued(self, user_id: Any, token_type: str = "session"):
        """Log session credential issuance."""
        self.logger.info(f"TOKEN_ISSUED | user={user_id} | type={token_type}")

    def log_security_event(self, event_type: str, severity: str, details: Dict[str, Any]):
        """Log security event."""
        self.logger.warning(f"SECURITY_EVENT | type={event_type} | severity={severity} | details={details}")

    def log_rate_limit_exceeded(self, ip_address: Optional[str], endpoint: str):
        """Log rate limit violation."""
        self.logger.warning(f"RATE_LIMIT_EXCEEDED | ip={ip_address} | endpoint={endpoint}")

    def log_error(self, error_type: str, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log application error."""
        msg = f"ERROR | type={error_type} | msg={error_msg}"
        if context:
            msg += f" | context={context}"
        self.logger.error(msg)
