"""
Authentication orchestrator.

Drives one challenge-response exchange end to end:

    canonicalise address -> consume nonce -> verify signature
        -> resolve identity (login or register) -> outcome

Every failure is terminal.  A consumed nonce is never restored, even when a
later step fails, so a captured (nonce, signature) pair cannot be replayed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from walletauth import metrics
from walletauth.audit_logger import AuditLogger, get_audit_logger, redact
from walletauth.errors import (
    AuthenticationFailed,
    IdentityConflict,
    InvalidInput,
    InvalidOrExpiredNonce,
    InvalidSignature,
    StoreFailure,
)
from walletauth.models import AUTH_TYPE_WEB3, EMAIL_MAX_LENGTH, ROLE_USER, USER_ROLES, USERNAME_MAX_LENGTH
from walletauth.nonces import Challenge, NonceRegistry
from walletauth.signature import verify_signature
from walletauth.utils import canonicalize_address, is_valid_address, is_valid_email

logger = logging.getLogger(__name__)

ACTION_LOGIN = "login"
ACTION_REGISTER = "register"

LOGIN_MESSAGE = "Web3 authentication successful"
REGISTER_MESSAGE = "User registered and authenticated successfully"


@dataclass
class AuthOutcome:
    """Result of a successful authentication."""

    action: str
    user: Dict[str, Any]
    message: str
    success: bool = field(default=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action,
            "user": self.user,
            "message": self.message,
        }


@dataclass
class RegistrationDetails:
    """Optional profile fields a first-time wallet may supply."""

    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    reward_address: Optional[str] = None


class WalletAuthenticator:
    """
    Wires the nonce registry, the signature verifier and an identity store.

    Args:
        registry: Challenge registry shared by every request
        store: Identity store (``MemoryIdentityStore`` or ``SQLIdentityStore``)
        audit_logger: Destination for security events
        allow_self_assigned_role: Honour a client-supplied role at registration
        default_role: Role given to newly registered users
    """

    def __init__(
        self,
        registry: NonceRegistry,
        store,
        audit_logger: Optional[AuditLogger] = None,
        allow_self_assigned_role: bool = False,
        default_role: str = ROLE_USER,
    ):
        if default_role not in USER_ROLES:
            raise ValueError(f"default_role must be one of {USER_ROLES}")
        self.registry = registry
        self.store = store
        self.audit = audit_logger or get_audit_logger()
        self.allow_self_assigned_role = allow_self_assigned_role
        self.default_role = default_role

    # ------------------------------------------------------------------
    # Challenge
    # ------------------------------------------------------------------

    def request_challenge(self, address: str, ip_address: Optional[str] = None) -> Challenge:
        """
        Issue a challenge for ``address``.

        Raises:
            InvalidAddress: if the address fails syntax validation
        """
        challenge = self.registry.issue_challenge(address)
        canonical = canonicalize_address(address)

        metrics.challenges_issued.inc()
        metrics.live_nonces.set(len(self.registry))
        self.audit.log_event(
            "auth.challenge_issued",
            address=canonical,
            expires_at=challenge.to_dict()["expires_at"],
            ip=ip_address,
        )
        return challenge

    # ------------------------------------------------------------------
    # Authenticate
    # ------------------------------------------------------------------

    def authenticate(
        self,
        address: str,
        signature: Any,
        nonce: Optional[str],
        details: Optional[RegistrationDetails] = None,
        ip_address: Optional[str] = None,
    ) -> AuthOutcome:
        """
        Verify a signed challenge and resolve the wallet to a user.

        Returns:
            AuthOutcome with action "login" or "register"

        Raises:
            InvalidAddress: malformed address
            InvalidInput: malformed registration field
            InvalidOrExpiredNonce: no live challenge matches ``nonce``
            InvalidSignature: signature was not produced by ``address``
            IdentityConflict: username or wallet already registered
            StoreFailure: identity store unavailable
        """
        canonical = canonicalize_address(address)
        details = self._validate_details(details or RegistrationDetails())

        if not self.registry.verify_and_consume(canonical, nonce):
            self._fail(InvalidOrExpiredNonce(), canonical, ip_address)
        metrics.live_nonces.set(len(self.registry))

        # The nonce string itself is the signed payload
        verified = verify_signature(nonce, signature, canonical)
        self.audit.log_signature_verification(canonical, verified)
        if not verified:
            self._fail(InvalidSignature(), canonical, ip_address, nonce=redact(nonce))

        try:
            outcome = self._resolve_identity(canonical, details, ip_address)
        except IdentityConflict:
            metrics.auth_attempts.labels(result=metrics.RESULT_CONFLICT).inc()
            raise
        except StoreFailure as e:
            metrics.auth_attempts.labels(result=metrics.RESULT_STORE_FAILURE).inc()
            self.audit.log_error("store_failure", str(e.__cause__ or e), {"address": canonical})
            raise

        metrics.auth_attempts.labels(result=outcome.action).inc()
        self.audit.log_auth_attempt(canonical, "web3", True, ip_address)
        return outcome

    def _fail(self, error: AuthenticationFailed, address: str, ip_address: Optional[str], **extra: Any) -> None:
        metrics.auth_attempts.labels(result=error.reason).inc()
        self.audit.log_event("auth.verify_failed", reason=error.reason, address=address, ip=ip_address, **extra)
        self.audit.log_auth_attempt(address, "web3", False, ip_address)
        raise error

    def _validate_details(self, details: RegistrationDetails) -> RegistrationDetails:
        username = details.username
        if username is not None:
            if not isinstance(username, str):
                raise InvalidInput("username must be a string")
            username = username.strip() or None
            if username is not None and len(username) > USERNAME_MAX_LENGTH:
                raise InvalidInput(f"username must be at most {USERNAME_MAX_LENGTH} characters")

        email = details.email or None
        if email is not None and (not isinstance(email, str) or not is_valid_email(email.strip())):
            raise InvalidInput("Invalid email address")
        if email is not None and len(email.strip()) > EMAIL_MAX_LENGTH:
            raise InvalidInput(f"email must be at most {EMAIL_MAX_LENGTH} characters")

        reward_address = details.reward_address or None
        if reward_address is not None:
            if not is_valid_address(reward_address):
                raise InvalidInput("Invalid reward address")
            reward_address = canonicalize_address(reward_address)

        role = details.role or None
        if role is not None and role not in USER_ROLES:
            raise InvalidInput(f"role must be one of {', '.join(USER_ROLES)}")

        return RegistrationDetails(
            username=username,
            email=email.strip() if email else None,
            role=role,
            reward_address=reward_address,
        )

    def _resolve_identity(
        self, canonical: str, details: RegistrationDetails, ip_address: Optional[str]
    ) -> AuthOutcome:
        existing = self.store.find_user_by_binding(AUTH_TYPE_WEB3, canonical)
        if existing:
            # Re-read so every binding of the user is included
            user = self.store.find_user_by_id(existing["user_id"]) or existing
            self.audit.log_event("auth.login", user_id=user["user_id"], address=canonical, ip=ip_address)
            return AuthOutcome(action=ACTION_LOGIN, user=user, message=LOGIN_MESSAGE)

        role = self.default_role
        if details.role and details.role != self.default_role:
            if self.allow_self_assigned_role:
                role = details.role
            else:
                self.audit.log_event(
                    "auth.role_ignored", address=canonical, requested_role=details.role, assigned_role=role
                )

        user_data = {
            "username": details.username or canonical,
            "email": details.email,
            "role": role,
            "reward_address": details.reward_address,
        }
        user = self.store.create_user_with_binding(user_data, AUTH_TYPE_WEB3, canonical)
        logger.info(f"Registered new wallet user {user['user_id']} for {canonical}")
        self.audit.log_event(
            "auth.register", user_id=user["user_id"], address=canonical, role=user["role"], ip=ip_address
        )
        return AuthOutcome(action=ACTION_REGISTER, user=user, message=REGISTER_MESSAGE)
