"""Helpers for issuing and verifying session JWTs."""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional

import jwt

from .config import DEFAULT_JWT_SECRET, get_config
from .errors import AuthenticationFailed


def _resolve_ttl(cfg: Mapping[str, Any]) -> int:
    hours = cfg.get("JWT_EXPIRATION_HOURS", 24)
    try:
        return int(hours) * 3600
    except (TypeError, ValueError):
        return 24 * 3600


def _signing_key(cfg: Mapping[str, Any]) -> str:
    secret = cfg.get("JWT_SECRET") or DEFAULT_JWT_SECRET
    return secret.decode() if isinstance(secret, (bytes, bytearray)) else str(secret)


def issue_session_token(user: Mapping[str, Any], cfg: Optional[Mapping[str, Any]] = None) -> str:
    """Issue an HS256 session token for a resolved user."""
    cfg = cfg or get_config()
    now = int(time.time())

    payload: Dict[str, Any] = {
        "iss": cfg.get("APP_NAME") or "MCPForge",
        "sub": str(user["user_id"]),
        "user_id": user["user_id"],
        "username": user["username"],
        "role": user["role"],
        "iat": now,
        "exp": now + _resolve_ttl(cfg),
    }
    alg = str(cfg.get("JWT_ALGORITHM") or "HS256").upper()
    return jwt.encode(payload, _signing_key(cfg), algorithm=alg)


def decode_session_token(token: Optional[str], cfg: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Verify a session token and return its claims.

    Raises:
        AuthenticationFailed: if the token is missing, expired or forged
    """
    if not token:
        raise AuthenticationFailed("missing_token")

    cfg = cfg or get_config()
    alg = str(cfg.get("JWT_ALGORITHM") or "HS256").upper()
    try:
        return jwt.decode(
            token,
            _signing_key(cfg),
            algorithms=[alg],
            issuer=cfg.get("APP_NAME") or "MCPForge",
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationFailed("token_expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationFailed("invalid_token") from e


__all__ = ["issue_session_token", "decode_session_token"]
