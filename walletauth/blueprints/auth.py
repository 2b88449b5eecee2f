"""
Authentication Blueprint - Wallet Challenge, Verification and Session

Handles Ethereum wallet signature-based authentication and the session cookie.
"""

import logging
import time
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request

from walletauth.audit_logger import get_audit_logger
from walletauth.authenticator import RegistrationDetails
from walletauth.errors import AuthenticationFailed, InvalidInput
from walletauth.security import CHALLENGE_RATE_LIMIT, VERIFY_RATE_LIMIT, limiter
from walletauth.tokens import decode_session_token, issue_session_token

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _components() -> Dict[str, Any]:
    return current_app.extensions["walletauth"]


def _config() -> Dict[str, Any]:
    return current_app.config["APP_CONFIG"]


def _session_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(_config()["SESSION_COOKIE_NAME"])


@auth_bp.route("/user/auth/web3/challenge", methods=["GET"])
@limiter.limit(CHALLENGE_RATE_LIMIT)
def web3_challenge():
    """
    Issue a login challenge for a wallet address.

    Query parameters:
        - address: 0x-prefixed (or bare) 40 hex character address

    Returns:
        JSON with the nonce to sign and its expiry
    """
    address = (request.args.get("address") or "").strip()
    if not address:
        raise InvalidInput("Address parameter is required")

    challenge = _components()["authenticator"].request_challenge(address, ip_address=request.remote_addr)
    return jsonify({"success": True, "data": challenge.to_dict()})


@auth_bp.route("/user/auth/web3/verify", methods=["POST"])
@limiter.limit(VERIFY_RATE_LIMIT)
def web3_verify():
    """
    Verify a signed challenge and log in (or register) the wallet.

    Expected JSON body:
        - address: Wallet address the challenge was issued for
        - signature: 65-byte hex signature over the nonce
        - nonce: The exact challenge string
        - username, email, role, reward_address: optional, first login only

    Returns:
        JSON with action, user and session token; sets the session cookie
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("Invalid request body")

    address = data.get("address")
    signature = data.get("signature")
    nonce = data.get("nonce")
    if not address or not signature or not nonce:
        raise InvalidInput("Address, signature, and nonce are required")
    if not all(isinstance(v, str) for v in (address, signature, nonce)):
        raise InvalidInput("Address, signature, and nonce must be strings")

    details = RegistrationDetails(
        username=data.get("username"),
        email=data.get("email"),
        role=data.get("role"),
        reward_address=data.get("reward_address"),
    )
    outcome = _components()["authenticator"].authenticate(
        address.strip(), signature, nonce, details=details, ip_address=request.remote_addr
    )

    cfg = _config()
    token = issue_session_token(outcome.user, cfg)
    get_audit_logger().log_token_issued(outcome.user["user_id"])

    body = outcome.to_dict()
    body["token"] = token
    response = jsonify(body)
    response.set_cookie(
        cfg["SESSION_COOKIE_NAME"],
        token,
        max_age=int(cfg["JWT_EXPIRATION_HOURS"]) * 3600,
        httponly=True,
        secure=bool(cfg.get("SECURE_COOKIES")) or cfg.get("FLASK_ENV") == "production",
        samesite="Lax",
        path="/",
    )

    logger.info(f"Web3 auth successful: action={outcome.action} user_id={outcome.user['user_id']}")
    return response


@auth_bp.route("/auth/me", methods=["GET"])
def current_user():
    """
    Return the user behind the bearer token or session cookie.

    Returns:
        JSON with the user record, 401 if not authenticated
    """
    claims = decode_session_token(_session_token(), _config())
    user = _components()["store"].find_user_by_id(claims["user_id"])
    if user is None:
        raise AuthenticationFailed("unknown_user")
    return jsonify({"success": True, "data": user})


@auth_bp.route("/auth/status", methods=["GET"])
def status():
    """Service liveness for clients of the auth API."""
    return jsonify({"success": True, "message": "Authentication service is running", "timestamp": int(time.time())})


@auth_bp.route("/user/auth/logout", methods=["POST"])
def logout():
    """
    Clear the session cookie.

    Returns:
        JSON confirmation
    """
    cfg = _config()
    token = _session_token()
    if token:
        try:
            claims = decode_session_token(token, cfg)
            get_audit_logger().log_event("auth.logout", user_id=claims.get("user_id"), ip=request.remote_addr)
        except AuthenticationFailed:
            logger.debug("Logout with an invalid or expired session token")

    response = jsonify({"success": True, "message": "Logged out"})
    response.delete_cookie(cfg["SESSION_COOKIE_NAME"], path="/")
    return response
