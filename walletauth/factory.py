"""
Application Factory for the wallet authentication service

Implements the Flask application factory pattern with:
- Blueprint registration
- Security configuration (TLS, headers, rate limiting)
- Identity store, nonce registry and sweeper wiring
- JSON error handling
"""

import logging
from typing import Any, Mapping, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from walletauth.audit_logger import init_audit_logger
from walletauth.authenticator import WalletAuthenticator
from walletauth.config import get_config, validate_config
from walletauth.database import get_database_url, init_database
from walletauth.db_storage import SQLIdentityStore
from walletauth.errors import WalletAuthError
from walletauth.nonces import NonceRegistry, NonceSweeper
from walletauth.security import init_security
from walletauth.storage import MemoryIdentityStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "walletauth"


def create_app(config_override: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Create and configure the Flask application using the factory pattern.

    Args:
        config_override: Values layered over the environment configuration

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # Load configuration
    cfg = dict(get_config())
    if config_override:
        cfg.update(config_override)
    validate_config(cfg)
    app.config["APP_CONFIG"] = cfg

    # Set Flask secret key (required for sessions)
    app.secret_key = cfg.get("FLASK_SECRET_KEY") or cfg["JWT_SECRET"]

    # Initialize security middleware (Talisman, rate limiting, logging)
    init_security(app, cfg)

    audit = init_audit_logger()
    store = build_identity_store(cfg)
    registry = NonceRegistry(
        app_name=cfg["APP_NAME"],
        ttl_seconds=int(cfg["NONCE_TTL_SECONDS"]),
        random_length=int(cfg["NONCE_RANDOM_LENGTH"]),
    )
    authenticator = WalletAuthenticator(
        registry,
        store,
        audit_logger=audit,
        allow_self_assigned_role=bool(cfg.get("ALLOW_SELF_ASSIGNED_ROLE")),
        default_role=cfg.get("DEFAULT_ROLE") or "user",
    )

    sweeper = None
    interval = int(cfg.get("NONCE_SWEEP_INTERVAL") or 0)
    if interval > 0:
        sweeper = NonceSweeper(registry, interval=interval)
        sweeper.start()

    app.extensions[EXTENSION_KEY] = {
        "registry": registry,
        "store": store,
        "authenticator": authenticator,
        "sweeper": sweeper,
    }

    register_blueprints(app)
    register_error_handlers(app)
    register_request_handlers(app)

    logger.info(f"Application factory completed (backend={cfg['IDENTITY_BACKEND']})")
    return app


def build_identity_store(cfg: Mapping[str, Any]):
    """Select the identity store named by ``IDENTITY_BACKEND``."""
    if cfg.get("IDENTITY_BACKEND") == "memory":
        logger.warning("Using in-memory identity store - users are lost on restart")
        return MemoryIdentityStore()

    init_database(
        get_database_url(cfg),
        create_tables=cfg.get("FLASK_ENV") != "production",
    )
    return SQLIdentityStore()


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""

    # Wallet challenge/verify, session and logout
    from walletauth.blueprints.auth import auth_bp

    app.register_blueprint(auth_bp)

    # Health checks and metrics
    from walletauth.blueprints.admin import admin_bp

    app.register_blueprint(admin_bp)


def _error_body(error: str, message: str) -> dict:
    return {"success": False, "error": error, "message": message}


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""

    @app.errorhandler(WalletAuthError)
    def wallet_auth_error(e: WalletAuthError):
        if e.status_code >= 500:
            logger.error(f"{e.__class__.__name__}: {e.__cause__ or e}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify(_error_body("bad_request", getattr(e, "description", None) or "Bad request")), 400

    @app.errorhandler(401)
    def unauthorized(e):
        return jsonify(_error_body("unauthorized", "Authentication required")), 401

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify(_error_body("forbidden", "Access denied")), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify(_error_body("not_found", "Resource not found")), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(_error_body("method_not_allowed", "Method not allowed")), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(e):
        from walletauth.audit_logger import get_audit_logger

        get_audit_logger().log_rate_limit_exceeded(request.remote_addr, request.path)
        return jsonify(_error_body("rate_limit_exceeded", str(getattr(e, "description", e)))), 429

    @app.errorhandler(500)
    def internal_error(e):
        logger.error(f"Internal server error: {e}", exc_info=True)
        return jsonify(_error_body("internal_error", "An unexpected error occurred")), 500

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify(_error_body(e.name.lower().replace(" ", "_"), e.description or e.name)), e.code


def register_request_handlers(app: Flask) -> None:
    """Register before/after request handlers."""

    @app.after_request
    def add_cors_headers(response):
        cfg = app.config.get("APP_CONFIG", {})
        allowed = [o.strip() for o in str(cfg.get("CORS_ORIGINS") or "").split(",") if o.strip()]
        origin = request.headers.get("Origin")
        if not origin or not allowed:
            return response

        if "*" in allowed:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in allowed:
            # Credentialed requests carry the session cookie
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers.add("Vary", "Origin")
        return response
