"""Configuration management for the wallet authentication service.

Centralises environment variable loading and validation logic while keeping the
public API intentionally simple.
"""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional, TypedDict

_TRUTHY_VALUES = {"1", "true", "yes", "on"}

DEFAULT_JWT_SECRET = "dev-secret-CHANGE-ME-IN-PRODUCTION"
MIN_NONCE_RANDOM_LENGTH = 15


class AppConfig(TypedDict):
    """Typed representation of the application's configuration."""

    FLASK_SECRET_KEY: Optional[str]
    FLASK_ENV: str
    FLASK_DEBUG: bool
    APP_NAME: str
    APP_VERSION: str
    APP_HOST: str
    APP_PORT: int
    NONCE_TTL_SECONDS: int
    NONCE_RANDOM_LENGTH: int
    NONCE_SWEEP_INTERVAL: int
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRATION_HOURS: int
    SESSION_COOKIE_NAME: str
    SECURE_COOKIES: bool
    ALLOW_SELF_ASSIGNED_ROLE: bool
    DEFAULT_ROLE: str
    IDENTITY_BACKEND: str
    DATABASE_URL: Optional[str]
    DB_HOST: str
    DB_PORT: int
    DB_USER: str
    DB_PASSWORD: Optional[str]
    DB_NAME: str
    REDIS_HOST: Optional[str]
    REDIS_PORT: int
    REDIS_PASSWORD: Optional[str]
    REDIS_DB: int
    REDIS_URL: Optional[str]
    RATE_LIMIT_ENABLED: bool
    RATE_LIMIT_DEFAULT: str
    FORCE_HTTPS: bool
    CORS_ORIGINS: str
    LOG_LEVEL: str


def _get_env_bool(name: str, default: bool) -> bool:
    """Return an environment variable as a boolean."""

    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in _TRUTHY_VALUES


def _get_env_int(name: str, default: int) -> int:
    """Return an environment variable as an integer, raising on invalid input."""

    raw_value = os.getenv(name)
    if raw_value is None or raw_value == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer (got {raw_value!r})") from exc


def get_config() -> AppConfig:
    """Load application configuration from environment variables."""

    return {
        # Flask Configuration
        "FLASK_SECRET_KEY": os.getenv("FLASK_SECRET_KEY"),
        "FLASK_ENV": os.getenv("FLASK_ENV", "development"),
        "FLASK_DEBUG": _get_env_bool("FLASK_DEBUG", False),
        # Application Settings
        "APP_NAME": os.getenv("APP_NAME", "MCPForge"),
        "APP_VERSION": os.getenv("APP_VERSION", "1.0.0"),
        "APP_HOST": os.getenv("APP_HOST", "0.0.0.0"),
        "APP_PORT": _get_env_int("APP_PORT", 5000),
        # Challenge (nonce) lifecycle
        "NONCE_TTL_SECONDS": _get_env_int("NONCE_TTL_SECONDS", 300),
        "NONCE_RANDOM_LENGTH": _get_env_int("NONCE_RANDOM_LENGTH", MIN_NONCE_RANDOM_LENGTH),
        "NONCE_SWEEP_INTERVAL": _get_env_int("NONCE_SWEEP_INTERVAL", 60),
        # Session credential (JWT) Configuration
        "JWT_SECRET": os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
        "JWT_ALGORITHM": os.getenv("JWT_ALGORITHM", "HS256"),
        "JWT_EXPIRATION_HOURS": _get_env_int("JWT_EXPIRATION_HOURS", 24),
        "SESSION_COOKIE_NAME": os.getenv("SESSION_COOKIE_NAME", "auth_token"),
        "SECURE_COOKIES": _get_env_bool("SECURE_COOKIES", False),
        # Registration policy
        "ALLOW_SELF_ASSIGNED_ROLE": _get_env_bool("ALLOW_SELF_ASSIGNED_ROLE", False),
        "DEFAULT_ROLE": os.getenv("DEFAULT_ROLE", "user"),
        # Identity store
        "IDENTITY_BACKEND": os.getenv("IDENTITY_BACKEND", "database").strip().lower(),
        "DATABASE_URL": os.getenv("DATABASE_URL"),
        "DB_HOST": os.getenv("DB_HOST", "localhost"),
        "DB_PORT": _get_env_int("DB_PORT", 5432),
        "DB_USER": os.getenv("DB_USER", "walletauth"),
        "DB_PASSWORD": os.getenv("DB_PASSWORD"),
        "DB_NAME": os.getenv("DB_NAME", "walletauth"),
        # Redis (rate limiter storage)
        "REDIS_HOST": os.getenv("REDIS_HOST"),
        "REDIS_PORT": _get_env_int("REDIS_PORT", 6379),
        "REDIS_PASSWORD": os.getenv("REDIS_PASSWORD"),
        "REDIS_DB": _get_env_int("REDIS_DB", 0),
        "REDIS_URL": os.getenv("REDIS_URL") or os.getenv("REDIS_DSN"),
        # Rate Limiting
        "RATE_LIMIT_ENABLED": _get_env_bool("RATE_LIMIT_ENABLED", True),
        "RATE_LIMIT_DEFAULT": os.getenv("RATE_LIMIT_DEFAULT", "100/hour"),
        "FORCE_HTTPS": _get_env_bool(
            "FORCE_HTTPS",
            os.getenv("FLASK_ENV", "development").lower() == "production",
        ),
        "CORS_ORIGINS": os.getenv("CORS_ORIGINS", "*"),
        # Logging
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
    }


def run_options(config: Mapping[str, Any]) -> dict:
    """Keyword arguments for ``app.run`` taken from APP_HOST, APP_PORT and FLASK_DEBUG."""
    return {
        "host": config.get("APP_HOST", "0.0.0.0"),
        "port": int(config.get("APP_PORT", 5000)),
        "debug": bool(config.get("FLASK_DEBUG", False)),
    }


def validate_config(config: Mapping[str, Any]) -> bool:
    """Validate critical configuration values.

    Args:
        config: Configuration mapping to validate.

    Returns:
        True if configuration is valid, raises ValueError otherwise.
    """

    ttl = config.get("NONCE_TTL_SECONDS", 300)
    if ttl is None or int(ttl) <= 0:
        raise ValueError("NONCE_TTL_SECONDS must be a positive number of seconds")

    random_length = config.get("NONCE_RANDOM_LENGTH", MIN_NONCE_RANDOM_LENGTH)
    if random_length is None or int(random_length) < MIN_NONCE_RANDOM_LENGTH:
        raise ValueError(f"NONCE_RANDOM_LENGTH must be at least {MIN_NONCE_RANDOM_LENGTH}")

    backend = config.get("IDENTITY_BACKEND", "database")
    if backend not in ("database", "memory"):
        raise ValueError(f"IDENTITY_BACKEND must be 'database' or 'memory' (got {backend!r})")

    # Check for insecure defaults in production
    if config.get("FLASK_ENV") == "production":
        if config.get("JWT_SECRET") == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET must be changed for production!")

        if not config.get("FLASK_SECRET_KEY"):
            raise ValueError("FLASK_SECRET_KEY must be set for production!")

        if backend == "memory":
            raise ValueError("IDENTITY_BACKEND=memory is not allowed in production!")

        if (config.get("REDIS_URL") or config.get("REDIS_HOST")) and not config.get("REDIS_PASSWORD"):
            import warnings

            warnings.warn("REDIS_PASSWORD not set - rate limiter storage will be unprotected!", stacklevel=2)

    return True
