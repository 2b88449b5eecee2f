"""
SQLAlchemy database models for wallet authentication.

Users own one or more auth methods (bindings); a binding maps exactly one
external identifier to one user.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# Auth method types
AUTH_TYPE_WEB3 = "web3"
AUTH_TYPE_GOOGLE = "google"
AUTH_TYPE_GITHUB = "github"
AUTH_TYPES = (AUTH_TYPE_WEB3, AUTH_TYPE_GOOGLE, AUTH_TYPE_GITHUB)

# User roles
ROLE_USER = "user"
ROLE_DEVELOPER = "developer"
USER_ROLES = (ROLE_USER, ROLE_DEVELOPER)

USERNAME_MAX_LENGTH = 255
EMAIL_MAX_LENGTH = 255


def utc_now():
    """Generate timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


class User(Base):
    """
    Application user.
    """

    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(USERNAME_MAX_LENGTH), unique=True, nullable=False)
    email = Column(String(EMAIL_MAX_LENGTH))
    role = Column(String(20), nullable=False, default=ROLE_USER)
    reward_address = Column(String(42))
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    auth_methods = relationship(
        "AuthMethod",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AuthMethod.auth_id",
    )

    __table_args__ = (Index("idx_user_created", "created_at"),)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "reward_address": self.reward_address,
            "auth_methods": [method.to_dict() for method in self.auth_methods],
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<User(user_id={self.user_id}, username={self.username[:16]})>"


class AuthMethod(Base):
    """
    Binding between an external identity (wallet address, OAuth account) and a user.
    """

    __tablename__ = "auth_methods"

    auth_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    auth_type = Column(String(20), nullable=False)
    auth_identifier = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    # Relationships
    user = relationship("User", back_populates="auth_methods")

    __table_args__ = (
        UniqueConstraint("auth_type", "auth_identifier", name="uq_auth_type_identifier"),
        Index("idx_auth_method_user", "user_id"),
    )

    def to_dict(self) -> dict:
        return {
            "auth_id": self.auth_id,
            "user_id": self.user_id,
            "auth_type": self.auth_type,
            "auth_identifier": self.auth_identifier,
            "created_at": _isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<AuthMethod(auth_id={self.auth_id}, type={self.auth_type}, user={self.user_id})>"
