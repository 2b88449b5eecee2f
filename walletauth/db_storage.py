"""
Database-backed identity store - Production version.

Same interface as ``walletauth.storage.MemoryIdentityStore`` with PostgreSQL
persistence.  Uniqueness is enforced by the schema; unique violations surface
as ``IdentityConflict``.  Any other SQLAlchemy error, including NOT NULL and
foreign key violations, becomes ``StoreFailure`` with the cause chained.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from walletauth.database import session_scope
from walletauth.errors import IdentityConflict, StoreFailure
from walletauth.models import ROLE_USER, AuthMethod, User

logger = logging.getLogger(__name__)


def _is_unique_violation(exc: IntegrityError) -> bool:
    # PostgreSQL reports SQLSTATE 23505; SQLite only says so in the message
    if getattr(exc.orig, "pgcode", None) == "23505":
        return True
    return "unique" in str(exc.orig).lower()


@contextmanager
def _transaction() -> Generator[Session, None, None]:
    try:
        with session_scope() as session:
            yield session
    except IntegrityError as e:
        if _is_unique_violation(e):
            logger.warning(f"Identity store unique violation: {e.orig}")
            raise IdentityConflict("Username or wallet is already registered") from e
        logger.error(f"Identity store integrity violation: {e.orig}", exc_info=True)
        raise StoreFailure() from e
    except SQLAlchemyError as e:
        logger.error(f"Identity store failure: {e}", exc_info=True)
        raise StoreFailure() from e


class SQLIdentityStore:
    """Identity store over the ``users`` and ``auth_methods`` tables."""

    # ============================================================================
    # Reads
    # ============================================================================

    def find_user_by_binding(self, auth_type: str, identifier: str) -> Optional[Dict[str, Any]]:
        """
        Get the user bound to an external identifier.

        Returns:
            User data dictionary (with auth methods) or None
        """
        with _transaction() as session:
            method = session.query(AuthMethod).filter_by(auth_type=auth_type, auth_identifier=identifier).first()
            if not method:
                return None
            return method.user.to_dict()

    def find_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get user by ID."""
        with _transaction() as session:
            user = session.get(User, user_id)
            return user.to_dict() if user else None

    def find_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        with _transaction() as session:
            user = session.query(User).filter_by(username=username).first()
            return user.to_dict() if user else None

    # ============================================================================
    # Writes
    # ============================================================================

    @staticmethod
    def _add_user(session: Session, user_data: Dict[str, Any]) -> User:
        username = user_data.get("username")
        if session.query(User.user_id).filter_by(username=username).first():
            raise IdentityConflict(f"Username '{username}' is already taken")

        user = User(
            username=username,
            email=user_data.get("email"),
            role=user_data.get("role") or ROLE_USER,
            reward_address=user_data.get("reward_address"),
        )
        session.add(user)
        session.flush()
        return user

    @staticmethod
    def _add_binding(session: Session, user_id: int, auth_type: str, identifier: str) -> AuthMethod:
        exists = (
            session.query(AuthMethod.auth_id).filter_by(auth_type=auth_type, auth_identifier=identifier).first()
        )
        if exists:
            raise IdentityConflict(f"This {auth_type} identity is already bound to an account")

        method = AuthMethod(user_id=user_id, auth_type=auth_type, auth_identifier=identifier)
        session.add(method)
        session.flush()
        return method

    def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        with _transaction() as session:
            return self._add_user(session, user_data).to_dict()

    def create_binding(self, user_id: int, auth_type: str, identifier: str) -> Dict[str, Any]:
        with _transaction() as session:
            if session.get(User, user_id) is None:
                raise StoreFailure(f"User {user_id} not found")
            return self._add_binding(session, user_id, auth_type, identifier).to_dict()

    def create_user_with_binding(self, user_data: Dict[str, Any], auth_type: str, identifier: str) -> Dict[str, Any]:
        """
        Create a user and its first binding in one transaction.

        If the binding insert fails the user insert is rolled back with it.
        """
        with _transaction() as session:
            user = self._add_user(session, user_data)
            self._add_binding(session, user.user_id, auth_type, identifier)
            session.refresh(user)
            return user.to_dict()

    def delete_user(self, user_id: int) -> bool:
        with _transaction() as session:
            user = session.get(User, user_id)
            if user is None:
                return False
            session.delete(user)
            return True
