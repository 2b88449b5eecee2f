"""In-memory identity store for tests and local development.

This module mirrors the interface of ``walletauth.db_storage`` but keeps users
and auth-method bindings in Python dictionaries.  Uniqueness of usernames and
of (auth_type, auth_identifier) pairs is enforced under a lock, so concurrent
first-time registrations behave the same as against the database.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from walletauth.errors import IdentityConflict, StoreFailure
from walletauth.models import ROLE_USER

BindingKey = Tuple[str, str]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MemoryIdentityStore:
    """Dictionary-backed identity store."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        """Drop every user and binding.  The tests call this between cases."""
        with self._lock:
            self._users: Dict[int, Dict[str, Any]] = {}
            self._bindings: Dict[BindingKey, Dict[str, Any]] = {}
            self._next_user_id = 1
            self._next_auth_id = 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _render(self, user_id: int) -> Dict[str, Any]:
        user = copy.deepcopy(self._users[user_id])
        user["auth_methods"] = [
            copy.deepcopy(binding)
            for binding in sorted(self._bindings.values(), key=lambda b: b["auth_id"])
            if binding["user_id"] == user_id
        ]
        return user

    def find_user_by_binding(self, auth_type: str, identifier: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            binding = self._bindings.get((auth_type, identifier))
            if not binding:
                return None
            return self._render(binding["user_id"])

    def find_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            if user_id not in self._users:
                return None
            return self._render(user_id)

    def find_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for user_id, user in self._users.items():
                if user["username"] == username:
                    return self._render(user_id)
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _insert_user(self, user_data: Dict[str, Any]) -> int:
        username = user_data.get("username")
        if not username:
            raise StoreFailure("username is required")
        if any(u["username"] == username for u in self._users.values()):
            raise IdentityConflict(f"Username '{username}' is already taken")

        user_id = self._next_user_id
        self._next_user_id += 1
        now = _now_iso()
        self._users[user_id] = {
            "user_id": user_id,
            "username": username,
            "email": user_data.get("email"),
            "role": user_data.get("role") or ROLE_USER,
            "reward_address": user_data.get("reward_address"),
            "created_at": now,
            "updated_at": now,
        }
        return user_id

    def _insert_binding(self, user_id: int, auth_type: str, identifier: str) -> Dict[str, Any]:
        if user_id not in self._users:
            raise StoreFailure(f"User {user_id} not found")
        if (auth_type, identifier) in self._bindings:
            raise IdentityConflict(f"This {auth_type} identity is already bound to an account")

        binding = {
            "auth_id": self._next_auth_id,
            "user_id": user_id,
            "auth_type": auth_type,
            "auth_identifier": identifier,
            "created_at": _now_iso(),
        }
        self._next_auth_id += 1
        self._bindings[(auth_type, identifier)] = binding
        return copy.deepcopy(binding)

    def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            return self._render(self._insert_user(user_data))

    def create_binding(self, user_id: int, auth_type: str, identifier: str) -> Dict[str, Any]:
        with self._lock:
            return self._insert_binding(user_id, auth_type, identifier)

    def create_user_with_binding(self, user_data: Dict[str, Any], auth_type: str, identifier: str) -> Dict[str, Any]:
        """Create a user and its first binding atomically."""
        with self._lock:
            # Check the binding first so a failure leaves nothing behind
            if (auth_type, identifier) in self._bindings:
                raise IdentityConflict(f"This {auth_type} identity is already bound to an account")
            user_id = self._insert_user(user_data)
            self._insert_binding(user_id, auth_type, identifier)
            return self._render(user_id)

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return False
            for key in [k for k, b in self._bindings.items() if b["user_id"] == user_id]:
                del self._bindings[key]
            return True

    def count_users(self) -> int:
        with self._lock:
            return len(self._users)
