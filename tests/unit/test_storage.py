"""
Unit tests for the identity stores.

Both backends implement the same interface, so the behavioural tests run
against each of them.
"""

import threading

import pytest
from sqlalchemy.exc import IntegrityError

from walletauth.db_storage import SQLIdentityStore
from walletauth.errors import IdentityConflict, StoreFailure
from walletauth.models import AUTH_TYPE_GITHUB, AUTH_TYPE_WEB3, AuthMethod

WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20


@pytest.fixture(params=["memory_store", "sql_store"])
def store(request):
    return request.getfixturevalue(request.param)


class TestCreateUserWithBinding:
    """Test the transactional registration path."""

    def test_creates_user_and_binding(self, store):
        user = store.create_user_with_binding(
            {"username": WALLET, "email": "a@example.com", "role": "user"}, AUTH_TYPE_WEB3, WALLET
        )

        assert user["user_id"] is not None
        assert user["username"] == WALLET
        assert user["email"] == "a@example.com"
        assert user["role"] == "user"
        assert len(user["auth_methods"]) == 1
        assert user["auth_methods"][0]["auth_type"] == AUTH_TYPE_WEB3
        assert user["auth_methods"][0]["auth_identifier"] == WALLET

    def test_role_defaults_to_user(self, store):
        user = store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)
        assert user["role"] == "user"

    def test_duplicate_binding_conflicts(self, store):
        store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)

        with pytest.raises(IdentityConflict):
            store.create_user_with_binding({"username": "bob"}, AUTH_TYPE_WEB3, WALLET)

        # No orphaned user left behind
        assert store.find_user_by_username("bob") is None

    def test_duplicate_username_conflicts(self, store):
        store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)

        with pytest.raises(IdentityConflict, match="alice"):
            store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, OTHER_WALLET)

        assert store.find_user_by_binding(AUTH_TYPE_WEB3, OTHER_WALLET) is None

    def test_same_identifier_different_type_allowed(self, store):
        store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, "shared-id")
        user = store.create_user_with_binding({"username": "bob"}, AUTH_TYPE_GITHUB, "shared-id")

        assert user["auth_methods"][0]["auth_type"] == AUTH_TYPE_GITHUB


class TestLookups:
    """Test user lookup operations."""

    def test_find_by_binding(self, store):
        created = store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)

        found = store.find_user_by_binding(AUTH_TYPE_WEB3, WALLET)
        assert found["user_id"] == created["user_id"]

    def test_find_by_binding_not_found_is_none(self, store):
        assert store.find_user_by_binding(AUTH_TYPE_WEB3, WALLET) is None

    def test_find_by_id_includes_all_bindings(self, store):
        user = store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)
        store.create_binding(user["user_id"], AUTH_TYPE_GITHUB, "alice-gh")

        found = store.find_user_by_id(user["user_id"])
        assert [m["auth_type"] for m in found["auth_methods"]] == [AUTH_TYPE_WEB3, AUTH_TYPE_GITHUB]

    def test_find_by_id_not_found_is_none(self, store):
        assert store.find_user_by_id(9999) is None

    def test_find_by_username(self, store):
        store.create_user({"username": "alice"})
        assert store.find_user_by_username("alice")["username"] == "alice"
        assert store.find_user_by_username("nobody") is None


class TestSeparateWrites:
    """Test the non-transactional building blocks."""

    def test_create_user_without_binding(self, store):
        user = store.create_user({"username": "alice", "reward_address": WALLET})

        assert user["auth_methods"] == []
        assert user["reward_address"] == WALLET

    def test_create_user_duplicate_username(self, store):
        store.create_user({"username": "alice"})
        with pytest.raises(IdentityConflict):
            store.create_user({"username": "alice"})

    def test_create_binding_for_missing_user(self, store):
        with pytest.raises(StoreFailure):
            store.create_binding(9999, AUTH_TYPE_WEB3, WALLET)

    def test_create_binding_duplicate(self, store):
        alice = store.create_user({"username": "alice"})
        bob = store.create_user({"username": "bob"})
        store.create_binding(alice["user_id"], AUTH_TYPE_WEB3, WALLET)

        with pytest.raises(IdentityConflict):
            store.create_binding(bob["user_id"], AUTH_TYPE_WEB3, WALLET)

    def test_missing_username_is_store_failure(self, store):
        with pytest.raises(StoreFailure):
            store.create_user({"username": None})

        with pytest.raises(StoreFailure):
            store.create_user_with_binding({}, AUTH_TYPE_WEB3, WALLET)
        assert store.find_user_by_binding(AUTH_TYPE_WEB3, WALLET) is None


class TestDeleteUser:
    def test_delete_removes_bindings(self, store):
        user = store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)

        assert store.delete_user(user["user_id"]) is True
        assert store.find_user_by_id(user["user_id"]) is None
        assert store.find_user_by_binding(AUTH_TYPE_WEB3, WALLET) is None

        # The wallet can register again
        store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)

    def test_delete_missing_user(self, store):
        assert store.delete_user(9999) is False


class TestMemoryStoreConcurrency:
    """Concurrent first-time registrations of one wallet."""

    def test_only_one_registration_wins(self, memory_store):
        results = []
        barrier = threading.Barrier(8)

        def register(n):
            barrier.wait()
            try:
                memory_store.create_user_with_binding({"username": f"user{n}"}, AUTH_TYPE_WEB3, WALLET)
                results.append("created")
            except IdentityConflict:
                results.append("conflict")

        threads = [threading.Thread(target=register, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("created") == 1
        assert results.count("conflict") == 7
        assert memory_store.count_users() == 1

    def test_reset(self, memory_store):
        memory_store.create_user({"username": "alice"})
        memory_store.reset()
        assert memory_store.count_users() == 0


class TestSQLStoreUniqueConstraint:
    """The schema decides races that slip past the existence checks."""

    @pytest.fixture
    def unchecked_bindings(self, monkeypatch):
        def add_binding(session, user_id, auth_type, identifier):
            method = AuthMethod(user_id=user_id, auth_type=auth_type, auth_identifier=identifier)
            session.add(method)
            session.flush()
            return method

        monkeypatch.setattr(SQLIdentityStore, "_add_binding", staticmethod(add_binding))

    def test_binding_violation_is_conflict_and_rolls_back_user(self, sql_store, unchecked_bindings):
        sql_store.create_user_with_binding({"username": "alice"}, AUTH_TYPE_WEB3, WALLET)

        with pytest.raises(IdentityConflict) as exc_info:
            sql_store.create_user_with_binding({"username": "bob"}, AUTH_TYPE_WEB3, WALLET)

        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert sql_store.find_user_by_username("bob") is None
        assert sql_store.find_user_by_binding(AUTH_TYPE_WEB3, WALLET)["username"] == "alice"

    def test_separate_binding_violation_is_conflict(self, sql_store, unchecked_bindings):
        alice = sql_store.create_user({"username": "alice"})
        bob = sql_store.create_user({"username": "bob"})
        sql_store.create_binding(alice["user_id"], AUTH_TYPE_WEB3, WALLET)

        with pytest.raises(IdentityConflict):
            sql_store.create_binding(bob["user_id"], AUTH_TYPE_WEB3, WALLET)
