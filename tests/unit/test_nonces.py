"""
Unit tests for the challenge (nonce) registry.
"""

import re
import threading
import time

import pytest

from walletauth.errors import InvalidAddress
from walletauth.nonces import NonceRegistry, NonceSweeper

ADDRESS = "0x" + "ab" * 20
NONCE_RE = re.compile(r"Login to MCPForge at \d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z with nonce: [a-z0-9]{15}")


class TestIssueChallenge:
    """Test challenge creation."""

    def test_challenge_format(self, registry, clock):
        challenge = registry.issue_challenge(ADDRESS)

        assert NONCE_RE.fullmatch(challenge.nonce)
        assert "2025-01-01T12:00:00Z" in challenge.nonce

    def test_expiry_is_five_minutes(self, registry, clock):
        challenge = registry.issue_challenge(ADDRESS)

        assert (challenge.expires_at - clock.now).total_seconds() == 300
        assert challenge.to_dict()["expires_at"] == "2025-01-01T12:05:00Z"

    def test_invalid_address_raises(self, registry):
        with pytest.raises(InvalidAddress):
            registry.issue_challenge("0x1234")
        assert len(registry) == 0

    def test_nonces_are_unique(self, registry):
        nonces = {registry.issue_challenge("0x" + f"{i:040x}").nonce for i in range(50)}
        assert len(nonces) == 50

    def test_keyed_by_canonical_address(self, registry):
        registry.issue_challenge(ADDRESS.upper().replace("0X", "0x"))
        registry.issue_challenge(ADDRESS[2:])

        assert len(registry) == 1

    def test_random_length_below_minimum_rejected(self):
        with pytest.raises(ValueError):
            NonceRegistry(random_length=10)

    def test_longer_random_suffix(self, clock):
        registry = NonceRegistry(random_length=24, clock=clock)
        nonce = registry.issue_challenge(ADDRESS).nonce
        assert len(nonce.rsplit(": ", 1)[1]) == 24


class TestVerifyAndConsume:
    """Test single-use consumption."""

    def test_consumes_exactly_once(self, registry):
        challenge = registry.issue_challenge(ADDRESS)

        assert registry.verify_and_consume(ADDRESS, challenge.nonce) is True
        assert registry.verify_and_consume(ADDRESS, challenge.nonce) is False
        assert len(registry) == 0

    def test_address_case_does_not_matter(self, registry):
        challenge = registry.issue_challenge(ADDRESS)
        assert registry.verify_and_consume("0x" + ADDRESS[2:].upper(), challenge.nonce) is True

    def test_mismatch_keeps_entry(self, registry):
        challenge = registry.issue_challenge(ADDRESS)

        assert registry.verify_and_consume(ADDRESS, challenge.nonce + "x") is False
        assert registry.verify_and_consume(ADDRESS, challenge.nonce) is True

    def test_unknown_address(self, registry):
        assert registry.verify_and_consume(ADDRESS, "anything") is False

    def test_malformed_address_returns_false(self, registry):
        assert registry.verify_and_consume("not-an-address", "anything") is False
        assert registry.verify_and_consume(None, "anything") is False

    def test_empty_nonce_rejected(self, registry):
        registry.issue_challenge(ADDRESS)
        assert registry.verify_and_consume(ADDRESS, "") is False
        assert registry.verify_and_consume(ADDRESS, None) is False
        assert len(registry) == 1

    def test_reissue_invalidates_previous(self, registry):
        first = registry.issue_challenge(ADDRESS)
        second = registry.issue_challenge(ADDRESS)

        assert registry.verify_and_consume(ADDRESS, first.nonce) is False
        assert registry.verify_and_consume(ADDRESS, second.nonce) is True


class TestExpiry:
    """Test the TTL boundary."""

    def test_valid_one_second_before_expiry(self, registry, clock):
        challenge = registry.issue_challenge(ADDRESS)
        clock.advance(299)

        assert registry.verify_and_consume(ADDRESS, challenge.nonce) is True

    def test_invalid_one_second_after_expiry(self, registry, clock):
        challenge = registry.issue_challenge(ADDRESS)
        clock.advance(301)

        assert registry.verify_and_consume(ADDRESS, challenge.nonce) is False
        assert len(registry) == 0

    def test_sweep_removes_only_expired(self, registry, clock):
        registry.issue_challenge("0x" + "01" * 20)
        clock.advance(200)
        registry.issue_challenge("0x" + "02" * 20)
        clock.advance(150)

        assert registry.sweep_expired() == 1
        assert len(registry) == 1
        assert registry.sweep_expired() == 0


class TestConcurrency:
    """Concurrent verification of the same challenge."""

    def test_single_winner(self, registry):
        challenge = registry.issue_challenge(ADDRESS)
        results = []
        barrier = threading.Barrier(16)

        def attempt():
            barrier.wait()
            results.append(registry.verify_and_consume(ADDRESS, challenge.nonce))

        threads = [threading.Thread(target=attempt) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15

    def test_concurrent_issue_and_sweep(self, clock):
        registry = NonceRegistry(ttl_seconds=1, clock=clock)
        errors = []

        def issue(offset):
            try:
                for i in range(100):
                    registry.issue_challenge("0x" + f"{offset * 1000 + i:040x}")
            except Exception as e:  # pragma: no cover
                errors.append(e)

        def sweep():
            for _ in range(100):
                registry.sweep_expired()

        threads = [threading.Thread(target=issue, args=(n,)) for n in range(4)]
        threads.append(threading.Thread(target=sweep))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(registry) == 400


class TestNonceSweeper:
    """Test the background sweeper thread."""

    def test_start_and_stop(self, registry, clock):
        registry.issue_challenge(ADDRESS)
        clock.advance(301)

        sweeper = NonceSweeper(registry, interval=0.01)
        sweeper.start()
        try:
            deadline = time.time() + 2
            while len(registry) and time.time() < deadline:
                time.sleep(0.01)
        finally:
            sweeper.stop(timeout=1)

        assert len(registry) == 0
        assert sweeper.running is False

    def test_start_is_idempotent(self, registry):
        sweeper = NonceSweeper(registry, interval=10)
        sweeper.start()
        thread = sweeper._thread
        sweeper.start()
        try:
            assert sweeper._thread is thread
            assert sweeper.running
        finally:
            sweeper.stop(timeout=1)
