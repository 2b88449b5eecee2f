"""In-memory challenge (nonce) registry.

Challenges are ephemeral and single-node: they live in a dictionary keyed by
canonical address, guarded by one exclusive lock.  Issuing a new challenge for
an address replaces any unconsumed one, and a successful verification removes
the entry so a nonce can authenticate at most once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from walletauth.config import MIN_NONCE_RANDOM_LENGTH
from walletauth.errors import InvalidAddress
from walletauth.utils import canonicalize_address, random_alphanumeric

logger = logging.getLogger(__name__)

DEFAULT_NONCE_TTL = 300  # 5 minutes

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Generate timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Challenge:
    """A single-use challenge bound to one address."""

    nonce: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, str]:
        return {
            "nonce": self.nonce,
            "expires_at": self.expires_at.isoformat().replace("+00:00", "Z"),
        }


class NonceRegistry:
    """
    Issues, stores and atomically consumes challenges.

    The backing map is private to this object; every read and write goes
    through ``self._lock``.
    """

    def __init__(
        self,
        app_name: str = "MCPForge",
        ttl_seconds: int = DEFAULT_NONCE_TTL,
        random_length: int = MIN_NONCE_RANDOM_LENGTH,
        clock: Optional[Clock] = None,
    ):
        if random_length < MIN_NONCE_RANDOM_LENGTH:
            raise ValueError(f"random_length must be at least {MIN_NONCE_RANDOM_LENGTH}")
        self.app_name = app_name
        self.ttl = timedelta(seconds=ttl_seconds)
        self.random_length = random_length
        self.clock = clock or utc_now
        self._lock = threading.Lock()
        self._store: Dict[str, Challenge] = {}

    def _build_nonce(self, now: datetime) -> str:
        timestamp = now.strftime("%Y-%m-%dT%H:%M:%SZ")
        random_id = random_alphanumeric(self.random_length)
        return f"Login to {self.app_name} at {timestamp} with nonce: {random_id}"

    def issue_challenge(self, address: str) -> Challenge:
        """
        Create and store a challenge for ``address``.

        Raises:
            InvalidAddress: if the address fails syntax validation
        """
        key = canonicalize_address(address)
        now = self.clock()
        challenge = Challenge(nonce=self._build_nonce(now), expires_at=now + self.ttl)

        with self._lock:
            replaced = key in self._store
            self._store[key] = challenge

        if replaced:
            logger.debug(f"Replaced unconsumed challenge for {key}")
        return challenge

    def verify_and_consume(self, address: str, nonce: str) -> bool:
        """
        Check ``nonce`` against the stored challenge and evict it on success.

        Returns False (never raises) for unknown addresses, malformed addresses,
        expired challenges and mismatched nonces.
        """
        try:
            key = canonicalize_address(address)
        except InvalidAddress:
            return False

        now = self.clock()
        with self._lock:
            stored = self._store.get(key)
            if stored is None:
                return False

            if stored.is_expired(now):
                del self._store[key]
                logger.debug(f"Evicted expired challenge for {key}")
                return False

            if not nonce or stored.nonce != nonce:
                return False

            del self._store[key]
            return True

    def sweep_expired(self) -> int:
        """
        Remove every expired challenge.

        Returns:
            Number of challenges removed
        """
        now = self.clock()
        with self._lock:
            expired = [key for key, challenge in self._store.items() if challenge.is_expired(now)]
            for key in expired:
                del self._store[key]

        if expired:
            logger.debug(f"Swept {len(expired)} expired challenge(s)")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class NonceSweeper:
    """Runs ``NonceRegistry.sweep_expired`` periodically on a daemon thread."""

    def __init__(self, registry: NonceRegistry, interval: float = 60.0):
        self.registry = registry
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="nonce-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Nonce sweeper started (interval={self.interval}s)")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.registry.sweep_expired()
            except Exception as e:
                logger.error(f"Nonce sweep failed: {e}", exc_info=True)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
