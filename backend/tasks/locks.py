"""Keyed mutual-exclusion locks with lock-until-executed semantics.

A lock is taken when work for a key is dispatched and released when that
work finishes.  A second request for a held key is dropped, not queued.
Locks carry a TTL so a crashed worker cannot wedge an account forever.
"""

import logging
import threading
import time
from typing import Protocol

logger = logging.getLogger(__name__)

LOCK_PREFIX = "ledger-sync:lock"


def account_lock_key(provider_account_id: str) -> str:
    return f"{LOCK_PREFIX}:provider-account:{provider_account_id}"


class LockStore(Protocol):
    def acquire(self, key: str, ttl_seconds: int) -> bool:
        """Take the lock if free.  Never blocks."""
        ...

    def release(self, key: str) -> None:
        ...

    def is_locked(self, key: str) -> bool:
        ...


class InProcessLockStore:
    """Locks held in this process's memory."""

    def __init__(self, clock=time.monotonic):
        self._guard = threading.Lock()
        self._expiry: dict[str, float] = {}
        self._clock = clock

    def _expired(self, key: str) -> bool:
        expiry = self._expiry.get(key)
        return expiry is None or expiry <= self._clock()

    def acquire(self, key: str, ttl_seconds: int) -> bool:
        with self._guard:
            if not self._expired(key):
                logger.debug("Lock busy: %s", key)
                return False
            self._expiry[key] = self._clock() + ttl_seconds
            return True

    def release(self, key: str) -> None:
        with self._guard:
            self._expiry.pop(key, None)

    def is_locked(self, key: str) -> bool:
        with self._guard:
            return not self._expired(key)


class RedisLockStore:
    """Locks shared by every worker through Redis ``SET NX EX``."""

    def __init__(self, redis_client):
        self.redis = redis_client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisLockStore":
        from redis import Redis

        return cls(Redis.from_url(redis_url))

    def acquire(self, key: str, ttl_seconds: int) -> bool:
        return bool(self.redis.set(key, "1", nx=True, ex=ttl_seconds))

    def release(self, key: str) -> None:
        self.redis.delete(key)

    def is_locked(self, key: str) -> bool:
        return bool(self.redis.exists(key))
