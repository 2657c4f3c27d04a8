"""
Notification cooldown stores.

A cooldown key records when the last notification for a (provider, event)
pair went out and expires after the cooldown duration. acquire() is an
atomic set-if-absent so two workers racing on the same failure burst
cannot both send.

- InMemoryCooldownStore: single process, asyncio.Lock guarded
- RedisCooldownStore: shared across instances via SET NX EX
"""
import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

COOLDOWN_KEY_PREFIX = "hookwarden:notify_cooldown:"


def make_cooldown_key(provider: str, event: str) -> str:
    """Cooldown key for a (provider, event) pair. SHA-256 keeps key length bounded."""
    raw = f"{provider}:{event}"
    hash_val = hashlib.sha256(raw.encode()).hexdigest()[:16]
    return f"{COOLDOWN_KEY_PREFIX}{hash_val}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CooldownStore(Protocol):
    async def get(self, key: str) -> Optional[datetime]:
        """When the cooldown started, or None if no cooldown is active."""
        ...

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        """Start a cooldown only if none is active. True if this caller started it."""
        ...

    async def set(self, key: str, ttl_seconds: int) -> None:
        """Start or refresh a cooldown unconditionally."""
        ...

    async def clear(self, key: str) -> None:
        ...


class InMemoryCooldownStore:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._entries: dict[str, tuple[datetime, datetime]] = {}
        self._lock = asyncio.Lock()

    def _active(self, key: str) -> Optional[datetime]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        started_at, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return started_at

    async def get(self, key: str) -> Optional[datetime]:
        async with self._lock:
            return self._active(key)

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            if self._active(key) is not None:
                return False
            now = self._clock()
            self._entries[key] = (now, now + timedelta(seconds=ttl_seconds))
            return True

    async def set(self, key: str, ttl_seconds: int) -> None:
        async with self._lock:
            now = self._clock()
            self._entries[key] = (now, now + timedelta(seconds=ttl_seconds))

    async def clear(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)


class RedisCooldownStore:
    def __init__(self, redis):
        self._redis = redis

    async def get(self, key: str) -> Optional[datetime]:
        value = await self._redis.get(key)
        if value is None:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Unparseable cooldown value for %s: %r", key, value)
            return _utcnow()

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        # SET NX EX: only sets if key doesn't exist, with TTL - atomic check+record
        acquired = await self._redis.set(
            key, _utcnow().isoformat(), nx=True, ex=max(ttl_seconds, 1)
        )
        return bool(acquired)

    async def set(self, key: str, ttl_seconds: int) -> None:
        await self._redis.set(key, _utcnow().isoformat(), ex=max(ttl_seconds, 1))

    async def clear(self, key: str) -> None:
        await self._redis.delete(key)
