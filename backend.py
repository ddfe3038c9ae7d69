import threading
import time
from typing import Callable, Dict, Iterator, Optional, Tuple

import redis

from constants import (
    REDIS_DB,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    REDIS_SOCKET_TIMEOUT,
    STORAGE_BACKEND,
)
from errors import BackendError
from logging_config import get_logger

logger = get_logger(__name__)


class KeyValueBackend:
    """Minimal string key-value store used for access codes and rate counters.

    Values are JSON strings. ``compare_and_set`` is the only atomic primitive:
    it writes ``new`` (or deletes when ``new`` is None) only if the current
    value equals ``expected`` (None meaning the key is absent).
    """

    name = "abstract"

    def ping(self) -> bool:
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: Optional[int] = None):
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def scan_prefix(self, prefix: str) -> Iterator[Tuple[str, str]]:
        raise NotImplementedError

    def compare_and_set(self, key: str, expected: Optional[str], new: Optional[str], ttl: Optional[int] = None) -> bool:
        raise NotImplementedError


class RedisBackend(KeyValueBackend):
    name = "redis"

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        if redis_client is None:
            logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
            redis_client = redis.Redis(
                host=REDIS_HOST,
                port=REDIS_PORT,
                db=REDIS_DB,
                password=REDIS_PASSWORD,
                decode_responses=True,
                socket_timeout=REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
            )
        self.redis_client = redis_client

    def ping(self) -> bool:
        try:
            self.redis_client.ping()
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise BackendError("Redis unavailable") from e
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        return True

    def get(self, key: str) -> Optional[str]:
        try:
            return self.redis_client.get(key)
        except redis.RedisError as e:
            raise BackendError(f"Redis GET failed for {key}") from e

    def set(self, key: str, value: str, ttl: Optional[int] = None):
        try:
            self.redis_client.set(key, value, ex=int(ttl) if ttl else None)
        except redis.RedisError as e:
            raise BackendError(f"Redis SET failed for {key}") from e

    def delete(self, key: str) -> bool:
        try:
            deleted = self.redis_client.delete(key)
        except redis.RedisError as e:
            raise BackendError(f"Redis DEL failed for {key}") from e
        logger.debug(f"Deleted key {key}: {deleted}")
        return bool(deleted)

    def scan_prefix(self, prefix: str) -> Iterator[Tuple[str, str]]:
        try:
            keys = list(self.redis_client.scan_iter(match=f"{prefix}*", count=100))
            if not keys:
                return iter(())
            values = self.redis_client.mget(keys)
        except redis.RedisError as e:
            raise BackendError(f"Redis SCAN failed for prefix {prefix}") from e
        # keys may vanish between SCAN and MGET
        return ((k, v) for k, v in zip(keys, values) if v is not None)

    def compare_and_set(self, key: str, expected: Optional[str], new: Optional[str], ttl: Optional[int] = None) -> bool:
        try:
            with self.redis_client.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    if pipe.get(key) != expected:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    if new is None:
                        pipe.delete(key)
                    else:
                        pipe.set(key, new, ex=int(ttl) if ttl else None)
                    pipe.execute()
                    return True
                except redis.WatchError:
                    logger.debug(f"Concurrent update on {key}, compare-and-set lost")
                    return False
        except redis.RedisError as e:
            raise BackendError(f"Redis transaction failed for {key}") from e


class MemoryBackend(KeyValueBackend):
    """Process-local backend with per-entry TTL, for single-instance runs and tests."""

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def ping(self) -> bool:
        return True

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _write(self, key: str, value: str, ttl: Optional[int]):
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None):
        with self._lock:
            self._write(key, value, ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            return existed

    def scan_prefix(self, prefix: str) -> Iterator[Tuple[str, str]]:
        with self._lock:
            items = []
            for key in list(self._data):
                if key.startswith(prefix):
                    value = self._live(key)
                    if value is not None:
                        items.append((key, value))
        return iter(items)

    def compare_and_set(self, key: str, expected: Optional[str], new: Optional[str], ttl: Optional[int] = None) -> bool:
        with self._lock:
            if self._live(key) != expected:
                return False
            if new is None:
                self._data.pop(key, None)
            else:
                self._write(key, new, ttl)
            return True


def create_backend(kind: str = STORAGE_BACKEND) -> KeyValueBackend:
    if kind == "memory":
        logger.info("Using in-memory storage backend; access codes will not survive a restart")
        return MemoryBackend()
    if kind == "redis":
        return RedisBackend()
    raise ValueError(f"Unknown STORAGE_BACKEND: {kind}")
