import json
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from backend import KeyValueBackend
from constants import MAX_VALIDATION_ATTEMPTS, RATE_LIMIT_WINDOW_SECONDS
from logging_config import get_logger
from redis_keys import RATE_LIMIT_KEY

logger = get_logger(__name__)


@dataclass
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_in_seconds: Optional[int] = None


class RateLimiter:
    """Counts access-code validation attempts per client identity in a fixed window.

    The window starts at the first counted attempt and the counter is
    replaced once ``now - first_attempt`` exceeds the window. Counters are
    stored with a TTL of twice the window.
    """

    def __init__(self, backend: KeyValueBackend, max_attempts: int = MAX_VALIDATION_ATTEMPTS,
                 window_seconds: int = RATE_LIMIT_WINDOW_SECONDS, clock: Callable[[], float] = time.time):
        self.backend = backend
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock

    def _key(self, identity: str) -> str:
        return RATE_LIMIT_KEY.format(identity=identity)

    def _load(self, raw: Optional[str]) -> Optional[dict]:
        return json.loads(raw) if raw is not None else None

    def _window_expired(self, counter: Optional[dict], now: float) -> bool:
        return counter is None or now - counter["first_attempt"] > self.window_seconds

    def check(self, identity: str, now: Optional[float] = None) -> RateLimitStatus:
        now = self._clock() if now is None else now
        counter = self._load(self.backend.get(self._key(identity)))
        if self._window_expired(counter, now):
            return RateLimitStatus(allowed=True, remaining=self.max_attempts)

        count = counter["count"]
        reset_in = max(0, math.ceil(counter["first_attempt"] + self.window_seconds - now))
        return RateLimitStatus(
            allowed=count < self.max_attempts,
            remaining=max(0, self.max_attempts - count),
            reset_in_seconds=reset_in,
        )

    def increment(self, identity: str, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        key = self._key(identity)
        ttl = self.window_seconds * 2

        # best effort: a lost race costs one uncounted attempt, never a crash
        for _ in range(5):
            raw = self.backend.get(key)
            counter = self._load(raw)
            if self._window_expired(counter, now):
                counter = {"count": 1, "first_attempt": now}
            else:
                counter["count"] += 1
            if self.backend.compare_and_set(key, raw, json.dumps(counter), ttl=ttl):
                break
        if counter["count"] >= self.max_attempts:
            logger.warning(f"Validation attempts exhausted for {identity}")
        return counter["count"]
