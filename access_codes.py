import json
import secrets
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from backend import KeyValueBackend
from constants import (
    CODE_ALPHABET,
    CODE_GENERATION_ATTEMPTS,
    CODE_MAX_LENGTH,
    CODE_MIN_LENGTH,
    CUSTOM_CODE_MIN_LENGTH,
)
from errors import BackendError, CodeAlreadyExists, GenerationExhausted, InvalidCodeRequest
from logging_config import get_logger
from redis_keys import ACCESS_CODE_KEY, ACCESS_CODE_PREFIX

logger = get_logger(__name__)

# compare-and-set retries per validation before giving up under contention
MAX_VALIDATE_RETRIES = 16


class ValidationOutcome(str, Enum):
    GRANTED = "granted"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    MALFORMED = "malformed"


def to_iso(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class AccessCode:
    code: str
    created: float
    used_count: int = 0
    max_uses: int = 1
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at

    @property
    def is_exhausted(self) -> bool:
        return self.used_count >= self.max_uses

    def is_active(self, now: float) -> bool:
        return not self.is_expired(now) and not self.is_exhausted

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "AccessCode":
        return cls(**json.loads(raw))

    def summary(self, now: float) -> dict:
        return {
            "code": self.code,
            "created": to_iso(self.created),
            "usedCount": self.used_count,
            "maxUses": self.max_uses,
            "expiresAt": to_iso(self.expires_at),
            "active": self.is_active(now),
        }


def normalize_code(code: str) -> str:
    return code.strip().upper()


def generate_code(length: int = CODE_MIN_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class AccessCodeStore:
    """Lifecycle of access codes kept in a KeyValueBackend.

    Every mutation of an existing code goes through ``compare_and_set`` so
    concurrent validations of one single-use code grant it exactly once.
    """

    def __init__(self, backend: KeyValueBackend, clock: Callable[[], float] = time.time):
        self.backend = backend
        self._clock = clock

    def _key(self, code: str) -> str:
        return ACCESS_CODE_KEY.format(code=code)

    def _expiry(self, now: float, expires_in_hours: Optional[float]) -> Optional[float]:
        if expires_in_hours and expires_in_hours > 0:
            return now + expires_in_hours * 3600
        return None

    def _insert(self, access_code: AccessCode) -> bool:
        return self.backend.compare_and_set(self._key(access_code.code), None, access_code.to_json())

    def get(self, code: str) -> Optional[AccessCode]:
        raw = self.backend.get(self._key(normalize_code(code)))
        return AccessCode.from_json(raw) if raw is not None else None

    def generate(self, length: int = CODE_MIN_LENGTH, max_uses: int = 1,
                 expires_in_hours: Optional[float] = None) -> AccessCode:
        if max_uses < 1:
            raise InvalidCodeRequest("maxUses must be at least 1")
        length = min(max(length or CODE_MIN_LENGTH, CODE_MIN_LENGTH), CODE_MAX_LENGTH)
        now = self._clock()
        expires_at = self._expiry(now, expires_in_hours)

        for attempt in range(1, CODE_GENERATION_ATTEMPTS + 1):
            access_code = AccessCode(code=generate_code(length), created=now, max_uses=max_uses, expires_at=expires_at)
            if self._insert(access_code):
                logger.info(f"Access code generated: max_uses={max_uses}, expires_at={to_iso(expires_at) or 'never'}")
                return access_code
            logger.warning(f"Generated access code collided with an existing one (attempt {attempt})")

        logger.error(f"Could not generate a unique access code after {CODE_GENERATION_ATTEMPTS} attempts")
        raise GenerationExhausted("Could not generate a unique code")

    def add(self, code, expires_in_hours: Optional[float] = None, max_uses: int = 1) -> AccessCode:
        if not isinstance(code, str) or len(code.strip()) < CUSTOM_CODE_MIN_LENGTH:
            raise InvalidCodeRequest("Invalid code format")
        if max_uses < 1:
            raise InvalidCodeRequest("maxUses must be at least 1")
        now = self._clock()
        access_code = AccessCode(
            code=normalize_code(code),
            created=now,
            max_uses=max_uses,
            expires_at=self._expiry(now, expires_in_hours),
        )
        if not self._insert(access_code):
            raise CodeAlreadyExists("Code already exists")
        logger.info(f"Code added: {access_code.code}, expires: {to_iso(access_code.expires_at) or 'never'}")
        return access_code

    def validate(self, code) -> ValidationOutcome:
        # only non-strings and "" are malformed; whitespace just matches no code
        if not isinstance(code, str) or not code:
            return ValidationOutcome.MALFORMED
        key = self._key(normalize_code(code))

        for _ in range(MAX_VALIDATE_RETRIES):
            raw = self.backend.get(key)
            if raw is None:
                return ValidationOutcome.NOT_FOUND
            access_code = AccessCode.from_json(raw)

            if access_code.is_expired(self._clock()):
                self.backend.delete(key)
                return ValidationOutcome.EXPIRED
            if access_code.is_exhausted:
                self.backend.delete(key)
                return ValidationOutcome.EXHAUSTED

            access_code.used_count += 1
            # the last allowed use removes the code
            new_raw = None if access_code.is_exhausted else access_code.to_json()
            if self.backend.compare_and_set(key, raw, new_raw):
                if new_raw is None:
                    logger.info("Access code used up and deleted")
                return ValidationOutcome.GRANTED

        logger.error(f"Gave up validating access code after {MAX_VALIDATE_RETRIES} conflicting updates")
        raise BackendError("Too much contention on access code")

    def revoke(self, code: str) -> bool:
        deleted = self.backend.delete(self._key(normalize_code(code)))
        if deleted:
            logger.info(f"Access code revoked: {normalize_code(code)}")
        return deleted

    def list_codes(self) -> List[AccessCode]:
        codes = [AccessCode.from_json(raw) for _, raw in self.backend.scan_prefix(ACCESS_CODE_PREFIX)]
        return sorted(codes, key=lambda c: c.created)

    def summaries(self) -> List[dict]:
        now = self._clock()
        return [c.summary(now) for c in self.list_codes()]

    def count_active(self) -> int:
        now = self._clock()
        return sum(1 for c in self.list_codes() if c.is_active(now))

    def sweep_expired(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        removed = 0
        for key, raw in self.backend.scan_prefix(ACCESS_CODE_PREFIX):
            access_code = AccessCode.from_json(raw)
            if access_code.is_expired(now) and self.backend.compare_and_set(key, raw, None):
                logger.info(f"Cleaned up expired code: {access_code.code}")
                removed += 1
        return removed
