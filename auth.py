import hashlib
import hmac
from typing import Optional

from fastapi import Request

from constants import ADMIN_PASSWORD_HASH, ADMIN_SECRET, DEFAULT_ADMIN_SECRET
from logging_config import get_logger

logger = get_logger(__name__)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class AdminAuthenticator:
    """Checks the shared admin credential: a bearer token or a password whose
    SHA-256 hex digest matches the configured one. Comparisons are constant-time."""

    def __init__(self, secret: Optional[str] = ADMIN_SECRET, password_hash: Optional[str] = ADMIN_PASSWORD_HASH):
        self.secret = secret
        self.password_hash = password_hash.lower() if password_hash else None

    @property
    def using_default_secret(self) -> bool:
        return self.secret == DEFAULT_ADMIN_SECRET

    def check_bearer(self, authorization: Optional[str]) -> bool:
        if not self.secret or not authorization:
            return False
        expected = f"Bearer {self.secret}"
        return hmac.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8"))

    def check_password(self, password: Optional[str]) -> bool:
        if not self.password_hash or not isinstance(password, str):
            return False
        return hmac.compare_digest(hash_password(password), self.password_hash)

    def is_authorized(self, authorization: Optional[str] = None, password: Optional[str] = None) -> bool:
        return self.check_bearer(authorization) or self.check_password(password)


def client_identity(request: Request) -> str:
    """Best-effort client IP for rate limiting; proxies may forge these headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
