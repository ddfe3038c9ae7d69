import os

DEFAULT_ADMIN_SECRET = "change-this-secret-in-production"

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "redis")  # "redis" or "memory"

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", 5))

ADMIN_SECRET = os.getenv("ADMIN_SECRET", DEFAULT_ADMIN_SECRET)
ADMIN_PASSWORD_HASH = os.getenv("ADMIN_PASSWORD_HASH", None)  # sha256 hex digest

MAX_VALIDATION_ATTEMPTS = int(os.getenv("MAX_VALIDATION_ATTEMPTS", 5))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 15 * 60))

SESSION_IDLE_TIMEOUT_SECONDS = int(os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", 10 * 60))
SESSION_SWEEP_INTERVAL_SECONDS = int(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", 5 * 60))
CODE_SWEEP_INTERVAL_SECONDS = int(os.getenv("CODE_SWEEP_INTERVAL_SECONDS", 10 * 60))

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no 0/O, 1/I
CODE_MIN_LENGTH = int(os.getenv("CODE_MIN_LENGTH", 8))
CODE_MAX_LENGTH = 32
CUSTOM_CODE_MIN_LENGTH = 6
CODE_GENERATION_ATTEMPTS = int(os.getenv("CODE_GENERATION_ATTEMPTS", 10))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
# proxies whose X-Forwarded-For is trusted for the client address
FORWARDED_ALLOW_IPS = os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1")
# dead peers are only noticed through pings; closing them frees their session slot
WS_PING_INTERVAL_SECONDS = float(os.getenv("WS_PING_INTERVAL_SECONDS", 20))
WS_PING_TIMEOUT_SECONDS = float(os.getenv("WS_PING_TIMEOUT_SECONDS", 20))
