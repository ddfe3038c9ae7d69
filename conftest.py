import pytest
from starlette.websockets import WebSocketState

from access_codes import AccessCodeStore
from auth import AdminAuthenticator, hash_password
from backend import MemoryBackend
from rate_limiter import RateLimiter
from sessions import SessionRegistry
from signaling import PeerConnection, SignalingCoordinator

ADMIN_SECRET = "test-admin-secret"
ADMIN_PASSWORD = "hunter2"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeWebSocket:
    """Stands in for a starlette WebSocket: records what was sent."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_text(self, data: str):
        if self.client_state != WebSocketState.CONNECTED:
            raise RuntimeError("websocket is closed")
        self.sent.append(data)

    def close(self):
        self.client_state = WebSocketState.DISCONNECTED


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend(clock):
    return MemoryBackend(clock=clock)


@pytest.fixture
def registry(clock):
    return SessionRegistry(clock=clock)


@pytest.fixture
def coordinator(registry):
    return SignalingCoordinator(registry)


@pytest.fixture
def code_store(backend, clock):
    return AccessCodeStore(backend, clock=clock)


@pytest.fixture
def rate_limiter(backend, clock):
    return RateLimiter(backend, max_attempts=5, window_seconds=900, clock=clock)


@pytest.fixture
def admin_auth():
    return AdminAuthenticator(secret=ADMIN_SECRET, password_hash=hash_password(ADMIN_PASSWORD))


@pytest.fixture
def make_peer():
    def _make(connection_id=None):
        return PeerConnection(FakeWebSocket(), connection_id=connection_id)
    return _make
