import asyncio
import json
import uuid
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import ValidationError
from starlette.websockets import WebSocketState

from logging_config import get_logger
from schemas.signaling import RELAY_TYPES, JoinMessage, ReadyMessage, RelayMessage
from sessions import Role, SessionRegistry

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    CLOSED = "closed"


class PeerConnection:
    """One signaling WebSocket plus its place in the join protocol."""

    def __init__(self, websocket, connection_id: Optional[str] = None):
        self.websocket = websocket
        self.connection_id = connection_id or str(uuid.uuid4())
        self.state = ConnectionState.CONNECTED
        self.session_code: Optional[str] = None
        self.role: Optional[Role] = None

    def __repr__(self):
        return f"PeerConnection({self.connection_id[:8]}, {self.state.value}, {self.session_code})"

    @property
    def is_open(self) -> bool:
        if self.state is ConnectionState.CLOSED:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, message: dict) -> bool:
        if not self.is_open:
            logger.debug(f"SafeSend skipped: connection {self.connection_id} not open")
            return False
        try:
            await self.websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            # peer may have gone away between the state check and the send
            logger.debug(f"SafeSend failed for connection {self.connection_id}: {e}")
            return False


def parse_message(raw: Union[str, bytes, dict]) -> Optional[Union[JoinMessage, RelayMessage]]:
    """Decode an inbound frame. Returns None for anything the protocol ignores."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
    if not isinstance(raw, dict):
        return None

    message_type = raw.get("type")
    try:
        if message_type == "join":
            return JoinMessage.model_validate(raw)
        if message_type in RELAY_TYPES:
            return RelayMessage.model_validate(raw)
    except ValidationError:
        return None
    return None


class SignalingCoordinator:
    """Drives the join/ready/relay protocol on top of a SessionRegistry.

    Registry mutations for one session code, together with the ready
    notification they may trigger, run under that code's lock. Errors are
    never reported back to peers.
    """

    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, code: str) -> asyncio.Lock:
        lock = self._locks.get(code)
        if lock is None:
            lock = self._locks[code] = asyncio.Lock()
        return lock

    def _release_lock(self, code: str):
        lock = self._locks.get(code)
        if lock is not None and not lock.locked() and code not in self.registry:
            del self._locks[code]

    async def handle_message(self, peer: PeerConnection, raw: Union[str, bytes, dict]):
        if peer.state is ConnectionState.CLOSED:
            return
        message = parse_message(raw)
        if message is None:
            logger.debug(f"Ignoring malformed message from connection {peer.connection_id}")
            return
        if isinstance(message, JoinMessage):
            await self.join(peer, message)
        else:
            # forward what the peer sent, not the re-serialized model
            payload = raw if isinstance(raw, dict) else json.loads(raw)
            await self.relay(peer, message, payload)

    async def join(self, peer: PeerConnection, message: JoinMessage):
        code = message.sessionCode
        role = Role.INITIATOR if message.isInitiator else Role.JOINER

        previous = peer.session_code
        if previous is not None and previous != code:
            async with self._lock_for(previous):
                self.registry.detach(previous, peer)
            self._release_lock(previous)

        async with self._lock_for(code):
            session = self.registry.attach(code, role, peer)
            peer.state = ConnectionState.JOINED
            peer.session_code = code
            peer.role = role
            logger.info(f"{role.value.capitalize()} joined session: {code}")

            if session.is_paired:
                logger.info(f"Both peers present in session {code}, sending ready signal")
                ready = ReadyMessage().model_dump()
                await session.initiator.send_json(ready)
                await session.joiner.send_json(ready)

    async def relay(self, peer: PeerConnection, message: RelayMessage, payload: dict) -> bool:
        if peer.state is not ConnectionState.JOINED:
            logger.debug(f"Relay dropped: connection {peer.connection_id} has not joined a session")
            return False

        code = message.sessionCode or peer.session_code
        if code not in self.registry:
            logger.debug(f"Relay failed: session {code} not found")
            return False

        self.registry.touch(code)
        recipient = self.registry.peer_of(code, peer)
        if recipient is None:
            logger.debug(f"Relay failed: recipient not available in session {code}")
            return False

        logger.debug(f"Relaying {message.type} in session {code}")
        return await recipient.send_json(payload)

    async def handle_close(self, peer: PeerConnection):
        if peer.state is ConnectionState.CLOSED:
            return
        code = peer.session_code
        peer.state = ConnectionState.CLOSED
        if code is None:
            return
        async with self._lock_for(code):
            self.registry.detach(code, peer)
        self._release_lock(code)
