import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from logging_config import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    INITIATOR = "initiator"
    JOINER = "joiner"

    @property
    def other(self) -> "Role":
        return Role.JOINER if self is Role.INITIATOR else Role.INITIATOR


@dataclass
class Session:
    code: str
    initiator: Optional[Any] = None
    joiner: Optional[Any] = None
    last_activity: float = field(default_factory=time.time)

    def occupant(self, role: Role) -> Optional[Any]:
        return self.initiator if role is Role.INITIATOR else self.joiner

    def role_of(self, connection) -> Optional[Role]:
        if connection is None:
            return None
        if self.initiator is connection:
            return Role.INITIATOR
        if self.joiner is connection:
            return Role.JOINER
        return None

    @property
    def is_empty(self) -> bool:
        return self.initiator is None and self.joiner is None

    @property
    def is_full(self) -> bool:
        return self.initiator is not None and self.joiner is not None

    @property
    def is_paired(self) -> bool:
        """Both slots filled by two distinct connections."""
        return self.is_full and self.initiator is not self.joiner


class SessionRegistry:
    """In-memory table of two-peer sessions keyed by session code.

    Connections are compared by identity. The registry never holds an empty
    session: detaching the last occupant removes the entry.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, code: str) -> bool:
        return code in self._sessions

    def get(self, code: str) -> Optional[Session]:
        return self._sessions.get(code)

    def get_or_create(self, code: str) -> Session:
        session = self._sessions.get(code)
        if session is None:
            session = Session(code=code, last_activity=self._clock())
            self._sessions[code] = session
            logger.info(f"New session created: {code}")
        return session

    def attach(self, code: str, role: Role, connection) -> Session:
        # last attach wins: a second join with the same role replaces the occupant
        session = self.get_or_create(code)
        if role is Role.INITIATOR:
            session.initiator = connection
        else:
            session.joiner = connection
        session.last_activity = self._clock()
        logger.debug(f"Attached {role.value} to session {code}")
        return session

    def detach(self, code: str, connection) -> bool:
        """Clear every slot holding ``connection``. Returns True if the session was removed."""
        session = self._sessions.get(code)
        if session is None:
            return False
        if session.initiator is connection:
            session.initiator = None
            logger.info(f"Initiator disconnected from session: {code}")
        if session.joiner is connection:
            session.joiner = None
            logger.info(f"Joiner disconnected from session: {code}")
        if session.is_empty:
            del self._sessions[code]
            logger.info(f"Session deleted: {code}")
            return True
        return False

    def peer_of(self, code: str, connection) -> Optional[Any]:
        session = self._sessions.get(code)
        if session is None:
            return None
        role = session.role_of(connection)
        if role is None:
            return None
        peer = session.occupant(role.other)
        # one connection may hold both slots after re-joining with the other role
        return None if peer is connection else peer

    def touch(self, code: str):
        session = self._sessions.get(code)
        if session is not None:
            session.last_activity = self._clock()

    def sweep(self, idle_threshold: float, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        stale = [code for code, s in self._sessions.items() if now - s.last_activity > idle_threshold]
        for code in stale:
            del self._sessions[code]
            logger.info(f"Cleaned up session: {code}")
        return len(stale)
