import dataclasses
import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from auth_proxy.utils import token_fingerprint
from auth_proxy.vars import SESSION_STORE, SESSION_TTL_SECONDS

logger = logging.getLogger("uvicorn.error")


@dataclasses.dataclass(frozen=True)
class Session:
    """Snapshot of a client session.

    Attributes:
        token:          Opaque identifier carried in the session cookie.
        authenticated:  Whether the client completed a login on this session.
        expires_at:     Epoch seconds after which the session no longer exists.
    """

    token: str
    authenticated: bool
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SessionStoreBase(ABC):
    """Server-side session state keyed by the cookie token.

    Every operation must be atomic for a given token: concurrent requests
    from the same client may extend and authenticate the same session.
    """

    @abstractmethod
    def get(self, token: Optional[str]) -> Optional[Session]:
        pass

    @abstractmethod
    def create(self) -> Tuple[str, Session]:
        pass

    @abstractmethod
    def touch(self, token: Optional[str]) -> Optional[Session]:
        pass

    @abstractmethod
    def set_authenticated(self, token: Optional[str], value: bool) -> Optional[Session]:
        pass


def session_store(
    name: str = SESSION_STORE, ttl_seconds: float = SESSION_TTL_SECONDS
) -> SessionStoreBase:
    if name == "InMemorySessionStore":
        return InMemorySessionStore(ttl_seconds=ttl_seconds)
    cls = globals().get(name)
    if isinstance(cls, type) and issubclass(cls, SessionStoreBase):
        return cls()
    raise ValueError(f"Unknown session store type: {name}")


class InMemorySessionStore(SessionStoreBase):
    """Process-local store with sliding expiration.

    Expired sessions are dropped when they are next looked up; there is no
    eviction sweep.
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def _live(self, token: Optional[str], now: float) -> Optional[Session]:
        # Caller holds the lock
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None
        if session.is_expired(now):
            del self._sessions[token]
            logger.debug(f"[Session] Expired {token_fingerprint(token)}")
            return None
        return session

    def get(self, token: Optional[str]) -> Optional[Session]:
        with self._lock:
            return self._live(token, self._clock())

    def create(self) -> Tuple[str, Session]:
        token = secrets.token_urlsafe(32)
        with self._lock:
            session = Session(
                token=token,
                authenticated=False,
                expires_at=self._clock() + self.ttl_seconds,
            )
            self._sessions[token] = session
        logger.debug(f"[Session] Created {token_fingerprint(token)}")
        return token, session

    def touch(self, token: Optional[str]) -> Optional[Session]:
        with self._lock:
            now = self._clock()
            session = self._live(token, now)
            if session is None:
                return None
            session = dataclasses.replace(session, expires_at=now + self.ttl_seconds)
            self._sessions[token] = session
            return session

    def set_authenticated(self, token: Optional[str], value: bool) -> Optional[Session]:
        with self._lock:
            now = self._clock()
            session = self._live(token, now)
            if session is None:
                return None
            session = dataclasses.replace(
                session, authenticated=value, expires_at=now + self.ttl_seconds
            )
            self._sessions[token] = session
            return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
