from .store import (
    Session,
    SessionStoreBase,
    InMemorySessionStore,
    session_store,
)
from .middleware import SessionMiddleware, SESSION_STATE_KEY, session_cookie_header

__all__ = [
    "Session",
    "SessionStoreBase",
    "InMemorySessionStore",
    "session_store",
    "SessionMiddleware",
    "SESSION_STATE_KEY",
    "session_cookie_header",
]
