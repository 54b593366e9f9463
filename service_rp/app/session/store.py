"""
Server-side session state.

The browser only holds an opaque session id inside Starlette's signed session
cookie; tokens stay in ``InMemorySessionStore``.
"""

import secrets
import threading
import time
from typing import Any, Callable, Dict, MutableMapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

SESSION_ID_KEY = "sid"


class SessionState(BaseModel):
    """Identity state held for one browser session."""

    model_config = ConfigDict(frozen=True)

    id_token: str
    decoded_id_token: Dict[str, Any]
    access_token: Optional[str] = None


class InMemorySessionStore:
    """Thread-safe ``session id -> SessionState`` map with expiry."""

    def __init__(self, max_age: float, clock: Callable[[], float] = time.time):
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[str, Tuple[float, SessionState]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionState]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            expires_at, state = entry
            if expires_at <= self._clock():
                del self._entries[session_id]
                return None
            return state

    def set(self, session_id: str, state: SessionState) -> None:
        """Store ``state``; expired entries are dropped on the way."""
        now = self._clock()
        with self._lock:
            self._purge(now)
            self._entries[session_id] = (now + self.max_age, state)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._purge(now)

    def _purge(self, now: float) -> int:
        expired = [sid for sid, (expires_at, _) in self._entries.items() if expires_at <= now]
        for sid in expired:
            del self._entries[sid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class Session:
    """One request's view of its browser session."""

    def __init__(self, cookie: MutableMapping[str, Any], store: InMemorySessionStore):
        self._cookie = cookie
        self._store = store

    @property
    def session_id(self) -> Optional[str]:
        return self._cookie.get(SESSION_ID_KEY)

    @property
    def state(self) -> Optional[SessionState]:
        session_id = self.session_id
        if not session_id:
            return None
        return self._store.get(session_id)

    @property
    def access_token(self) -> Optional[str]:
        state = self.state
        return state.access_token if state else None

    def replace(self, state: SessionState) -> None:
        """Swap in ``state`` under a fresh session id; the previous entry is dropped."""
        previous = self.session_id
        session_id = secrets.token_urlsafe(32)
        self._store.set(session_id, state)
        self._cookie[SESSION_ID_KEY] = session_id
        if previous:
            self._store.delete(previous)

    def clear(self) -> None:
        previous = self.session_id
        if previous:
            self._store.delete(previous)
        self._cookie.pop(SESSION_ID_KEY, None)
