"""Session storage and materialization."""

from .materializer import SessionMaterializer
from .store import InMemorySessionStore, Session, SessionState

__all__ = ["InMemorySessionStore", "Session", "SessionMaterializer", "SessionState"]
