# backend/session_store.py
"""
Session storage

SessionStore is the contract the conversation layer depends on; the
in-memory implementation keeps sessions for the lifetime of the process.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Optional

from config import settings
from models import Session

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """get/set/has/delete by id, a size count and an idle-age cleanup sweep"""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Return the stored session or None."""

    @abstractmethod
    def set(self, session_id: str, session: Session) -> None:
        """Store or replace a session."""

    @abstractmethod
    def has(self, session_id: str) -> bool:
        """Whether a session exists."""

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove a session; False if it did not exist."""

    @abstractmethod
    def size(self) -> int:
        """Number of stored sessions."""

    @abstractmethod
    def cleanup(self, max_age: Optional[timedelta] = None) -> int:
        """Evict sessions idle longer than max_age; return how many were removed."""


class InMemorySessionStore(SessionStore):
    """Dict-backed store, safe to share between request threads"""

    def __init__(self, timeout_minutes: Optional[int] = None):
        minutes = settings.session_timeout_minutes if timeout_minutes is None else timeout_minutes
        self.max_age = timedelta(minutes=minutes)
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
        logger.debug("Get session %s, found: %s", session_id, session is not None)
        return session

    def set(self, session_id: str, session: Session) -> None:
        session.updated_at = datetime.now()
        with self._lock:
            self._sessions[session_id] = session
            total = len(self._sessions)
        logger.debug("Set session %s, total: %d", session_id, total)

    def has(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def delete(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        logger.debug("Delete session %s, success: %s", session_id, removed)
        return removed

    def size(self) -> int:
        with self._lock:
            return len(self._sessions)

    def cleanup(self, max_age: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
        cutoff = (now or datetime.now()) - (self.max_age if max_age is None else max_age)
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if session.updated_at < cutoff]
            for session_id in expired:
                del self._sessions[session_id]
            remaining = len(self._sessions)
        if expired:
            logger.info("Cleaned %d idle sessions, %d remaining", len(expired), remaining)
        return len(expired)
