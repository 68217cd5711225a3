"""
In-memory registry of dashboard sessions with idle expiry.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Optional

from dashboard.core.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class SessionEntry:
    """Stored session with its last access time."""
    session: Any
    last_access: float = field(default_factory=time.time)


class SessionStore:
    """Thread-safe session registry; sessions idle longer than the TTL are dropped."""

    def __init__(self, ttl_seconds: float = 3600):
        self._entries: Dict[str, SessionEntry] = {}
        self._lock = Lock()
        self.ttl_seconds = ttl_seconds

    def _expired(self, entry: SessionEntry, now: float) -> bool:
        return now - entry.last_access > self.ttl_seconds

    def create(self, factory: Callable[[str], Any]) -> Any:
        """Build a session with a fresh id and register it, dropping idle ones first."""
        self.cleanup_expired()
        session_id = uuid.uuid4().hex
        session = factory(session_id)
        with self._lock:
            self._entries[session_id] = SessionEntry(session=session)
        logger.info(f"Session created: {session_id[:8]}...")
        return session

    def get(self, session_id: str) -> Any:
        """Return a live session, refreshing its idle timer."""
        with self._lock:
            entry = self._entries.get(session_id)
            now = time.time()
            if entry is None or self._expired(entry, now):
                self._entries.pop(session_id, None)
                raise SessionNotFoundError(session_id)
            entry.last_access = now
            return entry.session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            removed = self._entries.pop(session_id, None) is not None
        if removed:
            logger.info(f"Session deleted: {session_id[:8]}...")
        return removed

    def cleanup_expired(self) -> int:
        """Remove idle sessions. Returns how many were dropped."""
        with self._lock:
            now = time.time()
            expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Dropped {len(expired)} idle sessions")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        self.cleanup_expired()
        with self._lock:
            return {
                'size': len(self._entries),
                'ttl_seconds': self.ttl_seconds
            }


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get the process-wide session store."""
    global _session_store
    if _session_store is None:
        from dashboard.core.config import get_settings
        _session_store = SessionStore(ttl_seconds=get_settings().session_ttl_seconds)
    return _session_store
