"""
Cancellation tracking for streaming chat sessions.

A caller can ask for an in-flight orchestration request to stop; the
orchestration loop polls the flag at every suspension point.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from ..config import get_settings
from .logger import get_logger

logger = get_logger(__name__)


@dataclass
class CancellationEntry:
    """A pending cancellation request for a session."""
    session_id: str
    timestamp: datetime
    reason: Optional[str] = None


class CancellationManager:
    """
    Thread-safe registry of cancelled streaming sessions.
    
    Entries older than the expiry window are dropped on the next
    cancellation so abandoned requests do not accumulate.
    """
    
    def __init__(self, expiry_seconds: Optional[int] = None):
        self._cancelled_sessions: Dict[str, CancellationEntry] = {}
        self._lock = threading.Lock()
        self._expiry_seconds = expiry_seconds or get_settings().cancellation_expiry_seconds
    
    def cancel(self, session_id: str, reason: Optional[str] = None) -> None:
        """
        Mark a session as cancelled.
        
        Args:
            session_id: The session ID to cancel
            reason: Optional free-text reason, kept for logging
        """
        with self._lock:
            self._cancelled_sessions[session_id] = CancellationEntry(
                session_id=session_id,
                timestamp=datetime.now(),
                reason=reason
            )
            logger.info(f"Session cancelled: session_id={session_id}, reason={reason}")
            self._cleanup_stale_entries()
    
    def is_cancelled(self, session_id: str) -> bool:
        """Check whether a session has a pending cancellation."""
        with self._lock:
            return session_id in self._cancelled_sessions
    
    def clear(self, session_id: str) -> None:
        """Drop the cancellation flag for a session, if any."""
        with self._lock:
            if self._cancelled_sessions.pop(session_id, None) is not None:
                logger.debug(f"Cancellation cleared for session: {session_id}")
    
    def _cleanup_stale_entries(self) -> None:
        """
        Remove entries that have exceeded the expiry time.
        
        Note: This method assumes the lock is already held.
        """
        expiry_threshold = datetime.now() - timedelta(seconds=self._expiry_seconds)
        stale_sessions = [
            session_id
            for session_id, entry in self._cancelled_sessions.items()
            if entry.timestamp < expiry_threshold
        ]
        for session_id in stale_sessions:
            del self._cancelled_sessions[session_id]
        
        if stale_sessions:
            logger.info(f"Cleaned up {len(stale_sessions)} stale cancellation entries")
    
    @property
    def active_count(self) -> int:
        """Number of sessions currently flagged as cancelled."""
        with self._lock:
            return len(self._cancelled_sessions)


_cancellation_manager: Optional[CancellationManager] = None
_manager_lock = threading.Lock()


def get_cancellation_manager() -> CancellationManager:
    """Get the process-wide CancellationManager instance."""
    global _cancellation_manager
    
    if _cancellation_manager is None:
        with _manager_lock:
            if _cancellation_manager is None:
                _cancellation_manager = CancellationManager()
    
    return _cancellation_manager
