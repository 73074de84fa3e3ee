"""
Session persistence.

SessionStore is the interface the orchestrator needs from the storage engine.
Writes are compare-and-set on the session id: a write only lands when the
current record is the one the writer last saw. Concurrent writers racing on
the same id therefore produce exactly one stored record, and every loser
observes ALREADY_EXISTS, which callers treat as success since the winning
record was derived from the same tenant, kind and user.

InMemorySessionStore is per-process storage. Multi-instance deployments need
a shared store enforcing the same uniqueness on session id.
"""

import asyncio
from enum import Enum
from typing import Dict, Optional, Protocol

from loguru import logger

from appbridge_session.models import Session


class StoreResult(str, Enum):
    """Outcome of SessionStore.store."""

    STORED = "stored"
    ALREADY_EXISTS = "already_exists"


class SessionStore(Protocol):
    """Storage engine interface for persisted sessions."""

    async def load(self, session_id: str) -> Optional[Session]:
        """Return the stored session for session_id, or None."""
        ...

    async def store(self, session: Session, expected: Optional[Session] = None) -> StoreResult:
        """
        Persist a session if the current record for its id equals `expected`.

        `expected=None` means the writer saw no record. Returns ALREADY_EXISTS
        when another writer got there first.
        """
        ...


class InMemorySessionStore:
    """Dict-backed SessionStore guarded by an asyncio.Lock."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def store(self, session: Session, expected: Optional[Session] = None) -> StoreResult:
        async with self._lock:
            current = self._sessions.get(session.id)
            if current != expected:
                logger.debug(f"Session {session.id} not stored, a concurrent write already landed")
                return StoreResult.ALREADY_EXISTS

            self._sessions[session.id] = session
            logger.debug(f"Stored session {session.id} ({session.kind.value})")
            return StoreResult.STORED

    def __len__(self) -> int:
        return len(self._sessions)
