"""
Request-scoped session activation.

Each request gets its own SessionContext, threaded explicitly to the
protected handler. There is no process-wide "current session", so
concurrent requests cannot observe each other's sessions.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from loguru import logger

from appbridge_session.models import Session


class SessionActivationError(Exception):
    """Raised when a context is activated twice or used while inactive."""

    pass


class SessionContext:
    """The active session for one request."""

    def __init__(self) -> None:
        self._session: Optional[Session] = None
        self.offline_session: Optional[Session] = None

    @property
    def is_active(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Session:
        """
        The active session.

        Raises:
            SessionActivationError: If no session is active
        """
        if self._session is None:
            raise SessionActivationError("No active session")
        return self._session

    def activate(self, session: Session) -> None:
        if self._session is not None:
            raise SessionActivationError(f"Session {self._session.id} already active")
        self._session = session

    def deactivate(self) -> None:
        self._session = None
        self.offline_session = None


class SessionActivator:
    """Brackets a protected handler with activate/deactivate calls."""

    @asynccontextmanager
    async def activated(
        self,
        context: SessionContext,
        session: Session,
        offline_session: Optional[Session] = None,
    ) -> AsyncIterator[SessionContext]:
        """
        Activate `session` on `context` for the duration of the block.

        Deactivation runs exactly once on every exit path, including when
        the block raises.
        """
        logger.debug(f"Activating session {session.id}")
        context.activate(session)
        context.offline_session = offline_session
        try:
            yield context
        finally:
            logger.debug(f"Deactivating session {session.id}")
            context.deactivate()
