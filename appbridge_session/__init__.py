"""
appbridge-session: identity token exchange sessions for embedded apps.

Converts the short-lived identity token presented by an embedded client into
a persisted backend session, bouncing the client for a fresh token when the
one it sent is missing or unusable.
"""

from appbridge_session.activation import SessionActivator, SessionContext
from appbridge_session.bounce import BounceContext, BounceResponse, build_bounce
from appbridge_session.models import (
    AccessTokenKind,
    ExchangeRequest,
    IdentityToken,
    RequestContext,
    Session,
    session_id_for,
)
from appbridge_session.orchestrator import (
    OrchestrationResult,
    Resolution,
    SessionOrchestrator,
    SessionState,
)
from appbridge_session.session_store import InMemorySessionStore, SessionStore, StoreResult

__all__ = [
    "AccessTokenKind",
    "BounceContext",
    "BounceResponse",
    "ExchangeRequest",
    "IdentityToken",
    "InMemorySessionStore",
    "OrchestrationResult",
    "RequestContext",
    "Resolution",
    "Session",
    "SessionActivator",
    "SessionContext",
    "SessionOrchestrator",
    "SessionState",
    "SessionStore",
    "StoreResult",
    "build_bounce",
    "session_id_for",
]
