"""
Domain models for embedded app session establishment.

Sessions are created only by a successful token exchange and are never
mutated: a re-exchange after expiry replaces the stored record wholesale.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple


# Sessions expiring within this window are treated as already expired
EXPIRY_BUFFER = timedelta(seconds=60)


class AccessTokenKind(str, Enum):
    """Kind of backend access token requested from the exchange endpoint."""

    OFFLINE = "offline"
    ONLINE = "online"

    @property
    def token_type(self) -> str:
        """Requested token type URN sent to the exchange endpoint."""
        return f"urn:shopify:params:oauth:token-type:{self.value}-access-token"


def session_id_for(tenant_id: str, kind: AccessTokenKind, user_id: Optional[str] = None) -> str:
    """
    Derive the session id for a tenant, token kind and user.

    The same derivation is used for lookups and for persisting exchanged
    sessions, so concurrent exchanges of one logical session collide on id.

    Raises:
        ValueError: If an online id is requested without a user id
    """
    if kind is AccessTokenKind.OFFLINE:
        return f"offline_{tenant_id}"
    if not user_id:
        raise ValueError("Online session id requires a user id")
    return f"{tenant_id}_{user_id}"


@dataclass(frozen=True)
class IdentityToken:
    """Decoded identity (session) token presented by the embedded client."""

    raw: str
    tenant_id: str
    user_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    session_id_claim: Optional[str] = None

    def session_id(self, kind: AccessTokenKind) -> str:
        return session_id_for(self.tenant_id, kind, self.user_id)


@dataclass(frozen=True)
class Session:
    """A persisted backend session holding one access token."""

    id: str
    tenant_id: str
    kind: AccessTokenKind
    access_token: str = field(repr=False)
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def expired(self) -> bool:
        """True when the session expires within the next minute."""
        if self.expires_at is None:
            return False
        return self.expires_at < datetime.now(timezone.utc) + EXPIRY_BUFFER


@dataclass(frozen=True)
class ExchangeRequest:
    """Input to a single token exchange call."""

    tenant_id: str
    identity_token: str = field(repr=False)
    requested_kind: AccessTokenKind
    user_id: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    """Framework-neutral view of the parts of a request the core needs."""

    authorization: Optional[str]
    path: str
    query_parameters: List[Tuple[str, str]] = field(default_factory=list)
    is_background_request: bool = False
