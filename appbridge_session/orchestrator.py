"""
Session establishment for embedded app requests.

Turns the identity token on a request into an active backend session:

1. Extract and decode the identity token (missing/invalid -> bounce)
2. Load the stored session for the derived session id; reuse it unless it
   has expired and expiry checking is enabled
3. Otherwise exchange the identity token for an offline access token and
   store it, then (when online tokens are enabled) for an online one
4. Activate the session around the protected handler

A fatal exchange failure is not a SessionState: the TokenExchangeError
propagates to the caller and no handler runs.

Concurrent requests are not coordinated: two requests racing on the same
expired session both call the exchange endpoint. The store's compare-and-set
write keeps exactly one record, and the losing write is treated as success.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx
from loguru import logger

from appbridge_session.activation import SessionActivator, SessionContext
from appbridge_session.auth.identity_token import (
    IdentityTokenDecoder,
    InvalidTokenError,
    SessionTokenError,
    extract_bearer_token,
)
from appbridge_session.auth.token_exchange import TokenExchangeClient, TokenExchangeError
from appbridge_session.bounce import BounceContext, BounceResponse, build_bounce
from appbridge_session.config import Settings
from appbridge_session.models import (
    AccessTokenKind,
    ExchangeRequest,
    IdentityToken,
    RequestContext,
    Session,
)
from appbridge_session.session_store import SessionStore, StoreResult


class SessionState(str, Enum):
    """States of session establishment for one request."""

    NO_SESSION = "no_session"
    RESOLVING = "resolving"
    EXCHANGING_OFFLINE = "exchanging_offline"
    EXCHANGING_ONLINE = "exchanging_online"
    ACTIVE = "active"
    BOUNCED = "bounced"


@dataclass(frozen=True)
class Resolution:
    """Terminal outcome of resolving a request's session."""

    state: SessionState
    session: Optional[Session] = None
    offline_session: Optional[Session] = None
    bounce: Optional[BounceResponse] = None


@dataclass(frozen=True)
class OrchestrationResult:
    """Outcome of running a protected handler for a request."""

    state: SessionState
    session: Optional[Session] = None
    bounce: Optional[BounceResponse] = None
    response: Any = None


Handler = Callable[[SessionContext], Awaitable[Any]]


class SessionOrchestrator:
    """
    Coordinates token decoding, session lookup, token exchange, persistence
    and activation for each request.
    """

    def __init__(
        self,
        *,
        decoder: IdentityTokenDecoder,
        exchange_client: TokenExchangeClient,
        store: SessionStore,
        host: str,
        online_tokens_enabled: bool = False,
        check_session_expiry: bool = True,
        activator: Optional[SessionActivator] = None,
    ):
        """
        Args:
            decoder: Identity token decoder
            exchange_client: Client for the token exchange endpoint
            store: Session persistence
            host: Public base URL of the app (used for bounce redirects)
            online_tokens_enabled: Also exchange for a user-scoped online token
            check_session_expiry: Re-exchange stored sessions that have expired
            activator: Session activator (default SessionActivator())
        """
        self.decoder = decoder
        self.exchange_client = exchange_client
        self.store = store
        self.host = host
        self.online_tokens_enabled = online_tokens_enabled
        self.check_session_expiry = check_session_expiry
        self.activator = activator or SessionActivator()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient,
        store: SessionStore,
    ) -> "SessionOrchestrator":
        """Build an orchestrator wired from application settings."""
        return cls(
            decoder=IdentityTokenDecoder(
                api_key=settings.api_key,
                api_secret_key=settings.api_secret_key,
                shop_domains=settings.shop_domains,
                leeway_seconds=settings.jwt_leeway_seconds,
            ),
            exchange_client=TokenExchangeClient(
                http_client,
                api_key=settings.api_key,
                api_secret_key=settings.api_secret_key,
            ),
            store=store,
            host=settings.host,
            online_tokens_enabled=settings.online_tokens_enabled,
            check_session_expiry=settings.check_session_expiry_date,
        )

    @property
    def active_kind(self) -> AccessTokenKind:
        """Kind of session handed to protected handlers."""
        return AccessTokenKind.ONLINE if self.online_tokens_enabled else AccessTokenKind.OFFLINE

    async def resolve(self, request: RequestContext) -> Resolution:
        """
        Resolve the session for a request without running a handler.

        Returns:
            Resolution in state ACTIVE (with session) or BOUNCED (with bounce)

        Raises:
            TokenExchangeError: If the exchange endpoint fails (no session is established)
        """
        try:
            identity = self.decoder.decode(extract_bearer_token(request.authorization))
        except SessionTokenError as e:
            return self._bounce(request, e, SessionState.NO_SESSION)

        if self.online_tokens_enabled and not identity.user_id:
            error = InvalidTokenError("Identity token has no subject for an online session")
            return self._bounce(request, error, SessionState.RESOLVING)

        session_id = identity.session_id(self.active_kind)
        existing = await self.store.load(session_id)
        if existing is not None:
            if not (self.check_session_expiry and existing.expired):
                logger.debug(f"Reusing stored session {session_id}")
                return Resolution(state=SessionState.ACTIVE, session=existing)
            logger.info(f"Stored session {session_id} expired, performing token exchange")

        if self.active_kind is AccessTokenKind.OFFLINE:
            expected_offline = existing
        else:
            expected_offline = await self.store.load(identity.session_id(AccessTokenKind.OFFLINE))

        try:
            offline = await self._exchange_and_store(identity, AccessTokenKind.OFFLINE, expected_offline)
        except SessionTokenError as e:
            return self._bounce(request, e, SessionState.EXCHANGING_OFFLINE)

        if not self.online_tokens_enabled:
            return Resolution(state=SessionState.ACTIVE, session=offline, offline_session=offline)

        try:
            online = await self._exchange_and_store(identity, AccessTokenKind.ONLINE, existing)
        except SessionTokenError as e:
            logger.info(f"Offline session {offline.id} kept after online exchange was refused")
            return self._bounce(request, e, SessionState.EXCHANGING_ONLINE)
        except Exception:
            logger.warning(f"Offline session {offline.id} kept after online exchange failed")
            raise

        return Resolution(state=SessionState.ACTIVE, session=online, offline_session=offline)

    async def run(self, request: RequestContext, handler: Handler) -> OrchestrationResult:
        """
        Resolve the request's session and run `handler` with it activated.

        The handler receives the request's SessionContext and does not run
        when the request is bounced or the exchange fails.

        Raises:
            TokenExchangeError: If the exchange endpoint fails
        """
        resolution = await self.resolve(request)
        if resolution.state is SessionState.BOUNCED:
            return OrchestrationResult(state=SessionState.BOUNCED, bounce=resolution.bounce)

        context = SessionContext()
        async with self.activator.activated(context, resolution.session, resolution.offline_session):
            response = await handler(context)

        return OrchestrationResult(
            state=SessionState.ACTIVE,
            session=resolution.session,
            response=response,
        )

    async def _exchange_and_store(
        self,
        identity: IdentityToken,
        kind: AccessTokenKind,
        expected: Optional[Session],
    ) -> Session:
        try:
            session = await self.exchange_client.exchange(
                ExchangeRequest(
                    tenant_id=identity.tenant_id,
                    identity_token=identity.raw,
                    requested_kind=kind,
                    user_id=identity.user_id,
                )
            )
        except (SessionTokenError, TokenExchangeError):
            raise
        except Exception as e:
            logger.info(f"An error occurred during the token exchange: {e}")
            raise

        result = await self.store.store(session, expected=expected)
        if result is StoreResult.ALREADY_EXISTS:
            logger.debug("Session not stored due to concurrent token exchange calls")
        return session

    def _bounce(self, request: RequestContext, error: SessionTokenError, state: SessionState) -> Resolution:
        logger.info(f"Bouncing {request.path} during {state.value}: {error.reason} ({error})")
        bounce = build_bounce(
            BounceContext(
                request_path=request.path,
                query_parameters=list(request.query_parameters),
                is_background_request=request.is_background_request,
            ),
            self.host,
        )
        return Resolution(state=SessionState.BOUNCED, bounce=bounce)
