"""
Token exchange for converting identity tokens into backend access tokens.

Implements the OAuth 2.0 token exchange grant (RFC 8693) against the shop's
admin endpoint:

- subject_token is the App Bridge identity token presented by the client
- requested_token_type selects an offline (shop-wide) or online (user-scoped)
  access token

The exchange is never retried here. Invalid identity tokens are reported as
InvalidTokenError so the caller can bounce the client for a fresh token;
every other remote failure is a TokenExchangeError and fatal for the request.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import httpx
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from appbridge_session.auth.identity_token import InvalidTokenError, MissingTokenError
from appbridge_session.models import AccessTokenKind, ExchangeRequest, Session, session_id_for


TOKEN_EXCHANGE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
INVALID_SUBJECT_TOKEN = "invalid_subject_token"


class TokenExchangeError(Exception):
    """Raised when the exchange endpoint fails or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class AssociatedUser(BaseModel):
    """User an online access token is scoped to."""

    id: Union[int, str]
    email: Optional[str] = None
    account_owner: Optional[bool] = None


class TokenResponse(BaseModel):
    """Token exchange response."""

    access_token: str = Field(min_length=1)
    scope: Optional[str] = None
    expires_in: Optional[int] = None
    associated_user_scope: Optional[str] = None
    associated_user: Optional[AssociatedUser] = None


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        return payload.get("error")
    return None


class TokenExchangeClient:
    """
    Exchanges identity tokens for backend sessions.

    Each call is independent: callers may exchange once per AccessTokenKind
    within a request, and a failure of one kind does not affect a session
    already obtained for the other.
    """

    def __init__(self, http_client: httpx.AsyncClient, *, api_key: str, api_secret_key: str):
        """
        Args:
            http_client: httpx client used for the exchange call (owns timeouts)
            api_key: App client ID
            api_secret_key: App client secret
        """
        self.http_client = http_client
        self.api_key = api_key
        self._api_secret_key = api_secret_key

    def endpoint_for(self, tenant_id: str) -> str:
        return f"https://{tenant_id}/admin/oauth/access_token"

    async def exchange(self, request: ExchangeRequest) -> Session:
        """
        Exchange an identity token for a session of the requested kind.

        Args:
            request: Tenant, identity token and requested token kind

        Returns:
            The exchanged Session (not yet persisted)

        Raises:
            MissingTokenError: If the identity token is empty (no call is made)
            InvalidTokenError: If the endpoint rejects the identity token
            TokenExchangeError: On transport errors, timeouts or non-2xx responses
        """
        if not request.identity_token:
            raise MissingTokenError("Cannot exchange an empty identity token")

        kind = request.requested_kind
        logger.info(f"Performing token exchange - {kind.value} access token for {request.tenant_id}")

        try:
            response = await self.http_client.post(
                self.endpoint_for(request.tenant_id),
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                json={
                    "client_id": self.api_key,
                    "client_secret": self._api_secret_key,
                    "grant_type": TOKEN_EXCHANGE_GRANT_TYPE,
                    "subject_token": request.identity_token,
                    "subject_token_type": ID_TOKEN_TYPE,
                    "requested_token_type": kind.token_type,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Token exchange request to {request.tenant_id} failed: {e!r}")
            raise TokenExchangeError(f"Token exchange request failed: {e}") from e

        if response.status_code == 400 and _error_code(response) == INVALID_SUBJECT_TOKEN:
            logger.info(f"Exchange endpoint rejected identity token for {request.tenant_id}")
            raise InvalidTokenError("Identity token rejected by exchange endpoint")

        if not 200 <= response.status_code < 300:
            logger.error(
                f"A {response.status_code} error occurred during the token exchange. "
                f"Response: {response.text}"
            )
            raise TokenExchangeError(
                f"Token exchange failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            token_data = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError(
                f"Malformed token exchange response: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        session = self._build_session(request, token_data)
        logger.debug(f"✓ Exchanged {kind.value} access token, session {session.id}")
        return session

    def _build_session(self, request: ExchangeRequest, token_data: TokenResponse) -> Session:
        if request.requested_kind is AccessTokenKind.OFFLINE:
            return Session(
                id=session_id_for(request.tenant_id, AccessTokenKind.OFFLINE),
                tenant_id=request.tenant_id,
                kind=AccessTokenKind.OFFLINE,
                access_token=token_data.access_token,
                scope=token_data.scope,
            )

        # Identity token subject wins so lookups and writes derive the same id
        user_id = request.user_id
        if not user_id and token_data.associated_user is not None:
            user_id = str(token_data.associated_user.id)
        if not user_id:
            raise TokenExchangeError("Online token exchange response missing associated user")

        expires_at = None
        if token_data.expires_in is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=token_data.expires_in)

        return Session(
            id=session_id_for(request.tenant_id, AccessTokenKind.ONLINE, user_id),
            tenant_id=request.tenant_id,
            kind=AccessTokenKind.ONLINE,
            access_token=token_data.access_token,
            expires_at=expires_at,
            scope=token_data.associated_user_scope or token_data.scope,
            user_id=user_id,
        )
