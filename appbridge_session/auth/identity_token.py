"""
Identity token extraction and decoding.

The embedded client sends an App Bridge session token (an HS256 JWT signed
with the app's API secret) in the Authorization header. The token's `dest`
claim carries the shop domain, which is the single source of truth for the
tenant of the request.
"""

import re
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse

from jose import jwt, JWTError
from loguru import logger

from appbridge_session.models import IdentityToken


BEARER_PATTERN = re.compile(r"^Bearer (.+)$")

# python-jose only checks aud when it is in the token, so require it
_REQUIRED_CLAIMS = ("dest", "aud", "exp")


class SessionTokenError(Exception):
    """Base for recoverable identity token problems (routed to a bounce)."""

    reason = "session_token_error"


class MissingTokenError(SessionTokenError):
    """Raised when no identity token was presented."""

    reason = "missing_token"


class InvalidTokenError(SessionTokenError):
    """Raised when the identity token is undecodable or rejected."""

    reason = "invalid_token"


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """
    Pull the bearer token out of an Authorization header value.

    Returns None when the header is missing or not of the form
    `Bearer <token>`.
    """
    if not header:
        return None
    match = BEARER_PATTERN.match(header)
    if match is None:
        return None
    return match.group(1)


def sanitize_shop_domain(shop_domain: Optional[str], domains: Iterable[str]) -> Optional[str]:
    """
    Normalize a shop domain and check it belongs to a trusted shop domain.

    Accepts bare hosts (`example.myshopify.com`), URLs with a scheme, and bare
    shop names (`example`, completed with the first trusted domain).

    Returns:
        The lower-cased hostname, or None if it is not a trusted shop domain
    """
    domains = [d.lower().strip(".") for d in domains]
    if not shop_domain or not domains:
        return None

    name = shop_domain.strip().lower()
    if "." not in name and "://" not in name:
        name = f"{name}.{domains[0]}"
    if "://" not in name:
        name = f"https://{name}"

    host = urlparse(name).hostname
    if not host:
        return None

    pattern = r"^[a-z0-9][a-z0-9\-]*[a-z0-9]\.(%s)$" % "|".join(re.escape(d) for d in domains)
    if re.match(pattern, host) is None:
        return None
    return host


class IdentityTokenDecoder:
    """
    Decodes App Bridge identity tokens into an IdentityToken.

    Verifies the HS256 signature against the app's API secret, the expiry
    and not-before claims (with a small leeway for clock skew), the audience
    (the app's API key) and the `dest` shop domain.
    """

    def __init__(
        self,
        api_key: str,
        api_secret_key: str,
        shop_domains: Iterable[str],
        leeway_seconds: int = 10,
    ):
        self.api_key = api_key
        self._api_secret_key = api_secret_key
        self.shop_domains = list(shop_domains)
        self.leeway_seconds = leeway_seconds

    def decode(self, token: Optional[str]) -> IdentityToken:
        """
        Decode and validate an identity token.

        Raises:
            MissingTokenError: If the token is absent or empty
            InvalidTokenError: If the token cannot be decoded or fails validation
        """
        if not token or not token.strip():
            raise MissingTokenError("Missing identity token")

        try:
            claims = jwt.decode(
                token,
                self._api_secret_key,
                algorithms=["HS256"],
                audience=self.api_key,
                options={"leeway": self.leeway_seconds},
            )
        except JWTError as e:
            raise InvalidTokenError(f"Failed to decode identity token: {e}") from e

        missing = [claim for claim in _REQUIRED_CLAIMS if not claims.get(claim)]
        if missing:
            raise InvalidTokenError(f"Identity token missing claims: {', '.join(missing)}")

        # python-jose coerces exp with int(), so a numeric string passes decode
        if not isinstance(claims["dest"], str):
            raise InvalidTokenError("Identity token dest claim is not a string")
        if isinstance(claims["exp"], bool) or not isinstance(claims["exp"], (int, float)):
            raise InvalidTokenError("Identity token exp claim is not a number")

        tenant_id = sanitize_shop_domain(claims["dest"], self.shop_domains)
        if tenant_id is None:
            raise InvalidTokenError(f"Identity token has untrusted destination: {claims['dest']}")

        user_id = claims.get("sub")
        identity = IdentityToken(
            raw=token,
            tenant_id=tenant_id,
            user_id=str(user_id) if user_id is not None else None,
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            session_id_claim=claims.get("sid"),
        )
        logger.debug(f"Decoded identity token for tenant {tenant_id} (user={identity.user_id or 'none'})")
        return identity
