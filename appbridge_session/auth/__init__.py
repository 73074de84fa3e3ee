"""
Authentication module for appbridge-session.

Identity token decoding and token exchange for backend access tokens.
"""

from appbridge_session.auth.identity_token import (
    SessionTokenError,
    MissingTokenError,
    InvalidTokenError,
    IdentityTokenDecoder,
    extract_bearer_token,
    sanitize_shop_domain,
)
from appbridge_session.auth.token_exchange import (
    TokenExchangeError,
    TokenExchangeClient,
)

__all__ = [
    "SessionTokenError",
    "MissingTokenError",
    "InvalidTokenError",
    "IdentityTokenDecoder",
    "extract_bearer_token",
    "sanitize_shop_domain",
    "TokenExchangeError",
    "TokenExchangeClient",
]
