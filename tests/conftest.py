"""
Pytest configuration and fixtures for appbridge_session tests.

Sets up required environment variables before any imports.
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from jose import jwt

# Set required environment variables BEFORE any appbridge_session imports
# These are only needed to satisfy pydantic-settings validation
# Config uses APPBRIDGE_ prefix (see config.py model_config)
os.environ.setdefault("APPBRIDGE_API_KEY", "test-api-key")
os.environ.setdefault("APPBRIDGE_API_SECRET_KEY", "test-api-secret")
os.environ.setdefault("APPBRIDGE_HOST", "https://app.example.com")

API_KEY = "test-api-key"
API_SECRET_KEY = "test-api-secret"
APP_HOST = "https://app.example.com"
SHOP = "shop-1.example"
SHOP_DOMAINS = ["example"]


@pytest.fixture
def make_identity_token():
    """Factory for signed identity tokens; pass a claim as None to drop it."""

    def _make(
        shop: str = SHOP,
        sub: str = "42",
        expires_in: timedelta = timedelta(minutes=1),
        secret: str = API_SECRET_KEY,
        **overrides,
    ) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "iss": f"https://{shop}/admin",
            "dest": f"https://{shop}",
            "aud": API_KEY,
            "sub": sub,
            "exp": now + expires_in,
            "nbf": now - timedelta(seconds=5),
            "iat": now - timedelta(seconds=5),
            "jti": "7b0c4e0e-jti",
            "sid": "a1b2c3-sid",
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(claims, secret, algorithm="HS256")

    return _make


@pytest.fixture
def make_response():
    """Factory for mocked httpx responses."""

    def _make(status_code: int = 200, payload=None, text: str = "") -> MagicMock:
        response = MagicMock(spec=httpx.Response)
        response.status_code = status_code
        if isinstance(payload, Exception):
            response.json.side_effect = payload
        else:
            response.json.return_value = payload
        response.text = text or (str(payload) if payload is not None else "")
        return response

    return _make


@pytest.fixture
def mock_http_client():
    """Mock httpx AsyncClient for exchange endpoint calls."""
    return AsyncMock(spec=httpx.AsyncClient)
