"""
Async HTTP client factory for the token exchange endpoint.

Provides a context manager pattern for creating the httpx client shared by
the TokenExchangeClient. The client's timeout bounds every exchange call.
"""

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Callable, Optional

import httpx
from loguru import logger

from appbridge_session.config import Settings

# Global client factory (can be overridden for testing)
_client_factory: Optional[Callable[[], AsyncContextManager[httpx.AsyncClient]]] = None


def set_client_factory(factory: Optional[Callable[[], AsyncContextManager[httpx.AsyncClient]]]) -> None:
    """
    Override the default client factory.

    This is primarily used for testing to inject mock clients. Pass None to
    restore the default.

    Args:
        factory: Async context manager function that yields an httpx.AsyncClient
    """
    global _client_factory
    _client_factory = factory
    logger.debug("Custom client factory set" if factory else "Default client factory restored")


@asynccontextmanager
async def get_client(settings: Settings) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Get an AsyncClient as a context manager.

    If a custom factory has been set via set_client_factory(), uses that.

    Usage:
        async with get_client(settings) as client:
            session = await TokenExchangeClient(client, ...).exchange(request)

    Yields:
        httpx.AsyncClient with the configured exchange timeout
    """
    if _client_factory:
        async with _client_factory() as client:
            yield client
    else:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.exchange_timeout_seconds),
            headers={"User-Agent": "appbridge-session"},
        ) as client:
            yield client
