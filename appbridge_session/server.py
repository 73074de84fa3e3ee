"""
appbridge-session Starlette application.

Exposes the patch session token page used by navigation bounces and a
protected endpoint describing the active session. Run with:

    python -m appbridge_session.server
"""

import sys
from contextlib import asynccontextmanager
from html import escape
from typing import AsyncIterator, Optional

from loguru import logger
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from appbridge_session.async_client import get_client
from appbridge_session.bounce import PATCH_SESSION_TOKEN_PATH
from appbridge_session.config import Settings, get_settings
from appbridge_session.middleware import require_app_session
from appbridge_session.orchestrator import SessionOrchestrator
from appbridge_session.session_store import InMemorySessionStore, SessionStore


APP_BRIDGE_SCRIPT = "https://cdn.shopify.com/shopifycloud/app-bridge.js"

# App Bridge reads the API key from the meta tag, fetches a fresh identity
# token and reloads the URL given in the shopify-reload query parameter.
PATCH_SESSION_TOKEN_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <meta name="shopify-api-key" content="{api_key}" />
    <script src="{script}"></script>
  </head>
  <body></body>
</html>
"""


def configure_logging(settings: Settings) -> None:
    """Replace loguru's default handler with one at the configured level."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level,
        colorize=True,
    )


async def patch_session_token(request: Request) -> HTMLResponse:
    settings: Settings = request.app.state.settings
    return HTMLResponse(
        PATCH_SESSION_TOKEN_TEMPLATE.format(
            api_key=escape(settings.api_key, quote=True),
            script=APP_BRIDGE_SCRIPT,
        )
    )


@require_app_session
async def current_session(request: Request) -> JSONResponse:
    """Describe the session active for this request."""
    context = request.state.app_session
    session = context.session
    return JSONResponse(
        {
            "tenant_id": session.tenant_id,
            "kind": session.kind.value,
            "scope": session.scope,
            "user_id": session.user_id,
            "expires_at": session.expires_at.isoformat() if session.expires_at else None,
        }
    )


def create_app(settings: Optional[Settings] = None, store: Optional[SessionStore] = None) -> Starlette:
    """
    Create the Starlette application.

    Args:
        settings: Application settings (default: loaded from environment)
        store: Session store (default: a fresh InMemorySessionStore)
    """
    settings = settings or get_settings()
    settings.validate_app_config()
    store = store if store is not None else InMemorySessionStore()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with get_client(settings) as client:
            app.state.session_orchestrator = SessionOrchestrator.from_settings(
                settings, http_client=client, store=store
            )
            logger.info(
                f"✓ Session orchestrator ready (online tokens: {settings.online_tokens_enabled}, "
                f"expiry check: {settings.check_session_expiry_date})"
            )
            yield
        logger.debug("Exchange HTTP client closed")

    app = Starlette(
        routes=[
            Route(PATCH_SESSION_TOKEN_PATH, patch_session_token, methods=["GET"]),
            Route("/api/session", current_session, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_store = store
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    configure_logging(settings)

    logger.info(f"🚀 Starting appbridge-session on {settings.bind_host}:{settings.port}")
    logger.info(f"✓ App host: {settings.host}")

    uvicorn.run(
        create_app(settings),
        host=settings.bind_host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
