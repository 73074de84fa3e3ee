"""
Starlette integration for session establishment.

Protected endpoints are wrapped with `require_app_session`, which resolves
the request's session through the app's SessionOrchestrator and exposes the
request-scoped SessionContext as `request.state.app_session` while the
endpoint runs. Bounced requests never reach the endpoint. Exchange failures
propagate to Starlette's error handling.
"""

import functools
from typing import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from appbridge_session.activation import SessionContext
from appbridge_session.bounce import BounceResponse
from appbridge_session.models import RequestContext
from appbridge_session.orchestrator import SessionOrchestrator, SessionState


Endpoint = Callable[[Request], Awaitable[Response]]


def is_background_request(request: Request) -> bool:
    """True for XHR/fetch requests, which get a 401 bounce instead of a redirect."""
    return request.headers.get("X-Requested-With", "").lower() == "xmlhttprequest"


def request_context_from(request: Request) -> RequestContext:
    """Build the framework-neutral RequestContext for a Starlette request."""
    return RequestContext(
        authorization=request.headers.get("Authorization"),
        path=request.url.path,
        query_parameters=list(request.query_params.multi_items()),
        is_background_request=is_background_request(request),
    )


def bounce_to_response(bounce: BounceResponse) -> Response:
    """Render a BounceResponse as a Starlette response."""
    if bounce.is_redirect:
        # Cross-origin targets are allowed: the app host may differ from the request host
        return RedirectResponse(
            bounce.location,
            status_code=bounce.status_code,
            headers=bounce.headers or None,
        )
    return JSONResponse(bounce.body, status_code=bounce.status_code, headers=bounce.headers or None)


def get_orchestrator(request: Request) -> SessionOrchestrator:
    """Return the orchestrator installed on the application state."""
    return request.app.state.session_orchestrator


def require_app_session(endpoint: Endpoint) -> Endpoint:
    """
    Decorate a Starlette endpoint so it only runs with an active session.

    Usage:
        @require_app_session
        async def orders(request):
            session = request.state.app_session.session
            ...
    """

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        async def handler(context: SessionContext) -> Response:
            request.state.app_session = context
            return await endpoint(request)

        result = await get_orchestrator(request).run(request_context_from(request), handler)
        if result.state is SessionState.BOUNCED:
            return bounce_to_response(result.bounce)
        return result.response

    return wrapper
