"""
Bounce responses for requests without a usable identity token.

Background (XHR/fetch) requests get a 401 with a retry header so App Bridge
retries with a fresh token. Top-level navigations are redirected to the
patch session token page, which obtains a fresh token and then reloads the
original URL carried in the `shopify-reload` parameter.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode


PATCH_SESSION_TOKEN_PATH = "/patch_session_token"
RELOAD_PARAM = "shopify-reload"
RETRY_HEADER = "X-Shopify-Retry-Invalid-Session-Request"
STALE_TOKEN_PARAM = "id_token"

UNAUTHORIZED_MESSAGE = "unauthorized"


@dataclass(frozen=True)
class BounceContext:
    """What the bounce builder needs to know about the failed request."""

    request_path: str
    query_parameters: List[Tuple[str, str]] = field(default_factory=list)
    is_background_request: bool = False


@dataclass(frozen=True)
class BounceResponse:
    """Transport-neutral description of the bounce response."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    location: Optional[str] = None
    allow_other_host: bool = False

    @property
    def is_redirect(self) -> bool:
        return self.location is not None


def _to_query(params: List[Tuple[str, str]]) -> str:
    return urlencode(sorted(params, key=lambda item: item[0]))


def _with_query(url: str, query: str) -> str:
    return f"{url}?{query}" if query else url


def build_bounce(context: BounceContext, host: str) -> BounceResponse:
    """
    Build the bounce response for a request.

    Args:
        context: Path, query and request type of the failed request
        host: Public base URL of the app (e.g. "https://app.example.com")

    Returns:
        A 401 retry response for background requests, otherwise a 302
        redirect to the patch session token page
    """
    if context.is_background_request:
        return BounceResponse(
            status_code=401,
            headers={RETRY_HEADER: "1"},
            body={"errors": [{"message": UNAUTHORIZED_MESSAGE}]},
        )

    host = host.rstrip("/")
    params = [(k, v) for k, v in context.query_parameters if k != STALE_TOKEN_PARAM]

    bounce_url = _with_query(f"{host}{context.request_path}", _to_query(params))
    patch_params = params + [(RELOAD_PARAM, bounce_url)]

    return BounceResponse(
        status_code=302,
        location=_with_query(f"{host}{PATCH_SESSION_TOKEN_PATH}", _to_query(patch_params)),
        allow_other_host=True,
    )
