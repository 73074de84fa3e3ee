"""
Tests for bounce response construction.
"""

from urllib.parse import parse_qsl, urlsplit

from appbridge_session.bounce import RETRY_HEADER, BounceContext, build_bounce

HOST = "https://app.example.com"


class TestBackgroundBounce:
    """Background (XHR) requests get a 401 retry response."""

    def test_unauthorized_body_and_retry_header(self):
        bounce = build_bounce(BounceContext("/orders", is_background_request=True), HOST)

        assert bounce.status_code == 401
        assert bounce.body == {"errors": [{"message": "unauthorized"}]}
        assert bounce.headers == {RETRY_HEADER: "1"}
        assert not bounce.is_redirect


class TestNavigationBounce:
    """Top-level navigations are redirected to the patch session token page."""

    def test_redirects_with_reload_url(self):
        bounce = build_bounce(BounceContext("/orders", [("page", "2")]), HOST)

        assert bounce.status_code == 302
        assert bounce.allow_other_host is True
        assert bounce.location == (
            "https://app.example.com/patch_session_token?page=2"
            "&shopify-reload=https%3A%2F%2Fapp.example.com%2Forders%3Fpage%3D2"
        )

    def test_drops_stale_id_token(self):
        bounce = build_bounce(
            BounceContext("/orders", [("id_token", "stale.jwt.value"), ("page", "2")]),
            HOST,
        )

        params = dict(parse_qsl(urlsplit(bounce.location).query))
        assert "id_token" not in params
        assert params["shopify-reload"] == "https://app.example.com/orders?page=2"

    def test_without_query(self):
        bounce = build_bounce(BounceContext("/orders"), HOST + "/")

        assert bounce.location == (
            "https://app.example.com/patch_session_token"
            "?shopify-reload=https%3A%2F%2Fapp.example.com%2Forders"
        )

    def test_parameters_sorted_by_key(self):
        bounce = build_bounce(
            BounceContext("/products", [("shop", "shop-1.example"), ("host", "YWRtaW4"), ("embedded", "1")]),
            HOST,
        )

        keys = [key for key, _ in parse_qsl(urlsplit(bounce.location).query)]
        assert keys == ["embedded", "host", "shop", "shopify-reload"]

        params = dict(parse_qsl(urlsplit(bounce.location).query))
        assert params["shopify-reload"] == (
            "https://app.example.com/products?embedded=1&host=YWRtaW4&shop=shop-1.example"
        )
