"""Tests for the upstream forwarder using ``httpx.MockTransport`` upstreams."""

import json

import httpx
import pytest

from relay.schemas.proxy import FailureKind, ProxyFailure, ProxyRequest, ProxySuccess
from relay.services.forwarder import Forwarder, decode_body, relay_headers


def make_forwarder(handler, **client_kwargs) -> Forwarder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), **client_kwargs)
    return Forwarder(client)


class TestSuccessfulForwarding:
    """Any upstream response is relayed, whatever its status."""

    @pytest.mark.asyncio
    async def test_relays_status_headers_and_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"ok": True}, headers={"x-upstream": "yes"})

        outcome = await make_forwarder(handler).forward(ProxyRequest(url="https://api.example.com/items"))

        assert isinstance(outcome, ProxySuccess)
        assert outcome.status_code == 201
        assert outcome.body == {"ok": True}
        assert outcome.headers["x-upstream"] == "yes"
        assert outcome.to_content() == {
            "status": 201,
            "headers": outcome.headers,
            "data": {"ok": True},
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    async def test_error_statuses_are_not_exceptional(self, status: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": "upstream says no"})

        outcome = await make_forwarder(handler).forward(ProxyRequest(url="https://api.example.com/"))

        assert isinstance(outcome, ProxySuccess)
        assert outcome.status_code == status
        assert outcome.body == {"error": "upstream says no"}

    @pytest.mark.asyncio
    async def test_builds_upstream_request_from_description(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = request.url
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        req = ProxyRequest(
            url="https://api.example.com/search",
            method="post",
            headers={"Authorization": "Bearer upstream-token", "X-Trace": "abc"},
            query={"q": "shoes", "page": 2, "exact": True, "ratio": 0.5},
            data={"filters": ["red", "blue"]},
        )
        await make_forwarder(handler).forward(req)

        assert seen["method"] == "POST"
        assert seen["url"].path == "/search"
        assert seen["url"].params["q"] == "shoes"
        assert seen["url"].params["page"] == "2"
        assert seen["url"].params["exact"] == "true"
        assert seen["url"].params["ratio"] == "0.5"
        assert seen["headers"]["authorization"] == "Bearer upstream-token"
        assert seen["headers"]["x-trace"] == "abc"
        assert seen["body"] == {"filters": ["red", "blue"]}

    @pytest.mark.asyncio
    async def test_string_body_is_sent_verbatim(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content
            return httpx.Response(200)

        await make_forwarder(handler).forward(
            ProxyRequest(url="https://api.example.com/", method="PUT", data="a=1&b=2")
        )

        assert seen["body"] == b"a=1&b=2"

    @pytest.mark.asyncio
    async def test_no_body_is_sent_without_data(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content
            return httpx.Response(200)

        await make_forwarder(handler).forward(ProxyRequest(url="https://api.example.com/"))

        assert seen["body"] == b""

    @pytest.mark.asyncio
    async def test_non_json_body_is_relayed_as_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>hello</html>", headers={"content-type": "text/html"})

        outcome = await make_forwarder(handler).forward(ProxyRequest(url="https://example.com/"))

        assert isinstance(outcome, ProxySuccess)
        assert outcome.body == "<html>hello</html>"

    @pytest.mark.asyncio
    async def test_repeated_calls_yield_the_same_shape(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"value": 7}, headers={"x-fixed": "1"})

        forwarder = make_forwarder(handler)
        req = ProxyRequest(url="https://api.example.com/value")

        first = await forwarder.forward(req)
        second = await forwarder.forward(req)

        assert first == second


class TestTimeouts:

    @pytest.mark.asyncio
    async def test_timeout_is_passed_in_seconds(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["timeout"] = request.extensions["timeout"]
            return httpx.Response(200)

        await make_forwarder(handler).forward(ProxyRequest(url="https://example.com/", timeout_ms=2500))

        assert seen["timeout"]["connect"] == 2.5
        assert seen["timeout"]["read"] == 2.5

    @pytest.mark.asyncio
    async def test_zero_timeout_disables_it(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["timeout"] = request.extensions["timeout"]
            return httpx.Response(200)

        await make_forwarder(handler).forward(ProxyRequest(url="https://example.com/", timeout_ms=0))

        assert seen["timeout"]["read"] is None

    @pytest.mark.asyncio
    async def test_timeout_expiry_maps_to_502(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = await make_forwarder(handler).forward(ProxyRequest(url="https://slow.example.com/"))

        assert isinstance(outcome, ProxyFailure)
        assert outcome.kind is FailureKind.NO_RESPONSE
        assert outcome.status_code == 502
        assert outcome.detail == "timed out"


class TestFailures:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [None, ""])
    async def test_missing_url_is_bad_request_without_network(self, url) -> None:
        calls: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        outcome = await make_forwarder(handler).forward(ProxyRequest(url=url))

        assert isinstance(outcome, ProxyFailure)
        assert outcome.kind is FailureKind.BAD_REQUEST
        assert outcome.status_code == 400
        assert outcome.to_content() == {"error": "Missing required field: url"}
        assert calls == []

    @pytest.mark.asyncio
    async def test_connection_refused_maps_to_502(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        outcome = await make_forwarder(handler).forward(ProxyRequest(url="http://127.0.0.1:9/"))

        assert isinstance(outcome, ProxyFailure)
        assert outcome.kind is FailureKind.NO_RESPONSE
        assert outcome.to_content() == {
            "error": "No response from upstream API",
            "message": "Connection refused",
        }

    @pytest.mark.asyncio
    async def test_status_error_raised_by_client_hook_relays_upstream_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(418, json={"reason": "teapot"})

        async def raise_on_error(response: httpx.Response) -> None:
            await response.aread()
            response.raise_for_status()

        forwarder = make_forwarder(handler, event_hooks={"response": [raise_on_error]})
        outcome = await forwarder.forward(ProxyRequest(url="https://api.example.com/"))

        assert isinstance(outcome, ProxyFailure)
        assert outcome.kind is FailureKind.UPSTREAM_ERROR
        assert outcome.status_code == 418
        assert outcome.to_content() == {"error": "Upstream API error", "data": {"reason": "teapot"}}

    @pytest.mark.asyncio
    async def test_unsupported_scheme_is_internal_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.UnsupportedProtocol("Request URL has an unsupported protocol 'ftp://'.")

        outcome = await make_forwarder(handler).forward(ProxyRequest(url="ftp://files.example.com/"))

        assert isinstance(outcome, ProxyFailure)
        assert outcome.kind is FailureKind.INTERNAL
        assert outcome.status_code == 500
        assert outcome.to_content()["error"] == "Proxy internal error"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_internal_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("boom")

        outcome = await make_forwarder(handler).forward(ProxyRequest(url="https://api.example.com/"))

        assert isinstance(outcome, ProxyFailure)
        assert outcome.kind is FailureKind.INTERNAL
        assert outcome.to_content() == {"error": "Proxy internal error", "message": "boom"}


def test_decode_body_handles_empty_content() -> None:
    assert decode_body(httpx.Response(204)) == ""


@pytest.mark.parametrize("payload", [b'{"v": NaN}', b"[Infinity]", b"-Infinity"])
def test_decode_body_keeps_non_finite_json_as_text(payload: bytes) -> None:
    assert decode_body(httpx.Response(200, content=payload)) == payload.decode()


@pytest.mark.asyncio
async def test_repeated_headers_are_relayed_as_lists() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers=[
                ("Set-Cookie", "a=1; Expires=Wed, 21 Oct 2026 07:28:00 GMT"),
                ("Set-Cookie", "b=2"),
                ("Vary", "Accept"),
                ("Vary", "Origin"),
                ("X-Single", "one"),
            ],
        )

    outcome = await make_forwarder(handler).forward(ProxyRequest(url="https://api.example.com/"))

    assert isinstance(outcome, ProxySuccess)
    assert outcome.headers["set-cookie"] == ["a=1; Expires=Wed, 21 Oct 2026 07:28:00 GMT", "b=2"]
    assert outcome.headers["vary"] == ["Accept", "Origin"]
    assert outcome.headers["x-single"] == "one"


def test_single_set_cookie_is_still_a_list() -> None:
    headers = httpx.Headers([("Set-Cookie", "session=abc")])

    assert relay_headers(headers) == {"set-cookie": ["session=abc"]}
