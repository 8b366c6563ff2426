import asyncio

import httpx
import pytest
from routerdash.services.freebox_client import FreeboxClient


def _client(handler, **kwargs) -> FreeboxClient:
    return FreeboxClient("http://box.test/", transport=httpx.MockTransport(handler), **kwargs)


def _call(client: FreeboxClient, method: str):
    async def scenario():
        try:
            return await getattr(client, method)()
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def test_envelope_success_unwraps_result():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("X-Fbx-App-Auth")
        return httpx.Response(200, json={"success": True, "result": {"temp_cpum": 58}})

    result = _call(_client(handler, session_token="s3ss10n"), "get_system_info")

    assert result.success is True
    assert result.result == {"temp_cpum": 58}
    assert seen == {"path": "/api/v8/system/", "auth": "s3ss10n"}


def test_no_session_header_without_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["has_auth"] = "X-Fbx-App-Auth" in request.headers
        return httpx.Response(200, json={"success": True, "result": {}})

    _call(_client(handler), "get_connection_status")
    assert seen["has_auth"] is False


def test_api_version_is_not_enveloped():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api_version"
        return httpx.Response(200, json={"api_version": "8.2", "box_model_name": "Freebox v9 (r1)"})

    result = _call(_client(handler), "get_api_version")
    assert result.success is True
    assert result.result["api_version"] == "8.2"


def test_refused_call_maps_error_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"success": False, "error_code": "auth_required", "msg": "Invalid session"})

    result = _call(_client(handler), "reboot")

    assert result.success is False
    assert result.error.code == "auth_required"
    assert result.error.message == "Invalid session"


def test_reboot_posts_to_system_reboot():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["call"] = (request.method, request.url.path)
        return httpx.Response(200, json={"success": True})

    result = _call(_client(handler, api_version="v10"), "reboot")
    assert result.success is True
    assert seen["call"] == ("POST", "/api/v10/system/reboot/")


@pytest.mark.parametrize("response,code", [
    (httpx.Response(500, text="<html>oops</html>"), "upstream_http_error"),
    (httpx.Response(200, text="not json"), "invalid_response"),
    (httpx.Response(200, json=["unexpected"]), "invalid_response"),
])
def test_bad_responses_become_failures(response, code):
    result = _call(_client(lambda request: response), "get_system_info")
    assert result.success is False
    assert result.error.code == code


def test_transport_error_is_upstream_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = _call(_client(handler), "get_system_info")

    assert result.success is False
    assert result.error.code == "upstream_unreachable"
