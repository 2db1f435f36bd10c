import json

import httpx
import pytest
from structlog.testing import capture_logs

from keyupload.clients.transport import JsonRpcTransport, RpcCallResult, RpcCallType, loggable_result
from keyupload.core.exceptions import RpcError

URL = "https://verify.test/api/verify"


def _transport(handler, **kwargs):
    return JsonRpcTransport(timeout=5.0, http_transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_post_sends_padded_json_and_parses_response():
    captured = {}

    def handler(request):
        captured["request"] = request
        return httpx.Response(200, json={"token": "t1"})

    result = await _transport(handler).post(URL, {"code": "123"}, rpc_type=RpcCallType.VERIFICATION)

    request = captured["request"]
    assert result == {"token": "t1"}
    assert request.method == "POST"
    assert request.headers["Content-Type"] == "application/json"
    assert "X-Chaff" not in request.headers
    assert 5000 <= len(request.content) < 5008
    assert json.loads(request.content)["code"] == "123"


@pytest.mark.asyncio
async def test_custom_padding_target():
    captured = {}

    def handler(request):
        captured["size"] = len(request.content)
        return httpx.Response(200, json={})

    await _transport(handler, padding_target=1000).post(URL, {"code": "1"}, rpc_type=RpcCallType.VERIFICATION)

    assert 1000 <= captured["size"] < 1008


@pytest.mark.asyncio
async def test_extra_headers_are_sent():
    captured = {}

    def handler(request):
        captured["headers"] = request.headers
        return httpx.Response(200, json={})

    await _transport(handler).post(
        URL, {}, rpc_type=RpcCallType.VERIFICATION, headers={"X-API-Key": "test-api-key"}
    )

    assert captured["headers"]["X-API-Key"] == "test-api-key"


@pytest.mark.asyncio
async def test_cover_traffic_sets_chaff_header_and_skips_parsing():
    captured = {}

    def handler(request):
        captured["headers"] = request.headers
        return httpx.Response(200, content=b"not json at all")

    result = await _transport(handler).post(
        URL, {"code": "123"}, rpc_type=RpcCallType.VERIFICATION, is_cover_traffic=True
    )

    assert result == {}
    assert captured["headers"]["X-Chaff"] == "1"


@pytest.mark.asyncio
async def test_error_status_raises_rpc_error_with_body():
    body = json.dumps({"error": "bad code", "errorCode": "code_invalid"}).encode()

    def handler(request):
        return httpx.Response(400, content=body)

    with pytest.raises(RpcError) as exc_info:
        await _transport(handler).post(URL, {}, rpc_type=RpcCallType.VERIFICATION)

    assert exc_info.value.kind == "http"
    assert exc_info.value.status_code == 400
    assert exc_info.value.body == body
    assert "bad code" in exc_info.value.message


@pytest.mark.asyncio
async def test_cover_traffic_still_raises_on_error_status():
    def handler(request):
        return httpx.Response(503)

    with pytest.raises(RpcError) as exc_info:
        await _transport(handler).post(URL, {}, rpc_type=RpcCallType.KEYS_UPLOAD, is_cover_traffic=True)

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_timeout_raises_rpc_error_without_status():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RpcError) as exc_info:
        await _transport(handler).post(URL, {}, rpc_type=RpcCallType.VERIFICATION)

    assert exc_info.value.kind == "timeout"
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_connection_failure_raises_rpc_error_without_status():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RpcError) as exc_info:
        await _transport(handler).post(URL, {}, rpc_type=RpcCallType.USER_REPORT)

    assert exc_info.value.kind == "network"
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [b"<html></html>", b"[1, 2, 3]", b'"just a string"'])
async def test_unparseable_success_body_raises_parse_error(content):
    def handler(request):
        return httpx.Response(200, content=content)

    with pytest.raises(RpcError) as exc_info:
        await _transport(handler).post(URL, {}, rpc_type=RpcCallType.VERIFICATION)

    assert exc_info.value.kind == "parse"
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_empty_success_body_parses_as_empty_object():
    def handler(request):
        return httpx.Response(200, content=b"")

    assert await _transport(handler).post(URL, {}, rpc_type=RpcCallType.VERIFICATION) == {}


@pytest.mark.asyncio
async def test_every_call_is_logged_with_result():
    def handler(request):
        return httpx.Response(429, json={"error": "slow down"})

    with capture_logs() as logs:
        with pytest.raises(RpcError):
            await _transport(handler).post(URL, {}, rpc_type=RpcCallType.KEYS_UPLOAD)

    completed = [entry for entry in logs if entry["event"] == "rpc.call_completed"]
    assert completed[0]["rpc_type"] == "RPC_TYPE_KEYS_UPLOAD"
    assert completed[0]["result"] == "RESULT_FAILED_GENERIC_4XX"


def test_loggable_result_buckets():
    request = httpx.Request("POST", URL)

    assert loggable_result(httpx.ConnectTimeout("t", request=request)) is RpcCallResult.FAILED_TIMEOUT
    assert loggable_result(httpx.ConnectError("c", request=request)) is RpcCallResult.FAILED_NO_CONNECTION
    assert loggable_result(httpx.ReadError("r", request=request)) is RpcCallResult.FAILED_NETWORK_ERROR
    assert loggable_result(RpcError("p", kind="parse", status_code=200)) is RpcCallResult.FAILED_PARSING
    assert loggable_result(RpcError("h", kind="http", status_code=502)) is RpcCallResult.FAILED_GENERIC_5XX
    assert loggable_result(RpcError("h", kind="http", status_code=404)) is RpcCallResult.FAILED_GENERIC_4XX
    assert loggable_result(ValueError("?")) is RpcCallResult.FAILED_UNKNOWN
