"""Padded JSON-over-HTTPS POSTs shared by the verification and key server clients."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

import httpx
import structlog
from opentelemetry import metrics

from keyupload.api_constants import CHAFF_HEADER, CHAFF_HEADER_VALUE, JSON_CONTENT_TYPE
from keyupload.core.exceptions import RpcError
from keyupload.errors import error_code_from_body, error_message_from_body
from keyupload.padding import TARGET_PAYLOAD_SIZE_BYTES, add_padding, serialize_payload

logger = structlog.get_logger(__name__)
meter = metrics.get_meter("keyupload.rpc")

rpc_calls = meter.create_counter(
    "keyupload_rpc_calls_total",
    description="Total number of verification and key server RPCs by type and result",
    unit="1",
)


class RpcCallType(str, Enum):
    VERIFICATION = "RPC_TYPE_VERIFICATION"
    KEYS_UPLOAD = "RPC_TYPE_KEYS_UPLOAD"
    USER_REPORT = "RPC_TYPE_USER_REPORT"


class RpcCallResult(str, Enum):
    SUCCESS = "RESULT_SUCCESS"
    FAILED_TIMEOUT = "RESULT_FAILED_TIMEOUT"
    FAILED_PARSING = "RESULT_FAILED_PARSING"
    FAILED_NO_CONNECTION = "RESULT_FAILED_NO_CONNECTION"
    FAILED_NETWORK_ERROR = "RESULT_FAILED_NETWORK_ERROR"
    FAILED_GENERIC_4XX = "RESULT_FAILED_GENERIC_4XX"
    FAILED_GENERIC_5XX = "RESULT_FAILED_GENERIC_5XX"
    FAILED_UNKNOWN = "RESULT_FAILED_UNKNOWN"


def loggable_result(error: BaseException | None) -> RpcCallResult:
    """Coarse result bucket for RPC accounting."""
    if error is None:
        return RpcCallResult.FAILED_UNKNOWN
    if isinstance(error, httpx.TimeoutException):
        return RpcCallResult.FAILED_TIMEOUT
    if isinstance(error, httpx.ConnectError):
        return RpcCallResult.FAILED_NO_CONNECTION
    if isinstance(error, httpx.TransportError):
        return RpcCallResult.FAILED_NETWORK_ERROR
    if isinstance(error, RpcError):
        if error.kind == "parse":
            return RpcCallResult.FAILED_PARSING
        if error.status_code is not None and error.status_code // 100 == 5:
            return RpcCallResult.FAILED_GENERIC_5XX
        if error.status_code is not None and error.status_code // 100 == 4:
            return RpcCallResult.FAILED_GENERIC_4XX
    return RpcCallResult.FAILED_UNKNOWN


class JsonRpcTransport:
    """Posts padded JSON bodies and returns the parsed JSON response.

    Cover traffic requests carry the chaff header, and their response bodies are
    never parsed: the servers may not return JSON for them.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        padding_target: int = TARGET_PAYLOAD_SIZE_BYTES,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.padding_target = padding_target
        self._http_transport = http_transport

    async def post(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        rpc_type: RpcCallType,
        is_cover_traffic: bool = False,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST ``payload`` (padded) to ``url``.

        Returns:
            The parsed JSON object, or an empty dict for cover traffic.

        Raises:
            RpcError: On timeout, network failure, non-2xx status, or an
                unparseable success body for a real request.
        """
        body = serialize_payload(add_padding(payload, self.padding_target))
        request_headers = {"Content-Type": JSON_CONTENT_TYPE, **(headers or {})}
        if is_cover_traffic:
            request_headers[CHAFF_HEADER] = CHAFF_HEADER_VALUE

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._http_transport) as client:
                response = await client.post(url, content=body, headers=request_headers)
        except httpx.TimeoutException as exc:
            self._record(rpc_type, loggable_result(exc), len(body), is_cover_traffic)
            raise RpcError(f"RPC timed out: {exc}", kind="timeout") from exc
        except httpx.TransportError as exc:
            self._record(rpc_type, loggable_result(exc), len(body), is_cover_traffic)
            raise RpcError(f"RPC failed without a response: {exc}", kind="network") from exc

        if response.is_error:
            error = RpcError(
                f"RPC failed with HTTP {response.status_code}: {error_message_from_body(response.content)}",
                kind="http",
                status_code=response.status_code,
                body=response.content,
            )
            self._record(rpc_type, loggable_result(error), len(body), is_cover_traffic)
            logger.warning(
                "rpc.call_failed",
                rpc_type=rpc_type.value,
                status_code=response.status_code,
                server_error_code=error_code_from_body(response.content),
            )
            raise error

        if is_cover_traffic:
            self._record(rpc_type, RpcCallResult.SUCCESS, len(body), is_cover_traffic)
            return {}

        try:
            parsed = json.loads(response.content) if response.content else {}
        except ValueError:
            parsed = None
        if not isinstance(parsed, dict):
            error = RpcError(
                "RPC succeeded but the response body is not a JSON object",
                kind="parse",
                status_code=response.status_code,
                body=response.content,
            )
            self._record(rpc_type, loggable_result(error), len(body), is_cover_traffic)
            raise error

        self._record(rpc_type, RpcCallResult.SUCCESS, len(body), is_cover_traffic)
        return parsed

    @staticmethod
    def _record(rpc_type: RpcCallType, result: RpcCallResult, payload_size: int, is_cover_traffic: bool) -> None:
        rpc_calls.add(1, {"rpc_type": rpc_type.value, "result": result.value})
        logger.info(
            "rpc.call_completed",
            rpc_type=rpc_type.value,
            result=result.value,
            payload_size=payload_size,
            is_cover_traffic=is_cover_traffic,
        )
