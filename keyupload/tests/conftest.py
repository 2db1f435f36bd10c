"""Shared fixtures for key upload tests.

Server stubs are built on ``httpx.MockTransport`` so the real client and
transport code runs end to end without any network access.
"""

from __future__ import annotations

import json
import random
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import pytest

from keyupload.clock import FixedClock
from keyupload.config import KeyUploadSettings
from keyupload.controller import build_upload_controller
from keyupload.executors import UploadExecutors
from keyupload.models import DiagnosisKey, Upload

CODE_PATH = "/api/verify"
CERT_PATH = "/api/certificate"
USER_REPORT_PATH = "/api/user-report"
PUBLISH_PATH = "/v1/publish"

# A valid base64 encoding of 32 zero bytes.
TEST_HMAC_KEY = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="


class FakeConnectivity:
    def __init__(self, online: bool = True):
        self.online = online
        self.checks = 0

    def has_internet(self) -> bool:
        self.checks += 1
        return self.online


class ScriptedRandom(random.Random):
    """Deterministic random source whose ``random()`` draws are scripted.

    ``randbytes`` and ``randrange`` stay seeded and deterministic.
    """

    def __init__(self, draws: list[float] | None = None, seed: int = 1234):
        super().__init__(seed)
        self.draws = list(draws or [])

    def random(self) -> float:
        if not self.draws:
            raise AssertionError("unexpected random() draw")
        return self.draws.pop(0)

    # Overriding random() alone would make randrange() consume scripted draws.
    def getrandbits(self, k: int) -> int:
        return super().getrandbits(k)


class StubServer:
    """Routes requests by path to canned responses and records them."""

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def respond(self, path: str, status: int = 200, json_body: Any = None, content: bytes | None = None) -> None:
        body = content if content is not None else json.dumps(json_body if json_body is not None else {}).encode()
        self.routes[path] = lambda request: httpx.Response(status, content=body)

    def route(self, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[path] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path not in self.routes:
            return httpx.Response(404, json={"error": "not found"})
        return self.routes[request.url.path](request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def bodies(self, path: str) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests_to(path)]


@pytest.fixture
def settings() -> KeyUploadSettings:
    return KeyUploadSettings(
        _env_file=None,
        verification_code_url=f"https://verify.test{CODE_PATH}",
        verification_cert_url=f"https://verify.test{CERT_PATH}",
        user_report_url=f"https://verify.test{USER_REPORT_PATH}",
        verification_api_key="test-api-key",
        key_upload_url=f"https://keys.test{PUBLISH_PATH}",
        health_authority_id="com.example.test",
        rpc_timeout_seconds=5.0,
    )


@pytest.fixture
def executors():
    pools = UploadExecutors.create(background_workers=2, lightweight_workers=2)
    yield pools
    pools.shutdown()


@pytest.fixture
def connectivity() -> FakeConnectivity:
    return FakeConnectivity()


@pytest.fixture
def server() -> StubServer:
    return StubServer()


@pytest.fixture
def controller(settings, connectivity, executors, server):
    return build_upload_controller(
        settings,
        connectivity=connectivity,
        executors=executors,
        http_transport=server.transport,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2021, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def sample_keys() -> list[DiagnosisKey]:
    return [
        DiagnosisKey(key_bytes=bytes([i] * 16), interval_number=2650000 + 144 * i, transmission_risk=i % 8)
        for i in range(5)
    ]


@pytest.fixture
def upload() -> Upload:
    return Upload.new("12345678", hmac_key_base64=TEST_HMAC_KEY)


@pytest.fixture
def hmac_key() -> str:
    return TEST_HMAC_KEY


@pytest.fixture
def scripted_rng() -> Callable[..., ScriptedRandom]:
    """Factory for random sources with scripted ``random()`` draws."""
    return ScriptedRandom


@pytest.fixture
def fake_connectivity() -> Callable[..., FakeConnectivity]:
    return FakeConnectivity


@pytest.fixture
def paths() -> dict[str, str]:
    return {"code": CODE_PATH, "cert": CERT_PATH, "user_report": USER_REPORT_PATH, "publish": PUBLISH_PATH}
