from __future__ import annotations

import base64
import json
from urllib.parse import parse_qs

import httpx
from fastapi.testclient import TestClient

from cameleon.main import create_app
from tests.fakes import make_settings


class Upstream:
    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        status, body = self.responses[request.url.path]
        return httpx.Response(status, json=body)


def make_client(upstream: Upstream, **overrides) -> TestClient:
    app = create_app(
        settings=make_settings(**overrides),
        upstream_factory=lambda s: httpx.AsyncClient(transport=httpx.MockTransport(upstream)),
    )
    return TestClient(app)


def test_imgbb_upload_returns_hosted_url():
    upstream = Upstream({"/1/upload": (200, {"data": {"url": "https://i.ibb.co/abc.png"}})})
    with make_client(upstream) as c:
        r = c.post("/api/imgbb", content=b"raw-image", headers={"Content-Type": "image/png"})

    assert r.status_code == 200
    assert r.json() == {"url": "https://i.ibb.co/abc.png"}
    form = parse_qs(upstream.requests[0].content.decode())
    assert form["key"] == ["imgbb-test-0123456789"]
    assert base64.b64decode(form["image"][0]) == b"raw-image"


def test_imgbb_rejection_forwards_message_and_status():
    upstream = Upstream(
        {"/1/upload": (400, {"status_txt": "Bad Request", "error": {"message": "Invalid API v1 key."}})}
    )
    with make_client(upstream) as c:
        r = c.post("/api/imgbb", content=b"raw-image")

    assert r.status_code == 400
    assert r.json() == {"error": "Invalid API v1 key."}


def test_imgbb_missing_key_is_500_without_network():
    upstream = Upstream()
    with make_client(upstream, IMGBB_API_KEY="") as c:
        r = c.post("/api/imgbb", content=b"raw-image")

    assert r.status_code == 500
    assert r.json() == {"error": "IMGBB_API_KEY not configured in .env"}
    assert upstream.requests == []


def test_runpod_run_forwards_body_with_bearer_token():
    upstream = Upstream({"/v2/ep-1/run": (200, {"id": "job-9", "status": "IN_QUEUE"})})
    payload = {"input": {"request_id": "tryon-1-abcde"}}
    with make_client(upstream) as c:
        r = c.post("/api/runpod/run", json=payload)

    assert r.status_code == 200
    assert r.json() == {"id": "job-9", "status": "IN_QUEUE"}
    sent = upstream.requests[0]
    assert sent.headers["authorization"] == "Bearer rp-test-0123456789"
    assert json.loads(sent.content) == payload


def test_runpod_upstream_error_status_is_forwarded():
    upstream = Upstream({"/v2/ep-1/run": (401, {"error": "Unauthorized"})})
    with make_client(upstream) as c:
        r = c.post("/api/runpod/run", json={"input": {}})

    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_runpod_status_proxy():
    upstream = Upstream({"/v2/ep-1/status/job-9": (200, {"status": "IN_PROGRESS"})})
    with make_client(upstream) as c:
        r = c.get("/api/runpod/status/job-9")

    assert r.status_code == 200
    assert r.json() == {"status": "IN_PROGRESS"}


def test_runpod_missing_endpoint_is_500():
    with make_client(Upstream(), RUNPOD_ENDPOINT_ID="") as c:
        r = c.get("/api/runpod/status/job-9")

    assert r.status_code == 500
    assert r.json() == {"error": "RUNPOD_ENDPOINT_ID not configured in .env"}


def test_unknown_api_route_is_404():
    with make_client(Upstream()) as c:
        r = c.get("/api/nope")

    assert r.status_code == 404
    assert r.json() == {"error": "API route not found"}


def test_transport_failure_is_500():
    upstream = Upstream(error=httpx.ConnectError("connection refused"))
    with make_client(upstream) as c:
        r = c.post("/api/runpod/run", json={"input": {}})

    assert r.status_code == 500
    assert "connection refused" in r.json()["error"]
