from __future__ import annotations

import httpx
from fastapi.testclient import TestClient

from cameleon.deps import ServiceContainer
from cameleon.main import create_app
from cameleon.services.capture_manager import CaptureManager
from cameleon.services.garments import GarmentSelection
from cameleon.services.generation import GenerationJobOrchestrator
from cameleon.services.live_session import LiveSession
from cameleon.services.photo_session import PhotoSession
from cameleon.services.recording import RecordingCompositor
from cameleon.services.remote_stream import RemoteStreamController
from tests.fakes import PNG_BYTES, TEST_CODEC, FakeEncoder, FakeProvider, make_settings, make_stream


def proxy_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/imgbb":
        return httpx.Response(200, json={"url": "https://i.ibb.co/up.png"})
    if path == "/api/runpod/run":
        return httpx.Response(200, json={"id": "job-1", "status": "IN_QUEUE"})
    if path == "/api/runpod/status/job-1":
        return httpx.Response(200, json={"status": "COMPLETED", "output": [{"image": "https://cdn.test/out.jpg"}]})
    if request.url.host == "cdn.test":
        return httpx.Response(200, content=b"jpeg", headers={"content-type": "image/jpeg"})
    return httpx.Response(404, json={"error": "API route not found"})


def fake_services(provider: FakeProvider):
    def factory(settings) -> ServiceContainer:
        garments = GarmentSelection(settings.GARMENT_CATALOG_DIR)
        live = LiveSession(
            capture=CaptureManager(settings, stream_factory=lambda profile: make_stream(label="camera")),
            controller=RemoteStreamController(settings, provider_factory=provider.factory),
            compositor=RecordingCompositor(settings, codec_selector=lambda: TEST_CODEC, encoder_factory=FakeEncoder),
            garments=garments,
            settings=settings,
        )
        client = httpx.AsyncClient(base_url=settings.PROXY_BASE_URL, transport=httpx.MockTransport(proxy_handler))
        orchestrator = GenerationJobOrchestrator(settings, client=client)
        return ServiceContainer(
            garments=garments,
            live=live,
            photo=PhotoSession(orchestrator, garments),
            orchestrator=orchestrator,
        )

    return factory


def make_app(**overrides):
    provider = FakeProvider()
    app = create_app(settings=make_settings(**overrides), services_factory=fake_services(provider))
    return app, provider


def test_app_import_and_routes_build():
    from cameleon.main import app

    paths = {r.path for r in app.router.routes}
    assert "/health" in paths
    assert "/live/stream/start" in paths
    assert "/photo/generate" in paths
    assert "/api/imgbb" in paths
    assert "/api/runpod/status/{job_id}" in paths


def test_health_reports_state_and_credentials():
    app, _ = make_app(RUNPOD_API_KEY="")
    with TestClient(app) as c:
        r = c.get("/health")

    assert r.status_code == 200
    body = r.json()
    assert body["mode"] == "live"
    assert body["camera_ready"] is False
    assert body["stream_state"] == "idle"
    assert body["credentials"] == {"realtime": True, "imgbb": True, "runpod": False}


def test_live_stream_lifecycle():
    app, provider = make_app()
    with TestClient(app) as c:
        r = c.post("/garments/1/select")
        assert r.status_code == 200
        assert r.json()["has_garment"] is True

        r = c.post("/live/stream/start", json={"prompt": "puffer jacket"})
        assert r.status_code == 200
        assert r.json()["stream"]["state"] == "streaming"
        assert provider.models == ["lucy_2_rt"]

        r = c.put("/live/prompt", json={"prompt": "red puffer jacket"})
        assert r.json() == {"prompt": "red puffer jacket", "applied": True}

        r = c.post("/live/stream/stop")
        assert r.status_code == 200
        assert r.json()["status"] == "idle"

    assert provider.sessions[0].closed is True


def test_stream_start_without_key_is_500_and_notified():
    app, provider = make_app(DECART_API_KEY="")
    with TestClient(app) as c:
        r = c.post("/live/stream/start", json={"prompt": "jacket"})
        assert r.status_code == 500
        assert r.json()["detail"] == "Please set DECART_API_KEY in your .env file"

        r = c.get("/live/notifications")
        assert r.json() == {"messages": ["Please set DECART_API_KEY in your .env file"]}

    assert provider.models == []


def test_stream_start_with_blank_prompt_is_rejected():
    app, provider = make_app()
    with TestClient(app) as c:
        r = c.post("/live/stream/start", json={"prompt": "  "})

    assert r.status_code == 502
    assert r.json()["detail"] == "Please enter a prompt"


def test_recording_download_404_when_nothing_recorded():
    app, _ = make_app()
    with TestClient(app) as c:
        r = c.get("/live/recording")

    assert r.status_code == 404


def test_garment_routes():
    app, _ = make_app()
    with TestClient(app) as c:
        r = c.get("/garments")
        assert len(r.json()["items"]) == 5

        r = c.post("/garments/99/select")
        assert r.status_code == 404

        r = c.post("/garments/custom", content=b"not an image", headers={"Content-Type": "text/plain"})
        assert r.status_code == 400

        r = c.post("/garments/custom", content=PNG_BYTES, headers={"Content-Type": "image/png", "X-Filename": "mine.png"})
        body = r.json()
        assert body["custom"] == "mine.png"
        assert not any(i["selected"] for i in body["items"])

        r = c.delete("/garments/selection")
        assert r.json()["has_garment"] is False


def test_photo_generation_flow():
    app, _ = make_app()
    with TestClient(app) as c:
        r = c.post("/photo/generate")
        assert r.status_code == 400

        r = c.post("/photo", content=PNG_BYTES, headers={"Content-Type": "image/png"})
        assert r.status_code == 200
        c.post("/garments/0/select")

        r = c.post("/photo/generate?wait=true")
        assert r.status_code == 202
        body = r.json()
        assert body["result_url"] == "https://cdn.test/out.jpg"
        assert body["job_status"] == "completed"

        r = c.get("/photo/result")
        assert r.status_code == 200
        assert r.content == b"jpeg"
        assert "cameleon-tryon-" in r.headers["content-disposition"]


def test_mode_switch_to_photo():
    app, _ = make_app()
    with TestClient(app) as c:
        c.post("/live/camera/start")
        r = c.post("/mode", json={"mode": "photo"})

    assert r.status_code == 200
    assert r.json()["mode"] == "photo"
    assert r.json()["camera"]["ready"] is False
