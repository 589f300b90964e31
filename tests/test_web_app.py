from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import VALID_URL, FakeDownloader

from tubecast.web.app import create_app


def _make_client(config, make_manager, downloader) -> TestClient:
    manager = make_manager(downloader)
    return TestClient(create_app(config, manager=manager))


def _sse_messages(body: str) -> list:
    return [chunk[len("data: "):] for chunk in body.split("\n\n") if chunk.startswith("data: ")]


def test_health(config, make_manager):
    client = _make_client(config, make_manager, FakeDownloader())
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_index_served(config, make_manager):
    client = _make_client(config, make_manager, FakeDownloader())
    r = client.get("/")
    assert r.status_code == 200
    assert "convertForm" in r.text


def test_convert_rejects_bad_url(config, make_manager):
    client = _make_client(config, make_manager, FakeDownloader())
    r = client.post("/convert", data={"url": "https://example.com/video"})
    assert r.status_code == 400
    assert "Invalid YouTube URL" in r.json()["error"]

    r = client.post("/convert", data={})
    assert r.status_code == 400
    assert r.json()["error"] == "URL is required"


def test_progress_requires_known_session(config, make_manager):
    client = _make_client(config, make_manager, FakeDownloader())

    r = client.get("/progress")
    assert r.status_code == 400

    r = client.get("/progress", params={"id": "unknown"})
    assert r.status_code == 400
    assert "Invalid session ID" in r.text


def test_convert_and_stream_progress(config, make_manager):
    gate = threading.Event()
    manager = make_manager(FakeDownloader(gate=gate))
    client = TestClient(create_app(config, manager=manager))

    r = client.post("/convert", data={"url": VALID_URL, "normalize": "true"})
    assert r.status_code == 200
    session_id = r.json()["sessionId"]

    # the response is only read once the generator finishes; let the job go
    threading.Timer(0.2, gate.set).start()
    r = client.get("/progress", params={"id": session_id})

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    messages = _sse_messages(r.text)
    assert messages[0] == "Fetching video information..."
    assert "Applying audio normalization..." in messages
    assert messages[-2:] == ["Conversion complete!", "DONE"]

    assert manager.wait(session_id, timeout=10)
    r = client.get("/progress", params={"id": session_id})
    assert r.status_code == 400

    episodes = client.get("/api/episodes").json()
    assert len(episodes) == 1
    assert episodes[0]["is_normalized"] is True


def test_stream_of_failed_job_ends_without_done(config, make_manager):
    gate = threading.Event()
    manager = make_manager(FakeDownloader(gate=gate, fail_download=True))
    client = TestClient(create_app(config, manager=manager))

    session_id = client.post("/convert", data={"url": VALID_URL}).json()["sessionId"]
    threading.Timer(0.2, gate.set).start()
    messages = _sse_messages(client.get("/progress", params={"id": session_id}).text)

    assert messages[-1].startswith("Error: Download failed")
    assert "DONE" not in messages


async def _read_first_frame_then_disconnect(app, session_id: str) -> list:
    """Talk to the ASGI app directly; TestClient only returns finished responses."""
    first_frame = asyncio.Event()
    request_sent = False
    sent = []

    async def receive():
        nonlocal request_sent
        if not request_sent:
            request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await first_frame.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)
        if message["type"] == "http.response.body" and message.get("body"):
            first_frame.set()

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/progress",
        "raw_path": b"/progress",
        "root_path": "",
        "query_string": f"id={session_id}".encode(),
        "headers": [(b"host", b"testserver")],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    await asyncio.wait_for(app(scope, receive, send), timeout=10)
    return sent


def test_disconnect_leaves_job_running(config, make_manager):
    gate = threading.Event()
    manager = make_manager(FakeDownloader(gate=gate))
    app = create_app(config, manager=manager)
    session_id = manager.submit(VALID_URL)

    sent = asyncio.run(_read_first_frame_then_disconnect(app, session_id))

    assert sent[0]["status"] == 200
    bodies = b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")
    assert bodies.startswith(b"data: Fetching video information...")
    assert session_id in manager.registry
    assert manager.running() == 1

    # a new reader picks up the rest of the job
    threading.Timer(0.6, gate.set).start()
    messages = _sse_messages(TestClient(app).get("/progress", params={"id": session_id}).text)
    assert messages[-2:] == ["Conversion complete!", "DONE"]
    assert manager.wait(session_id, timeout=10)
    assert session_id not in manager.registry


@pytest.fixture
def published(config) -> Path:
    config.output_dir.mkdir(parents=True, exist_ok=True)
    path = config.output_dir / "Show_20240101_000000.mp3"
    path.write_bytes(bytes(range(256)) * 4)
    return path


def test_serve_mp3_full_and_ranged(config, make_manager, published):
    client = _make_client(config, make_manager, FakeDownloader())

    r = client.get(f"/mp3s/{published.name}")
    assert r.status_code == 200
    assert r.headers["content-type"] == "audio/mpeg"
    assert r.content == published.read_bytes()

    r = client.get(f"/mp3s/{published.name}", headers={"Range": "bytes=10-19"})
    assert r.status_code == 206
    assert r.headers["content-range"] == "bytes 10-19/1024"
    assert r.content == published.read_bytes()[10:20]

    r = client.get(f"/mp3s/{published.name}", headers={"Range": "bytes=5000-"})
    assert r.status_code == 416


def test_serve_mp3_errors(config, make_manager, published):
    client = _make_client(config, make_manager, FakeDownloader())
    assert client.get("/mp3s/missing.mp3").status_code == 404
    assert client.get("/mp3s/notes.txt").status_code == 400


def test_feed(config, make_manager, published):
    client = _make_client(config, make_manager, FakeDownloader())
    r = client.get("/feed")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/rss+xml")
    assert f"http://testserver/mp3s/{published.name}" in r.text


def test_delete(config, make_manager, published):
    client = _make_client(config, make_manager, FakeDownloader())

    r = client.post("/delete", data={"filename": "../etc/passwd"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/?error=")
    assert published.exists()

    r = client.post("/delete", data={"filename": published.name}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/?message=")
    assert not published.exists()

    r = client.post("/delete", data={"filename": published.name}, follow_redirects=False)
    assert r.headers["location"].startswith("/?error=")
