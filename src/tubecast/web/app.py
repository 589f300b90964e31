from __future__ import annotations

import logging
import threading
from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..config import AppConfig
from ..episodes import check_episode_name, delete_episode, list_episodes
from ..errors import SessionNotFound, ValidationError
from ..feed import render_feed
from ..ffmpeg import Ffmpeg
from ..jobs import JobManager
from ..progress import sse_frame
from .range import ranged_file_response

logger = logging.getLogger(__name__)

STREAM_POLL_SECONDS = 0.5


def _redirect_home(key: str, message: str) -> RedirectResponse:
    return RedirectResponse(url=f"/?{key}={quote(message)}", status_code=303)


def create_app(config: Optional[AppConfig] = None, *, manager: Optional[JobManager] = None) -> FastAPI:
    config = config or AppConfig()
    manager = manager or JobManager(config)
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    ffmpeg = Ffmpeg(config.ffmpeg_cmd, config.ffprobe_cmd)

    @lru_cache(maxsize=1024)
    def _cached_duration(path: str, mtime_ns: int) -> Optional[float]:
        return ffmpeg.probe_duration(Path(path))

    def probe_duration(path: Path) -> Optional[float]:
        try:
            mtime_ns = path.stat().st_mtime_ns
        except OSError:
            return None
        return _cached_duration(str(path), mtime_ns)

    app = FastAPI(title="tubecast", version=__version__)
    app.state.config = config
    app.state.manager = manager

    static_dir = Path(__file__).parent / "static"
    app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    @app.get("/")
    def index() -> FileResponse:
        return FileResponse(str(static_dir / "index.html"))

    @app.get("/api/health")
    def api_health() -> JSONResponse:
        return JSONResponse({"ok": True, "running_jobs": manager.running()})

    @app.get("/api/episodes")
    def api_episodes() -> JSONResponse:
        episodes = list_episodes(output_dir, probe_duration)
        return JSONResponse([ep.to_dict() for ep in episodes])

    @app.post("/convert")
    async def convert(request: Request) -> JSONResponse:
        form = await request.form()
        url = str(form.get("url") or "")
        normalize = str(form.get("normalize") or "").lower() == "true"
        try:
            session_id = manager.submit(url, normalize=normalize)
        except ValidationError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        return JSONResponse({"sessionId": session_id})

    @app.get("/progress")
    async def progress(request: Request, session_id: str = Query("", alias="id")) -> Response:
        session_id = session_id.strip()
        if not session_id:
            logger.info("Progress request missing session ID")
            return PlainTextResponse("Session ID required", status_code=400)
        # set when this reader goes away; the job itself keeps running
        stop = threading.Event()
        try:
            events = manager.stream(session_id, should_stop=stop.is_set, poll_interval=STREAM_POLL_SECONDS)
        except SessionNotFound:
            logger.info("Progress request with invalid session ID: %s", session_id)
            return PlainTextResponse("Invalid session ID or conversion already completed", status_code=400)

        async def event_stream():
            try:
                while not await request.is_disconnected():
                    event = await run_in_threadpool(next, events, None)
                    if event is None:
                        return
                    yield sse_frame(event)
                logger.info("Client disconnected from progress stream for session: %s", session_id)
            finally:
                stop.set()

        headers = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
        if request.headers.get("origin"):
            headers["Access-Control-Allow-Origin"] = "*"
        return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)

    @app.get("/feed")
    def feed(request: Request) -> Response:
        xml = render_feed(
            list_episodes(output_dir, probe_duration),
            base_url=str(request.base_url),
            title=config.feed_title,
            description=config.feed_description,
        )
        return Response(content=xml, media_type="application/rss+xml; charset=utf-8")

    @app.get("/mp3s/{filename}")
    def serve_mp3(request: Request, filename: str) -> Response:
        try:
            name = check_episode_name(filename)
        except ValidationError as e:
            return PlainTextResponse(str(e), status_code=400)
        path = output_dir / name
        if not path.is_file():
            logger.info("File not found: %s", path)
            return PlainTextResponse("File not found", status_code=404)
        return ranged_file_response(request, path, media_type="audio/mpeg")

    @app.post("/delete")
    async def delete(request: Request) -> RedirectResponse:
        form = await request.form()
        filename = str(form.get("filename") or "")
        try:
            delete_episode(output_dir, filename)
        except ValidationError as e:
            return _redirect_home("error", str(e))
        except OSError as e:
            return _redirect_home("error", f"Failed to delete file: {e}")
        return _redirect_home("message", "File deleted successfully")

    return app
