from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Optional

import pytest

from tubecast.config import AppConfig
from tubecast.errors import SubprocessError
from tubecast.jobs import JobManager
from tubecast.pipeline import ConversionPipeline

VALID_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class FakeDownloader:
    """Stands in for yt-dlp. ``gate`` holds the job at title resolution."""

    def __init__(
        self,
        *,
        title: str = "My Video",
        size: Optional[int] = None,
        lines: Optional[List[str]] = None,
        fail_title: bool = False,
        fail_download: bool = False,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.title = title
        self.size = size
        self.lines = lines if lines is not None else ["[youtube] dQw4w9WgXcQ: Downloading webpage", "[download]  50.0% of 3.00MiB", "[download] 100% of 3.00MiB"]
        self.fail_title = fail_title
        self.fail_download = fail_download
        self.gate = gate
        self.download_dirs: List[Path] = []

    def resolve_title(self, url: str) -> str:
        if self.gate is not None:
            assert self.gate.wait(10), "test gate never released"
        if self.fail_title:
            raise SubprocessError("yt-dlp exited with status 1", cmd=["yt-dlp"], returncode=1)
        return self.title

    def probe_size(self, url: str) -> Optional[int]:
        return self.size

    def download(self, url: str, dest_dir: Path, on_line) -> List[Path]:
        self.download_dirs.append(Path(dest_dir))
        for line in self.lines:
            on_line(line)
        if self.fail_download:
            raise SubprocessError("yt-dlp exited with status 1", cmd=["yt-dlp"], returncode=1)
        out = Path(dest_dir) / "dQw4w9WgXcQ.webm"
        out.write_bytes(b"source-audio")
        return [out]


class FakeTranscoder:
    def __init__(self, *, fail_transcode: bool = False, fail_normalize: bool = False) -> None:
        self.fail_transcode = fail_transcode
        self.fail_normalize = fail_normalize
        self.normalize_calls = 0

    def transcode(self, src: Path, dst: Path) -> Path:
        if self.fail_transcode:
            raise SubprocessError("ffmpeg exited with status 1", cmd=["ffmpeg"], returncode=1, output="bad input")
        dst.write_bytes(b"mp3:" + Path(src).read_bytes())
        return dst

    def normalize(self, src: Path, dst: Path) -> Path:
        self.normalize_calls += 1
        if self.fail_normalize:
            raise SubprocessError("ffmpeg exited with status 1", cmd=["ffmpeg"], returncode=1)
        dst.write_bytes(b"loud:" + Path(src).read_bytes())
        return dst


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(output_dir=tmp_path / "mp3s", downloader_cmd=["yt-dlp"])


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def make_manager(config: AppConfig):
    managers: List[JobManager] = []

    def _make(downloader: FakeDownloader, transcoder: Optional[FakeTranscoder] = None) -> JobManager:
        pipeline = ConversionPipeline(config, downloader=downloader, transcoder=transcoder or FakeTranscoder())
        manager = JobManager(config, pipeline=pipeline)
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        for session_id in manager.registry.ids():
            manager.wait(session_id, timeout=10)
