"""The conversion state machine.

One run takes a source URL through

    Fetching -> Downloading -> Transcoding -> [Normalizing] -> Publishing -> Done

emitting a progress event on entry to every stage. Any failure other than
normalization ends the run with a single ``Error`` event. Intermediate files
live in a private temporary directory that is removed however the run ends.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from .config import AppConfig
from .errors import PreflightError, PublishError, SubprocessError, TubecastError
from .ffmpeg import Ffmpeg
from .ingest.ytdlp_runner import YtDlp
from .process import LineCallback
from .progress import Complete, Error, Info, ProgressEvent, classify_output_line
from .publish import publish_file

logger = logging.getLogger(__name__)

Emit = Callable[[ProgressEvent], None]


class Stage(str, Enum):
    FETCHING = "fetching"
    DOWNLOADING = "downloading"
    TRANSCODING = "transcoding"
    NORMALIZING = "normalizing"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


STAGE_MESSAGES = {
    Stage.FETCHING: "Fetching video information...",
    Stage.DOWNLOADING: "Starting download...",
    Stage.TRANSCODING: "Converting to MP3 format with optimal quality...",
    Stage.NORMALIZING: "Applying audio normalization...",
    Stage.PUBLISHING: "Saving episode...",
}

COMPLETE_MESSAGE = "Conversion complete!"


class Downloader(Protocol):
    def resolve_title(self, url: str) -> str: ...

    def probe_size(self, url: str) -> Optional[int]: ...

    def download(self, url: str, dest_dir: Path, on_line: LineCallback) -> List[Path]: ...


class Transcoder(Protocol):
    def transcode(self, src: Path, dst: Path) -> Path: ...

    def normalize(self, src: Path, dst: Path) -> Path: ...


@dataclass
class ConversionJob:
    session_id: str
    url: str
    normalize: bool = False
    stage: Optional[Stage] = None
    title: Optional[str] = None
    work_dir: Optional[Path] = None
    normalized: bool = False
    filename: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.DONE


class ConversionPipeline:
    def __init__(
        self,
        config: AppConfig,
        *,
        downloader: Optional[Downloader] = None,
        transcoder: Optional[Transcoder] = None,
    ) -> None:
        self.config = config
        self.downloader = downloader or YtDlp(config.downloader_cmd)
        self.transcoder = transcoder or Ffmpeg(
            config.ffmpeg_cmd,
            config.ffprobe_cmd,
            audio=config.audio,
            loudnorm=config.loudnorm,
        )

    def _enter(self, job: ConversionJob, stage: Stage, emit: Emit) -> None:
        job.stage = stage
        logger.info("[%s] %s", job.session_id, stage.value)
        message = STAGE_MESSAGES.get(stage)
        if message:
            emit(Info(message))

    def run(self, job: ConversionJob, emit: Emit) -> ConversionJob:
        """Run every stage, reporting through ``emit``. Never raises."""
        try:
            with tempfile.TemporaryDirectory(prefix="tubecast-", ignore_cleanup_errors=True) as tmp:
                job.work_dir = Path(tmp)
                self._run_stages(job, emit)
        except TubecastError as e:
            self._fail(job, str(e), emit)
        except Exception as e:
            logger.exception("[%s] Unexpected pipeline failure", job.session_id)
            self._fail(job, f"Unexpected error: {e}", emit)
        return job

    def _fail(self, job: ConversionJob, message: str, emit: Emit) -> None:
        logger.warning("[%s] Failed during %s: %s", job.session_id, job.stage.value if job.stage else "setup", message)
        job.error = message
        job.stage = Stage.FAILED
        emit(Error(message))

    def _run_stages(self, job: ConversionJob, emit: Emit) -> None:
        assert job.work_dir is not None

        self._enter(job, Stage.FETCHING, emit)
        job.title = self._fetch_title(job.url)
        self._check_size(job.url)

        self._enter(job, Stage.DOWNLOADING, emit)
        source = self._download(job, emit)

        self._enter(job, Stage.TRANSCODING, emit)
        mp3 = job.work_dir / "converted.mp3"
        try:
            self.transcoder.transcode(source, mp3)
        except SubprocessError as e:
            self._log_tool_output(job, e)
            raise SubprocessError(f"MP3 conversion failed: {e}", cmd=e.cmd, returncode=e.returncode, output=e.output) from e

        final = mp3
        if job.normalize:
            self._enter(job, Stage.NORMALIZING, emit)
            final = self._normalize(job, mp3, emit)

        self._enter(job, Stage.PUBLISHING, emit)
        try:
            job.filename = publish_file(
                final,
                self.config.output_dir,
                job.title,
                normalized=job.normalized,
                max_chars=self.config.title_max_chars,
            )
        except PublishError as e:
            raise PublishError(f"Failed to save file: {e}") from e

        job.stage = Stage.DONE
        logger.info("[%s] done: %s", job.session_id, job.filename)
        emit(Info(f"Successfully saved as: {job.filename}"))
        emit(Info(COMPLETE_MESSAGE))
        emit(Complete())

    def _fetch_title(self, url: str) -> str:
        try:
            return self.downloader.resolve_title(url)
        except (PreflightError, SubprocessError) as e:
            raise PreflightError(f"Failed to get video title: {e}") from e

    def _check_size(self, url: str) -> None:
        size = self.downloader.probe_size(url)
        if size is None:
            return
        limit = self.config.max_download_bytes
        if size > limit:
            raise PreflightError(f"File too large (max {limit // (1024 * 1024)}MB)")

    def _download(self, job: ConversionJob, emit: Emit) -> Path:
        assert job.work_dir is not None
        download_dir = job.work_dir / "download"
        download_dir.mkdir()

        def on_line(line: str) -> None:
            message = classify_output_line(line)
            if message:
                emit(Info(message))

        try:
            files = self.downloader.download(job.url, download_dir, on_line)
        except SubprocessError as e:
            raise SubprocessError(f"Download failed: {e}", cmd=e.cmd, returncode=e.returncode, output=e.output) from e
        return files[0]

    def _normalize(self, job: ConversionJob, mp3: Path, emit: Emit) -> Path:
        assert job.work_dir is not None
        normalized = job.work_dir / "normalized.mp3"
        try:
            self.transcoder.normalize(mp3, normalized)
        except SubprocessError as e:
            self._log_tool_output(job, e)
            emit(Info(f"Normalization failed: {e}, using original audio"))
            return mp3
        job.normalized = True
        emit(Info("Normalization complete!"))
        return normalized

    def _log_tool_output(self, job: ConversionJob, e: SubprocessError) -> None:
        if e.output:
            logger.warning("[%s] %s output: %s", job.session_id, e.cmd[0] if e.cmd else "tool", e.output)
