from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional

from .config import AudioSettings, LoudnormSettings
from .errors import SubprocessError
from .process import run_capture

logger = logging.getLogger(__name__)

ENCODE_TIMEOUT = 3600.0
PROBE_TIMEOUT = 30.0


def _require_nonempty(path: Path, what: str) -> None:
    try:
        size = path.stat().st_size
    except OSError as e:
        raise SubprocessError(f"{what} file not found: {path}") from e
    if size == 0:
        raise SubprocessError(f"{what} file has zero bytes: {path}")


class Ffmpeg:
    def __init__(
        self,
        ffmpeg_cmd: str = "ffmpeg",
        ffprobe_cmd: str = "ffprobe",
        *,
        audio: Optional[AudioSettings] = None,
        loudnorm: Optional[LoudnormSettings] = None,
    ) -> None:
        self.ffmpeg_cmd = ffmpeg_cmd
        self.ffprobe_cmd = ffprobe_cmd
        self.audio = audio or AudioSettings()
        self.loudnorm = loudnorm or LoudnormSettings()

    def _encode_args(self) -> List[str]:
        return [
            "-c:a",
            self.audio.codec,
            "-q:a",
            str(self.audio.quality),
            "-ac",
            str(self.audio.channels),
            "-ar",
            str(self.audio.sample_rate),
        ]

    def build_transcode_command(self, src: Path, dst: Path) -> List[str]:
        return [self.ffmpeg_cmd, "-nostdin", "-y", "-i", str(src), "-vn", *self._encode_args(), str(dst)]

    def build_normalize_command(self, src: Path, dst: Path) -> List[str]:
        # loudnorm is applied in the same pass as the mp3 encode
        return [
            self.ffmpeg_cmd,
            "-nostdin",
            "-y",
            "-i",
            str(src),
            "-vn",
            *self._encode_args(),
            "-af",
            self.loudnorm.filter_arg(),
            str(dst),
        ]

    def transcode(self, src: Path, dst: Path) -> Path:
        run_capture(self.build_transcode_command(src, dst), timeout=ENCODE_TIMEOUT)
        _require_nonempty(dst, "Converted")
        return dst

    def normalize(self, src: Path, dst: Path) -> Path:
        run_capture(self.build_normalize_command(src, dst), timeout=ENCODE_TIMEOUT)
        _require_nonempty(dst, "Normalized")
        return dst

    def probe_duration(self, path: Path) -> Optional[float]:
        if not shutil.which(self.ffprobe_cmd):
            return None
        cmd = [
            self.ffprobe_cmd,
            "-v",
            "quiet",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        try:
            out = run_capture(cmd, timeout=PROBE_TIMEOUT).strip()
        except SubprocessError as e:
            logger.debug("ffprobe failed for %s: %s", path, e)
            return None
        try:
            return float(out)
        except ValueError:
            return None
