from __future__ import annotations

import importlib.util
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, Optional

from .config import AppConfig
from .utils import subprocess_flags


@dataclass(frozen=True)
class DoctorReport:
    ok: bool
    checks: Dict[str, Dict[str, object]]


def _version(cmd: list[str]) -> str:
    try:
        out = subprocess.check_output(cmd, text=True, stderr=subprocess.STDOUT, **subprocess_flags())
        return out.splitlines()[0].strip() if out.strip() else ""
    except (OSError, subprocess.CalledProcessError) as e:
        return f"error: {type(e).__name__}: {e}"


def _tool_check(cmd: str) -> Dict[str, object]:
    path: Optional[str] = shutil.which(cmd)
    return {
        "found": path is not None,
        "path": path,
        "version": _version([cmd, "-version"]) if path else None,
    }


def run_doctor(config: Optional[AppConfig] = None) -> DoctorReport:
    config = config or AppConfig()
    checks: Dict[str, Dict[str, object]] = {
        "ffmpeg": _tool_check(config.ffmpeg_cmd),
        "ffprobe": _tool_check(config.ffprobe_cmd),
    }

    downloader = config.downloader_cmd
    if len(downloader) >= 3 and downloader[1:3] == ["-m", "yt_dlp"]:
        found = importlib.util.find_spec("yt_dlp") is not None
        checks["yt-dlp"] = {"found": found, "path": " ".join(downloader)}
    else:
        path = shutil.which(downloader[0]) if downloader else None
        checks["yt-dlp"] = {"found": path is not None, "path": path}
    if checks["yt-dlp"]["found"]:
        checks["yt-dlp"]["version"] = _version(list(downloader) + ["--version"])
    else:
        checks["yt-dlp"]["note"] = "Install with: pip install yt-dlp"

    ok = all(bool(c["found"]) for c in checks.values())
    return DoctorReport(ok=ok, checks=checks)
