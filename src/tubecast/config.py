from __future__ import annotations

import copy
import os
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

MB = 1024 * 1024

DEFAULT_ALLOWED_HOSTS: Tuple[str, ...] = (
    "youtube.com",
    "youtu.be",
    "youtube-nocookie.com",
)


def default_downloader_cmd() -> List[str]:
    exe = shutil.which("yt-dlp")
    if exe:
        return [exe]
    return [sys.executable, "-m", "yt_dlp"]


def default_config() -> Dict[str, Any]:
    return {
        "output_dir": "mp3s",
        "max_download_mb": 500,
        "title_max_chars": 100,
        "tools": {
            "downloader": None,  # None = yt-dlp on PATH, else `python -m yt_dlp`
            "ffmpeg": "ffmpeg",
            "ffprobe": "ffprobe",
        },
        "audio": {
            "codec": "libmp3lame",
            "quality": 2,  # VBR ~190kbps
            "channels": 2,
            "sample_rate": 44100,
        },
        "loudnorm": {
            "integrated": -16.0,
            "lra": 11.0,
            "true_peak": -1.5,
        },
        "allowed_hosts": list(DEFAULT_ALLOWED_HOSTS),
        "feed": {
            "title": "YouTube to Podcast Converter",
            "description": "Converted YouTube videos",
        },
        "server": {
            "host": "127.0.0.1",
            "port": 8080,
        },
    }


@dataclass(frozen=True)
class AudioSettings:
    codec: str = "libmp3lame"
    quality: int = 2
    channels: int = 2
    sample_rate: int = 44100


@dataclass(frozen=True)
class LoudnormSettings:
    integrated: float = -16.0
    lra: float = 11.0
    true_peak: float = -1.5

    def filter_arg(self) -> str:
        return f"loudnorm=I={self.integrated:g}:LRA={self.lra:g}:TP={self.true_peak:g}"


@dataclass
class AppConfig:
    output_dir: Path = Path("mp3s")
    max_download_bytes: int = 500 * MB
    title_max_chars: int = 100
    downloader_cmd: List[str] = field(default_factory=default_downloader_cmd)
    ffmpeg_cmd: str = "ffmpeg"
    ffprobe_cmd: str = "ffprobe"
    audio: AudioSettings = field(default_factory=AudioSettings)
    loudnorm: LoudnormSettings = field(default_factory=LoudnormSettings)
    allowed_hosts: Tuple[str, ...] = DEFAULT_ALLOWED_HOSTS
    feed_title: str = "YouTube to Podcast Converter"
    feed_description: str = "Converted YouTube videos"
    host: str = "127.0.0.1"
    port: int = 8080

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        tools = data.get("tools", {}) or {}
        downloader = tools.get("downloader")
        if downloader is None:
            downloader_cmd = default_downloader_cmd()
        elif isinstance(downloader, str):
            downloader_cmd = downloader.split()
        else:
            downloader_cmd = [str(part) for part in downloader]

        audio = data.get("audio", {}) or {}
        loud = data.get("loudnorm", {}) or {}
        feed = data.get("feed", {}) or {}
        server = data.get("server", {}) or {}

        return cls(
            output_dir=Path(data.get("output_dir", "mp3s")),
            max_download_bytes=int(float(data.get("max_download_mb", 500)) * MB),
            title_max_chars=int(data.get("title_max_chars", 100)),
            downloader_cmd=downloader_cmd,
            ffmpeg_cmd=str(tools.get("ffmpeg", "ffmpeg")),
            ffprobe_cmd=str(tools.get("ffprobe", "ffprobe")),
            audio=AudioSettings(
                codec=str(audio.get("codec", "libmp3lame")),
                quality=int(audio.get("quality", 2)),
                channels=int(audio.get("channels", 2)),
                sample_rate=int(audio.get("sample_rate", 44100)),
            ),
            loudnorm=LoudnormSettings(
                integrated=float(loud.get("integrated", -16.0)),
                lra=float(loud.get("lra", 11.0)),
                true_peak=float(loud.get("true_peak", -1.5)),
            ),
            allowed_hosts=tuple(str(h) for h in data.get("allowed_hosts", DEFAULT_ALLOWED_HOSTS)),
            feed_title=str(feed.get("title", "YouTube to Podcast Converter")),
            feed_description=str(feed.get("description", "Converted YouTube videos")),
            host=str(server.get("host", "127.0.0.1")),
            port=int(server.get("port", 8080)),
        )


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _apply_env(data: Dict[str, Any]) -> Dict[str, Any]:
    output_dir = os.getenv("TUBECAST_OUTPUT_DIR")
    if output_dir:
        data["output_dir"] = output_dir
    max_mb = os.getenv("TUBECAST_MAX_DOWNLOAD_MB")
    if max_mb:
        try:
            data["max_download_mb"] = float(max_mb)
        except ValueError:
            raise ValueError(f"TUBECAST_MAX_DOWNLOAD_MB must be a number, got {max_mb!r}") from None
    return data


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Build the app config from defaults, an optional YAML file and env vars."""
    data = default_config()

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config not found: {config_path}")

        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("Config YAML must be a mapping")
        data = _deep_merge(data, loaded)

    return AppConfig.from_dict(_apply_env(data))
