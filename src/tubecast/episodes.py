"""Episodes are simply the mp3 files in the output directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Callable, List, Optional

from .errors import ValidationError
from .publish import NORMALIZED_MARKER

logger = logging.getLogger(__name__)

DurationProbe = Callable[[Path], Optional[float]]


@dataclass
class Episode:
    title: str
    file: str
    duration: str
    pub_date: str
    size: int
    is_normalized: bool
    modified: float

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "file": self.file,
            "duration": self.duration,
            "pub_date": self.pub_date,
            "size": self.size,
            "is_normalized": self.is_normalized,
        }


def format_duration(seconds: Optional[float]) -> str:
    """``M:SS``, or ``unknown`` when there is nothing to format."""
    if seconds is None or seconds < 0:
        return "unknown"
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def list_episodes(output_dir: Path, probe_duration: Optional[DurationProbe] = None) -> List[Episode]:
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return []

    episodes: List[Episode] = []
    for path in output_dir.glob("*.mp3"):
        try:
            st = path.stat()
        except OSError as e:
            logger.warning("Error getting file stats for %s: %s", path, e)
            continue
        duration = probe_duration(path) if probe_duration else None
        modified = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
        episodes.append(
            Episode(
                title=path.stem,
                file=path.name,
                duration=format_duration(duration),
                pub_date=format_datetime(modified),
                size=st.st_size,
                is_normalized=NORMALIZED_MARKER in path.name,
                modified=st.st_mtime,
            )
        )

    episodes.sort(key=lambda ep: (ep.modified, ep.file), reverse=True)
    return episodes


def check_episode_name(filename: str) -> str:
    """Reject anything that is not a bare ``*.mp3`` name."""
    name = (filename or "").strip()
    if not name:
        raise ValidationError("No filename specified")
    if "/" in name or "\\" in name or name in {".", ".."}:
        raise ValidationError("Invalid filename")
    if not name.lower().endswith(".mp3"):
        raise ValidationError("Not an MP3 file")
    return name


def delete_episode(output_dir: Path, filename: str) -> None:
    """Raises ``ValidationError`` for bad names, ``FileNotFoundError`` if absent."""
    name = check_episode_name(filename)
    path = Path(output_dir) / name
    if not path.is_file():
        raise FileNotFoundError(f"file {name!r} does not exist")
    path.unlink()
    logger.info("Deleted episode: %s", name)
