"""yt-dlp command wrapper.

yt-dlp runs as a subprocess; its progress output is relayed line by line.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import PreflightError, SubprocessError
from ..process import LineCallback, run_capture, stream_lines

logger = logging.getLogger(__name__)


def _first_line(output: str) -> str:
    for line in output.splitlines():
        line = line.strip()
        if line:
            return line
    return ""


def parse_size(text: str) -> Optional[int]:
    """Parse yt-dlp's ``%(filesize,filesize_approx)s`` output.

    yt-dlp prints ``NA`` when neither field is known.
    """
    value = _first_line(text)
    if not value or value.upper() == "NA":
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


class YtDlp:
    def __init__(self, cmd: Sequence[str]) -> None:
        self.cmd = [str(c) for c in cmd]

    def resolve_title(self, url: str) -> str:
        out = run_capture(self.cmd + ["--no-playlist", "--print", "%(title)s", url])
        title = _first_line(out)
        if not title:
            raise PreflightError("yt-dlp returned an empty title")
        return title

    def probe_size(self, url: str) -> Optional[int]:
        """Approximate byte size, or None when yt-dlp can't tell."""
        try:
            out = run_capture(self.cmd + ["--no-playlist", "--print", "%(filesize,filesize_approx)s", url])
        except SubprocessError as e:
            logger.info("Size probe unavailable for %s: %s", url, e)
            return None
        return parse_size(out)

    def download(self, url: str, dest_dir: Path, on_line: LineCallback) -> List[Path]:
        """Download the best audio stream into ``dest_dir``.

        Returns the files found in ``dest_dir`` afterwards.

        Raises:
            SubprocessError: on non-zero exit or when nothing was written.
        """
        dest_dir = Path(dest_dir)
        cmd = self.cmd + [
            "-f",
            "bestaudio",
            "--restrict-filenames",
            "--progress",
            "--newline",
            "--output",
            str(dest_dir / "%(id)s.%(ext)s"),
            "--no-playlist",
            url,
        ]
        stream_lines(cmd, on_line)

        files = sorted(p for p in dest_dir.glob("*.*") if p.is_file() and not p.name.endswith(".part"))
        if not files:
            raise SubprocessError(f"No files were downloaded from {url}", cmd=cmd, returncode=0)
        return files
