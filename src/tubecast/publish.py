"""Placing finished audio files into the episode directory."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from .errors import PublishError

logger = logging.getLogger(__name__)

RESERVED_CHARS = frozenset('/\\:*?"<>|')
PLACEHOLDER = "-"
NORMALIZED_MARKER = "_NORM_"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def sanitize_filename(name: str) -> str:
    """Replace every path-breaking character with ``-``, one for one."""
    return "".join(PLACEHOLDER if ch in RESERVED_CHARS else ch for ch in name)


def episode_filename(
    title: str,
    *,
    normalized: bool,
    now: Optional[datetime] = None,
    max_chars: int = 100,
) -> str:
    """``Title_YYYYMMDD_HHMMSS.mp3``, or ``Title_NORM_YYYYMMDD_HHMMSS.mp3``."""
    safe_title = sanitize_filename(title)[:max_chars]
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    if normalized:
        return f"{safe_title}{NORMALIZED_MARKER}{stamp}.mp3"
    return f"{safe_title}_{stamp}.mp3"


def publish_file(
    src: Path,
    output_dir: Path,
    title: str,
    *,
    normalized: bool,
    now: Optional[datetime] = None,
    max_chars: int = 100,
) -> str:
    """Copy ``src`` into ``output_dir`` under its episode name.

    Copy rather than rename: the job directory and the output directory may
    be on different filesystems. A partial destination is deleted on failure.

    Returns the final filename.

    Raises:
        PublishError: if the copy fails or the result is empty.
    """
    src = Path(src)
    output_dir = Path(output_dir)
    base = episode_filename(title, normalized=normalized, now=now, max_chars=max_chars)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PublishError(f"create output directory {output_dir}: {e}") from e
    try:
        fsrc = src.open("rb")
    except OSError as e:
        raise PublishError(f"open source file {src}: {e}") from e

    with fsrc:
        filename, fdst = _claim_destination(output_dir, base)
        dest = output_dir / filename
        try:
            with fdst:
                shutil.copyfileobj(fsrc, fdst)
        except OSError as e:
            _remove_partial(dest)
            raise PublishError(f"copy {src.name} to {dest}: {e}") from e

    try:
        size = dest.stat().st_size
    except OSError as e:
        raise PublishError(f"verify copied file {dest}: {e}") from e
    if size == 0:
        _remove_partial(dest)
        raise PublishError(f"copied file {dest} has zero bytes")

    logger.info("Published %s (%d bytes)", filename, size)
    return filename


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Error removing incomplete destination file %s: %s", path, e)


def _claim_destination(output_dir: Path, filename: str, attempts: int = 100) -> Tuple[str, BinaryIO]:
    """Create the destination exclusively, adding ``_2``, ``_3``... on a clash.

    Two jobs with the same title can finish within the same second.
    """
    stem, suffix = filename[: -len(".mp3")], ".mp3"
    for n in range(1, attempts + 1):
        candidate = filename if n == 1 else f"{stem}_{n}{suffix}"
        try:
            return candidate, (output_dir / candidate).open("xb")
        except FileExistsError:
            continue
        except OSError as e:
            raise PublishError(f"create destination file {output_dir / candidate}: {e}") from e
    raise PublishError(f"no free filename for {filename} in {output_dir}")
