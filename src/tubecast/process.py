"""Subprocess helpers shared by the downloader and ffmpeg wrappers.

External tools are opaque commands: they get argv, report progress as text
lines and succeed only on exit status 0.
"""

from __future__ import annotations

import logging
import queue
import subprocess
import threading
from typing import IO, Callable, List, Optional, Sequence

from .errors import SubprocessError, truncate_output
from .utils import subprocess_flags

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

_EOF = object()

# metadata lookups; encodes pass their own, longer limit
DEFAULT_TIMEOUT = 120.0


def run_capture(cmd: Sequence[str], timeout: Optional[float] = DEFAULT_TIMEOUT) -> str:
    """Run a command to completion and return its stdout.

    Raises:
        SubprocessError: if the executable is missing, exits non-zero or is
            still running after ``timeout`` seconds (it is killed then).
    """
    cmd = [str(c) for c in cmd]
    logger.debug("run: %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            timeout=timeout,
            **subprocess_flags(),
        )
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        raise SubprocessError(
            f"{cmd[0]} timed out after {timeout:g}s",
            cmd=cmd,
            output=truncate_output(stderr.strip()),
        ) from e
    except OSError as e:
        raise SubprocessError(f"Failed to start {cmd[0]}: {e}", cmd=cmd) from e

    if proc.returncode != 0:
        output = (proc.stderr or proc.stdout or "").strip()
        raise SubprocessError(
            f"{cmd[0]} exited with status {proc.returncode}",
            cmd=cmd,
            returncode=proc.returncode,
            output=truncate_output(output),
        )
    return proc.stdout


def _pump(stream: IO[str], sink: "queue.Queue[object]") -> None:
    try:
        for line in stream:
            sink.put(line.rstrip("\r\n"))
    finally:
        sink.put(_EOF)


def stream_lines(cmd: Sequence[str], on_line: LineCallback) -> None:
    """Run a command, forwarding every output line to ``on_line``.

    stdout and stderr are drained on two reader threads, but ``on_line`` is
    only ever called from the calling thread, in the order lines arrived.

    Raises:
        SubprocessError: if the executable is missing or exits non-zero.
    """
    cmd = [str(c) for c in cmd]
    logger.debug("stream: %s", " ".join(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            bufsize=1,
            **subprocess_flags(),
        )
    except OSError as e:
        raise SubprocessError(f"Failed to start {cmd[0]}: {e}", cmd=cmd) from e

    assert proc.stdout is not None
    assert proc.stderr is not None

    lines: "queue.Queue[object]" = queue.Queue()
    readers = [
        threading.Thread(target=_pump, args=(proc.stdout, lines), daemon=True),
        threading.Thread(target=_pump, args=(proc.stderr, lines), daemon=True),
    ]
    for t in readers:
        t.start()

    tail: List[str] = []
    open_streams = len(readers)
    try:
        while open_streams:
            item = lines.get()
            if item is _EOF:
                open_streams -= 1
                continue
            line = str(item)
            if not line.strip():
                continue
            tail.append(line)
            del tail[:-20]
            on_line(line)
        ret = proc.wait()
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        for t in readers:
            t.join(timeout=5)
        for stream in (proc.stdout, proc.stderr):
            try:
                stream.close()
            except OSError:
                pass

    if ret != 0:
        raise SubprocessError(
            f"{cmd[0]} exited with status {ret}",
            cmd=cmd,
            returncode=ret,
            output=truncate_output("\n".join(tail), 500),
        )
