"""Error types raised by the conversion core.

Pipeline-stage errors never leave the pipeline task: they are turned into a
single error progress event. ``ValidationError`` and ``SessionNotFound`` are
the only ones a caller of the job manager sees directly.
"""

from __future__ import annotations

from typing import Optional, Sequence


def truncate_output(output: str, max_length: int = 200) -> str:
    """Cut command output down to something that fits in a log line."""
    if len(output) <= max_length:
        return output
    return output[:max_length] + "... [truncated]"


class TubecastError(Exception):
    """Base class for all tubecast errors."""


class ValidationError(TubecastError):
    """Submitted URL is missing or not an accepted source."""


class PreflightError(TubecastError):
    """Metadata lookup failed or the source is over the size limit."""


class SubprocessError(TubecastError):
    """An external tool exited non-zero or could not be started."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd) if cmd is not None else []
        self.returncode = returncode
        self.output = output


class PublishError(TubecastError):
    """Copying the finished file into the output directory failed."""


class SessionNotFound(TubecastError):
    """No live session is registered under the requested id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Invalid session ID or conversion already completed: {session_id}")
        self.session_id = session_id
