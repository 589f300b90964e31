"""Progress events and the per-session channel that carries them.

Inside the process events are tagged values; only ``to_wire`` and
``from_wire`` know about the text protocol a browser sees:

    Info("Downloading...")   -> "Downloading..."
    Error("Download failed") -> "Error: Download failed"
    Complete()               -> "DONE"

``DONE`` always follows the human-readable success message. After an
``Error`` the stream simply ends when the channel is closed.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Union

DONE = "DONE"
ERROR_PREFIX = "Error:"


@dataclass(frozen=True)
class Info:
    text: str


@dataclass(frozen=True)
class Error:
    text: str


@dataclass(frozen=True)
class Complete:
    pass


ProgressEvent = Union[Info, Error, Complete]


def to_wire(event: ProgressEvent) -> str:
    if isinstance(event, Complete):
        return DONE
    if isinstance(event, Error):
        return f"{ERROR_PREFIX} {event.text}"
    return event.text


def from_wire(message: str) -> ProgressEvent:
    if message == DONE:
        return Complete()
    if message.startswith(ERROR_PREFIX):
        return Error(message[len(ERROR_PREFIX):].strip())
    return Info(message)


def sse_frame(event: ProgressEvent) -> str:
    """Server-Sent Events framing: one ``data:`` line per event."""
    # A bare newline inside the payload would end the SSE field early.
    payload = to_wire(event).replace("\r", " ").replace("\n", " ")
    return f"data: {payload}\n\n"


TOOL_OUTPUT_LABEL = "Tool output"

_PHASE_LABELS = (
    ("[download]", "Downloading"),
    ("[ExtractAudio]", "Extracting audio"),
    ("[youtube]", "Fetching"),
    ("[info]", "Fetching"),
)


def classify_output_line(line: str) -> Optional[str]:
    """Turn a raw downloader line into a friendlier progress message.

    Returns None for blank lines. Lines that look like ``DONE`` or an
    ``Error:`` message are labelled so they cannot end a stream early.
    """
    text = line.strip()
    if not text:
        return None
    for marker, label in _PHASE_LABELS:
        if text.startswith(marker):
            rest = text[len(marker):].strip()
            return f"{label}: {rest}" if rest else f"{label}..."
    if text == DONE or text.startswith(ERROR_PREFIX):
        # would read as a sentinel on the wire
        return f"{TOOL_OUTPUT_LABEL}: {text}"
    return text


class ChannelClosed(Exception):
    """Raised by ``ProgressChannel.get`` once the channel is drained and closed."""


_CLOSED = object()


class ProgressChannel:
    """Unbounded FIFO of progress events with a single writer.

    The pipeline never blocks on a slow or absent reader, so jobs finish even
    when nobody is watching.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, event: ProgressEvent) -> None:
        with self._lock:
            if self._closed:
                return
            self._queue.put(event)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Next event; None on timeout.

        Raises:
            ChannelClosed: when the channel is closed and fully drained.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Put the marker back so any other reader sees the end too.
            self._queue.put(_CLOSED)
            raise ChannelClosed()
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            try:
                event = self.get()
            except ChannelClosed:
                return
            if event is not None:
                yield event
