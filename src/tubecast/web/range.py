"""Byte-range responses so podcast players can seek and resume."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional, Tuple

from fastapi import Request
from fastapi.responses import Response, StreamingResponse

CHUNK_SIZE = 256 * 1024


def parse_range_header(header: str, file_size: int) -> Optional[Tuple[int, int]]:
    """Parse ``bytes=start-end`` into an inclusive (start, end) pair.

    Only the first range of a multi-range request is honoured. Returns None
    for anything malformed or unsatisfiable.
    """
    if not header or not header.startswith("bytes=") or file_size <= 0:
        return None
    first_range = header[len("bytes="):].split(",", 1)[0].strip()
    if "-" not in first_range:
        return None
    first, last = (part.strip() for part in first_range.split("-", 1))

    if first == "":
        # suffix form: the final N bytes
        try:
            length = int(last)
        except ValueError:
            return None
        if length <= 0:
            return None
        return max(0, file_size - length), file_size - 1

    try:
        start = int(first)
        end = int(last) if last else file_size - 1
    except ValueError:
        return None
    if start >= file_size or end < start:
        return None
    return start, min(end, file_size - 1)


def _iter_file(path: Path, start: int, end: int) -> Iterator[bytes]:
    with path.open("rb") as f:
        f.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            data = f.read(min(CHUNK_SIZE, remaining))
            if not data:
                break
            remaining -= len(data)
            yield data


def ranged_file_response(request: Request, path: Path, *, media_type: str) -> Response:
    path = Path(path)
    file_size = path.stat().st_size
    headers = {"Accept-Ranges": "bytes"}

    range_header = request.headers.get("range")
    if not range_header:
        headers["Content-Length"] = str(file_size)
        return StreamingResponse(_iter_file(path, 0, file_size - 1), media_type=media_type, headers=headers)

    byte_range = parse_range_header(range_header, file_size)
    if byte_range is None:
        headers["Content-Range"] = f"bytes */{file_size}"
        return Response(status_code=416, headers=headers)

    start, end = byte_range
    headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
    headers["Content-Length"] = str(end - start + 1)
    return StreamingResponse(_iter_file(path, start, end), status_code=206, media_type=media_type, headers=headers)
