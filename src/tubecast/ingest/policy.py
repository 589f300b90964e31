"""Accepted source URL shapes."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional
from urllib.parse import parse_qs, urlsplit

from ..errors import ValidationError

INVALID_URL_MESSAGE = "Invalid YouTube URL. Please provide a valid YouTube video or playlist URL."


class SourceType(str, Enum):
    """What kind of page a submitted URL points at."""
    VIDEO = "video"
    SHORT = "short"
    LIVE = "live"
    PLAYLIST = "playlist"
    EMBED = "embed"
    OTHER = "other"  # host added to allowed_hosts by config


_YOUTUBE_FAMILY = {"youtube.com", "youtu.be", "youtube-nocookie.com"}


def _normalize_host(host: str) -> str:
    host = (host or "").strip().lower().rstrip(".")
    for prefix in ("www.", "m.", "music."):
        if host.startswith(prefix):
            host = host[len(prefix):]
            break
    return host


def _host_allowed(host: str, allowed_hosts: Iterable[str]) -> Optional[str]:
    for dom in allowed_hosts:
        nd = _normalize_host(dom)
        if not nd:
            continue
        if host == nd or host.endswith("." + nd):
            return nd
    return None


def _path_id(path: str, prefix: str) -> str:
    rest = path[len(prefix):] if path.startswith(prefix) else ""
    return rest.strip("/").split("/", 1)[0]


def classify_url(url: str, allowed_hosts: Iterable[str]) -> Optional[SourceType]:
    """Return the source type for an accepted URL, or None if it is rejected."""
    u = (url or "").strip()
    if not u:
        return None

    try:
        parsed = urlsplit(u)
    except ValueError:
        return None
    if parsed.scheme.lower() not in {"http", "https"}:
        return None

    host = _normalize_host(parsed.hostname or "")
    if not host:
        return None
    matched = _host_allowed(host, allowed_hosts)
    if matched is None:
        return None

    path = parsed.path or "/"
    query = parse_qs(parsed.query)

    if matched == "youtu.be":
        return SourceType.VIDEO if _path_id(path, "/") else None

    if matched == "youtube-nocookie.com":
        return SourceType.EMBED if _path_id(path, "/embed/") else None

    if matched == "youtube.com":
        if path.rstrip("/") == "/watch" and query.get("v"):
            return SourceType.VIDEO
        if path.rstrip("/") == "/playlist" and query.get("list"):
            return SourceType.PLAYLIST
        if _path_id(path, "/shorts/"):
            return SourceType.SHORT
        if _path_id(path, "/live/"):
            return SourceType.LIVE
        if _path_id(path, "/embed/"):
            return SourceType.EMBED
        return None

    if matched in _YOUTUBE_FAMILY:
        return None
    return SourceType.OTHER if path.strip("/") else None


def validate_source_url(url: str, allowed_hosts: Iterable[str]) -> str:
    """Return the stripped URL if it is an accepted source.

    Raises:
        ValidationError: for an empty URL or one outside the allow-list.
    """
    u = (url or "").strip()
    if not u:
        raise ValidationError("URL is required")
    if classify_url(u, allowed_hosts) is None:
        raise ValidationError(INVALID_URL_MESSAGE)
    return u
