"""Source URL checks and the yt-dlp command wrapper."""

from .policy import SourceType, classify_url, validate_source_url
from .ytdlp_runner import YtDlp

__all__ = [
    "SourceType",
    "YtDlp",
    "classify_url",
    "validate_source_url",
]
