from __future__ import annotations

import sys
from typing import Any, Dict

# CREATE_NO_WINDOW
_WIN_NO_CONSOLE = 0x08000000


def subprocess_flags() -> Dict[str, Any]:
    """Extra ``subprocess`` kwargs so ffmpeg/yt-dlp don't flash a console on Windows."""
    return {"creationflags": _WIN_NO_CONSOLE} if sys.platform == "win32" else {}
