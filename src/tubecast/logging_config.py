"""Logging setup for tubecast.

Call ``setup_logging()`` once from the entry point; modules just use
``logging.getLogger(__name__)``. Job log lines carry the session id in
brackets, so one conversion can be followed with ``grep``.

Per-module levels can be raised or lowered without touching code:

    TUBECAST_LOG_MODULE_LEVELS="pipeline=DEBUG,tubecast.web:WARNING"
"""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional

PACKAGE = "tubecast"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MODULE_LEVELS_ENV = "TUBECAST_LOG_MODULE_LEVELS"

_ENTRY = re.compile(r"^([\w.]+)\s*[=:]\s*([A-Za-z]+)$")

_handlers: List[logging.Handler] = []


def _qualify(name: str) -> str:
    if name == PACKAGE or name.startswith(PACKAGE + "."):
        return name
    return f"{PACKAGE}.{name}"


def _parse_module_levels(text: str) -> Dict[str, int]:
    """``name=LEVEL`` or ``name:LEVEL`` pairs split on ``,`` or ``;``.

    Unknown level names and malformed pairs are skipped.
    """
    levels: Dict[str, int] = {}
    for raw in re.split(r"[;,]", text or ""):
        m = _ENTRY.match(raw.strip())
        if not m:
            continue
        level = logging.getLevelName(m.group(2).upper())
        if isinstance(level, int):
            levels[_qualify(m.group(1))] = level
    return levels


def _make_handler(handler: logging.Handler, fmt: str) -> logging.Handler:
    # handlers pass everything; levels are decided per logger
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
) -> None:
    """Attach stderr (and optionally file) handlers to the ``tubecast`` logger.

    Only the first call has any effect.
    """
    if _handlers:
        return

    fmt = format_string or DEFAULT_FORMAT
    _handlers.append(_make_handler(logging.StreamHandler(sys.stderr), fmt))
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _handlers.append(_make_handler(logging.FileHandler(log_file, encoding="utf-8"), fmt))

    root = logging.getLogger(PACKAGE)
    root.setLevel(level)
    root.handlers[:] = _handlers
    root.propagate = False

    for name, lvl in _parse_module_levels(os.getenv(MODULE_LEVELS_ENV, "")).items():
        logging.getLogger(name).setLevel(lvl)


def share_handlers(*logger_names: str) -> None:
    """Send other libraries' loggers (e.g. ``uvicorn.error``) to our handlers."""
    for name in logger_names:
        logger = logging.getLogger(name)
        logger.handlers[:] = _handlers
        logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``tubecast`` namespace; bare names are prefixed."""
    return logging.getLogger(_qualify(name))
