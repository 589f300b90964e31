from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import load_config
from .doctor import run_doctor
from .episodes import list_episodes
from .errors import ValidationError
from .ffmpeg import Ffmpeg
from .jobs import JobManager, iter_events
from .logging_config import setup_logging, share_handlers
from .progress import Complete, to_wire


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .web.app import create_app

    config = load_config(args.config)
    app = create_app(config)
    host = args.host or config.host
    port = args.port or config.port
    logging.getLogger(__name__).info("Serving on http://%s:%d (episodes in %s)", host, port, config.output_dir)
    share_handlers("uvicorn", "uvicorn.error")
    uvicorn.run(app, host=host, port=port, log_level="warning", log_config=None)
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    manager = JobManager(config)
    try:
        session_id, channel = manager.start(args.url, normalize=args.normalize)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    ok = False
    for event in iter_events(channel):
        print(to_wire(event), flush=True)
        if isinstance(event, Complete):
            ok = True
    manager.wait(session_id)
    return 0 if ok else 1


def cmd_episodes(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    ffmpeg = Ffmpeg(config.ffmpeg_cmd, config.ffprobe_cmd)
    episodes = list_episodes(config.output_dir, ffmpeg.probe_duration)
    if not episodes:
        print(f"No episodes in {config.output_dir}")
        return 0
    for ep in episodes:
        norm = "  [normalized]" if ep.is_normalized else ""
        print(f"{ep.duration:>8}  {ep.pub_date}  {ep.file}{norm}")
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    report = run_doctor(load_config(args.config))
    for name, check in report.checks.items():
        status = "ok" if check.get("found") else "MISSING"
        print(f"{name:8s} {status:8s} {check.get('path') or ''}")
        if check.get("version"):
            print(f"{'':17s}{check['version']}")
        if check.get("note"):
            print(f"{'':17s}{check['note']}")
    return 0 if report.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="tubecast", description="Turn video URLs into a podcast feed")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", type=Path, default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Run the web app.")
    s.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    s.add_argument("--host", type=str, default=None)
    s.add_argument("--port", type=int, default=None)
    s.set_defaults(func=cmd_serve)

    c = sub.add_parser("convert", help="Convert one URL in the foreground, printing progress.")
    c.add_argument("url", type=str)
    c.add_argument("--normalize", action="store_true", help="Apply loudness normalization")
    c.add_argument("--config", type=Path, default=None)
    c.set_defaults(func=cmd_convert)

    e = sub.add_parser("episodes", help="List converted episodes.")
    e.add_argument("--config", type=Path, default=None)
    e.set_defaults(func=cmd_episodes)

    d = sub.add_parser("doctor", help="Check for ffmpeg, ffprobe and yt-dlp.")
    d.add_argument("--config", type=Path, default=None)
    d.set_defaults(func=cmd_doctor)

    args = parser.parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), log_file=args.log_file)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
