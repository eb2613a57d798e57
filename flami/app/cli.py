"""Command line entry point: serve a site directory over HTTP."""

import argparse
from pathlib import Path
from typing import Optional, Sequence

import uvicorn

from flami.app.core.config import Settings
from flami.app.main import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flami",
        description="Serve static assets, component scripts, pages and JSON API pages from a site directory.",
    )
    parser.add_argument(
        "root",
        nargs="?",
        default=None,
        help="Site root directory (default: SITE_ROOT or the current directory)",
    )
    parser.add_argument("--host", default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Bind port")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    parser.add_argument(
        "--log-format",
        choices=["text", "structured", "json"],
        default=None,
        help="Log output format",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment settings with command line values taking priority."""
    overrides = {}
    if args.root is not None:
        overrides["site_root"] = Path(args.root)
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.log_format is not None:
        overrides["log_format"] = args.log_format
    return Settings(**overrides)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    app_settings = settings_from_args(args)

    root = app_settings.resolved_root
    if not root.is_dir():
        raise SystemExit(f"flami: site root {root} is not a directory")

    uvicorn.run(
        create_app(app_settings),
        host=app_settings.host,
        port=app_settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
