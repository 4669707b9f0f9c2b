"""Command-line entry point for the shared-world sync server."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Sequence

import uvicorn

APP_FACTORY = "worldsync.api.app:create_app"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _format_host_for_url(host: str) -> str:
    """Return a host suitable for inclusion in an HTTP URL."""

    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="World sync multiplayer server")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface the API server should bind to.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "3000")),
        help="Port where the API server should listen (default: $PORT or 3000).",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Run the API server with auto-reload enabled.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity. Defaults to WORLDSYNC_LOG_LEVEL or INFO.",
    )
    return parser.parse_args(argv)


def _resolve_log_level(cli_value: str | None) -> str:
    if cli_value:
        return cli_value
    env_value = (os.getenv("WORLDSYNC_LOG_LEVEL") or "").strip().upper()
    return env_value or "INFO"


def main(argv: Sequence[str] | None = None) -> None:
    """Configure logging and serve the sync API with uvicorn."""

    args = _parse_args(argv)
    level = _resolve_log_level(args.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    logging.getLogger(__name__).info(
        "Serving world sync API on http://%s:%d",
        _format_host_for_url(args.host),
        args.port,
    )
    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=level.lower(),
    )


if __name__ == "__main__":
    main()
