"""Entry point for running the backup service."""

from __future__ import annotations

import argparse
import logging
from typing import Final

import uvicorn

from .logging_config import LOG_LEVELS, configure_logging

LOGGER = logging.getLogger(__name__)

DEFAULT_HOST: Final[str] = "127.0.0.1"
DEFAULT_PORT: Final[int] = 43760


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the QReport backup service.")
    parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help="Host interface to bind (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"TCP port to bind (default: {DEFAULT_PORT}).",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable Uvicorn autoreload. Development use only.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Level for the qreport.backup loggers (default: INFO).",
    )
    return parser


def main() -> None:
    """Run the FastAPI service using Uvicorn."""
    parser = _build_parser()
    args = parser.parse_args()

    configure_logging(args.log_level)

    if not (1 <= args.port <= 65535):
        parser.error("Port must be between 1 and 65535.")

    LOGGER.info("Starting backup service on %s:%s", args.host, args.port)
    uvicorn.run(
        "qreport.backup.app:create_app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        factory=True,
        log_config=None,
    )


if __name__ == "__main__":
    main()
