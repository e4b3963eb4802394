"""structlog setup shared by the HTTP service and the CLI."""

from __future__ import annotations

from typing import TextIO

import structlog


def configure_logging(file: TextIO | None = None) -> None:
    """ISO timestamps and one JSON object per line, written to ``file`` (stdout by default)."""
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.PrintLoggerFactory(file),
    )
