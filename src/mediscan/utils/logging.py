"""Logging setup for the CLI and the record server."""

from __future__ import annotations

import logging
import sys

# Client libraries that log every request at INFO/DEBUG
NOISY_LOGGERS = ("openai", "httpx", "httpcore", "urllib3")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger. Logs go to stderr so CLI answers on stdout stay clean.

    Third-party HTTP clients are held at WARNING unless ``level`` is DEBUG.
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    quiet = resolved if resolved <= logging.DEBUG else max(resolved, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
