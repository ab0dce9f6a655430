"""Logging setup for the CLI and the background worker."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

NOISY_LOGGERS = ("boto3", "botocore", "urllib3", "s3transfer", "asyncio")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO", verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Configure root logging with a Rich console handler.

    Args:
        level: Log level name for the deletion_guard loggers
        verbose: Show third-party library logs and full tracebacks
        log_file: Optional path that also receives plain-text logs
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    third_party_level = logging.DEBUG if verbose else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
