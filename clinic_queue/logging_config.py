"""Logging setup shared by the console and the seed script."""

import logging

from rich.console import Console
from rich.logging import RichHandler

from clinic_queue import config


def setup_logging(level: str | None = None, console: Console | None = None) -> None:
    """Route all clinic_queue loggers through a rich handler."""
    handler = RichHandler(
        console=console,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=(level or config.LOG_LEVEL).upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
