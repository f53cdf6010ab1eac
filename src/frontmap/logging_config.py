"""
Logging for frontmap runs.

Log records go to stderr through rich so the command output on stdout (the
extraction summary, the enrichment report) stays readable. Per-file parse
and read problems are logged as warnings and never stop a run, so the
default level is WARNING; ``--verbose`` adds the per-entity debug trail.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """
    Install the stderr handler (and optionally a file handler) for a CLI run.

    Args:
        verbose: DEBUG level, with source paths and traceback locals
        quiet: ERROR level only, hiding skipped-file warnings
        log_file: Also append plain-text records to this file

    Returns:
        The ``frontmap`` package logger
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    handlers: list[logging.Handler] = [
        RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            tracebacks_show_locals=verbose,
            markup=False,
            show_time=True,
            show_path=verbose,
        )
    ]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True
    )

    logger = logging.getLogger("frontmap")
    logger.setLevel(level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the ``frontmap`` namespace, e.g. ``frontmap.resolver.modules``."""
    if name is None:
        return logging.getLogger("frontmap")
    if not name.startswith("frontmap"):
        name = f"frontmap.{name}"
    return logging.getLogger(name)
