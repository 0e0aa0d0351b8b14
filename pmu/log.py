"""Logging setup: stdlib logging rendered through rich."""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "pmu"


def running_in_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


def configure_logging(debug: bool = False) -> logging.Logger:
    """Attach a RichHandler to the pmu logger and return it.

    Debug output is also enabled when the workflow was re-run with debug
    logging (RUNNER_DEBUG=1).
    """
    debug = debug or os.environ.get("RUNNER_DEBUG") == "1"
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("[%(name)s] %(message)s"))

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False
    return logger


@contextmanager
def log_group(name: str) -> Iterator[None]:
    """Fold the enclosed log lines into a collapsible group in the Actions log."""
    if not running_in_actions():
        yield
        return

    print(f"::group::{name}", flush=True)
    try:
        yield
    finally:
        print("::endgroup::", flush=True)
