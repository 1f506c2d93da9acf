"""Logging setup for the service and for workflow runs."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_WORKFLOW_COMMANDS = {
    logging.DEBUG: "debug",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class ActionsLogHandler(logging.StreamHandler):
    """Render log records as GitHub Actions workflow commands.

    Info records are printed as-is; debug, warning and error records become
    ``::debug::``, ``::warning::`` and ``::error::`` annotations so the runner
    can surface them on the workflow summary.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        super().__init__(stream or sys.stdout)
        self.setFormatter(logging.Formatter("%(message)s"))

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        command = _WORKFLOW_COMMANDS.get(record.levelno)
        if command is None:
            return message
        return f"::{command}::{_escape_data(message)}"


def mask_value(value: str | None, stream: TextIO | None = None) -> None:
    """Ask the runner to redact ``value`` from all subsequent log output."""

    if not value:
        return
    print(f"::add-mask::{value}", file=stream or sys.stdout)


def configure_logging(level: str = "INFO", *, actions: bool = False, stream: TextIO | None = None) -> None:
    root = logging.getLogger("commandgate")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    if actions:
        handler: logging.Handler = ActionsLogHandler(stream)
        root.setLevel(logging.DEBUG)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.setLevel(level.upper())
    root.addHandler(handler)
    root.propagate = False
