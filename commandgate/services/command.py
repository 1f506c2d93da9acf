"""Trigger detection and parameter extraction for IssueOps comments."""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


def trigger_check(body: str, command: str, separator: str = "|") -> bool:
    """Return True when the comment starts with ``command`` as a whole word.

    ``.deploy`` matches ``.deploy``, ``.deploy dev`` and ``.deploy|x`` but not
    ``.deployer`` or ``I want to .deploy``.
    """

    body = (body or "").strip()
    command = command.strip()
    if not command or not body.startswith(command):
        logger.info('Trigger "%s" not found in the comment body', command)
        return False

    rest = body[len(command):]
    if rest == "" or rest[0].isspace() or (separator and rest.startswith(separator)):
        logger.debug('Trigger "%s" found in the comment body', command)
        return True

    logger.info('Trigger "%s" not found in the comment body', command)
    return False


def extract_params(body: str, separator: str = "|") -> Optional[str]:
    """Return the trimmed text after the first ``separator``, or None."""

    if not separator or separator not in (body or ""):
        logger.debug("no parameters detected in command")
        return None

    params = body.split(separator, 1)[1].strip()
    if not params:
        logger.debug("no parameters detected in command")
        return None

    logger.info("🧮 detected parameters in command: %s", params)
    return params
