"""Classification of the event that triggered a command."""

from __future__ import annotations

import logging

from commandgate.core.config import PolicyConfig
from commandgate.models.domain import ContextResult, ContextType

logger = logging.getLogger(__name__)

COMMENT_EVENTS = frozenset({"issue_comment"})
KNOWN_CONTEXTS = (ContextType.PULL_REQUEST.value, ContextType.ISSUE.value)


class ContextClassifier:
    """Validates that a command came from an allowed kind of comment."""

    def __init__(self, config: PolicyConfig) -> None:
        self._config = config

    def classify(self, event_name: str, payload: dict) -> ContextResult:
        logger.debug("checking if the context of '%s' is valid", event_name)

        if event_name not in COMMENT_EVENTS:
            logger.warning("this Action can only be run in the context of an issue_comment")
            return _rejected(event_name)

        allowed = [context for context in self._config.allowed_contexts if context in KNOWN_CONTEXTS]
        if not allowed:
            logger.warning(
                "the 'allowed_contexts' input must contain at least one of the following: %s",
                ", ".join(KNOWN_CONTEXTS),
            )
            return _rejected(event_name)

        is_pull_request = "pull_request" in ((payload or {}).get("issue") or {})

        if allowed == [ContextType.PULL_REQUEST.value] and not is_pull_request:
            logger.warning("this Action can only be run in the context of a pull request comment")
            return _rejected(event_name)
        if allowed == [ContextType.ISSUE.value] and is_pull_request:
            logger.warning("this Action can only be run in the context of an issue comment")
            return _rejected(event_name)

        context_type = ContextType.PULL_REQUEST if is_pull_request else ContextType.ISSUE
        return ContextResult(valid=True, context_type=context_type.value)


def _rejected(context: str) -> ContextResult:
    return ContextResult(valid=False, context_type=context, bypass=True)
