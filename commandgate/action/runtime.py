"""GitHub Actions runner plumbing: event payload, outputs, saved state."""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Mapping, Optional, TextIO

from commandgate.core.errors import ConfigurationError
from commandgate.core.logging import mask_value

logger = logging.getLogger(__name__)


def _serialize(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class ActionsRuntime:
    """Reads and writes the files and variables the Actions runner exposes.

    Outputs and state are appended to the ``GITHUB_OUTPUT`` and
    ``GITHUB_STATE`` files with the multi-line delimiter syntax; state written
    by the main step comes back in the post step as ``STATE_<name>``.
    """

    def __init__(self, environ: Mapping[str, str] | None = None, stream: TextIO | None = None) -> None:
        self._env = os.environ if environ is None else environ
        self._stream = stream or sys.stdout
        self.outputs: dict[str, str] = {}

    @property
    def event_name(self) -> str:
        return self._env.get("GITHUB_EVENT_NAME", "")

    @property
    def repository(self) -> str:
        repo = self._env.get("GITHUB_REPOSITORY", "")
        if not repo:
            raise ConfigurationError("GITHUB_REPOSITORY is not set")
        return repo

    @property
    def api_url(self) -> Optional[str]:
        return self._env.get("GITHUB_API_URL") or None

    @property
    def is_post(self) -> bool:
        return self.get_state("isPost") == "true"

    def has_env(self, name: str) -> bool:
        return bool(self._env.get(name))

    def load_event(self) -> dict:
        path = self._env.get("GITHUB_EVENT_PATH")
        if not path or not Path(path).exists():
            logger.debug("GITHUB_EVENT_PATH is not set or missing; using an empty payload")
            return {}
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)

    def set_output(self, name: str, value) -> None:
        text = _serialize(value)
        self.outputs[name] = text
        self._write_command_file("GITHUB_OUTPUT", name, text)

    def save_state(self, name: str, value) -> None:
        self._write_command_file("GITHUB_STATE", name, _serialize(value))

    def get_state(self, name: str) -> str:
        return self._env.get(f"STATE_{name}", "")

    def mask(self, value: str | None) -> None:
        mask_value(value, self._stream)

    def _write_command_file(self, variable: str, name: str, value: str) -> None:
        path = self._env.get(variable)
        if not path:
            raise ConfigurationError(f"{variable} is not set; cannot write '{name}'")
        delimiter = f"ghadelimiter_{uuid.uuid4()}"
        if delimiter in name or delimiter in value:
            raise ValueError(f"Unexpected input: name should not contain the delimiter {delimiter}")
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
