"""Configuration via environment variables.

``Settings`` configures the HTTP service and shared infrastructure.
``ActionInputs`` reads the ``INPUT_*`` variables GitHub Actions exports for a
workflow step. Both are turned into one immutable ``PolicyConfig`` that every
component receives explicitly.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from commandgate.core.errors import ConfigurationError
from commandgate.core.identifiers import parse_allowlist
from commandgate.models.domain import Allowlist, ContextType

PERMISSION_LEVELS = frozenset({"admin", "maintain", "write", "triage", "read"})
DISABLED_VALUES = frozenset({"", "false"})


class Settings(BaseSettings):
    """Service-wide configuration options."""

    api_v1_prefix: str = "/v1"
    service_base_url: str = "http://localhost:8000"
    redis_url: str = "redis://localhost:6379/0"
    github_token: SecretStr | None = None
    github_base_url: str | None = None
    github_retry_total: int = 3
    allowlist_pat: SecretStr | None = None
    event_sink_backend: str = "file"
    event_sink_path: str = "data/decision_events.jsonl"
    event_sink_url: str | None = None
    event_sink_batch_size: int = 25
    decision_signing_key: str | None = None
    decision_key_id: str | None = None
    otel_enabled: bool = False
    otel_exporter: str = "console"
    otel_otlp_endpoint: str | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="commandgate_", env_file=".env", extra="ignore")


class ActionInputs(BaseSettings):
    """Inputs of the GitHub Action, read from ``INPUT_<NAME>`` variables."""

    github_token: SecretStr | None = None
    command: str = ""
    reaction: str = "eyes"
    param_separator: str = "|"
    permissions: str = "write,maintain,admin"
    allowlist: str = "false"
    allowlist_pat: SecretStr | None = None
    allow_forks: bool = True
    skip_ci: bool = False
    skip_reviews: bool = False
    allow_drafts: bool = False
    fork_review_bypass: bool = False
    allowed_contexts: str = "pull_request"
    allow_github_apps: bool = False
    bot_permission: str = "issues:write"
    status: str = ""
    skip_completing: bool = False

    model_config = SettingsConfigDict(env_prefix="input_", env_ignore_empty=True, extra="ignore")


class PolicyConfig(BaseModel):
    """Parsed, validated policy shared by all components of one evaluation."""

    model_config = ConfigDict(frozen=True)

    command: str
    param_separator: str = "|"
    permissions: frozenset[str]
    allowlist: Allowlist = Allowlist()
    allowlist_pat: Optional[SecretStr] = None
    allow_forks: bool = True
    skip_ci: bool = False
    skip_reviews: bool = False
    allow_draft_prs: bool = False
    fork_review_bypass: bool = False
    allowed_contexts: tuple[str, ...] = (ContextType.PULL_REQUEST.value,)
    allow_github_apps: bool = False
    bot_permission_key: str = "issues"
    bot_permission_value: str = "write"

    @classmethod
    def from_inputs(cls, inputs) -> "PolicyConfig":
        """Validate raw inputs; raises ``ConfigurationError`` before any network call.

        ``inputs`` is an ``ActionInputs`` or any object with the same fields.
        """

        command = inputs.command.strip()
        if not command:
            raise ConfigurationError("Input required and not supplied: command")

        permissions = frozenset(split_list(inputs.permissions))
        if not permissions:
            raise ConfigurationError("Input required and not supplied: permissions")
        unknown = sorted(permissions - PERMISSION_LEVELS)
        if unknown:
            raise ConfigurationError(
                f"Unknown permission level(s): {', '.join(unknown)}",
                context={"allowed": sorted(PERMISSION_LEVELS)},
            )

        key, sep, value = inputs.bot_permission.partition(":")
        if not sep or not key.strip() or not value.strip():
            raise ConfigurationError(
                f"bot_permission must look like 'issues:write', got '{inputs.bot_permission}'"
            )

        return cls(
            command=command,
            param_separator=inputs.param_separator or "|",
            permissions=permissions,
            allowlist=parse_allowlist(inputs.allowlist),
            allowlist_pat=_enabled_secret(inputs.allowlist_pat),
            allow_forks=inputs.allow_forks,
            skip_ci=inputs.skip_ci,
            skip_reviews=inputs.skip_reviews,
            allow_draft_prs=inputs.allow_drafts,
            fork_review_bypass=inputs.fork_review_bypass,
            allowed_contexts=tuple(split_list(inputs.allowed_contexts)),
            allow_github_apps=inputs.allow_github_apps,
            bot_permission_key=key.strip().lower(),
            bot_permission_value=value.strip().lower(),
        )


def split_list(value: str | None) -> list[str]:
    """Split a comma-separated input into trimmed, lowercased, unique items."""

    if not value:
        return []
    items: list[str] = []
    for item in value.split(","):
        item = item.strip().lower()
        if item and item not in items:
            items.append(item)
    return items


def _enabled_secret(secret: SecretStr | None) -> SecretStr | None:
    if secret is None:
        return None
    if secret.get_secret_value().strip().lower() in DISABLED_VALUES:
        return None
    return secret


settings = Settings()
