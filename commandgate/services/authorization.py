"""Actor permission checks."""

from __future__ import annotations

import json
import logging

from commandgate.core.config import PolicyConfig
from commandgate.github.platform import Platform
from commandgate.models.domain import ActorKind, PermissionResult

logger = logging.getLogger(__name__)

GITHUB_APPS_DISABLED_MESSAGE = (
    'GitHub Apps are not allowed to use this Action based on the "allow_github_apps" input.'
)


class ActorAuthorizer:
    """Decides whether an actor has enough access to run commands in a repository."""

    def __init__(self, platform: Platform, config: PolicyConfig) -> None:
        self._platform = platform
        self._config = config

    def authorize(self, actor: str, repo: str) -> PermissionResult:
        logger.debug("checking permissions of %s on %s", actor, repo)

        user = self._platform.get_user(actor)
        if not user.is_found or user.status != 200:
            return PermissionResult.error(
                actor, f"Fetch user details returns non-200 status: {user.describe_status()}"
            )

        kind = _actor_kind((user.data or {}).get("type"))
        logger.info("🔍 Detected actor type: %s (%s)", kind.value, actor)

        if kind is ActorKind.BOT:
            return self._authorize_app(actor, repo)
        return self._authorize_user(actor, repo)

    def _authorize_app(self, actor: str, repo: str) -> PermissionResult:
        if not self._config.allow_github_apps:
            return PermissionResult.deny(actor, GITHUB_APPS_DISABLED_MESSAGE, kind=ActorKind.BOT)

        installation = self._platform.get_repo_installation(repo)
        if not installation.is_found or installation.status != 200:
            return PermissionResult.error(
                actor,
                f"Failed to fetch GitHub App installation details: Status {installation.describe_status()}",
                kind=ActorKind.BOT,
            )

        permissions = (installation.data or {}).get("permissions") or {}
        key = self._config.bot_permission_key
        wanted = self._config.bot_permission_value
        granted = permissions.get(key)
        if granted != wanted:
            return PermissionResult.deny(
                actor,
                f'👋 __{actor}__ does not have "{key}" permission set to "{wanted}". '
                f"Current permissions: {json.dumps(permissions, sort_keys=True)}",
                kind=ActorKind.BOT,
                permission=granted,
            )
        return PermissionResult.allow(actor, ActorKind.BOT, permission=f"{key}:{granted}")

    def _authorize_user(self, actor: str, repo: str) -> PermissionResult:
        response = self._platform.get_collaborator_permission(repo, actor)
        if not response.is_found or response.status != 200:
            return PermissionResult.error(
                actor,
                f"Permission check returns non-200 status: {response.describe_status()}",
                kind=ActorKind.USER,
            )

        level = (response.data or {}).get("permission")
        if level not in self._config.permissions:
            required = "/".join(sorted(self._config.permissions))
            return PermissionResult.deny(
                actor,
                f"👋 __{actor}__, seems as if you have not {required} permissions in this repo, "
                f"permissions: {level}",
                kind=ActorKind.USER,
                permission=level,
            )
        return PermissionResult.allow(actor, ActorKind.USER, permission=level)


def _actor_kind(value: str | None) -> ActorKind:
    if value == ActorKind.BOT.value:
        return ActorKind.BOT
    return ActorKind.USER
