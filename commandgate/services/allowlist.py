"""Allowlisted operator resolution by handle or org/team membership."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from commandgate.core.config import PolicyConfig
from commandgate.core.identifiers import normalize_handle
from commandgate.github.platform import Platform
from commandgate.models.domain import LookupResult, OrgTeamEntry

logger = logging.getLogger(__name__)

PlatformFactory = Callable[[str], Platform]


class AllowlistResolver:
    """Checks whether an actor is an explicitly allowlisted operator.

    Org/team membership lookups use a separate client built from the
    ``allowlist_pat`` credential, since they need organization read access the
    workflow token does not have.
    """

    def __init__(self, config: PolicyConfig, platform_factory: PlatformFactory) -> None:
        self._config = config
        self._platform_factory = platform_factory

    def is_allowlisted(self, actor: str) -> bool:
        allowlist = self._config.allowlist
        handle = normalize_handle(actor)

        if handle in allowlist.handles:
            logger.debug("%s is an allowlisted operator via handle reference", actor)
            return True

        if allowlist.org_teams and self._org_team_check(handle, allowlist.org_teams):
            logger.debug("%s is an allowlisted operator via org team reference", actor)
            return True

        logger.debug("%s is not an allowed operator for this command", actor)
        return False

    def _org_team_check(self, actor: str, org_teams: tuple[OrgTeamEntry, ...]) -> bool:
        pat = self._config.allowlist_pat
        if pat is None:
            logger.warning("no allowlist_pat provided, skipping allowlist check for org team membership")
            return False

        try:
            platform = self._platform_factory(pat.get_secret_value())
        except Exception as exc:
            logger.warning("could not build the allowlist client, skipping org team membership: %s", exc)
            return False

        for entry in org_teams:
            try:
                member = self._is_member(platform, actor, entry)
            except Exception as exc:
                logger.warning("Error checking org team membership for %s: %s", entry, exc)
                continue
            if member:
                logger.debug("%s is in %s", actor, entry)
                return True
        return False

    def _is_member(self, platform: Platform, actor: str, entry: OrgTeamEntry) -> bool:
        org = platform.get_org(entry.org)
        org_id = _resolved_id(org)
        if org_id is None:
            self._report_miss(actor, entry, org, "organization lookup")
            return False

        team = platform.get_team(entry.org, entry.team)
        team_id = _resolved_id(team)
        if team_id is None:
            self._report_miss(actor, entry, team, "team lookup")
            return False

        membership = platform.check_team_membership(org_id, team_id, actor)
        if membership.is_found:
            return True
        self._report_miss(actor, entry, membership, "membership check")
        return False

    @staticmethod
    def _report_miss(actor: str, entry: OrgTeamEntry, result: LookupResult, step: str) -> None:
        if result.is_not_found:
            logger.debug("%s is not a member of the %s team", actor, entry)
        elif result.is_found:
            logger.warning("%s for %s returned no id", step, entry)
        else:
            logger.warning(
                "Error checking org team membership (%s for %s): status %s %s",
                step,
                entry,
                result.describe_status(),
                result.error or "",
            )


def _resolved_id(result: LookupResult) -> Optional[int]:
    if not result.is_found or not isinstance(result.data, dict):
        return None
    return result.data.get("id")
