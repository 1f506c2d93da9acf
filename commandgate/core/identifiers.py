"""Identifier helpers: decision ids, GitHub handles and allowlist entries."""

from __future__ import annotations

import logging
import re
import uuid

from commandgate.models.domain import Allowlist, OrgTeamEntry

logger = logging.getLogger(__name__)

# GitHub logins: alphanumerics and single inner hyphens, at most 39 characters.
# Underscores are accepted for managed-user (EMU) handles such as ``name_corp``.
HANDLE_PATTERN = re.compile(r"^[a-z\d](?:[a-z\d_]|-(?=[a-z\d_])){0,38}$", re.IGNORECASE)
TEAM_SLUG_PATTERN = re.compile(r"^[a-z\d][a-z\d._-]*$", re.IGNORECASE)


def new_decision_id() -> str:
    return f"dc_{uuid.uuid4().hex}"


def normalize_handle(value: str) -> str:
    """Lowercase a handle and drop a single leading ``@``."""

    value = value.strip().lower()
    if value.startswith("@"):
        value = value[1:]
    return value


def is_valid_handle(value: str) -> bool:
    return bool(HANDLE_PATTERN.match(value or ""))


def parse_org_team(value: str) -> OrgTeamEntry | None:
    """Parse ``org/team``; returns ``None`` for anything else."""

    parts = value.strip().lower().split("/")
    if len(parts) != 2:
        return None
    org, team = (part.strip() for part in parts)
    if org.startswith("@"):
        org = org[1:]
    if not is_valid_handle(org) or not TEAM_SLUG_PATTERN.match(team):
        return None
    return OrgTeamEntry(org=org, team=team)


def parse_allowlist(raw: str | None) -> Allowlist:
    """Split a comma-separated allowlist into handles and org/team entries.

    Invalid entries are dropped with a debug diagnostic. An empty value or the
    literal ``false`` yields an empty allowlist.
    """

    if raw is None or raw.strip().lower() in {"", "false"}:
        return Allowlist()

    handles: set[str] = set()
    org_teams: list[OrgTeamEntry] = []
    for item in raw.split(","):
        operator = item.strip().lower()
        if not operator:
            continue
        if "/" in operator:
            entry = parse_org_team(operator)
            if entry is None:
                logger.debug("%s is not a valid org/team reference... skipping allowlist check", operator)
            elif entry not in org_teams:
                org_teams.append(entry)
            continue
        handle = normalize_handle(operator)
        if is_valid_handle(handle):
            handles.add(handle)
        else:
            logger.debug("%s is not a valid GitHub username... skipping allowlist check", operator)
    return Allowlist(handles=frozenset(handles), org_teams=tuple(org_teams))
