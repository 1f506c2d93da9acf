"""API schemas for command decisions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, SecretStr

from commandgate.models.domain import ActorKind, Decision, GateOutcome, PermissionStatus


class PolicyOptions(BaseModel):
    """Policy knobs a caller may set per request; mirrors the Action inputs."""

    command: str = Field(..., description="Trigger phrase the comment must start with, e.g. `.deploy`.")
    param_separator: str = "|"
    permissions: str = "write,maintain,admin"
    allowlist: str = "false"
    allow_forks: bool = True
    skip_ci: bool = False
    skip_reviews: bool = False
    allow_drafts: bool = False
    fork_review_bypass: bool = False
    allowed_contexts: str = "pull_request"
    allow_github_apps: bool = False
    bot_permission: str = "issues:write"
    allowlist_pat: Optional[SecretStr] = Field(None, exclude=True)


class CommandDecisionRequest(BaseModel):
    """Request body for POST /v1/decisions."""

    repo: str = Field(..., description="Repository full name, e.g. octo-org/octo-repo.")
    event_name: str = "issue_comment"
    payload: dict = Field(..., description="The webhook payload of the triggering event.")
    actor: Optional[str] = None
    policy: PolicyOptions


class CommandDecisionResponse(BaseModel):
    """Response body for POST /v1/decisions."""

    outcome: GateOutcome
    triggered: bool
    bypass: bool
    context_type: Optional[str] = None
    decision_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    actor: Optional[str] = None
    actor_type: Optional[ActorKind] = None
    permission_status: Optional[PermissionStatus] = None
    params: Optional[str] = None
    decision: Optional[Decision] = None
    decision_url: Optional[str] = None
    bundle_url: Optional[str] = None


class DecisionBundleResponse(BaseModel):
    """Response body for GET /v1/decisions/{decision_id}/bundle."""

    decision_id: str
    bundle: dict
