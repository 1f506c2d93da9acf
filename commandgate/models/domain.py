"""Domain data models for the IssueOps command gate."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ActorKind(str, Enum):
    """Account type reported by GitHub for the commenting actor."""

    USER = "User"
    BOT = "Bot"


class PermissionStatus(str, Enum):
    """Outcome of an actor permission check."""

    ALLOWED = "allowed"
    DENIED = "denied"
    ERROR = "error"


class ContextType(str, Enum):
    """Where an IssueOps comment was made."""

    PULL_REQUEST = "pull_request"
    ISSUE = "issue"


class ReviewDecision(str, Enum):
    """Aggregate review state of a pull request, plus the skip and unknown sentinels.

    ``UNRECOGNISED`` stands for a state GitHub reported that this version does not
    know; no policy row matches it.
    """

    APPROVED = "APPROVED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    SKIP_REVIEWS = "skip_reviews"
    UNRECOGNISED = "unrecognised"


class CommitStatus(str, Enum):
    """Status rollup of the latest pull request commit, plus the skip sentinel."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    PENDING = "PENDING"
    ERROR = "ERROR"
    EXPECTED = "EXPECTED"
    SKIP_CI = "skip_ci"


class LookupOutcome(str, Enum):
    """Tag for the result of a single platform call."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


class GateOutcome(str, Enum):
    """Terminal state of one gate run."""

    SUCCESS = "success"
    FAILURE = "failure"
    SAFE_EXIT = "safe-exit"


class LookupResult(BaseModel, Generic[T]):
    """Tagged result of a platform lookup.

    ``status`` is the HTTP status GitHub answered with, or ``None`` when the
    request never produced a response.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    outcome: LookupOutcome
    status: Optional[int] = None
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def found(cls, data: Any = None, status: int = 200) -> "LookupResult":
        return cls(outcome=LookupOutcome.FOUND, status=status, data=data)

    @classmethod
    def not_found(cls, status: int = 404, error: str | None = None) -> "LookupResult":
        return cls(outcome=LookupOutcome.NOT_FOUND, status=status, error=error)

    @classmethod
    def transport_error(cls, status: int | None = None, error: str | None = None) -> "LookupResult":
        return cls(outcome=LookupOutcome.TRANSPORT_ERROR, status=status, error=error)

    @property
    def is_found(self) -> bool:
        return self.outcome is LookupOutcome.FOUND

    @property
    def is_not_found(self) -> bool:
        return self.outcome is LookupOutcome.NOT_FOUND

    def describe_status(self) -> str:
        """Status text embedded in user-facing messages."""

        if self.status is not None:
            return str(self.status)
        return "transport error"


class PermissionResult(BaseModel):
    """Result of checking whether an actor may run commands in a repository."""

    model_config = ConfigDict(frozen=True)

    status: PermissionStatus
    actor: str
    actor_kind: Optional[ActorKind] = None
    permission: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def allow(cls, actor: str, kind: ActorKind, permission: str | None = None) -> "PermissionResult":
        return cls(status=PermissionStatus.ALLOWED, actor=actor, actor_kind=kind, permission=permission)

    @classmethod
    def deny(
        cls,
        actor: str,
        reason: str,
        *,
        kind: ActorKind | None = None,
        permission: str | None = None,
    ) -> "PermissionResult":
        return cls(
            status=PermissionStatus.DENIED,
            actor=actor,
            actor_kind=kind,
            permission=permission,
            reason=reason,
        )

    @classmethod
    def error(cls, actor: str, reason: str, *, kind: ActorKind | None = None) -> "PermissionResult":
        return cls(status=PermissionStatus.ERROR, actor=actor, actor_kind=kind, reason=reason)

    @property
    def allowed(self) -> bool:
        return self.status is PermissionStatus.ALLOWED


class OrgTeamEntry(BaseModel):
    """Allowlist entry naming an organization team."""

    model_config = ConfigDict(frozen=True)

    org: str
    team: str

    def __str__(self) -> str:
        return f"{self.org}/{self.team}"


class Allowlist(BaseModel):
    """Parsed operator allowlist."""

    model_config = ConfigDict(frozen=True)

    handles: frozenset[str] = Field(default_factory=frozenset)
    org_teams: tuple[OrgTeamEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.handles and not self.org_teams


class ForkMetadata(BaseModel):
    """Checkout details for a pull request opened from a fork."""

    model_config = ConfigDict(frozen=True)

    label: str
    ref: str
    checkout: str
    full_name: Optional[str] = None


class PullRequestSnapshot(BaseModel):
    """Read-only facts about a pull request gathered for one evaluation.

    ``check_suite_count`` is ``None`` when the CI structure could not be read,
    which the policy treats the same as "no CI defined".
    """

    model_config = ConfigDict(frozen=True)

    number: Optional[int] = None
    head_ref: str
    head_sha: str
    head_label: Optional[str] = None
    head_repo_full_name: Optional[str] = None
    base_ref: str
    is_fork: bool = False
    is_draft: bool = False
    review_decision: Optional[ReviewDecision] = None
    check_suite_count: Optional[int] = None
    commit_status: Optional[CommitStatus] = None
    merge_state_status: Optional[str] = None

    @classmethod
    def hydrate(cls, pull: dict, graphql: dict | None) -> "PullRequestSnapshot":
        """Build a snapshot from the REST pull payload and the GraphQL state query."""

        head = pull.get("head") or {}
        base = pull.get("base") or {}
        head_repo = head.get("repo") or None
        base_repo = base.get("repo") or None
        head_full_name = head_repo.get("full_name") if head_repo else None
        base_full_name = base_repo.get("full_name") if base_repo else None

        if head_repo is None:
            # The fork was deleted; the head no longer lives in the base repository.
            is_fork = True
        elif head_full_name and base_full_name:
            is_fork = head_full_name.lower() != base_full_name.lower()
        else:
            is_fork = head_repo.get("fork") is True

        pull_request = ((graphql or {}).get("repository") or {}).get("pullRequest") or {}
        review_value = pull_request.get("reviewDecision")
        check_suite_count, commit_status = _read_ci_state(pull_request)

        return cls(
            number=pull.get("number"),
            head_ref=head.get("ref") or "",
            head_sha=head.get("sha") or "",
            head_label=head.get("label"),
            head_repo_full_name=head_full_name,
            base_ref=base.get("ref") or "",
            is_fork=is_fork,
            is_draft=pull.get("draft") is True,
            review_decision=_read_review(review_value),
            check_suite_count=check_suite_count,
            commit_status=commit_status,
            merge_state_status=pull_request.get("mergeStateStatus"),
        )

    def fork_metadata(self) -> Optional[ForkMetadata]:
        if not self.is_fork:
            return None
        label = self.head_label or self.head_ref
        return ForkMetadata(
            label=label,
            ref=self.head_ref,
            checkout=f"{label.replace(':', '-')} {self.head_ref}",
            full_name=self.head_repo_full_name,
        )


def _read_review(value) -> Optional[ReviewDecision]:
    if value is None:
        return None
    try:
        return ReviewDecision(value)
    except ValueError:
        return ReviewDecision.UNRECOGNISED


def _read_ci_state(pull_request: dict) -> tuple[Optional[int], Optional[CommitStatus]]:
    try:
        commit = pull_request["commits"]["nodes"][0]["commit"]
        total = int(commit["checkSuites"]["totalCount"])
    except (KeyError, IndexError, TypeError, ValueError):
        return None, None
    rollup = commit.get("statusCheckRollup") or {}
    state = rollup.get("state") if isinstance(rollup, dict) else None
    if state is None:
        return total, None
    try:
        return total, CommitStatus(state)
    except ValueError:
        # Unknown rollup states must not read as "no CI"; keep them unmatched.
        return total, CommitStatus.ERROR


class PolicyInputs(BaseModel):
    """Everything the policy evaluator needs for a single decision."""

    model_config = ConfigDict(frozen=True)

    allow_forks: bool = True
    skip_ci: bool = False
    skip_reviews: bool = False
    allow_draft_prs: bool = False
    fork_review_bypass: bool = False
    context_type: ContextType
    snapshot: Optional[PullRequestSnapshot] = None
    is_allowlisted_operator: bool = False


class Decision(BaseModel):
    """Final pass/fail answer for an IssueOps command."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    message: str
    ref: Optional[str] = None
    sha: Optional[str] = None
    fork: bool = False
    fork_metadata: Optional[ForkMetadata] = None
    base_ref: Optional[str] = None
    review_decision: Optional[str] = None
    commit_status: Optional[str] = None

    @classmethod
    def deny(cls, message: str, **fields: Any) -> "Decision":
        return cls(allowed=False, message=message, **fields)


class ContextResult(BaseModel):
    """Classification of the triggering event."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    context_type: str
    bypass: bool = False


class CommandRequest(BaseModel):
    """One IssueOps invocation as seen by the gate."""

    repo: str = Field(..., description="Repository full name, e.g. octo-org/octo-repo.")
    event_name: str
    payload: dict = Field(default_factory=dict)
    actor: Optional[str] = Field(
        None, description="Actor handle; defaults to the comment author in the payload."
    )

    @property
    def comment(self) -> dict:
        return self.payload.get("comment") or {}

    @property
    def issue_number(self) -> Optional[int]:
        number = (self.payload.get("issue") or {}).get("number")
        return int(number) if number is not None else None

    @property
    def comment_body(self) -> str:
        return str(self.comment.get("body") or "").strip()

    def actor_handle(self) -> str:
        if self.actor:
            return self.actor
        return ((self.comment.get("user") or {}).get("login")) or ""


class GateResult(BaseModel):
    """Everything one gate run produced."""

    outcome: GateOutcome
    bypass: bool = False
    triggered: bool = False
    context: Optional[ContextResult] = None
    permission: Optional[PermissionResult] = None
    decision: Optional[Decision] = None
    params: Optional[str] = None
    decision_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    bundle: Optional[dict] = None


class DecisionRecord(BaseModel):
    """Audit record persisted for every decision made by the service."""

    decision_id: str
    repo: str
    issue_number: Optional[int] = None
    comment_id: Optional[int] = None
    actor: str
    actor_kind: Optional[ActorKind] = None
    context_type: Optional[str] = None
    permission_status: Optional[PermissionStatus] = None
    decided_at: datetime
    decision: Decision
