"""Pull request readiness policy: the decision matrix behind every command."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from commandgate.models.domain import (
    CommitStatus,
    ContextType,
    Decision,
    PolicyInputs,
    PullRequestSnapshot,
    ReviewDecision,
)

logger = logging.getLogger(__name__)

CANNOT_PROCEED = "### ⚠️ Cannot proceed with operation"
ISSUE_MESSAGE = "✔️ operation requested on an issue - OK"
MISSING_SNAPSHOT_MESSAGE = "Could not retrieve PR info"
FORKS_DISABLED_MESSAGE = (
    "### ⚠️ Cannot proceed\n\nThis Action has been explicitly configured to prevent operations from forks. "
    "You can change this via this Action's inputs if needed"
)
DRAFT_MESSAGE = f"{CANNOT_PROCEED}\n\n> Your pull request is in a draft state"
FORK_REVIEW_MESSAGE = (
    CANNOT_PROCEED
    + "\n\n- reviewDecision: `{review}`\n\n> All pull requests from forks must be reviewed and approved "
    "before this operation can proceed"
)

BLOCKING_REVIEWS = frozenset({ReviewDecision.REVIEW_REQUIRED, ReviewDecision.CHANGES_REQUESTED})

Review = Optional[ReviewDecision]
Status = Optional[CommitStatus]


@dataclass(frozen=True)
class Rule:
    """One row of the decision table.

    ``None`` inside ``reviews``/``statuses`` stands for "not defined" and is a
    value like any other, not a wildcard.
    """

    reviews: frozenset
    statuses: frozenset
    allowed: bool
    reason: str

    def matches(self, review: Review, status: Status) -> bool:
        return review in self.reviews and status in self.statuses


def _rule(reviews, statuses, allowed: bool, reason: str) -> Rule:
    return Rule(frozenset(reviews), frozenset(statuses), allowed, reason)


_APPROVED = ReviewDecision.APPROVED
_SKIP_REVIEWS = ReviewDecision.SKIP_REVIEWS
_SUCCESS = CommitStatus.SUCCESS
_FAILURE = CommitStatus.FAILURE
_PENDING = CommitStatus.PENDING
_SKIP_CI = CommitStatus.SKIP_CI

# Evaluated top to bottom; the first matching row decides.
DECISION_TABLE: tuple[Rule, ...] = (
    _rule({_APPROVED}, {_SUCCESS}, True, "✔️ PR is approved and all CI checks passed - OK"),
    _rule(
        {None},
        {None},
        True,
        "⚠️ CI checks have not been defined and required reviewers have not been defined... proceeding - OK",
    ),
    _rule(
        {None},
        {_SUCCESS},
        True,
        "⚠️ CI checks have been defined but required reviewers have not been defined... proceeding - OK",
    ),
    _rule(
        {_SKIP_REVIEWS},
        {_SUCCESS},
        True,
        "✔️ CI checks passed and required reviewers have been disabled for this operation - OK",
    ),
    _rule(
        {_APPROVED},
        {_SKIP_CI},
        True,
        "✔️ CI requirements have been disabled for this operation and the PR has been approved - OK",
    ),
    _rule(
        {None},
        {_SKIP_CI},
        True,
        "⚠️ CI requirements have been disabled for this operation and required reviewers have not been "
        "defined... proceeding - OK",
    ),
    _rule(
        BLOCKING_REVIEWS,
        {_SKIP_CI},
        False,
        "CI checks are not required for this operation but the PR has not been reviewed",
    ),
    _rule({_SKIP_REVIEWS}, {_SKIP_CI}, True, "✔️ CI and PR reviewers are not required for this operation - OK"),
    _rule(BLOCKING_REVIEWS, {_SUCCESS}, False, "CI checks are passing but the PR has not been reviewed"),
    _rule({_APPROVED}, {None}, True, "✔️ CI checks have not been defined but the PR has been approved - OK"),
    _rule(
        BLOCKING_REVIEWS,
        {_PENDING},
        False,
        "Reviews are required for this operation and CI checks must be passing in order to continue",
    ),
    _rule({None}, {_PENDING}, False, "CI checks must be passing in order to continue"),
    _rule(
        BLOCKING_REVIEWS,
        {None},
        False,
        "CI checks have not been defined but reviews are required for this operation",
    ),
    _rule({_APPROVED, None, _SKIP_REVIEWS}, {_PENDING}, False, "CI checks must be passing in order to continue"),
    _rule({_APPROVED}, {_FAILURE}, False, "Your pull request is approved but CI checks are failing"),
    _rule(
        {None, _SKIP_REVIEWS},
        {_FAILURE},
        False,
        "Your pull request does not require approvals but CI checks are failing",
    ),
)

# Consulted instead of the table when an allowlisted operator stands in for an approval.
OPERATOR_TABLE: tuple[Rule, ...] = (
    _rule(
        BLOCKING_REVIEWS,
        {_SUCCESS},
        True,
        "✔️ CI is passing and approval is bypassed due to allowed operator rights - OK",
    ),
    _rule(
        BLOCKING_REVIEWS,
        {_SKIP_CI},
        True,
        "✔️ CI is not required for this operation and approval is bypassed due to allowed operator rights - OK",
    ),
    _rule(
        BLOCKING_REVIEWS,
        {None},
        True,
        "✔️ CI checks have not been defined and approval is bypassed due to allowed operator rights - OK",
    ),
    _rule(
        BLOCKING_REVIEWS,
        {_PENDING, _FAILURE},
        False,
        "Approval is bypassed due to allowed operator rights but CI checks must be passing in order to continue",
    ),
)

UNHANDLED_REASON = (
    "This combination of review and CI state is not handled by the policy, so the operation cannot proceed"
)


def render(value) -> str:
    """Render an effective review/CI value the way it appears in messages."""

    if value is None:
        return "null"
    return value.value


def blocked_message(review: Review, status: Status, reason: str) -> str:
    return (
        f"{CANNOT_PROCEED}\n\n- reviewDecision: `{render(review)}`\n- commitStatus: `{render(status)}`"
        f"\n\n> {reason}"
    )


def lookup(review: Review, status: Status, *, operator: bool = False) -> tuple[bool, str]:
    """Look a (review, CI) pair up in the decision table.

    Returns ``(allowed, message)``; pairs absent from the table are denied.
    """

    tables = (OPERATOR_TABLE, DECISION_TABLE) if operator and review in BLOCKING_REVIEWS else (DECISION_TABLE,)
    for table in tables:
        for rule in table:
            if rule.matches(review, status):
                if rule.allowed:
                    return True, rule.reason
                return False, blocked_message(review, status, rule.reason)
    return False, blocked_message(review, status, UNHANDLED_REASON)


class PolicyEvaluator:
    """Single-pass decision tree: fork, draft, fork review, then the table."""

    def evaluate(self, inputs: PolicyInputs) -> Decision:
        if inputs.context_type is ContextType.ISSUE:
            logger.info(ISSUE_MESSAGE)
            return Decision(allowed=True, message=ISSUE_MESSAGE)

        snapshot = inputs.snapshot
        if snapshot is None:
            return Decision.deny(MISSING_SNAPSHOT_MESSAGE)

        diagnostics = {
            "fork": snapshot.is_fork,
            "fork_metadata": snapshot.fork_metadata(),
            "base_ref": snapshot.base_ref,
        }
        ref = snapshot.head_ref

        if snapshot.is_fork:
            logger.info("PR is a fork")
            if not inputs.allow_forks:
                return Decision.deny(FORKS_DISABLED_MESSAGE, **diagnostics)
            # Forks act on the immutable head sha, never the branch name.
            ref = snapshot.head_sha

        if snapshot.is_draft:
            if not inputs.allow_draft_prs:
                logger.warning("operation requested on a draft PR when draft PRs are not allowed")
                return Decision.deny(DRAFT_MESSAGE, **diagnostics)
            logger.info("operation requested on a draft PR - OK")

        if (
            snapshot.is_fork
            and not inputs.fork_review_bypass
            and snapshot.review_decision in BLOCKING_REVIEWS
        ):
            return Decision.deny(
                FORK_REVIEW_MESSAGE.format(review=render(snapshot.review_decision)),
                review_decision=render(snapshot.review_decision),
                **diagnostics,
            )

        review = self.effective_review(inputs, snapshot)
        status = self.effective_status(inputs, snapshot)
        operator = inputs.is_allowlisted_operator and (not snapshot.is_fork or inputs.fork_review_bypass)

        logger.debug(
            "precheck values: reviewDecision=%s commitStatus=%s userIsOperator=%s skipCi=%s skipReviews=%s "
            "allowForks=%s forkReviewBypass=%s",
            render(review),
            render(status),
            inputs.is_allowlisted_operator,
            inputs.skip_ci,
            inputs.skip_reviews,
            inputs.allow_forks,
            inputs.fork_review_bypass,
        )

        allowed, message = lookup(review, status, operator=operator)
        effective = {"review_decision": render(review), "commit_status": render(status)}
        if not allowed:
            return Decision.deny(message, **effective, **diagnostics)

        logger.info(message)
        return Decision(
            allowed=True,
            message=message,
            ref=ref,
            sha=snapshot.head_sha,
            **effective,
            **diagnostics,
        )

    @staticmethod
    def effective_review(inputs: PolicyInputs, snapshot: PullRequestSnapshot) -> Review:
        if inputs.skip_reviews and (not snapshot.is_fork or inputs.fork_review_bypass):
            return ReviewDecision.SKIP_REVIEWS
        return snapshot.review_decision

    @staticmethod
    def effective_status(inputs: PolicyInputs, snapshot: PullRequestSnapshot) -> Status:
        if inputs.skip_ci:
            logger.info("CI checks are not required for this operation - proceeding - OK")
            return CommitStatus.SKIP_CI
        if not snapshot.check_suite_count:
            logger.info("no CI checks have been defined for this pull request, proceeding - OK")
            return None
        return snapshot.commit_status
