import itertools

import pytest

from commandgate.models.domain import (
    CommitStatus,
    ContextType,
    PolicyInputs,
    PullRequestSnapshot,
    ReviewDecision,
)
from commandgate.services.policy import (
    DRAFT_MESSAGE,
    FORKS_DISABLED_MESSAGE,
    ISSUE_MESSAGE,
    MISSING_SNAPSHOT_MESSAGE,
    UNHANDLED_REASON,
    PolicyEvaluator,
    lookup,
)

APPROVED = ReviewDecision.APPROVED
REQUIRED = ReviewDecision.REVIEW_REQUIRED
CHANGES = ReviewDecision.CHANGES_REQUESTED
SUCCESS = CommitStatus.SUCCESS
FAILURE = CommitStatus.FAILURE
PENDING = CommitStatus.PENDING


def _snapshot(review=None, status=SUCCESS, suites=1, *, fork=False, draft=False) -> PullRequestSnapshot:
    return PullRequestSnapshot(
        number=7,
        head_ref="feature",
        head_sha="abc123",
        head_label="fork-owner:feature" if fork else "octo-org:feature",
        head_repo_full_name="fork-owner/repo" if fork else "octo-org/octo-repo",
        base_ref="main",
        is_fork=fork,
        is_draft=draft,
        review_decision=review,
        check_suite_count=suites,
        commit_status=status,
    )


def _inputs(snapshot=None, **overrides) -> PolicyInputs:
    values = {"context_type": ContextType.PULL_REQUEST, "snapshot": snapshot}
    values.update(overrides)
    return PolicyInputs(**values)


def evaluate(snapshot=None, **overrides):
    return PolicyEvaluator().evaluate(_inputs(snapshot, **overrides))


def test_issue_context_is_always_allowed():
    decision = evaluate(context_type=ContextType.ISSUE)
    assert decision.allowed
    assert decision.message == ISSUE_MESSAGE
    assert decision.ref is None
    assert decision.sha is None


def test_missing_snapshot_denies():
    decision = evaluate(None)
    assert not decision.allowed
    assert decision.message == MISSING_SNAPSHOT_MESSAGE


@pytest.mark.parametrize(
    "review,status,suites,overrides,allowed,fragment",
    [
        (APPROVED, SUCCESS, 1, {}, True, "PR is approved and all CI checks passed"),
        (None, None, 0, {}, True, "CI checks have not been defined and required reviewers have not been defined"),
        (None, SUCCESS, 1, {}, True, "CI checks have been defined but required reviewers have not been defined"),
        (REQUIRED, SUCCESS, 1, {"skip_reviews": True}, True, "required reviewers have been disabled"),
        (APPROVED, FAILURE, 1, {"skip_ci": True}, True, "CI requirements have been disabled for this operation and the PR has been approved"),
        (None, FAILURE, 1, {"skip_ci": True}, True, "CI requirements have been disabled for this operation and required reviewers have not been"),
        (REQUIRED, SUCCESS, 1, {"skip_ci": True}, False, "CI checks are not required for this operation but the PR has not been reviewed"),
        (CHANGES, FAILURE, 1, {"skip_ci": True, "skip_reviews": True}, True, "CI and PR reviewers are not required"),
        (REQUIRED, SUCCESS, 1, {}, False, "CI checks are passing but the PR has not been reviewed"),
        (CHANGES, SUCCESS, 1, {}, False, "CI checks are passing but the PR has not been reviewed"),
        (APPROVED, None, 0, {}, True, "CI checks have not been defined but the PR has been approved"),
        (REQUIRED, PENDING, 1, {}, False, "Reviews are required for this operation and CI checks must be passing"),
        (None, PENDING, 1, {}, False, "CI checks must be passing in order to continue"),
        (CHANGES, None, 0, {}, False, "CI checks have not been defined but reviews are required"),
        (APPROVED, PENDING, 1, {}, False, "CI checks must be passing in order to continue"),
        (REQUIRED, PENDING, 1, {"skip_reviews": True}, False, "CI checks must be passing in order to continue"),
        (APPROVED, FAILURE, 1, {}, False, "Your pull request is approved but CI checks are failing"),
        (None, FAILURE, 1, {}, False, "Your pull request does not require approvals but CI checks are failing"),
        (REQUIRED, FAILURE, 1, {"skip_reviews": True}, False, "does not require approvals but CI checks are failing"),
    ],
)
def test_decision_table(review, status, suites, overrides, allowed, fragment):
    decision = evaluate(_snapshot(review, status, suites), **overrides)
    assert decision.allowed is allowed
    assert fragment in decision.message
    if allowed:
        assert decision.ref == "feature"
        assert decision.sha == "abc123"
    else:
        assert decision.ref is None
        assert decision.message.startswith("### ⚠️ Cannot proceed with operation")


def test_denial_names_both_values():
    decision = evaluate(_snapshot(REQUIRED, PENDING))
    assert "- reviewDecision: `REVIEW_REQUIRED`" in decision.message
    assert "- commitStatus: `PENDING`" in decision.message


def test_effective_values_are_reported():
    decision = evaluate(_snapshot(REQUIRED, SUCCESS), skip_reviews=True)
    assert decision.review_decision == "skip_reviews"
    assert decision.commit_status == "SUCCESS"

    decision = evaluate(_snapshot(None, None, suites=0))
    assert decision.review_decision == "null"
    assert decision.commit_status == "null"


@pytest.mark.parametrize("status", [CommitStatus.ERROR, CommitStatus.EXPECTED])
def test_unhandled_rollup_states_fail_closed(status):
    decision = evaluate(_snapshot(APPROVED, status))
    assert not decision.allowed
    assert UNHANDLED_REASON in decision.message
    assert f"`{status.value}`" in decision.message


def test_lookup_without_a_matching_row_denies():
    allowed, message = lookup(None, CommitStatus.ERROR)
    assert not allowed
    assert UNHANDLED_REASON in message


def test_zero_check_suites_means_no_ci_even_with_a_rollup():
    decision = evaluate(_snapshot(APPROVED, FAILURE, suites=0))
    assert decision.allowed
    assert decision.commit_status == "null"


def test_unknown_check_suite_count_means_no_ci():
    decision = evaluate(_snapshot(None, None, suites=None))
    assert decision.allowed


def test_draft_denied_before_review_logic():
    decision = evaluate(_snapshot(APPROVED, SUCCESS, draft=True))
    assert not decision.allowed
    assert decision.message == DRAFT_MESSAGE


def test_draft_allowed_when_configured():
    assert evaluate(_snapshot(APPROVED, SUCCESS, draft=True), allow_draft_prs=True).allowed


def test_forks_disabled():
    decision = evaluate(_snapshot(APPROVED, SUCCESS, fork=True), allow_forks=False)
    assert not decision.allowed
    assert decision.message == FORKS_DISABLED_MESSAGE
    assert decision.fork


def test_fork_acts_on_head_sha_and_exposes_metadata():
    decision = evaluate(_snapshot(APPROVED, SUCCESS, fork=True))
    assert decision.allowed
    assert decision.ref == "abc123"
    assert decision.sha == "abc123"
    assert decision.fork
    assert decision.fork_metadata.checkout == "fork-owner-feature feature"
    assert decision.fork_metadata.label == "fork-owner:feature"
    assert decision.base_ref == "main"


def test_fork_denied_before_draft():
    decision = evaluate(_snapshot(APPROVED, SUCCESS, fork=True, draft=True), allow_forks=False)
    assert decision.message == FORKS_DISABLED_MESSAGE


@pytest.mark.parametrize("review", [REQUIRED, CHANGES])
def test_fork_review_gate(review):
    decision = evaluate(_snapshot(review, SUCCESS, fork=True), skip_reviews=True, is_allowlisted_operator=True)
    assert not decision.allowed
    assert "All pull requests from forks must be reviewed and approved" in decision.message
    assert f"`{review.value}`" in decision.message


def test_fork_review_bypass_allows_skip_reviews():
    decision = evaluate(_snapshot(REQUIRED, SUCCESS, fork=True), skip_reviews=True, fork_review_bypass=True)
    assert decision.allowed
    assert decision.ref == "abc123"


@pytest.mark.parametrize(
    "status,suites,skip_ci,allowed,fragment",
    [
        (SUCCESS, 1, False, True, "CI is passing and approval is bypassed due to allowed operator rights"),
        (FAILURE, 1, True, True, "CI is not required for this operation and approval is bypassed"),
        (None, 0, False, True, "CI checks have not been defined and approval is bypassed"),
        (PENDING, 1, False, False, "Approval is bypassed due to allowed operator rights but CI checks must be passing"),
        (FAILURE, 1, False, False, "Approval is bypassed due to allowed operator rights but CI checks must be passing"),
    ],
)
def test_operator_override(status, suites, skip_ci, allowed, fragment):
    decision = evaluate(_snapshot(CHANGES, status, suites), skip_ci=skip_ci, is_allowlisted_operator=True)
    assert decision.allowed is allowed
    assert fragment in decision.message


def test_operator_override_does_not_touch_approved_prs():
    decision = evaluate(_snapshot(APPROVED, SUCCESS), is_allowlisted_operator=True)
    assert decision.message == "✔️ PR is approved and all CI checks passed - OK"


@pytest.mark.parametrize(
    "skip_reviews,allow_forks,operator",
    list(itertools.product([True, False], repeat=3)),
)
def test_fork_with_required_review_is_never_allowed(skip_reviews, allow_forks, operator):
    decision = evaluate(
        _snapshot(REQUIRED, SUCCESS, fork=True),
        skip_reviews=skip_reviews,
        allow_forks=allow_forks,
        is_allowlisted_operator=operator,
    )
    assert not decision.allowed
    if allow_forks:
        assert "All pull requests from forks must be reviewed and approved" in decision.message
    else:
        assert decision.message == FORKS_DISABLED_MESSAGE


@pytest.mark.parametrize(
    "skip_reviews,operator",
    list(itertools.product([True, False], repeat=2)),
)
def test_same_repo_required_review_outcomes(skip_reviews, operator):
    decision = evaluate(
        _snapshot(REQUIRED, SUCCESS),
        skip_reviews=skip_reviews,
        is_allowlisted_operator=operator,
    )
    assert decision.allowed is (skip_reviews or operator)
    assert decision.ref == ("feature" if decision.allowed else None)


def test_evaluation_is_deterministic():
    inputs = _inputs(_snapshot(REQUIRED, PENDING, fork=True), fork_review_bypass=True, skip_reviews=True)
    first = PolicyEvaluator().evaluate(inputs)
    second = PolicyEvaluator().evaluate(inputs)
    assert first == second


@pytest.mark.parametrize("operator", [True, False])
def test_unrecognised_review_state_fails_closed(operator):
    decision = evaluate(_snapshot(ReviewDecision.UNRECOGNISED, SUCCESS), is_allowlisted_operator=operator)
    assert not decision.allowed
    assert UNHANDLED_REASON in decision.message
    assert "`unrecognised`" in decision.message


def test_skip_reviews_ignores_unrecognised_review_state():
    assert evaluate(_snapshot(ReviewDecision.UNRECOGNISED, SUCCESS), skip_reviews=True).allowed
