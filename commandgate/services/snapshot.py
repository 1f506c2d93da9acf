"""Pull request state retrieval."""

from __future__ import annotations

import logging

from commandgate.github.platform import Platform
from commandgate.models.domain import LookupResult, PullRequestSnapshot

logger = logging.getLogger(__name__)

PULL_FETCH_FAILED = "Could not retrieve PR info: {status}"
STATE_FETCH_FAILED = "Could not retrieve PR review and CI state: {status}"


class PullRequestSnapshotFetcher:
    """Collects the facts the policy needs with one REST and one GraphQL call.

    Failures come back as the failing ``LookupResult`` with ``error`` replaced
    by a message fit for a pull request comment; the raw GitHub error is only
    logged.
    """

    def __init__(self, platform: Platform) -> None:
        self._platform = platform

    def fetch(self, repo: str, number: int) -> LookupResult:
        pull = self._platform.get_pull(repo, number)
        if not pull.is_found or pull.status != 200:
            logger.warning(
                "could not retrieve pull request %s#%s: %s %s",
                repo,
                number,
                pull.describe_status(),
                pull.error or "",
            )
            return _failed(pull, PULL_FETCH_FAILED)

        state = self._platform.query_pull_request_state(repo, number)
        if not state.is_found:
            logger.warning(
                "could not retrieve review and CI state for %s#%s: %s %s",
                repo,
                number,
                state.describe_status(),
                state.error or "",
            )
            return _failed(state, STATE_FETCH_FAILED)

        snapshot = PullRequestSnapshot.hydrate(pull.data or {}, state.data)
        if snapshot.check_suite_count is None:
            logger.info("Could not retrieve PR commit status - Handled: OK")
            logger.debug("raw graphql result for debugging: %s", state.data)
        logger.debug(
            "snapshot: fork=%s draft=%s reviewDecision=%s checkSuites=%s commitStatus=%s mergeStateStatus=%s",
            snapshot.is_fork,
            snapshot.is_draft,
            snapshot.review_decision,
            snapshot.check_suite_count,
            snapshot.commit_status,
            snapshot.merge_state_status,
        )
        return LookupResult.found(snapshot, status=pull.status)


def _failed(result: LookupResult, template: str) -> LookupResult:
    if result.is_found:
        # A found result with an unexpected status still counts as a failure.
        return LookupResult.transport_error(result.status, template.format(status=result.describe_status()))
    return result.model_copy(update={"error": template.format(status=result.describe_status())})
