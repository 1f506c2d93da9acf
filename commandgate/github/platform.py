"""GitHub-backed lookups used by the command gate."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional, Protocol
from urllib.parse import quote

import requests
from github import Github, GithubException
from github.Auth import Token

from commandgate.models.domain import LookupResult

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"

PULL_REQUEST_STATE_QUERY = """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      reviewDecision
      mergeStateStatus
      commits(last: 1) {
        nodes {
          commit {
            checkSuites {
              totalCount
            }
            statusCheckRollup {
              state
            }
          }
        }
      }
    }
  }
}
"""


class Platform(Protocol):
    """Subset of GitHub the gate depends on."""

    def get_user(self, username: str) -> LookupResult: ...

    def get_collaborator_permission(self, repo: str, username: str) -> LookupResult: ...

    def get_repo_installation(self, repo: str) -> LookupResult: ...

    def get_org(self, org: str) -> LookupResult: ...

    def get_team(self, org: str, team_slug: str) -> LookupResult: ...

    def check_team_membership(self, org_id: int, team_id: int, username: str) -> LookupResult: ...

    def get_pull(self, repo: str, number: int) -> LookupResult: ...

    def query_pull_request_state(self, repo: str, number: int) -> LookupResult: ...

    def create_comment_reaction(self, repo: str, comment_id: int, content: str) -> LookupResult: ...

    def delete_comment_reaction(self, repo: str, comment_id: int, reaction_id: int) -> LookupResult: ...

    def create_issue_comment(self, repo: str, issue_number: int, body: str) -> LookupResult: ...


class GitHubPlatform:
    """Thin REST/GraphQL wrapper returning ``LookupResult`` values.

    PyGithub's requester handles authentication and retry/backoff; every call
    made here returns a tagged result and never raises for HTTP failures.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str | None = None,
        retry: int | None = None,
    ) -> None:
        auth = Token(token)
        kwargs: dict[str, Any] = {"auth": auth}
        if retry is not None:
            kwargs["retry"] = retry
        if base_url:
            kwargs["base_url"] = base_url.rstrip("/")
        self._client = Github(**kwargs)
        self._graphql_url = _graphql_url(base_url)

    def get_user(self, username: str) -> LookupResult:
        return self._call("GET", f"/users/{_segment(username)}")

    def get_collaborator_permission(self, repo: str, username: str) -> LookupResult:
        return self._call("GET", f"/repos/{repo}/collaborators/{_segment(username)}/permission")

    def get_repo_installation(self, repo: str) -> LookupResult:
        return self._call("GET", f"/repos/{repo}/installation")

    def get_org(self, org: str) -> LookupResult:
        return self._call("GET", f"/orgs/{_segment(org)}")

    def get_team(self, org: str, team_slug: str) -> LookupResult:
        return self._call("GET", f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}")

    def check_team_membership(self, org_id: int, team_id: int, username: str) -> LookupResult:
        return self._call(
            "GET",
            f"/organizations/{org_id}/team/{team_id}/members/{_segment(username)}",
            expected=(204,),
        )

    def get_pull(self, repo: str, number: int) -> LookupResult:
        return self._call("GET", f"/repos/{repo}/pulls/{int(number)}")

    def query_pull_request_state(self, repo: str, number: int) -> LookupResult:
        owner, _, name = repo.partition("/")
        result = self._call(
            "POST",
            self._graphql_url,
            payload={
                "query": PULL_REQUEST_STATE_QUERY,
                "variables": {"owner": owner, "name": name, "number": int(number)},
            },
        )
        if not result.is_found:
            return result
        body = result.data or {}
        if not body.get("data"):
            errors = body.get("errors") or []
            detail = "; ".join(str(error.get("message", error)) for error in errors) or "empty response"
            return LookupResult.transport_error(result.status, detail)
        return LookupResult.found(body["data"], status=result.status or 200)

    def create_comment_reaction(self, repo: str, comment_id: int, content: str) -> LookupResult:
        return self._call(
            "POST",
            f"/repos/{repo}/issues/comments/{int(comment_id)}/reactions",
            payload={"content": content},
            expected=(200, 201),
        )

    def delete_comment_reaction(self, repo: str, comment_id: int, reaction_id: int) -> LookupResult:
        return self._call(
            "DELETE",
            f"/repos/{repo}/issues/comments/{int(comment_id)}/reactions/{int(reaction_id)}",
            expected=(204,),
        )

    def create_issue_comment(self, repo: str, issue_number: int, body: str) -> LookupResult:
        return self._call(
            "POST",
            f"/repos/{repo}/issues/{int(issue_number)}/comments",
            payload={"body": body},
            expected=(201,),
        )

    def _request_json(self, verb: str, url: str, payload: Optional[dict]) -> tuple[int, dict, str]:
        return self._client.requester.requestJson(verb, url, input=payload)

    def _call(
        self,
        verb: str,
        url: str,
        *,
        payload: Optional[dict] = None,
        expected: Iterable[int] = (200,),
    ) -> LookupResult:
        try:
            status, _headers, raw = self._request_json(verb, url, payload)
        except GithubException as exc:
            logger.debug("%s %s failed: %s", verb, url, exc)
            if exc.status == 404:
                return LookupResult.not_found(error=str(exc))
            return LookupResult.transport_error(exc.status, str(exc))
        except requests.exceptions.RequestException as exc:
            logger.debug("%s %s failed: %s", verb, url, exc)
            return LookupResult.transport_error(None, str(exc))

        data = _decode(raw)
        if status in tuple(expected):
            return LookupResult.found(data, status=status)
        if status == 404:
            return LookupResult.not_found(error=_message(data))
        return LookupResult.transport_error(status, _message(data))


def _graphql_url(base_url: str | None) -> str:
    if not base_url or base_url.rstrip("/") == DEFAULT_API_URL:
        return "/graphql"
    base = base_url.rstrip("/")
    # GitHub Enterprise Server serves REST under /api/v3 and GraphQL under /api/graphql.
    if base.endswith("/v3"):
        return f"{base[: -len('/v3')]}/graphql"
    return f"{base}/graphql"


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _decode(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _message(data: Any) -> str | None:
    if isinstance(data, dict):
        return data.get("message")
    return None
