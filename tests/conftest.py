from __future__ import annotations

import pytest

from commandgate.core.config import ActionInputs, PolicyConfig
from commandgate.models.domain import LookupResult


class FakePlatform:
    """In-memory stand-in for ``GitHubPlatform`` recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.users: dict[str, LookupResult] = {}
        self.permissions: dict[str, LookupResult] = {}
        self.installation = LookupResult.found({"permissions": {"issues": "write"}})
        self.orgs: dict[str, LookupResult] = {}
        self.teams: dict[tuple[str, str], LookupResult] = {}
        self.memberships: dict[tuple[int, int, str], LookupResult] = {}
        self.pull = LookupResult.not_found()
        self.state = LookupResult.not_found()
        self.reaction_ids = iter(range(1000, 2000))
        self.comments: list[tuple[str, int, str]] = []
        self.reactions: list[tuple[str, int, str]] = []
        self.deleted_reactions: list[tuple[str, int, int]] = []

    def add_user(self, login: str, permission: str | None = "write", kind: str = "User") -> None:
        self.users[login] = LookupResult.found({"login": login, "type": kind})
        if permission is not None:
            self.permissions[login] = LookupResult.found({"permission": permission})

    def add_org_team(self, org: str, team: str, org_id: int, team_id: int, members=()) -> None:
        self.orgs[org] = LookupResult.found({"id": org_id, "login": org})
        self.teams[(org, team)] = LookupResult.found({"id": team_id, "slug": team})
        for member in members:
            self.memberships[(org_id, team_id, member)] = LookupResult.found(None, status=204)

    def set_pull(
        self,
        *,
        review=None,
        rollup="SUCCESS",
        suites=1,
        draft=False,
        fork=False,
        head_ref="feature",
        sha="abc123",
    ) -> None:
        head_repo = "fork-owner/repo" if fork else "octo-org/octo-repo"
        self.pull = LookupResult.found(
            {
                "number": 7,
                "draft": draft,
                "head": {
                    "ref": head_ref,
                    "sha": sha,
                    "label": f"{head_repo.split('/')[0]}:{head_ref}",
                    "repo": {"full_name": head_repo, "fork": fork},
                },
                "base": {"ref": "main", "repo": {"full_name": "octo-org/octo-repo"}},
            }
        )
        commit = {"checkSuites": {"totalCount": suites}}
        commit["statusCheckRollup"] = {"state": rollup} if rollup else None
        self.state = LookupResult.found(
            {
                "repository": {
                    "pullRequest": {
                        "reviewDecision": review,
                        "mergeStateStatus": "CLEAN",
                        "commits": {"nodes": [{"commit": commit}]},
                    }
                }
            }
        )

    def get_user(self, username):
        self.calls.append(("get_user", username))
        return self.users.get(username, LookupResult.not_found())

    def get_collaborator_permission(self, repo, username):
        self.calls.append(("get_collaborator_permission", repo, username))
        return self.permissions.get(username, LookupResult.not_found())

    def get_repo_installation(self, repo):
        self.calls.append(("get_repo_installation", repo))
        return self.installation

    def get_org(self, org):
        self.calls.append(("get_org", org))
        return self.orgs.get(org, LookupResult.not_found())

    def get_team(self, org, team_slug):
        self.calls.append(("get_team", org, team_slug))
        return self.teams.get((org, team_slug), LookupResult.not_found())

    def check_team_membership(self, org_id, team_id, username):
        self.calls.append(("check_team_membership", org_id, team_id, username))
        return self.memberships.get((org_id, team_id, username), LookupResult.not_found())

    def get_pull(self, repo, number):
        self.calls.append(("get_pull", repo, number))
        return self.pull

    def query_pull_request_state(self, repo, number):
        self.calls.append(("query_pull_request_state", repo, number))
        return self.state

    def create_comment_reaction(self, repo, comment_id, content):
        self.calls.append(("create_comment_reaction", repo, comment_id, content))
        self.reactions.append((repo, comment_id, content))
        return LookupResult.found({"id": next(self.reaction_ids), "content": content}, status=201)

    def delete_comment_reaction(self, repo, comment_id, reaction_id):
        self.calls.append(("delete_comment_reaction", repo, comment_id, reaction_id))
        self.deleted_reactions.append((repo, comment_id, reaction_id))
        return LookupResult.found(None, status=204)

    def create_issue_comment(self, repo, issue_number, body):
        self.calls.append(("create_issue_comment", repo, issue_number, body))
        self.comments.append((repo, issue_number, body))
        return LookupResult.found({"id": 1}, status=201)

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def make_config():
    def build(**overrides) -> PolicyConfig:
        values = {"command": ".deploy"}
        values.update(overrides)
        return PolicyConfig.from_inputs(ActionInputs(**values))

    return build


def comment_event(body: str = ".deploy", *, login: str = "monalisa", pull_request: bool = True) -> dict:
    issue: dict = {"number": 7}
    if pull_request:
        issue["pull_request"] = {"url": "https://api.github.com/repos/octo-org/octo-repo/pulls/7"}
    return {
        "issue": issue,
        "comment": {"id": 42, "body": body, "user": {"login": login}},
    }


@pytest.fixture
def event():
    return comment_event


def parse_command_file(path) -> dict:
    """Parse a GITHUB_OUTPUT / GITHUB_STATE file written with delimiters."""

    values = {}
    if not path.exists():
        return values
    lines = path.read_text(encoding="utf-8").splitlines()
    index = 0
    while index < len(lines):
        name, delimiter = lines[index].split("<<", 1)
        index += 1
        body = []
        while lines[index] != delimiter:
            body.append(lines[index])
            index += 1
        values[name] = "\n".join(body)
        index += 1
    return values


@pytest.fixture
def command_file():
    return parse_command_file
