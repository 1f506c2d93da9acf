from __future__ import annotations

import fakeredis
from fastapi.testclient import TestClient

from commandgate.dependencies import get_decision_service
from commandgate.main import create_app
from commandgate.repositories.redis_store import DecisionStore
from commandgate.services.decisions import DecisionService
from commandgate.telemetry import NullEventSink


def _build_test_client(platform) -> tuple[TestClient, DecisionStore]:
    # Reset cached dependencies to avoid cross-test contamination.
    get_decision_service.cache_clear()

    app = create_app()
    store = DecisionStore(fakeredis.FakeRedis(decode_responses=True))
    service = DecisionService(
        store,
        platform,
        platform_factory=lambda _token: platform,
        sink=NullEventSink(),
    )
    app.dependency_overrides[get_decision_service] = lambda: service
    return TestClient(app), store


def _decision_body(event, body=".deploy", **policy):
    return {
        "repo": "octo-org/octo-repo",
        "payload": event(body),
        "policy": {"command": ".deploy", **policy},
    }


def test_healthcheck(platform):
    client, _ = _build_test_client(platform)
    assert client.get("/healthz").json() == {"status": "ok"}


def test_full_decision_flow_via_api(platform, event):
    platform.add_user("monalisa", "write")
    platform.set_pull(review="APPROVED")
    client, store = _build_test_client(platform)

    response = client.post("/v1/decisions", json=_decision_body(event, ".deploy | to=staging"))

    assert response.status_code == 200
    data = response.json()
    assert data["outcome"] == "success"
    assert data["triggered"] is True
    assert data["actor"] == "monalisa"
    assert data["params"] == "to=staging"
    assert data["decision"]["allowed"] is True
    assert data["decision"]["ref"] == "feature"
    decision_id = data["decision_id"]
    assert data["decision_url"].endswith(f"/v1/decisions/{decision_id}")
    assert data["bundle_url"].endswith(f"/v1/decisions/{decision_id}/bundle")

    record = client.get(f"/v1/decisions/{decision_id}")
    assert record.status_code == 200
    assert record.json()["repo"] == "octo-org/octo-repo"
    assert record.json()["decision"]["allowed"] is True

    bundle = client.get(f"/v1/decisions/{decision_id}/bundle")
    assert bundle.status_code == 200
    assert bundle.json()["bundle"]["payloadType"] == "application/vnd.commandgate.decision+json"

    assert [item.decision_id for item in store.list_decisions(repo="Octo-Org/Octo-Repo")] == [decision_id]


def test_denied_decision_is_stored(platform, event):
    platform.add_user("monalisa", "write")
    platform.set_pull(review="REVIEW_REQUIRED", rollup="PENDING")
    client, _ = _build_test_client(platform)

    data = client.post("/v1/decisions", json=_decision_body(event)).json()

    assert data["outcome"] == "failure"
    assert data["decision"]["allowed"] is False
    assert client.get(f"/v1/decisions/{data['decision_id']}").status_code == 200


def test_untriggered_comment_is_not_stored(platform, event):
    client, _ = _build_test_client(platform)

    data = client.post("/v1/decisions", json=_decision_body(event, "just a comment")).json()

    assert data["outcome"] == "safe-exit"
    assert data["bypass"] is True
    assert data["decision_id"] is None
    assert platform.calls == []


def test_invalid_policy_is_rejected(platform, event):
    client, _ = _build_test_client(platform)

    response = client.post("/v1/decisions", json=_decision_body(event, permissions="write,owner"))

    assert response.status_code == 422
    assert "owner" in response.json()["detail"]


def test_missing_platform_is_unavailable(event):
    client, _ = _build_test_client(None)

    response = client.post("/v1/decisions", json=_decision_body(event))

    assert response.status_code == 503


def test_evaluate_endpoint_uses_supplied_facts(platform):
    client, _ = _build_test_client(platform)
    snapshot = {
        "head_ref": "feature",
        "head_sha": "abc123",
        "base_ref": "main",
        "review_decision": "APPROVED",
        "check_suite_count": 2,
        "commit_status": "SUCCESS",
    }

    response = client.post("/v1/decisions/evaluate", json={"context_type": "pull_request", "snapshot": snapshot})

    assert response.status_code == 200
    assert response.json()["allowed"] is True
    assert response.json()["ref"] == "feature"
    assert platform.calls == []


def test_unknown_decision_returns_404(platform):
    client, _ = _build_test_client(platform)

    assert client.get("/v1/decisions/dc_missing").status_code == 404
    missing_bundle = client.get("/v1/decisions/dc_missing/bundle")
    assert missing_bundle.status_code == 404
    assert missing_bundle.json()["detail"] == "Decision bundle not available"


def test_list_decisions_filters_by_repo(platform, event):
    platform.add_user("monalisa", "write")
    platform.set_pull(review="APPROVED")
    client, _ = _build_test_client(platform)

    first = client.post("/v1/decisions", json=_decision_body(event)).json()["decision_id"]
    other = _decision_body(event)
    other["repo"] = "octo-org/other-repo"
    client.post("/v1/decisions", json=other)
    second = client.post("/v1/decisions", json=_decision_body(event)).json()["decision_id"]

    listed = client.get("/v1/decisions", params={"repo": "octo-org/octo-repo"})
    assert listed.status_code == 200
    assert {item["decision_id"] for item in listed.json()} == {first, second}
    assert all(item["repo"] == "octo-org/octo-repo" for item in listed.json())

    assert len(client.get("/v1/decisions").json()) == 3
    assert len(client.get("/v1/decisions", params={"limit": 1}).json()) == 1
    assert client.get("/v1/decisions", params={"limit": 0}).status_code == 422
