from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

import httpx


@dataclass
class CommandCheckRequest:
    """Convenience wrapper for POST /decisions payloads."""

    repo: str
    payload: Dict[str, Any]
    policy: Dict[str, Any]
    event_name: str = "issue_comment"
    actor: str | None = None


@dataclass
class PolicyFacts:
    """Convenience wrapper for POST /decisions/evaluate payloads."""

    context_type: str = "pull_request"
    snapshot: Dict[str, Any] | None = None
    allow_forks: bool = True
    skip_ci: bool = False
    skip_reviews: bool = False
    allow_draft_prs: bool = False
    fork_review_bypass: bool = False
    is_allowlisted_operator: bool = False


class CommandGateClient:
    """Lightweight synchronous client for the command gate API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        headers: Dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        normalized_base = base_url.rstrip("/") + "/"
        # Health lives at the service root, outside the versioned prefix.
        self._health_url = str(httpx.URL(normalized_base).join("/healthz"))
        self._client = httpx.Client(
            base_url=normalized_base,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def __enter__(self) -> "CommandGateClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def evaluate(self, facts: PolicyFacts) -> dict:
        response = self._client.post("decisions/evaluate", json=asdict(facts))
        response.raise_for_status()
        return response.json()

    def check_command(self, request: CommandCheckRequest) -> dict:
        response = self._client.post("decisions", json=asdict(request))
        response.raise_for_status()
        return response.json()

    def list_decisions(self, repo: str | None = None, limit: int = 50) -> list:
        params: Dict[str, Any] = {"limit": limit}
        if repo:
            params["repo"] = repo
        response = self._client.get("decisions", params=params)
        response.raise_for_status()
        return response.json()

    def get_decision(self, decision_id: str) -> dict:
        response = self._client.get(f"decisions/{decision_id}")
        response.raise_for_status()
        return response.json()

    def get_bundle(self, decision_id: str) -> dict:
        response = self._client.get(f"decisions/{decision_id}/bundle")
        response.raise_for_status()
        return response.json()

    def healthcheck(self) -> dict:
        response = self._client.get(self._health_url)
        response.raise_for_status()
        return response.json()
