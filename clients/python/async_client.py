from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import httpx

from .client import CommandCheckRequest, PolicyFacts


class AsyncCommandGateClient:
    """Async variant of the command gate API client."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        headers: Dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        normalized_base = base_url.rstrip("/") + "/"
        # Health lives at the service root, outside the versioned prefix.
        self._health_url = str(httpx.URL(normalized_base).join("/healthz"))
        self._client = httpx.AsyncClient(
            base_url=normalized_base,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "AsyncCommandGateClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def evaluate(self, facts: PolicyFacts) -> dict:
        response = await self._client.post("decisions/evaluate", json=asdict(facts))
        response.raise_for_status()
        return response.json()

    async def check_command(self, request: CommandCheckRequest) -> dict:
        response = await self._client.post("decisions", json=asdict(request))
        response.raise_for_status()
        return response.json()

    async def list_decisions(self, repo: str | None = None, limit: int = 50) -> list:
        params: Dict[str, Any] = {"limit": limit}
        if repo:
            params["repo"] = repo
        response = await self._client.get("decisions", params=params)
        response.raise_for_status()
        return response.json()

    async def get_decision(self, decision_id: str) -> dict:
        response = await self._client.get(f"decisions/{decision_id}")
        response.raise_for_status()
        return response.json()

    async def get_bundle(self, decision_id: str) -> dict:
        response = await self._client.get(f"decisions/{decision_id}/bundle")
        response.raise_for_status()
        return response.json()

    async def healthcheck(self) -> dict:
        response = await self._client.get(self._health_url)
        response.raise_for_status()
        return response.json()
