"""Redis-backed persistence layer for command decisions."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from redis import Redis

from commandgate.models.domain import DecisionRecord


def _timestamp(dt: datetime) -> float:
    return dt.timestamp()


class DecisionStore:
    """Stores decision records and their signed bundles in Redis."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    def save_decision(self, record: DecisionRecord) -> None:
        pipeline = self._client.pipeline()
        pipeline.set(self._decision_key(record.decision_id), record.model_dump_json())
        pipeline.zadd("decision:index", {record.decision_id: _timestamp(record.decided_at)})
        pipeline.zadd(self._repo_index_key(record.repo), {record.decision_id: _timestamp(record.decided_at)})
        pipeline.execute()

    def get_decision(self, decision_id: str) -> Optional[DecisionRecord]:
        data = self._client.get(self._decision_key(decision_id))
        if not data:
            return None
        return DecisionRecord.model_validate_json(data)

    def list_decisions(self, repo: str | None = None, limit: int = 50) -> list[DecisionRecord]:
        index = self._repo_index_key(repo) if repo else "decision:index"
        ids = self._client.zrevrange(index, 0, max(limit, 1) - 1)
        if not ids:
            return []
        pipeline = self._client.pipeline()
        for decision_id in ids:
            pipeline.get(self._decision_key(decision_id))
        records: list[DecisionRecord] = []
        for blob in pipeline.execute():
            if blob:
                records.append(DecisionRecord.model_validate_json(blob))
        return records

    def save_bundle(self, decision_id: str, bundle: dict) -> None:
        self._client.set(self._bundle_key(decision_id), json.dumps(bundle, sort_keys=True))

    def get_bundle(self, decision_id: str) -> Optional[dict]:
        data = self._client.get(self._bundle_key(decision_id))
        if not data:
            return None
        return json.loads(data)

    @staticmethod
    def _decision_key(decision_id: str) -> str:
        return f"decision:{decision_id}"

    @staticmethod
    def _bundle_key(decision_id: str) -> str:
        return f"decision:{decision_id}:bundle"

    @staticmethod
    def _repo_index_key(repo: str) -> str:
        return f"decision:repo:{repo.lower()}"
