"""Decision service backing the HTTP API."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import SecretStr

from commandgate.core.config import PolicyConfig
from commandgate.core.errors import PlatformError
from commandgate.github.platform import Platform
from commandgate.models.domain import CommandRequest, Decision, DecisionRecord, GateResult, PolicyInputs
from commandgate.repositories.redis_store import DecisionStore
from commandgate.schemas.decisions import CommandDecisionRequest
from commandgate.services.allowlist import PlatformFactory
from commandgate.services.gate import CommandGate
from commandgate.services.policy import PolicyEvaluator
from commandgate.telemetry import EventSink, NullEventSink, record_decision

logger = logging.getLogger(__name__)


class DecisionService:
    """Runs the gate for API callers and keeps an audit trail of its decisions."""

    def __init__(
        self,
        store: DecisionStore,
        platform: Optional[Platform],
        *,
        platform_factory: PlatformFactory | None = None,
        sink: EventSink | None = None,
        evaluator: PolicyEvaluator | None = None,
        allowlist_pat: SecretStr | None = None,
    ) -> None:
        self._store = store
        self._allowlist_pat = allowlist_pat
        self._platform = platform
        self._platform_factory = platform_factory
        self._sink = sink or NullEventSink()
        self._evaluator = evaluator or PolicyEvaluator()

    def evaluate(self, inputs: PolicyInputs) -> Decision:
        """Apply the pull request policy to caller-supplied facts; no GitHub calls."""

        decision = self._evaluator.evaluate(inputs)
        record_decision(decision.allowed, inputs.context_type.value)
        return decision

    def decide(self, payload: CommandDecisionRequest) -> GateResult:
        if self._platform is None:
            raise PlatformError("COMMANDGATE_GITHUB_TOKEN is not configured", status=503)

        options = payload.policy.model_copy(update={"allowlist_pat": self._allowlist_pat})
        config = PolicyConfig.from_inputs(options)
        gate = self._build_gate(config)
        request = CommandRequest(
            repo=payload.repo,
            event_name=payload.event_name,
            payload=payload.payload,
            actor=payload.actor,
        )
        result = gate.run(request)
        if result.decision_id is not None:
            self._persist(request, result)
        return result

    def list_decisions(self, repo: str | None = None, limit: int = 50) -> list[DecisionRecord]:
        return self._store.list_decisions(repo=repo, limit=limit)

    def get_decision(self, decision_id: str) -> Optional[DecisionRecord]:
        return self._store.get_decision(decision_id)

    def get_bundle(self, decision_id: str) -> Optional[dict]:
        return self._store.get_bundle(decision_id)

    def _build_gate(self, config: PolicyConfig) -> CommandGate:
        return CommandGate(
            config,
            self._platform,
            platform_factory=self._platform_factory,
            evaluator=self._evaluator,
            sink=self._sink,
        )

    def _persist(self, request: CommandRequest, result: GateResult) -> None:
        permission = result.permission
        record = DecisionRecord(
            decision_id=result.decision_id,
            repo=request.repo,
            issue_number=request.issue_number,
            comment_id=request.comment.get("id"),
            actor=permission.actor if permission else request.actor_handle(),
            actor_kind=permission.actor_kind if permission else None,
            context_type=result.context.context_type if result.context else None,
            permission_status=permission.status if permission else None,
            decided_at=result.decided_at,
            decision=result.decision,
        )
        self._store.save_decision(record)
        if result.bundle is not None:
            self._store.save_bundle(result.decision_id, result.bundle)
        logger.info("stored decision %s for %s (allowed=%s)", record.decision_id, record.repo, record.decision.allowed)
