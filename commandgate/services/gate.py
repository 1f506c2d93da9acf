"""The command gate: one sequential pipeline per IssueOps comment."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from hashlib import sha256
from typing import Callable, Optional

from nacl.signing import SigningKey

from commandgate.core.config import PolicyConfig, settings
from commandgate.core.identifiers import new_decision_id
from commandgate.github.platform import GitHubPlatform, Platform
from commandgate.models.domain import (
    ContextResult,
    ContextType,
    Decision,
    GateOutcome,
    GateResult,
    PermissionResult,
    PolicyInputs,
    PullRequestSnapshot,
)
from commandgate.services.allowlist import AllowlistResolver, PlatformFactory
from commandgate.services.authorization import ActorAuthorizer
from commandgate.services.command import extract_params, trigger_check
from commandgate.services.context import ContextClassifier
from commandgate.services.policy import BLOCKING_REVIEWS, PolicyEvaluator
from commandgate.services.snapshot import PullRequestSnapshotFetcher
from commandgate.telemetry import (
    EventSink,
    NullEventSink,
    record_allowlist_lookup,
    record_decision,
    record_permission_check,
)

logger = logging.getLogger(__name__)

BUNDLE_PAYLOAD_TYPE = "application/vnd.commandgate.decision+json"


def _now():
    return datetime.now(timezone.utc)


def load_signing_key(encoded: str | None) -> SigningKey | None:
    """Decode a base64 ed25519 seed; an unusable key disables signing."""

    if not encoded:
        return None
    try:
        return SigningKey(base64.b64decode(encoded, validate=True))
    except (binascii.Error, ValueError) as exc:
        logger.warning("decision signing key is not a valid base64 ed25519 seed; bundles will be unsigned: %s", exc)
        return None


def policy_fingerprint(config: PolicyConfig) -> str:
    """Stable digest of the policy a decision was made under (secrets excluded)."""

    body = {
        "command": config.command,
        "param_separator": config.param_separator,
        "permissions": sorted(config.permissions),
        "allowlist_handles": sorted(config.allowlist.handles),
        "allowlist_org_teams": [str(entry) for entry in config.allowlist.org_teams],
        "allowlist_pat": config.allowlist_pat is not None,
        "allow_forks": config.allow_forks,
        "skip_ci": config.skip_ci,
        "skip_reviews": config.skip_reviews,
        "allow_draft_prs": config.allow_draft_prs,
        "fork_review_bypass": config.fork_review_bypass,
        "allowed_contexts": list(config.allowed_contexts),
        "allow_github_apps": config.allow_github_apps,
        "bot_permission": f"{config.bot_permission_key}:{config.bot_permission_value}",
    }
    return sha256(json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")).hexdigest()


def _default_platform_factory(token: str) -> Platform:
    return GitHubPlatform(token, base_url=settings.github_base_url, retry=settings.github_retry_total)


class CommandGate:
    """Runs classify, trigger, authorize, snapshot, allowlist and evaluate in order."""

    def __init__(
        self,
        config: PolicyConfig,
        platform: Platform,
        *,
        platform_factory: PlatformFactory | None = None,
        evaluator: PolicyEvaluator | None = None,
        sink: EventSink | None = None,
        signing_key: str | None = None,
        key_id: str | None = None,
    ) -> None:
        self._config = config
        self._platform = platform
        self._classifier = ContextClassifier(config)
        self._authorizer = ActorAuthorizer(platform, config)
        self._fetcher = PullRequestSnapshotFetcher(platform)
        self._allowlist = AllowlistResolver(config, platform_factory or _default_platform_factory)
        self._evaluator = evaluator or PolicyEvaluator()
        self._sink = sink or NullEventSink()
        self._signing_key = load_signing_key(signing_key if signing_key is not None else settings.decision_signing_key)
        self._key_id = key_id or settings.decision_key_id or "decision-key"

    @property
    def config(self) -> PolicyConfig:
        return self._config

    def run(self, request, *, on_triggered: Optional[Callable[[], None]] = None) -> GateResult:
        """Evaluate one ``CommandRequest``.

        ``on_triggered`` is invoked once the comment is known to carry the
        command, before any permission lookup.
        """

        context = self._classifier.classify(request.event_name, request.payload)
        if not context.valid:
            return GateResult(outcome=GateOutcome.SAFE_EXIT, bypass=True, context=context)

        body = request.comment_body
        if not trigger_check(body, self._config.command, self._config.param_separator):
            logger.info("no command detected in comment - exiting")
            return GateResult(outcome=GateOutcome.SAFE_EXIT, bypass=True, context=context)

        if on_triggered is not None:
            on_triggered()

        params = extract_params(body, self._config.param_separator)
        actor = request.actor_handle()

        permission = self._authorizer.authorize(actor, request.repo)
        record_permission_check(permission.status.value)
        if not permission.allowed:
            decision = Decision.deny(permission.reason or "Permission check failed")
            return self._finish(request, context, permission, decision, params)

        decision = self._decide(request, context, actor)
        return self._finish(request, context, permission, decision, params)

    def _decide(self, request, context: ContextResult, actor: str) -> Decision:
        if context.context_type == ContextType.ISSUE.value:
            return self._evaluator.evaluate(self._policy_inputs(ContextType.ISSUE))

        number = request.issue_number
        if number is None:
            return Decision.deny("Could not retrieve PR info: the event payload has no issue number")

        fetched = self._fetcher.fetch(request.repo, number)
        if not fetched.is_found:
            return Decision.deny(fetched.error or f"Could not retrieve PR info: {fetched.describe_status()}")

        snapshot: PullRequestSnapshot = fetched.data
        inputs = self._policy_inputs(ContextType.PULL_REQUEST, snapshot)
        if self._operator_relevant(inputs, snapshot):
            allowlisted = self._allowlist.is_allowlisted(actor)
            record_allowlist_lookup(allowlisted)
            inputs = inputs.model_copy(update={"is_allowlisted_operator": allowlisted})
        return self._evaluator.evaluate(inputs)

    def _policy_inputs(self, context_type: ContextType, snapshot: PullRequestSnapshot | None = None) -> PolicyInputs:
        return PolicyInputs(
            allow_forks=self._config.allow_forks,
            skip_ci=self._config.skip_ci,
            skip_reviews=self._config.skip_reviews,
            allow_draft_prs=self._config.allow_draft_prs,
            fork_review_bypass=self._config.fork_review_bypass,
            context_type=context_type,
            snapshot=snapshot,
        )

    def _operator_relevant(self, inputs: PolicyInputs, snapshot: PullRequestSnapshot) -> bool:
        # The allowlist is only consulted when it could change the outcome.
        if self._config.allowlist.is_empty:
            return False
        if snapshot.is_fork and not inputs.fork_review_bypass:
            return False
        return PolicyEvaluator.effective_review(inputs, snapshot) in BLOCKING_REVIEWS

    def _finish(
        self,
        request,
        context: ContextResult,
        permission: PermissionResult,
        decision: Decision,
        params: str | None,
    ) -> GateResult:
        decision_id = new_decision_id()
        decided_at = _now()
        bundle = self._build_decision_bundle(
            decision_id=decision_id,
            decided_at=decided_at,
            request=request,
            context=context,
            permission=permission,
            decision=decision,
        )
        record_decision(decision.allowed, context.context_type)
        self._emit_decision_event(decision_id, request, decision, bundle, decided_at)
        if not decision.allowed:
            logger.warning("command denied for %s on %s", permission.actor, request.repo)
        return GateResult(
            outcome=GateOutcome.SUCCESS if decision.allowed else GateOutcome.FAILURE,
            bypass=not decision.allowed,
            triggered=True,
            context=context,
            permission=permission,
            decision=decision,
            params=params,
            decision_id=decision_id,
            decided_at=decided_at,
            bundle=bundle,
        )

    def _build_decision_bundle(
        self,
        *,
        decision_id: str,
        decided_at: datetime,
        request,
        context: ContextResult,
        permission: PermissionResult,
        decision: Decision,
    ) -> dict:
        payload_body = {
            "decision_id": decision_id,
            "repo": request.repo,
            "issue_number": request.issue_number,
            "comment_id": request.comment.get("id"),
            "actor": permission.actor,
            "actor_kind": permission.actor_kind.value if permission.actor_kind else None,
            "permission_status": permission.status.value,
            "context": context.context_type,
            "decided_at": decided_at.isoformat(),
            "allowed": decision.allowed,
            "message_sha256": sha256(decision.message.encode("utf-8")).hexdigest(),
            "ref": decision.ref,
            "sha": decision.sha,
            "fork": decision.fork,
            "review_decision": decision.review_decision,
            "commit_status": decision.commit_status,
            "policy_sha256": policy_fingerprint(self._config),
        }
        canonical = json.dumps(payload_body, sort_keys=True, separators=(",", ":"))
        payload_bytes = canonical.encode("utf-8")
        envelope = {
            "payloadType": BUNDLE_PAYLOAD_TYPE,
            "payload": base64.b64encode(payload_bytes).decode(),
            "payloadSha256": sha256(payload_bytes).hexdigest(),
            "signatures": [],
        }
        if self._signing_key is not None:
            signature = self._signing_key.sign(payload_bytes).signature
            envelope["signatures"].append({"keyid": self._key_id, "sig": base64.b64encode(signature).decode()})
        return envelope

    def _emit_decision_event(
        self,
        decision_id: str,
        request,
        decision: Decision,
        bundle: dict,
        decided_at: datetime,
    ) -> None:
        try:
            self._sink.publish(
                {
                    "event_type": "command_decision",
                    "decision_id": decision_id,
                    "repo": request.repo,
                    "issue_number": request.issue_number,
                    "allowed": decision.allowed,
                    "payload": bundle,
                    "timestamp": decided_at.isoformat(),
                }
            )
        except Exception:
            logger.warning("failed to publish decision event %s", decision_id, exc_info=True)
