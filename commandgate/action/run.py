"""Entry point for the GitHub Action: the main ``run`` step and the ``post`` step."""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from commandgate.action.runtime import ActionsRuntime
from commandgate.core.config import ActionInputs, PolicyConfig, settings
from commandgate.core.errors import CommandGateError, ConfigurationError, PlatformError
from commandgate.core.logging import configure_logging
from commandgate.github.platform import GitHubPlatform, Platform
from commandgate.models.domain import CommandRequest, GateOutcome, GateResult, LookupResult
from commandgate.services.context import ContextClassifier
from commandgate.services.gate import CommandGate
from commandgate.telemetry import EventSink, NullEventSink, sink_from_settings

logger = logging.getLogger(__name__)

THUMBS_UP = "+1"
THUMBS_DOWN = "-1"


def _require(result: LookupResult, action: str) -> LookupResult:
    if not result.is_found:
        raise PlatformError(
            f"Failed to {action}: {result.describe_status()} {result.error or ''}".strip(),
            status=result.status,
        )
    return result


def _token(inputs: ActionInputs) -> str:
    if inputs.github_token is None or not inputs.github_token.get_secret_value():
        raise ConfigurationError("Input required and not supplied: github_token")
    return inputs.github_token.get_secret_value()


def _platform(runtime: ActionsRuntime, token: str) -> GitHubPlatform:
    return GitHubPlatform(token, base_url=runtime.api_url, retry=settings.github_retry_total)


def swap_reaction(platform: Platform, repo: str, comment_id: int, reaction: str, reaction_id) -> None:
    """Add ``reaction`` to the comment and remove the initial one."""

    _require(platform.create_comment_reaction(repo, comment_id, reaction), f"add the {reaction} reaction")
    if reaction_id:
        _require(
            platform.delete_comment_reaction(repo, comment_id, int(reaction_id)),
            "remove the initial reaction",
        )


class RunStep:
    """Main step: evaluate the comment and export the result to the workflow."""

    def __init__(self, runtime: ActionsRuntime, inputs: ActionInputs, platform: Platform, gate: CommandGate) -> None:
        self._runtime = runtime
        self._inputs = inputs
        self._platform = platform
        self._gate = gate
        self._reaction_id = None

    def execute(self) -> GateResult:
        runtime = self._runtime
        runtime.save_state("isPost", "true")

        request = CommandRequest(repo=runtime.repository, event_name=runtime.event_name, payload=runtime.load_event())
        result = self._gate.run(request, on_triggered=lambda: self._acknowledge(request))

        if result.outcome is GateOutcome.SAFE_EXIT:
            runtime.save_state("bypass", "true")
            if result.context is not None and result.context.valid:
                runtime.set_output("triggered", "false")
            return result

        self._export(result)
        decision = result.decision
        if not decision.allowed:
            self._report_failure(request, decision.message)
            runtime.save_state("bypass", "true")
            logger.error(decision.message)
            return result

        runtime.set_output("continue", "true")
        return result

    def _acknowledge(self, request: CommandRequest) -> None:
        runtime = self._runtime
        runtime.set_output("triggered", "true")
        comment_id = request.comment.get("id")
        reaction = _require(
            self._platform.create_comment_reaction(request.repo, comment_id, self._inputs.reaction),
            "add the initial reaction",
        )
        reaction_id = (reaction.data or {}).get("id")
        runtime.set_output("comment_id", comment_id)
        runtime.save_state("comment_id", comment_id)
        runtime.set_output("initial_reaction_id", reaction_id)
        runtime.save_state("reaction_id", reaction_id)
        runtime.set_output("actor_handle", request.actor_handle())
        self._reaction_id = reaction_id

    def _export(self, result: GateResult) -> None:
        runtime = self._runtime
        runtime.set_output("params", result.params or "")
        runtime.set_output("decision_id", result.decision_id)
        permission = result.permission
        if permission is not None:
            runtime.set_output("actor", permission.actor)
            runtime.set_output("actor_type", permission.actor_kind.value if permission.actor_kind else "")

        decision = result.decision
        runtime.set_output("fork", decision.fork)
        fork = decision.fork_metadata
        if fork is not None:
            runtime.set_output("fork_ref", fork.ref)
            runtime.set_output("fork_label", fork.label)
            runtime.set_output("fork_checkout", fork.checkout)
            runtime.set_output("fork_full_name", fork.full_name)
        if decision.base_ref:
            runtime.set_output("base_ref", decision.base_ref)
        runtime.set_output("ref", decision.ref)
        runtime.save_state("ref", decision.ref)
        runtime.set_output("sha", decision.sha)

    def _report_failure(self, request: CommandRequest, message: str) -> None:
        if request.issue_number is not None:
            _require(
                self._platform.create_issue_comment(request.repo, request.issue_number, message),
                "comment on the issue",
            )
        swap_reaction(
            self._platform,
            request.repo,
            request.comment.get("id"),
            THUMBS_DOWN,
            self._reaction_id,
        )


class PostStep:
    """Post step: swap the initial reaction for the final status."""

    def __init__(self, runtime: ActionsRuntime, inputs: ActionInputs, platform: Platform, config: PolicyConfig) -> None:
        self._runtime = runtime
        self._inputs = inputs
        self._platform = platform
        self._config = config

    def execute(self) -> bool:
        runtime = self._runtime
        if runtime.get_state("bypass") == "true":
            logger.warning("bypass set, exiting")
            return False

        payload = runtime.load_event()
        if not ContextClassifier(self._config).classify(runtime.event_name, payload).valid:
            return False

        if self._inputs.skip_completing:
            logger.info("skip_completing set, exiting")
            return False

        comment_id = runtime.get_state("comment_id")
        if not comment_id:
            raise CommandGateError("no comment_id provided")
        status = self._inputs.status.strip()
        if not status:
            raise CommandGateError("no status provided")

        reaction = THUMBS_UP if status == "success" else THUMBS_DOWN
        swap_reaction(self._platform, runtime.repository, int(comment_id), reaction, runtime.get_state("reaction_id"))
        return True


def _close_sink(sink: EventSink) -> None:
    try:
        sink.close()
    except Exception:
        logger.warning("failed to flush decision events", exc_info=True)


def run(runtime: ActionsRuntime) -> int:
    sink: EventSink = NullEventSink()
    try:
        inputs = ActionInputs()
        token = _token(inputs)
        runtime.mask(token)
        config = PolicyConfig.from_inputs(inputs)
        if config.allowlist_pat is not None:
            runtime.mask(config.allowlist_pat.get_secret_value())
        platform = _platform(runtime, token)
        if runtime.has_env("COMMANDGATE_EVENT_SINK_BACKEND"):
            sink = sink_from_settings()
        gate = CommandGate(
            config,
            platform,
            platform_factory=lambda pat: _platform(runtime, pat),
            sink=sink,
        )
        result = RunStep(runtime, inputs, platform, gate).execute()
    except Exception as exc:
        if runtime.has_env("GITHUB_STATE"):
            runtime.save_state("bypass", "true")
        logger.exception("unexpected error in the run step")
        logger.error(str(exc))
        return 1
    finally:
        _close_sink(sink)
    return 1 if result.outcome is GateOutcome.FAILURE else 0


def post(runtime: ActionsRuntime) -> int:
    try:
        inputs = ActionInputs()
        config = PolicyConfig.from_inputs(inputs)
        token = _token(inputs)
        runtime.mask(token)
        PostStep(runtime, inputs, _platform(runtime, token), config).execute()
    except Exception as exc:
        logger.exception("unexpected error in the post step")
        logger.error(str(exc))
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Gate IssueOps commands on permissions and pull request state")
    parser.add_argument(
        "step",
        nargs="?",
        choices=("run", "post"),
        help="Step to execute; defaults to post when the run step saved isPost state",
    )
    args = parser.parse_args(argv)

    configure_logging(actions=True)
    runtime = ActionsRuntime()
    step = args.step or ("post" if runtime.is_post else "run")
    if step == "post":
        return post(runtime)
    return run(runtime)


if __name__ == "__main__":
    raise SystemExit(main())
