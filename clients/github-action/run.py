from __future__ import annotations

import argparse
import json
import os
from pathlib import Path

import httpx

from commandgate.action.runtime import ActionsRuntime

POLICY_INPUTS = (
    "command",
    "param_separator",
    "permissions",
    "allowlist",
    "allow_forks",
    "skip_ci",
    "skip_reviews",
    "allow_drafts",
    "fork_review_bypass",
    "allowed_contexts",
    "allow_github_apps",
    "bot_permission",
)


def collect_policy(environ: dict | None = None) -> dict:
    """Read the Action inputs that shape the policy from ``INPUT_*`` variables."""

    environ = os.environ if environ is None else environ
    policy: dict = {}
    for name in POLICY_INPUTS:
        value = environ.get(f"INPUT_{name.upper()}")
        if value is None or value == "":
            continue
        if value.lower() in {"true", "false"} and name not in {"allowlist", "permissions", "allowed_contexts"}:
            policy[name] = value.lower() == "true"
        else:
            policy[name] = value
    return policy


def submit_command(api_url: str, api_token: str, payload: dict) -> dict:
    headers = {"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"}
    resp = httpx.post(f"{api_url}/v1/decisions", json=payload, headers=headers, timeout=30.0)
    resp.raise_for_status()
    return resp.json()


def main() -> None:
    parser = argparse.ArgumentParser(description="Ask a command gate service whether an IssueOps command may run")
    parser.add_argument("--api-url", required=True)
    parser.add_argument("--api-token", required=True)
    parser.add_argument("--repo", default=os.getenv("GITHUB_REPOSITORY"))
    parser.add_argument("--event-path", default=os.getenv("GITHUB_EVENT_PATH"))
    parser.add_argument("--event-name", default=os.getenv("GITHUB_EVENT_NAME", "issue_comment"))
    args = parser.parse_args()

    if not args.repo or not args.event_path:
        raise SystemExit("--repo and --event-path (or GITHUB_REPOSITORY/GITHUB_EVENT_PATH) are required")

    event = json.loads(Path(args.event_path).read_text(encoding="utf-8"))
    payload = {
        "repo": args.repo,
        "event_name": args.event_name,
        "payload": event,
        "policy": collect_policy(),
    }

    response = submit_command(args.api_url, args.api_token, payload)
    write_response_path = os.getenv("COMMANDGATE_WRITE_RESPONSE_PATH")
    if write_response_path:
        out_path = Path(write_response_path)
        if not out_path.parent.exists():
            out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(response, indent=2) + "\n", encoding="utf-8")
    print(json.dumps(response, indent=2))

    runtime = ActionsRuntime()
    runtime.set_output("triggered", response.get("triggered", False))
    decision = response.get("decision") or {}
    if response.get("decision_id"):
        runtime.set_output("decision_id", response["decision_id"])
    if decision.get("allowed"):
        runtime.set_output("continue", "true")
        runtime.set_output("ref", decision.get("ref"))
        runtime.set_output("sha", decision.get("sha"))
    if response.get("outcome") == "failure":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
