"""GitHub Actions runtime: push event input and step outputs."""

import json
import logging
import os
import uuid
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from pmu.errors import ConfigurationError
from pmu.models import Commit, DeploymentMetadata, RunResult

logger = logging.getLogger(__name__)


def load_event(event_path: Path | None) -> dict:
    """Read the webhook payload that triggered the workflow ({} when there is none)."""
    if event_path is None or not event_path.exists():
        logger.warning("No GitHub event payload found")
        return {}
    try:
        payload = json.loads(event_path.read_text())
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot read GitHub event payload {event_path}: {exc}") from exc
    return payload if isinstance(payload, dict) else {}


def commits_from_event(payload: Mapping) -> list[Commit]:
    raw = payload.get("commits") or []
    try:
        commits = [Commit.model_validate(c) for c in raw]
    except ValidationError as exc:
        raise ConfigurationError(f"Malformed commit in push event: {exc}") from exc

    if not commits:
        logger.warning("No commits found in push event")
    else:
        logger.info("Processing %d commit(s)", len(commits))
    return commits


def deployment_metadata(environment: str, env: Mapping[str, str] | None = None) -> DeploymentMetadata:
    env = os.environ if env is None else env
    server = env.get("GITHUB_SERVER_URL", "https://github.com").rstrip("/")
    return DeploymentMetadata(
        branch=env.get("GITHUB_REF", "").removeprefix("refs/heads/"),
        environment=environment,
        deployed_by=env.get("GITHUB_ACTOR", "unknown"),
        commit_sha=env.get("GITHUB_SHA", ""),
        repo_url=f"{server}/{env.get('GITHUB_REPOSITORY', '')}",
    )


def _format_output(name: str, value: str) -> str:
    if "\n" not in value:
        return f"{name}={value}\n"
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


def step_outputs(result: RunResult) -> dict[str, str]:
    outputs = {
        "tickets_found": str(result.tickets_found),
        "tickets_notified": str(result.tickets_notified),
    }
    if result.message_ts:
        outputs["slack_message_ts"] = result.message_ts
    return outputs


def write_outputs(result: RunResult, output_path: Path) -> None:
    """Append step outputs to the $GITHUB_OUTPUT file."""
    with output_path.open("a", encoding="utf-8") as fh:
        for name, value in step_outputs(result).items():
            fh.write(_format_output(name, value))
