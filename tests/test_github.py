"""Tests for pmu.github: event payload input and step outputs."""

import json
from pathlib import Path

import pytest

from pmu.errors import ConfigurationError
from pmu.github import commits_from_event, deployment_metadata, load_event, step_outputs, write_outputs
from pmu.models import RunResult


def _push_event() -> dict:
    return {
        "ref": "refs/heads/main",
        "commits": [
            {
                "id": "0123456789abcdef",
                "message": "AB-1 fix bug\n\nLonger body",
                "author": {"name": "Dev", "email": "dev@acme.io", "username": "dev"},
                "url": "https://github.com/acme/app/commit/0123456789abcdef",
            },
            {"id": "fedcba9876543210", "message": "chore", "author": {"name": "Bot", "email": "bot@acme.io"}},
        ],
    }


class TestLoadEvent:
    def test_reads_payload(self, tmp_path: Path) -> None:
        path = tmp_path / "event.json"
        path.write_text(json.dumps(_push_event()))
        assert load_event(path)["ref"] == "refs/heads/main"

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert load_event(tmp_path / "nope.json") == {}
        assert load_event(None) == {}

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "event.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="event payload"):
            load_event(path)


class TestCommitsFromEvent:
    def test_parses_commits(self) -> None:
        commits = commits_from_event(_push_event())
        assert [c.id for c in commits] == ["0123456789abcdef", "fedcba9876543210"]
        assert commits[0].author.email == "dev@acme.io"

    def test_no_commits(self) -> None:
        assert commits_from_event({}) == []
        assert commits_from_event({"commits": None}) == []

    def test_malformed_commit(self) -> None:
        with pytest.raises(ConfigurationError, match="Malformed commit"):
            commits_from_event({"commits": [{"id": "abc"}]})


class TestDeploymentMetadata:
    def test_from_actions_env(self) -> None:
        env = {
            "GITHUB_REF": "refs/heads/release/1.2",
            "GITHUB_ACTOR": "octocat",
            "GITHUB_SHA": "0123456789abcdef",
            "GITHUB_SERVER_URL": "https://github.example.com/",
            "GITHUB_REPOSITORY": "acme/app",
        }
        meta = deployment_metadata("production", env)
        assert meta.branch == "release/1.2"
        assert meta.environment == "production"
        assert meta.deployed_by == "octocat"
        assert meta.commit_sha == "0123456789abcdef"
        assert meta.repo_url == "https://github.example.com/acme/app"

    def test_defaults(self) -> None:
        meta = deployment_metadata("staging", {})
        assert meta.deployed_by == "unknown"
        assert meta.repo_url.startswith("https://github.com/")

    def test_reads_process_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_ACTOR", "someone")
        assert deployment_metadata("staging").deployed_by == "someone"


class TestOutputs:
    def test_step_outputs_without_ts(self) -> None:
        assert step_outputs(RunResult(tickets_found=2)) == {"tickets_found": "2", "tickets_notified": "0"}

    def test_write_outputs_appends(self, tmp_path: Path) -> None:
        output = tmp_path / "github_output"
        output.write_text("previous=1\n")
        write_outputs(RunResult(tickets_found=3, tickets_notified=2, message_ts="1.2"), output)

        assert output.read_text().splitlines() == [
            "previous=1",
            "tickets_found=3",
            "tickets_notified=2",
            "slack_message_ts=1.2",
        ]
