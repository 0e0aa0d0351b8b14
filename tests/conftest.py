"""Shared test fixtures."""

import os

import pytest

import pmu.settings as settings_module
from pmu.models import Cycle, DeploymentMetadata, Issue, Person, Sprint


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Keep host INPUT_* / Actions variables and the TOML cache out of tests."""
    for name in list(os.environ):
        if name.startswith(("INPUT_", "GITHUB_", "PMU_")) or name == "RUNNER_DEBUG":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    settings_module._load_toml.cache_clear()
    yield
    settings_module._load_toml.cache_clear()


@pytest.fixture
def jira_issue() -> Issue:
    return Issue(
        id="10001",
        key="AB-1",
        summary="Fix bug",
        status="In Progress",
        assignee=Person(name="Jane Doe", email="jane@acme.io"),
        sprint=Sprint(name="Sprint 42", state="active"),
        owner_email="pm@acme.io",
        url="https://acme.atlassian.net/browse/AB-1",
    )


@pytest.fixture
def linear_issue() -> Issue:
    return Issue(
        id="issue_abc",
        key="ENG-123",
        summary="Fix null check",
        status="In Review",
        assignee=Person(name="Sam Lee", email="sam@acme.io"),
        cycle=Cycle(name="Cycle 7", state="started"),
        url="https://linear.app/acme/issue/ENG-123",
    )


@pytest.fixture
def metadata() -> DeploymentMetadata:
    return DeploymentMetadata(
        branch="main",
        environment="staging",
        deployed_by="octocat",
        commit_sha="0123456789abcdef",
        repo_url="https://github.com/acme/app",
    )
