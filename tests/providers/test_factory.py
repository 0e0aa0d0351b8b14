"""Tests for pmu.providers.factory."""

import pytest

from pmu.errors import ConfigurationError
from pmu.providers.factory import create_tracker, get_grouping_key
from pmu.providers.jira import JiraTracker
from pmu.providers.linear import LinearTracker
from pmu.settings import PmuSettings


def _settings(**kwargs) -> PmuSettings:
    defaults = {"slack_bot_token": "xoxb-test", "slack_channel_or_user": "C1"}
    defaults.update(kwargs)
    return PmuSettings(**defaults)  # type: ignore[arg-type]


def _jira_settings(**kwargs) -> PmuSettings:
    defaults = {
        "issue_tracker": "jira",
        "jira_base_url": "https://acme.atlassian.net",
        "jira_email": "bot@acme.io",
        "jira_api_token": "jira_token",
        "jira_project_key": "AB",
    }
    defaults.update(kwargs)
    return _settings(**defaults)


class TestCreateTracker:
    def test_jira(self) -> None:
        tracker = create_tracker(_jira_settings(jira_pm_field="customfield_10050"))
        assert isinstance(tracker, JiraTracker)
        assert tracker.base_url == "https://acme.atlassian.net"
        assert tracker.pm_field == "customfield_10050"
        assert tracker.iteration_label == "sprint"

    def test_linear(self) -> None:
        tracker = create_tracker(_settings(issue_tracker="linear", linear_api_key="lin_api_test", linear_team_key="ENG"))
        assert isinstance(tracker, LinearTracker)
        assert tracker.team_key == "ENG"
        assert tracker.iteration_label == "cycle"

    def test_linear_ignores_jira_fields(self) -> None:
        tracker = create_tracker(_settings(issue_tracker="linear", linear_api_key="lin_api_test", jira_email=None))
        assert isinstance(tracker, LinearTracker)

    @pytest.mark.parametrize("field", ["jira_base_url", "jira_email", "jira_api_token", "jira_project_key"])
    def test_jira_missing_field(self, field: str) -> None:
        with pytest.raises(ConfigurationError, match=field):
            create_tracker(_jira_settings(**{field: None}))

    def test_linear_missing_key(self) -> None:
        with pytest.raises(ConfigurationError, match="linear_api_key"):
            create_tracker(_settings(issue_tracker="linear"))


class TestGroupingKey:
    def test_jira_project_key(self) -> None:
        assert get_grouping_key(_jira_settings(linear_team_key="ENG")) == "AB"

    def test_linear_team_key(self) -> None:
        settings = _settings(issue_tracker="linear", linear_api_key="k", linear_team_key="ENG", jira_project_key="AB")
        assert get_grouping_key(settings) == "ENG"

    def test_linear_without_team(self) -> None:
        assert get_grouping_key(_settings(issue_tracker="linear", linear_api_key="k")) is None
