"""Tracker selection from settings."""

import logging

from pmu.errors import ConfigurationError
from pmu.providers.base import IssueTracker
from pmu.providers.jira import JiraTracker
from pmu.providers.linear import LinearTracker
from pmu.settings import PmuSettings, missing_tracker_fields

logger = logging.getLogger(__name__)


def _require(settings: PmuSettings) -> None:
    missing = missing_tracker_fields(settings)
    if missing:
        raise ConfigurationError(f'{missing[0]} is required when issue_tracker is "{settings.issue_tracker}"')


def create_tracker(settings: PmuSettings, log: logging.Logger | None = None) -> IssueTracker:
    """Build the tracker named by settings.issue_tracker.

    Raises ConfigurationError when the selected tracker is unknown or its
    credentials are incomplete.
    """
    log = log or logger
    log.info("Creating %s issue tracker service", settings.issue_tracker)

    match settings.issue_tracker:
        case "jira":
            _require(settings)
            log.info("Initializing Jira service: %s", settings.jira_base_url)
            return JiraTracker(
                settings.jira_base_url,  # type: ignore[arg-type]
                settings.jira_email,  # type: ignore[arg-type]
                settings.jira_api_token.get_secret_value(),  # type: ignore[union-attr]
                pm_field=settings.jira_pm_field,
                logger=logging.getLogger("pmu.jira"),
            )
        case "linear":
            _require(settings)
            log.info("Initializing Linear service")
            if settings.linear_team_key:
                log.info("Filtering by Linear team: %s", settings.linear_team_key)
            return LinearTracker(
                settings.linear_api_key.get_secret_value(),  # type: ignore[union-attr]
                settings.linear_team_key,
                logger=logging.getLogger("pmu.linear"),
            )
        case _:
            raise ConfigurationError(f"Unknown issue tracker: {settings.issue_tracker}")


def get_grouping_key(settings: PmuSettings) -> str | None:
    """Jira project key or Linear team key, whichever tracker is active."""
    match settings.issue_tracker:
        case "jira":
            return settings.jira_project_key
        case "linear":
            return settings.linear_team_key
        case _:
            return None
