"""Jira REST API v3 tracker."""

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from pmu.errors import JiraApiError, TrackerError
from pmu.models import Issue, Person, Sprint
from pmu.providers.base import IssueTracker

SEARCH_PATH = "/rest/api/3/search"
MAX_RESULTS = 100
DEFAULT_PM_FIELD = "customfield_pm"


class JiraTracker(IssueTracker):
    iteration_label = "sprint"

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        *,
        pm_field: str = DEFAULT_PM_FIELD,
        timeout: float = 30,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.base_url = base_url.rstrip("/")
        self.pm_field = pm_field
        self._auth = httpx.BasicAuth(email, api_token)
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._timeout = timeout

    @property
    def _fields(self) -> list[str]:
        return ["summary", "status", "assignee", "reporter", "sprint", self.pm_field]

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        self.logger.debug("Making request to %s", path)
        try:
            response = httpx.request(
                method,
                f"{self.base_url}{path}",
                auth=self._auth,
                headers=self._headers,
                timeout=self._timeout,
                **kwargs,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise JiraApiError(
                f"Jira API error: HTTP {exc.response.status_code} for {path}",
                exc.response.status_code,
                exc.response.text,
            ) from exc
        except httpx.HTTPError as exc:
            raise JiraApiError(f"Jira API error: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise JiraApiError("Jira API returned malformed JSON", response.status_code, response.text) from exc

    # ------------------------------------------------------------------
    # Raw Jira lookups
    # ------------------------------------------------------------------

    def get_issue(self, key: str) -> dict | None:
        """Fetch one raw Jira issue. Returns None when it is missing or the call fails."""
        try:
            node = self._request("GET", f"/rest/api/3/issue/{key}", params={"fields": ",".join(self._fields)})
        except JiraApiError as exc:
            if exc.status_code == 404:
                self.logger.warning("Issue %s not found", key)
            else:
                self.logger.error("Failed to get issue %s: %s", key, exc)
            return None
        if not isinstance(node, dict):
            self.logger.error("Failed to get issue %s: unexpected payload", key)
            return None

        self.logger.debug("Retrieved issue %s", key)
        return node

    def get_jira_issues(self, ids: Sequence[str]) -> list[dict]:
        """Run one JQL search for all keys. Raises JiraApiError."""
        if not ids:
            return []

        data = self._request(
            "POST",
            SEARCH_PATH,
            json={
                "jql": f"key in ({','.join(ids)})",
                "fields": self._fields,
                "maxResults": MAX_RESULTS,
            },
        )
        issues = data.get("issues") if isinstance(data, dict) else None
        if not isinstance(issues, list):
            raise JiraApiError("Jira search response has no 'issues' list", response=data)
        return issues

    def get_active_sprint(self, board_id: int | None = None) -> dict | None:
        """Return the active sprint of a board, or None."""
        if not board_id:
            self.logger.debug("No board ID provided, sprint comes from the issues themselves")
            return None

        try:
            data = self._request(
                "GET",
                f"/rest/agile/1.0/board/{board_id}/sprint",
                params={"state": "active", "maxResults": 1},
            )
        except JiraApiError as exc:
            self.logger.error("Failed to get active sprint: %s", exc)
            return None

        values = data.get("values") if isinstance(data, dict) else None
        active = [s for s in values or [] if isinstance(s, dict) and s.get("state") == "active"]
        if not active:
            self.logger.warning("No active sprint found for board %s", board_id)
            return None

        sprint = active[0]
        self.logger.info("Found active sprint: %s (ID: %s)", sprint.get("name"), sprint.get("id"))
        return sprint

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _sprint_from_field(self, raw: Any, key: str) -> Sprint | None:
        if isinstance(raw, list):
            # Some Jira instances return every sprint the issue has been in;
            # older Server versions send them as opaque strings
            sprints = [s for s in raw if isinstance(s, dict)]
            active = [s for s in sprints if str(s.get("state")).lower() == "active"]
            if active:
                raw = active[0]
            else:
                raw = sprints[-1] if sprints else raw
        if not isinstance(raw, dict):
            if raw:
                self.logger.warning("Ignoring unreadable sprint field on %s", key)
            return None

        try:
            return Sprint(name=raw["name"], state=str(raw["state"]).lower())
        except (KeyError, ValidationError):
            self.logger.warning("Ignoring sprint on %s with unexpected state %r", key, raw.get("state"))
            return None

    def _owner_email(self, node: dict) -> str | None:
        """Custom PM field first, reporter second."""
        fields = node["fields"]
        for candidate in (fields.get(self.pm_field), fields.get("reporter")):
            if isinstance(candidate, dict) and candidate.get("emailAddress"):
                return candidate["emailAddress"]

        self.logger.debug("No PM email found for issue %s", node.get("key"))
        return None

    def _issue_from_node(self, node: dict) -> Issue:
        fields = node["fields"]
        assignee = fields.get("assignee")
        return Issue(
            id=str(node["id"]),
            key=node["key"],
            summary=fields["summary"],
            status=fields["status"]["name"],
            assignee=Person(name=assignee["displayName"], email=assignee.get("emailAddress")) if assignee else None,
            sprint=self._sprint_from_field(fields.get("sprint"), node["key"]),
            cycle=None,
            owner_email=self._owner_email(node),
            url=self.get_issue_url(node["key"]),
        )

    # ------------------------------------------------------------------
    # IssueTracker
    # ------------------------------------------------------------------

    def get_issues(self, ids: Sequence[str]) -> list[Issue]:
        if not ids:
            return []

        self.logger.info("Fetching %d issues from Jira", len(ids))
        try:
            nodes = self.get_jira_issues(ids)
        except TrackerError as exc:
            self.logger.error("Failed to get issues: %s", exc)
            return []

        issues = []
        for node in nodes:
            try:
                issues.append(self._issue_from_node(node))
            except (AttributeError, KeyError, TypeError, ValidationError) as exc:
                key = node.get("key", "?") if isinstance(node, dict) else "?"
                self.logger.warning("Skipping malformed Jira issue %s: %s", key, exc)

        self.logger.info("Found %d issues", len(issues))
        return issues

    def is_in_active_iteration(self, issue: Issue) -> bool:
        if issue.sprint is None:
            self.logger.debug("Issue %s has no sprint assigned", issue.key)
            return False

        self.logger.debug("Issue %s sprint status: %s (%s)", issue.key, issue.sprint.name, issue.sprint.state)
        return issue.sprint.state == "active"

    def get_owner_email(self, issue: Issue) -> str | None:
        return issue.owner_email

    def get_issue_url(self, identifier: str) -> str:
        return f"{self.base_url}/browse/{identifier}"
