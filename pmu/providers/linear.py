"""Linear GraphQL API tracker."""

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from pmu.errors import LinearApiError
from pmu.models import Cycle, CycleState, Issue, Person
from pmu.providers.base import IssueTracker

ENDPOINT = "https://api.linear.app/graphql"

_ISSUE_FIELDS = """
    id
    identifier
    title
    url
    state { name type }
    assignee { name email }
    cycle { id name startsAt endsAt completedAt }
    team { key name }
"""

_GET_ISSUE = f"""
query GetIssue($identifier: String!) {{
  issue(id: $identifier) {{{_ISSUE_FIELDS}  }}
}}
"""

_SEARCH_ISSUES = f"""
query SearchIssues($filter: IssueFilter!) {{
  issues(filter: $filter, first: 100) {{
    nodes {{{_ISSUE_FIELDS}    }}
  }}
}}
"""

_GET_ACTIVE_CYCLE = """
query GetActiveCycle($teamId: String!) {
  team(id: $teamId) {
    activeCycle { id name startsAt endsAt completedAt }
  }
}
"""


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def cycle_state(cycle: dict, now: datetime) -> CycleState:
    """Derive a cycle's state from its dates; Linear does not store one."""
    if cycle.get("completedAt"):
        return "completed"
    if now < _parse_timestamp(cycle["startsAt"]):
        return "unstarted"
    if now <= _parse_timestamp(cycle["endsAt"]):
        return "started"
    return "completed"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LinearTracker(IssueTracker):
    iteration_label = "cycle"

    def __init__(
        self,
        api_key: str,
        team_key: str | None = None,
        *,
        timeout: float = 30,
        now: Callable[[], datetime] = _utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.team_key = team_key
        self._api_key = api_key
        self._timeout = timeout
        self._now = now

    def _post(self, query: str, variables: dict) -> dict:
        """POST a GraphQL document and return the decoded body, errors included."""
        try:
            response = httpx.post(
                ENDPOINT,
                json={"query": query, "variables": variables},
                headers={
                    "Authorization": self._api_key,
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise LinearApiError(
                f"Linear API error: HTTP {exc.response.status_code}",
                exc.response.status_code,
                exc.response.text,
            ) from exc
        except httpx.HTTPError as exc:
            raise LinearApiError(f"Linear API error: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise LinearApiError("Linear API returned malformed JSON", response.status_code, response.text) from exc
        if not isinstance(body, dict):
            raise LinearApiError("Linear API returned an unexpected payload", response.status_code, body)
        return body

    def _issue_from_node(self, node: dict) -> Issue:
        assignee = node.get("assignee")
        cycle = node.get("cycle")
        return Issue(
            id=node["id"],
            key=node["identifier"],
            summary=node["title"],
            status=node["state"]["name"],
            assignee=Person(name=assignee["name"], email=assignee.get("email")) if assignee else None,
            sprint=None,
            cycle=Cycle(name=cycle.get("name") or "", state=cycle_state(cycle, self._now())) if cycle else None,
            owner_email=None,
            url=node.get("url") or self.get_issue_url(node["identifier"]),
        )

    def get_issue(self, identifier: str) -> Issue | None:
        """Fetch one issue; every failure mode resolves to None."""
        try:
            body = self._post(_GET_ISSUE, {"identifier": identifier})
        except LinearApiError as exc:
            self.logger.error("Failed to get issue %s: %s", identifier, exc)
            return None

        if body.get("errors"):
            self.logger.warning("GraphQL errors for %s: %s", identifier, body["errors"])
            return None

        data = body.get("data")
        node = data.get("issue") if isinstance(data, dict) else None
        if not node:
            self.logger.warning("Issue %s not found", identifier)
            return None

        if not isinstance(node, dict):
            self.logger.warning("Skipping malformed Linear issue %s: got %s", identifier, type(node).__name__)
            return None

        try:
            team = node.get("team") or {}
            if self.team_key and team.get("key") != self.team_key:
                self.logger.debug("Issue %s is not in team %s, skipping", identifier, self.team_key)
                return None
            issue = self._issue_from_node(node)
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as exc:
            self.logger.warning("Skipping malformed Linear issue %s: %s", identifier, exc)
            return None

        self.logger.debug("Retrieved issue %s: %s", identifier, issue.summary)
        return issue

    def search_issues(self, identifiers: Sequence[str]) -> list[Issue]:
        """Bulk lookup through the issues(filter:) connection, capped at 100 results."""
        if not identifiers:
            return []

        issue_filter: dict[str, Any] = {"or": [{"identifier": {"eq": i}} for i in identifiers]}
        if self.team_key:
            issue_filter["team"] = {"key": {"eq": self.team_key}}

        try:
            body = self._post(_SEARCH_ISSUES, {"filter": issue_filter})
        except LinearApiError as exc:
            self.logger.error("Failed to search issues: %s", exc)
            return []

        if body.get("errors"):
            self.logger.warning("GraphQL errors: %s", body["errors"])
            return []

        try:
            nodes = body["data"]["issues"]["nodes"]
            issues = [self._issue_from_node(n) for n in nodes]
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as exc:
            self.logger.error("Failed to search issues: malformed response (%s)", exc)
            return []

        self.logger.info("Found %d issues via search", len(issues))
        return issues

    def get_active_cycle(self, team_id: str) -> dict | None:
        try:
            body = self._post(_GET_ACTIVE_CYCLE, {"teamId": team_id})
        except LinearApiError as exc:
            self.logger.error("Failed to get active cycle: %s", exc)
            return None

        if body.get("errors"):
            self.logger.warning("GraphQL errors: %s", body["errors"])
            return None

        data = body.get("data")
        team = data.get("team") if isinstance(data, dict) else None
        active = team.get("activeCycle") if isinstance(team, dict) else None
        if not isinstance(active, dict):
            return None
        self.logger.info("Found active cycle: %s", active.get("name"))
        return active

    # ------------------------------------------------------------------
    # IssueTracker
    # ------------------------------------------------------------------

    def get_issues(self, ids: Sequence[str]) -> list[Issue]:
        if not ids:
            return []

        self.logger.info("Fetching %d issues from Linear", len(ids))
        issues: list[Issue] = []
        # One request per identifier, in order
        for identifier in ids:
            issue = self.get_issue(identifier)
            if issue is not None:
                issues.append(issue)

        self.logger.info("Found %d issues", len(issues))
        return issues

    def is_in_active_iteration(self, issue: Issue) -> bool:
        if issue.cycle is None:
            self.logger.debug("Issue %s has no cycle assigned", issue.key)
            return False

        self.logger.debug("Issue %s cycle status: %s (%s)", issue.key, issue.cycle.name, issue.cycle.state)
        return issue.cycle.state == "started"

    def get_owner_email(self, issue: Issue) -> str | None:
        if issue.owner_email is None:
            self.logger.debug("No PM email for issue %s (Linear has no built-in PM field)", issue.key)
        return issue.owner_email

    def get_issue_url(self, identifier: str) -> str:
        return f"https://linear.app/issue/{identifier}"
