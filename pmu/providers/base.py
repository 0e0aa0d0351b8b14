"""Abstract base class for issue trackers."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from pmu.models import Issue


class IssueTracker(ABC):
    """Capability set shared by the Jira and Linear adapters.

    The pipeline only talks to this interface; which backend sits behind it
    is decided once by providers.factory.create_tracker.
    """

    # "sprint" for Jira, "cycle" for Linear; only used in log wording
    iteration_label: str = "iteration"

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(type(self).__module__)

    @abstractmethod
    def get_issues(self, ids: Sequence[str]) -> list[Issue]:
        """Fetch issues; identifiers that are missing or unauthorized are left out."""

    @abstractmethod
    def is_in_active_iteration(self, issue: Issue) -> bool: ...

    @abstractmethod
    def get_owner_email(self, issue: Issue) -> str | None: ...

    @abstractmethod
    def get_issue_url(self, identifier: str) -> str: ...

    def filter_by_status(self, issues: Sequence[Issue], allowed_statuses: Sequence[str] | None = None) -> list[Issue]:
        if not allowed_statuses:
            return list(issues)

        filtered = [issue for issue in issues if issue.status in allowed_statuses]
        self.logger.info(
            "Filtered %d issues to %d by status: %s",
            len(issues),
            len(filtered),
            ", ".join(allowed_statuses),
        )
        return filtered
