"""Exception hierarchy.

- ConfigurationError: missing or invalid settings, raised before any network call
- TrackerError: an issue-tracker request failed; adapters catch it and drop the ticket
- MessagingError: the Slack send failed after retries
"""

from typing import Any


class PmuError(Exception):
    """Base class for every error the CLI reports as a run failure."""


class ConfigurationError(PmuError):
    pass


class TrackerError(PmuError):
    """A tracker backend request failed or returned malformed data.

    Attributes:
        platform: "jira" or "linear"
        status_code: HTTP status if the server answered
        response: raw response body, if any
    """

    def __init__(
        self,
        message: str,
        platform: str,
        status_code: int | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.platform = platform
        self.status_code = status_code
        self.response = response


class JiraApiError(TrackerError):
    def __init__(self, message: str, status_code: int | None = None, response: Any = None) -> None:
        super().__init__(message, "jira", status_code, response)


class LinearApiError(TrackerError):
    def __init__(self, message: str, status_code: int | None = None, response: Any = None) -> None:
        super().__init__(message, "linear", status_code, response)


class MessagingError(PmuError):
    """Slack rejected the message or could not be reached.

    Attributes:
        code: Slack error code (e.g. "channel_not_found") or HTTP status label
        response: decoded response payload, if any
    """

    def __init__(self, message: str, code: str | None = None, response: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.response = response
