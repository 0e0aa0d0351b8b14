"""Slack Web API client: Block Kit formatting and delivery."""

import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from pmu.errors import MessagingError
from pmu.models import DeploymentMetadata, NotificationRecord
from pmu.settings import PmuSettings

BASE_URL = "https://slack.com/api"

DEFAULT_RETRY_BACKOFF = (1.0, 2.0, 4.0)

_STATUS_EMOJI = (
    (("done", "complete"), "✅"),
    (("progress", "development"), "🔄"),
    (("review", "testing"), "👀"),
    (("todo", "backlog"), "📋"),
    (("blocked",), "🚫"),
)


def status_emoji(status: str) -> str:
    lowered = status.lower()
    for needles, emoji in _STATUS_EMOJI:
        if any(n in lowered for n in needles):
            return emoji
    return "📌"


def _plural(count: int) -> str:
    return f"{count} ticket{'s' if count != 1 else ''}"


def _ticket_line(record: NotificationRecord) -> str:
    if record.sprint:
        iteration = f"Sprint: {record.sprint}"
    elif record.cycle:
        iteration = f"Cycle: {record.cycle}"
    else:
        iteration = "No sprint/cycle"

    line = f"*<{record.url}|{record.ticket}>* - {record.summary}\n{status_emoji(record.status)} {record.status} | {iteration}"
    if record.assignee:
        line += f" | Assignee: {record.assignee}"
    return line


def build_blocks(
    notifications: Sequence[NotificationRecord],
    metadata: DeploymentMetadata,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Render the deployment summary as Block Kit blocks."""
    now = now or datetime.now(UTC)
    short_sha = metadata.commit_sha[:7]

    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "🚀 New Deployment Ready for Testing", "emoji": True},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Branch:*\n{metadata.branch}"},
                {"type": "mrkdwn", "text": f"*Environment:*\n{metadata.environment}"},
                {"type": "mrkdwn", "text": f"*Deployed by:*\n{metadata.deployed_by}"},
                {
                    "type": "mrkdwn",
                    "text": f"*Commit:*\n<{metadata.repo_url}/commit/{metadata.commit_sha}|{short_sha}>",
                },
            ],
        },
        {"type": "divider"},
        {"type": "section", "text": {"type": "mrkdwn", "text": "*Tickets Ready for Testing:*"}},
    ]

    for record in notifications:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": _ticket_line(record)}})

    # <!date^epoch^format|fallback> renders in each reader's timezone
    date_token = f"<!date^{int(now.timestamp())}^{{date_short_pretty}} at {{time}}|{now.isoformat()}>"
    blocks += [
        {"type": "divider"},
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"_{_plural(len(notifications))} deployed at {date_token}_"}],
        },
    ]
    return blocks


class SlackNotifier:
    def __init__(
        self,
        token: str,
        *,
        timeout: float = 30,
        max_attempts: int = 3,
        retry_backoff: Sequence[float] = DEFAULT_RETRY_BACKOFF,
        logger: logging.Logger | None = None,
    ) -> None:
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=utf-8",
        }
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = tuple(retry_backoff)
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings: PmuSettings, logger: logging.Logger | None = None) -> "SlackNotifier":
        return cls(settings.slack_bot_token.get_secret_value(), logger=logger)

    def _call(self, method: str, *, json: dict | None = None, params: dict | None = None) -> dict:
        """Single Web API call. Raises httpx errors and MessagingError for ok=false."""
        if params is not None:
            response = httpx.get(f"{BASE_URL}/{method}", headers=self._headers, params=params, timeout=self._timeout)
        else:
            response = httpx.post(f"{BASE_URL}/{method}", headers=self._headers, json=json, timeout=self._timeout)
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict):
            raise MessagingError("Slack API returned an unexpected payload", "invalid_response", data)
        if not data.get("ok"):
            code = data.get("error", "unknown_error")
            raise MessagingError(f"Slack API error: {code}", code, data)
        return data

    def _backoff(self, attempt: int, response: httpx.Response | None) -> float:
        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        if not self._retry_backoff:
            return 0.0
        return self._retry_backoff[min(attempt, len(self._retry_backoff) - 1)]

    def _post_message(self, payload: dict) -> dict:
        """chat.postMessage with bounded retries on transport errors, 429 and 5xx."""
        last_error = MessagingError("Slack send was not attempted")

        for attempt in range(self._max_attempts):
            failed_response: httpx.Response | None = None
            try:
                return self._call("chat.postMessage", json=payload)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                last_error = MessagingError(f"Slack API error: HTTP {status}", f"http_{status}", exc.response.text)
                if status != 429 and status < 500:
                    raise last_error from exc
                failed_response = exc.response
            except httpx.HTTPError as exc:
                last_error = MessagingError(f"Slack API error: {exc}", "transport_error")
            except ValueError as exc:
                raise MessagingError("Slack API returned malformed JSON", "invalid_response") from exc

            if attempt + 1 < self._max_attempts:
                delay = self._backoff(attempt, failed_response)
                self.logger.warning(
                    "Slack send failed (%s), retrying in %.1fs (attempt %d/%d)",
                    last_error,
                    delay,
                    attempt + 1,
                    self._max_attempts,
                )
                time.sleep(delay)

        raise last_error

    def send_notification(
        self,
        channel: str,
        notifications: Sequence[NotificationRecord],
        metadata: DeploymentMetadata,
    ) -> str | None:
        """Post the deployment summary; returns the message ts."""
        self.logger.info("Sending Slack notification to %s (%d tickets)", channel, len(notifications))
        payload = {
            "channel": channel,
            "text": f"🚀 {_plural(len(notifications))} deployed to {metadata.environment}",
            "blocks": build_blocks(notifications, metadata),
            "unfurl_links": False,
            "unfurl_media": False,
        }
        try:
            data = self._post_message(payload)
        except MessagingError as exc:
            self.logger.error("Failed to send Slack notification: %s", exc)
            raise

        ts = data.get("ts")
        self.logger.info("Message sent successfully (ts: %s)", ts)
        return ts

    def send_simple_message(self, channel: str, text: str) -> str | None:
        try:
            data = self._post_message({"channel": channel, "text": text})
        except MessagingError as exc:
            self.logger.error("Failed to send simple message: %s", exc)
            raise
        return data.get("ts")

    def lookup_user_by_email(self, email: str) -> str | None:
        """Resolve a Slack user ID from an email address; None on any failure."""
        try:
            data = self._call("users.lookupByEmail", params={"email": email})
        except MessagingError as exc:
            self.logger.warning("User not found for email %s: %s", email, exc.code)
            return None
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error("Failed to lookup user by email %s: %s", email, exc)
            return None

        user = data.get("user")
        user_id = user.get("id") if isinstance(user, dict) else None
        if user_id:
            self.logger.debug("Found user %s for email %s", user_id, email)
        return user_id

    def validate_access(self, channel: str) -> bool:
        """Check the bot can see the channel or user conversation."""
        try:
            self._call("conversations.info", params={"channel": channel})
        except (MessagingError, httpx.HTTPError, ValueError) as exc:
            self.logger.warning("Cannot access channel/user %s: %s", channel, exc)
            return False
        return True
