"""Commit → tickets → Slack resolution pipeline."""

import logging
from collections.abc import Sequence

from pmu.log import log_group
from pmu.models import Commit, DeploymentMetadata, Issue, NotificationRecord, RunResult
from pmu.parser import get_all_ticket_ids, parse_commits
from pmu.providers.base import IssueTracker
from pmu.providers.factory import create_tracker, get_grouping_key
from pmu.settings import PmuSettings
from pmu.slack import SlackNotifier

logger = logging.getLogger(__name__)


def build_notifications(issues: Sequence[Issue]) -> list[NotificationRecord]:
    return [
        NotificationRecord(
            ticket=issue.key,
            summary=issue.summary,
            status=issue.status,
            sprint=issue.sprint.name if issue.sprint else None,
            cycle=issue.cycle.name if issue.cycle else None,
            url=issue.url,
            assignee=issue.assignee.name if issue.assignee else None,
        )
        for issue in issues
    ]


def resolve_destination(
    issues: Sequence[Issue],
    settings: PmuSettings,
    tracker: IssueTracker,
    notifier: SlackNotifier,
    log: logging.Logger | None = None,
) -> str:
    """Pick the one Slack user or channel that receives this run's message.

    1. pm_mapping entry for the active project/team key
    2. Slack user owning the first issue's PM email
    3. the configured slack_channel_or_user
    """
    log = log or logger
    grouping_key = get_grouping_key(settings)
    mapping = settings.pm_mapping

    if grouping_key and mapping.get(grouping_key):
        log.info("Using PM mapping for %s project %s: %s", settings.issue_tracker, grouping_key, mapping[grouping_key])
        return mapping[grouping_key]

    if issues:
        # First issue wins; there is no tie-break between differing owners
        owner_email = tracker.get_owner_email(issues[0])
        if owner_email:
            log.info("Found PM email from issue: %s", owner_email)
            user_id = notifier.lookup_user_by_email(owner_email)
            if user_id:
                return user_id

    log.info("Using configured Slack channel/user")
    return settings.slack_channel_or_user


def run_pipeline(
    commits: Sequence[Commit],
    settings: PmuSettings,
    metadata: DeploymentMetadata,
    *,
    tracker: IssueTracker | None = None,
    notifier: SlackNotifier | None = None,
    log: logging.Logger | None = None,
) -> RunResult:
    """Run one notification pass.

    The tracker and notifier are built from settings unless given. Nothing
    touches the network until at least one ticket identifier was found.
    Raises MessagingError if Slack rejects the message.
    """
    log = log or logger

    if not commits:
        log.info("No commits to process, exiting")
        return RunResult()

    grouping_key = get_grouping_key(settings)
    parsed = parse_commits(commits, grouping_key, log=log)
    ticket_ids = get_all_ticket_ids(parsed)
    if not ticket_ids:
        log.info("No %s issues found in commits, exiting", settings.issue_tracker)
        return RunResult()

    found = len(ticket_ids)
    log.info("Found %d unique issue(s): %s", found, ", ".join(ticket_ids))

    tracker = tracker or create_tracker(settings)
    with log_group(f"Fetching {found} issues from {settings.issue_tracker}"):
        issues = tracker.get_issues(ticket_ids)

    if not issues:
        log.warning("No issues found in %s", settings.issue_tracker)
        return RunResult(tickets_found=found)

    filtered = list(issues)
    if settings.only_active_sprint:
        filtered = [issue for issue in filtered if tracker.is_in_active_iteration(issue)]
        log.info("Filtered to %d issue(s) in active %s", len(filtered), tracker.iteration_label)

    if settings.ticket_status_filter:
        filtered = tracker.filter_by_status(filtered, settings.ticket_status_filter)

    if not filtered:
        log.info("No issues match the filter criteria, skipping notification")
        return RunResult(tickets_found=found)

    notifications = build_notifications(filtered)
    notifier = notifier or SlackNotifier.from_settings(settings, logging.getLogger("pmu.slack"))
    destination = resolve_destination(filtered, settings, tracker, notifier, log)

    with log_group("Sending Slack notification"):
        message_ts = notifier.send_notification(destination, notifications, metadata)

    log.info("Successfully notified about %d ticket(s)", len(notifications))
    return RunResult(tickets_found=found, tickets_notified=len(notifications), message_ts=message_ts)
