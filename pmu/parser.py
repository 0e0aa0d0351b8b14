"""Ticket identifier extraction from commit messages.

Jira keys and Linear identifiers share one shape: 2-10 uppercase letters,
a hyphen, digits. Bare, [PROJ-123] and (PROJ-123) forms all match.
"""

import logging
import re
from collections.abc import Iterable

from pmu.models import Commit, ParsedCommit

TICKET_ID_PATTERN = re.compile(r"\b([A-Z]{2,10}-\d+)\b")

_FULL_TICKET_ID = re.compile(r"[A-Z]{2,10}-\d+")

logger = logging.getLogger(__name__)


def _unique(values: Iterable[str]) -> list[str]:
    # dict keeps insertion order, so first occurrence wins
    return list(dict.fromkeys(values))


def extract_ticket_ids(text: str) -> list[str]:
    """Return the unique ticket identifiers in text, in first-seen order."""
    return _unique(TICKET_ID_PATTERN.findall(text))


def is_valid_ticket_id(value: str) -> bool:
    return _FULL_TICKET_ID.fullmatch(value) is not None


def parse_commits(
    commits: Iterable[Commit],
    grouping_key: str | None = None,
    log: logging.Logger | None = None,
) -> list[ParsedCommit]:
    """Extract ticket identifiers per commit.

    With a grouping key (Jira project key or Linear team key) only
    identifiers prefixed by ``KEY-`` are kept. Commits left with no
    identifiers are dropped rather than returned empty.
    """
    log = log or logger
    prefix = f"{grouping_key}-" if grouping_key else None
    parsed: list[ParsedCommit] = []

    for commit in commits:
        ticket_ids = extract_ticket_ids(commit.message)
        if prefix:
            ticket_ids = [t for t in ticket_ids if t.startswith(prefix)]
        if not ticket_ids:
            continue

        parsed.append(
            ParsedCommit(
                sha=commit.id,
                message=commit.message.split("\n", 1)[0],
                author=commit.author.name,
                ticket_ids=tuple(ticket_ids),
            )
        )
        log.debug("Found %d issue(s) in commit %s: %s", len(ticket_ids), commit.id[:7], ", ".join(ticket_ids))

    return parsed


def get_all_ticket_ids(parsed_commits: Iterable[ParsedCommit]) -> list[str]:
    return _unique(t for commit in parsed_commits for t in commit.ticket_ids)
