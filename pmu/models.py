"""Shared pydantic models: the contract between providers, the pipeline and slack.py."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, model_validator

SprintState = Literal["active", "future", "closed"]
CycleState = Literal["started", "unstarted", "completed"]


class Person(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None


class Sprint(BaseModel):
    """Jira sprint as embedded on an issue."""

    model_config = ConfigDict(frozen=True)

    name: str
    state: SprintState


class Cycle(BaseModel):
    """Linear cycle; state is derived from its dates at fetch time."""

    model_config = ConfigDict(frozen=True)

    name: str
    state: CycleState


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # backend-internal ID
    key: str  # PROJ-123 / ENG-123
    summary: str
    status: str  # backend-native status name
    assignee: Person | None = None
    sprint: Sprint | None = None  # Jira only
    cycle: Cycle | None = None  # Linear only
    owner_email: str | None = None
    url: str

    @model_validator(mode="after")
    def _single_iteration(self) -> "Issue":
        if self.sprint is not None and self.cycle is not None:
            raise ValueError(f"Issue {self.key} cannot carry both a sprint and a cycle")
        return self

    @property
    def iteration(self) -> Sprint | Cycle | None:
        return self.sprint or self.cycle


class CommitAuthor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    email: str | None = None


class Commit(BaseModel):
    """A commit as it appears in a GitHub push event payload."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    message: str
    author: CommitAuthor


class ParsedCommit(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    message: str  # first line only
    author: str
    ticket_ids: tuple[str, ...]


class NotificationRecord(BaseModel):
    """One ticket line in the Slack message."""

    model_config = ConfigDict(frozen=True)

    ticket: str
    summary: str
    status: str
    sprint: str | None = None
    cycle: str | None = None
    url: str
    assignee: str | None = None


class DeploymentMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    branch: str
    environment: str
    deployed_by: str
    commit_sha: str
    repo_url: str


class RunResult(BaseModel):
    """Step outputs of one run."""

    model_config = ConfigDict(frozen=True)

    tickets_found: int = 0
    tickets_notified: int = 0
    message_ts: str | None = None
