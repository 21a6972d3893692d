"""Value objects exchanged with the repository, AI and ticket collaborators."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class FileContent(BaseModel):
    """A file read from the repository with its optimistic-concurrency token."""

    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    version_token: str | None = None


class WriteResult(BaseModel):
    """Outcome of a file write: the new commit and the new file version."""

    model_config = ConfigDict(frozen=True)

    commit_id: str
    version_token: str | None = None


class CommitInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    commit_id: str
    tree_id: str
    parents: list[str] = []
    message: str = ""


class PullRequestInfo(BaseModel):
    """The subset of pull-request metadata the ingest workflow uses."""

    model_config = ConfigDict(frozen=True)

    number: int
    title: str
    body: str | None = None
    author: str | None = None
    base_ref: str = "main"
    head_ref: str = "HEAD"
    base_sha: str | None = None
    head_sha: str | None = None
    merged: bool = False
    merged_at: datetime | None = None
    merge_commit_id: str | None = None
    html_url: str | None = None


class CommitSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    commit_id: str
    message: str


class TicketInfo(BaseModel):
    """Ticket metadata used to enrich concept context; never required."""

    model_config = ConfigDict(frozen=True)

    key: str
    summary: str = "No summary"
    status: str = "Unknown"
    priority: str = "None"
    issue_type: str = "Task"
    description: str = "No description"


class ChangeContext(BaseModel):
    """Everything the change producer is given to draft a changelog entry."""

    model_config = ConfigDict(frozen=True)

    pull_request: PullRequestInfo
    commits: list[CommitSummary] = []
    diff: str = ""
    ticket: TicketInfo | None = None
