"""Collaborator protocols consumed by the ledger workflows and revert engine.

Defines ``RepositoryService``, ``ChangeProducer`` and ``TicketSystem``.  Any
object with the right methods satisfies them; the GitHub, Gemini and Jira
adapters in this package are the production implementations and
``InMemoryRepository`` is the local one.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from docflow.models.repository import (
    ChangeContext,
    CommitInfo,
    CommitSummary,
    FileContent,
    PullRequestInfo,
    TicketInfo,
    WriteResult,
)
from docflow.models.revert import RemovalSpec


@runtime_checkable
class RepositoryService(Protocol):
    """Repository reads and writes on a single owner/repo.

    Implementations raise ``UpstreamFailureError`` for transport errors and
    timeouts, and return ``None`` from ``read_file`` for a missing file.
    """

    def read_file(self, path: str, ref: str) -> FileContent | None:
        ...

    def write_file(
        self,
        path: str,
        content: str,
        message: str,
        *,
        branch: str,
        expected_version: str | None = None,
    ) -> WriteResult:
        ...

    def get_commit(self, commit_id: str) -> CommitInfo:
        ...

    def create_commit_from_tree(
        self, tree_id: str, parent_commit_id: str, message: str
    ) -> str:
        ...

    def get_branch_head(self, branch: str) -> str:
        ...

    def update_branch_head(self, branch: str, commit_id: str) -> None:
        ...

    def get_pull_request(self, number: int) -> PullRequestInfo:
        ...

    def get_pull_request_commits(self, number: int) -> list[CommitSummary]:
        ...

    def get_pull_request_diff(self, number: int) -> str:
        ...


@runtime_checkable
class ChangeProducer(Protocol):
    """The generative-AI side of documentation drafting.

    Both methods return ``None`` when no usable text was produced; callers
    fall back to deterministic output.
    """

    def summarize_change(self, context: ChangeContext) -> str | None:
        ...

    def generate_doc_rewrite(self, current_content: str, removal: RemovalSpec) -> str | None:
        ...


@runtime_checkable
class TicketSystem(Protocol):
    def get_ticket(self, key: str) -> TicketInfo | None:
        ...
