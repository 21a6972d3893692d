"""In-memory repository — a local stand-in for the hosted repository service.

Models just enough of a git repository (content-addressed trees, commits
with parents, movable branch heads, per-file version tokens) for the demo
command and for exercising the workflows without network access.

Version tokens are the SHA-256 of the file content, so a stale token on
write is detected the same way the hosted service detects it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from docflow.core.errors import NotFoundError, UpstreamFailureError
from docflow.core.hasher import canonical_json_bytes, hash_text, sha256_hex
from docflow.models.repository import (
    CommitInfo,
    CommitSummary,
    FileContent,
    PullRequestInfo,
    WriteResult,
)

logger = logging.getLogger(__name__)


class InMemoryRepository:
    """A single repository held in memory.

    Parameters
    ----------
    files:
        Initial files on *branch*.
    branch:
        Name of the initial branch.
    """

    def __init__(
        self,
        files: dict[str, str] | None = None,
        *,
        branch: str = "main",
    ) -> None:
        self._trees: dict[str, dict[str, str]] = {}
        self._commits: dict[str, CommitInfo] = {}
        self._branches: dict[str, str] = {}
        self._pulls: dict[int, tuple[PullRequestInfo, list[CommitSummary], str]] = {}
        self._counter = 0
        # Method names that raise UpstreamFailureError (failure injection).
        self.fail_on: set[str] = set()

        tree_id = self._store_tree(dict(files or {}))
        self._branches[branch] = self._store_commit(tree_id, [], "Initial commit")

    # ------------------------------------------------------------------
    # Internal storage
    # ------------------------------------------------------------------

    def _store_tree(self, files: dict[str, str]) -> str:
        tree_id = sha256_hex(canonical_json_bytes(files))
        self._trees[tree_id] = dict(files)
        return tree_id

    def _store_commit(self, tree_id: str, parents: list[str], message: str) -> str:
        self._counter += 1
        commit_id = sha256_hex(
            canonical_json_bytes(
                {"tree": tree_id, "parents": parents, "message": message, "n": self._counter}
            )
        )
        self._commits[commit_id] = CommitInfo(
            commit_id=commit_id, tree_id=tree_id, parents=parents, message=message
        )
        return commit_id

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise UpstreamFailureError(f"Injected failure in {operation}")

    def _resolve(self, ref: str) -> CommitInfo:
        commit_id = self._branches.get(ref, ref)
        commit = self._commits.get(commit_id)
        if commit is None:
            raise NotFoundError(f"Unknown ref: {ref}")
        return commit

    def files_at(self, ref: str) -> dict[str, str]:
        """Return a copy of every file at *ref* (branch name or commit id)."""
        return dict(self._trees[self._resolve(ref).tree_id])

    @property
    def branches(self) -> dict[str, str]:
        return dict(self._branches)

    def close(self) -> None:
        """Nothing to release; mirrors the hosted adapters."""

    def __enter__(self) -> InMemoryRepository:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # RepositoryService
    # ------------------------------------------------------------------

    def read_file(self, path: str, ref: str) -> FileContent | None:
        self._check("read_file")
        files = self.files_at(ref)
        if path not in files:
            return None
        content = files[path]
        return FileContent(path=path, content=content, version_token=hash_text(content))

    def write_file(
        self,
        path: str,
        content: str,
        message: str,
        *,
        branch: str,
        expected_version: str | None = None,
    ) -> WriteResult:
        self._check("write_file")
        tip = self._resolve(branch)
        files = dict(self._trees[tip.tree_id])
        if path in files:
            current = hash_text(files[path])
            if expected_version != current:
                raise UpstreamFailureError(
                    f"Version conflict on {path}: expected {expected_version}, "
                    f"found {current}"
                )
        elif expected_version is not None:
            raise UpstreamFailureError(f"Version conflict on {path}: file does not exist")

        files[path] = content
        commit_id = self._store_commit(self._store_tree(files), [tip.commit_id], message)
        self._branches[branch] = commit_id
        logger.debug("InMemoryRepository: wrote %s on %s as %s", path, branch, commit_id[:12])
        return WriteResult(commit_id=commit_id, version_token=hash_text(content))

    def get_commit(self, commit_id: str) -> CommitInfo:
        self._check("get_commit")
        commit = self._commits.get(commit_id)
        if commit is None:
            raise UpstreamFailureError(f"Commit not found: {commit_id}")
        return commit

    def create_commit_from_tree(
        self, tree_id: str, parent_commit_id: str, message: str
    ) -> str:
        self._check("create_commit_from_tree")
        if tree_id not in self._trees:
            raise UpstreamFailureError(f"Tree not found: {tree_id}")
        if parent_commit_id not in self._commits:
            raise UpstreamFailureError(f"Parent commit not found: {parent_commit_id}")
        return self._store_commit(tree_id, [parent_commit_id], message)

    def get_branch_head(self, branch: str) -> str:
        self._check("get_branch_head")
        if branch not in self._branches:
            raise UpstreamFailureError(f"Branch not found: {branch}")
        return self._branches[branch]

    def update_branch_head(self, branch: str, commit_id: str) -> None:
        self._check("update_branch_head")
        if commit_id not in self._commits:
            raise UpstreamFailureError(f"Commit not found: {commit_id}")
        self._branches[branch] = commit_id

    def get_pull_request(self, number: int) -> PullRequestInfo:
        self._check("get_pull_request")
        if number not in self._pulls:
            raise UpstreamFailureError(f"Pull request not found: #{number}")
        return self._pulls[number][0]

    def get_pull_request_commits(self, number: int) -> list[CommitSummary]:
        self._check("get_pull_request_commits")
        if number not in self._pulls:
            raise UpstreamFailureError(f"Pull request not found: #{number}")
        return list(self._pulls[number][1])

    def get_pull_request_diff(self, number: int) -> str:
        self._check("get_pull_request_diff")
        if number not in self._pulls:
            raise UpstreamFailureError(f"Pull request not found: #{number}")
        return self._pulls[number][2]

    # ------------------------------------------------------------------
    # Simulation helpers
    # ------------------------------------------------------------------

    def merge_pull_request(
        self,
        number: int,
        title: str,
        changes: dict[str, str],
        *,
        branch: str = "main",
        author: str = "octocat",
        body: str | None = None,
        commit_messages: list[str] | None = None,
    ) -> PullRequestInfo:
        """Simulate merging a PR: a feature commit plus a two-parent merge commit."""
        base = self._resolve(branch)
        files = dict(self._trees[base.tree_id])
        diff_lines: list[str] = []
        for path, content in sorted(changes.items()):
            diff_lines.append(f"--- a/{path}\n+++ b/{path}")
            diff_lines.extend(f"+{line}" for line in content.splitlines())
            files[path] = content
        tree_id = self._store_tree(files)

        messages = commit_messages or [title]
        feature = base.commit_id
        summaries: list[CommitSummary] = []
        for msg in messages:
            feature = self._store_commit(tree_id, [feature], msg)
            summaries.append(CommitSummary(commit_id=feature, message=msg))

        merge_id = self._store_commit(
            tree_id,
            [base.commit_id, feature],
            f"Merge pull request #{number}: {title}",
        )
        self._branches[branch] = merge_id

        pr = PullRequestInfo(
            number=number,
            title=title,
            body=body,
            author=author,
            base_ref=branch,
            head_ref=f"feature/{number}",
            base_sha=base.commit_id,
            head_sha=feature,
            merged=True,
            merged_at=datetime.now(timezone.utc),
            merge_commit_id=merge_id,
        )
        self._pulls[number] = (pr, summaries, "\n".join(diff_lines) + "\n")
        return pr
