"""GitHub REST v3 repository service over httpx.

Version tokens are GitHub blob SHAs: the contents API refuses a write whose
``sha`` no longer matches the file, which is the optimistic-concurrency
check the revert engine relies on.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from docflow.core.errors import UpstreamFailureError
from docflow.models.repository import (
    CommitInfo,
    CommitSummary,
    FileContent,
    PullRequestInfo,
    WriteResult,
)

logger = logging.getLogger(__name__)

USER_AGENT = "DocFlow"
JSON_ACCEPT = "application/vnd.github+json"
DIFF_ACCEPT = "application/vnd.github.v3.diff"


class GitHubRepository:
    """Repository service for one ``owner/repo`` on GitHub.

    Parameters
    ----------
    owner, repo:
        The repository coordinates.
    token:
        A token with contents read/write permission.
    api_url:
        API root, overridable for GitHub Enterprise.
    timeout_seconds:
        Per-request timeout; a timeout surfaces as ``UpstreamFailureError``.
    client:
        Pre-built ``httpx.Client`` (tests pass one with a mock transport).
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        token: str = "",
        api_url: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        headers = {"User-Agent": USER_AGENT, "Accept": JSON_ACCEPT}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubRepository:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def _base(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise UpstreamFailureError(f"GitHub {method} {url} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamFailureError(f"GitHub {method} {url} failed: {exc}") from exc

    @staticmethod
    def _checked(method: str, url: str, response: httpx.Response) -> httpx.Response:
        if response.status_code >= 400:
            raise UpstreamFailureError(
                f"GitHub {method} {url} returned {response.status_code}: "
                f"{response.text[:300]}"
            )
        return response

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return self._checked(method, url, self._send(method, url, **kwargs))

    def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFailureError(f"GitHub {url} returned invalid JSON") from exc

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def read_file(self, path: str, ref: str) -> FileContent | None:
        url = f"{self._base}/contents/{quote(path)}"
        response = self._send("GET", url, params={"ref": ref})
        if response.status_code == 404:
            return None
        data = self._checked("GET", url, response).json()
        if isinstance(data, list):
            raise UpstreamFailureError(f"{path} is a directory, not a file")
        content = base64.b64decode(data.get("content") or "").decode("utf-8")
        return FileContent(path=path, content=content, version_token=data.get("sha"))

    def write_file(
        self,
        path: str,
        content: str,
        message: str,
        *,
        branch: str,
        expected_version: str | None = None,
    ) -> WriteResult:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if expected_version:
            body["sha"] = expected_version
        data = self._json("PUT", f"{self._base}/contents/{quote(path)}", json=body)
        commit_id = (data.get("commit") or {}).get("sha")
        if not commit_id:
            raise UpstreamFailureError(f"GitHub write of {path} returned no commit sha")
        logger.info("GitHub: wrote %s on %s (commit %s)", path, branch, commit_id)
        return WriteResult(
            commit_id=commit_id,
            version_token=(data.get("content") or {}).get("sha"),
        )

    # ------------------------------------------------------------------
    # Git data
    # ------------------------------------------------------------------

    def get_commit(self, commit_id: str) -> CommitInfo:
        data = self._json("GET", f"{self._base}/git/commits/{commit_id}")
        return CommitInfo(
            commit_id=data["sha"],
            tree_id=data["tree"]["sha"],
            parents=[p["sha"] for p in data.get("parents") or []],
            message=data.get("message") or "",
        )

    def create_commit_from_tree(
        self, tree_id: str, parent_commit_id: str, message: str
    ) -> str:
        data = self._json(
            "POST",
            f"{self._base}/git/commits",
            json={"message": message, "tree": tree_id, "parents": [parent_commit_id]},
        )
        return data["sha"]

    def get_branch_head(self, branch: str) -> str:
        data = self._json("GET", f"{self._base}/git/ref/heads/{branch}")
        return data["object"]["sha"]

    def update_branch_head(self, branch: str, commit_id: str) -> None:
        self._request(
            "PATCH",
            f"{self._base}/git/refs/heads/{branch}",
            json={"sha": commit_id, "force": False},
        )

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def get_pull_request(self, number: int) -> PullRequestInfo:
        data = self._json("GET", f"{self._base}/pulls/{number}")
        base = data.get("base") or {}
        head = data.get("head") or {}
        merged_at = data.get("merged_at")
        return PullRequestInfo(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body"),
            author=(data.get("user") or {}).get("login"),
            base_ref=base.get("ref") or "main",
            head_ref=head.get("ref") or "HEAD",
            base_sha=base.get("sha"),
            head_sha=head.get("sha"),
            merged=bool(data.get("merged")),
            merged_at=datetime.fromisoformat(merged_at.replace("Z", "+00:00"))
            if merged_at
            else None,
            merge_commit_id=data.get("merge_commit_sha"),
            html_url=data.get("html_url"),
        )

    def get_pull_request_commits(self, number: int) -> list[CommitSummary]:
        data = self._json(
            "GET", f"{self._base}/pulls/{number}/commits", params={"per_page": 100}
        )
        return [
            CommitSummary(
                commit_id=item["sha"],
                message=(item.get("commit") or {}).get("message") or "",
            )
            for item in data
        ]

    def get_pull_request_diff(self, number: int) -> str:
        response = self._request(
            "GET", f"{self._base}/pulls/{number}", headers={"Accept": DIFF_ACCEPT}
        )
        return response.text
