"""Jira Cloud ticket lookup (REST v3) over httpx.

Ticket data only enriches a changelog entry; every failure is logged and
answered with ``None``.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from docflow.models.repository import TicketInfo

logger = logging.getLogger(__name__)


def flatten_adf(description: Any) -> str:
    """Flatten an Atlassian Document Format description to plain lines."""
    if isinstance(description, str):
        return description or "No description"
    if not isinstance(description, dict):
        return "No description"
    lines: list[str] = []
    for block in description.get("content") or []:
        texts = [
            item.get("text")
            for item in (block.get("content") or [])
            if isinstance(item, dict) and item.get("text")
        ]
        if texts:
            lines.append("".join(texts))
    return "\n".join(lines) or "No description"


class JiraTicketSystem:
    """Looks up Jira issues with basic (email + API token) auth."""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(email, api_token),
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout_seconds),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> JiraTicketSystem:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_ticket(self, key: str) -> TicketInfo | None:
        try:
            response = self._client.get(f"/rest/api/3/issue/{quote(key)}")
        except httpx.HTTPError as exc:
            logger.warning("Jira fetch failed for %s: %s", key, exc)
            return None
        if response.status_code >= 400:
            logger.warning("Jira fetch failed for %s: HTTP %d", key, response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("Jira returned invalid JSON for %s", key)
            return None

        fields = data.get("fields") or {}
        return TicketInfo(
            key=data.get("key") or key,
            summary=fields.get("summary") or "No summary",
            status=(fields.get("status") or {}).get("name") or "Unknown",
            priority=(fields.get("priority") or {}).get("name") or "None",
            issue_type=(fields.get("issuetype") or {}).get("name") or "Task",
            description=flatten_adf(fields.get("description")),
        )
