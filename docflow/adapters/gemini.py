"""Gemini change producer over the Generative Language REST API.

Tries each configured model in turn (cheapest first) and returns the first
non-empty answer.  Every failure path returns ``None`` so callers fall back
to deterministic output; AI text quality is never retried.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

import httpx

from docflow.models.repository import ChangeContext
from docflow.models.revert import RemovalSpec

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ("gemini-1.5-flash", "gemini-1.5-flash-latest", "gemini-1.5-pro")
_FENCE = re.compile(r"^```[a-zA-Z]*\n(.*?)\n```\s*$", re.DOTALL)


def build_summary_prompt(context: ChangeContext) -> str:
    pr = context.pull_request
    commits = "\n".join(
        f"{i}. {c.message}" for i, c in enumerate(context.commits, start=1)
    )
    ticket = context.ticket
    ticket_block = (
        f"Ticket: {ticket.key}: {ticket.summary}\n"
        f"Status: {ticket.status} | Priority: {ticket.priority}\n"
        f"Description:\n{ticket.description}"
        if ticket
        else "No ticket provided."
    )
    return (
        "Summarize this pull request and (if present) its related ticket into "
        "concise, doc-ready Markdown.\n\n"
        f"PR Title: {pr.title}\n"
        f"PR Description: {pr.body or '(none)'}\n"
        f"Commits:\n{commits}\n\n"
        f"{ticket_block}\n\n"
        "Return sections using ### headings:\n"
        "1. Summary\n2. Technical Changes\n3. Risks/Edge Cases\n4. Docs/Follow-ups"
    )


def build_rewrite_prompt(current_content: str, removal: RemovalSpec) -> str:
    markers = "\n".join(f"- ## PR #{n}:" for n in removal.pr_numbers) or "(none)"
    notes = "\n".join(f"- {s}" for s in removal.related_summaries) or "(none)"
    concept = removal.concept_key or "(none)"
    return (
        "You are updating a monolithic changelog.\n"
        "Remove ONLY the sections whose headings start with these exact markers:\n"
        f"{markers}\n\n"
        f"Also remove any text that documents the concept {concept}"
        + (f" (\"{removal.titles[0]}\")" if removal.titles else "")
        + ", including the follow-up doc-only edits listed below. "
        "Keep everything else byte-for-byte.\n\n"
        f"Doc-only notes:\n{notes}\n\n"
        "Return ONLY the final full file content (no fences).\n---\n"
        f"{current_content}"
    )


class GeminiChangeProducer:
    """Change producer backed by Gemini ``generateContent``.

    Parameters
    ----------
    api_key:
        Generative Language API key.
    models:
        Model names tried in order.
    api_url:
        API root (``.../v1beta``).
    timeout_seconds:
        Per-request timeout.
    client:
        Pre-built ``httpx.Client`` (tests pass one with a mock transport).
    """

    def __init__(
        self,
        api_key: str,
        *,
        models: Sequence[str] = DEFAULT_MODELS,
        api_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._models = list(models)
        self._client = client or httpx.Client(
            base_url=api_url.rstrip("/"), timeout=httpx.Timeout(timeout_seconds)
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GeminiChangeProducer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def summarize_change(self, context: ChangeContext) -> str | None:
        text = self._generate(build_summary_prompt(context), temperature=0.3, max_tokens=1200)
        return text.strip() if text else None

    def generate_doc_rewrite(self, current_content: str, removal: RemovalSpec) -> str | None:
        text = self._generate(
            build_rewrite_prompt(current_content, removal), temperature=0.1, max_tokens=8192
        )
        if not text:
            return None
        match = _FENCE.match(text.strip())
        if match:
            text = match.group(1)
        return text.rstrip() + "\n"

    def _generate(self, prompt: str, *, temperature: float, max_tokens: int) -> str | None:
        if not self._api_key:
            logger.warning("No Gemini API key; skipping AI generation")
            return None
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        for model in self._models:
            try:
                response = self._client.post(
                    f"/models/{model}:generateContent",
                    params={"key": self._api_key},
                    json=body,
                )
            except httpx.HTTPError as exc:
                logger.warning("Gemini model failed (%s): %s", model, exc)
                continue
            if response.status_code >= 400:
                logger.warning(
                    "Gemini model failed (%s): HTTP %d", model, response.status_code
                )
                continue
            try:
                text = _extract_text(response.json())
            except ValueError:
                logger.warning("Gemini model %s returned invalid JSON", model)
                continue
            if text and text.strip():
                logger.info("Gemini model %s produced %d characters", model, len(text))
                return text
        logger.warning("All Gemini model attempts failed; falling back")
        return None


def _extract_text(payload: Any) -> str | None:
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    texts = [p.get("text", "") for p in parts if isinstance(p, dict)]
    return "".join(texts) or None
