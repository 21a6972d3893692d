"""Ledger-writing workflows: PR merge ingest and manual documentation edits.

Each workflow is a short, sequential unit of work.  Independent reads are
fanned out and joined before anything is drafted.  A repeated entry for a
concept is rejected before the repository write, and the ledger is appended
last, so a failed write never leaves a transaction behind.
"""

from __future__ import annotations

import difflib
import logging
import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any

from docflow.adapters.base import ChangeProducer, RepositoryService, TicketSystem
from docflow.core.concepts import concept_for_change
from docflow.core.errors import NoChangeProducedError, NotFoundError, UpstreamFailureError
from docflow.core.hasher import hash_text, is_noop_change
from docflow.core.ledger import DEFAULT_MAX_ATTEMPTS, TransactionLedger
from docflow.core.revert_engine import DEFAULT_DOC_PATH, EMPTY_CHANGELOG
from docflow.core.rewrite import normalize_markdown, remove_pr_sections
from docflow.models.repository import ChangeContext, CommitSummary, TicketInfo
from docflow.models.transactions import (
    EventType,
    Transaction,
    TransactionKind,
    next_transaction_id,
    repo_branch_id,
)

logger = logging.getLogger(__name__)

SKIP_FLAG = "[skip-docflow]"
SOURCE_CHANGE_TYPE = "GITHUB_PR_DIFF_SHA256"
SECTION_CHANGE_TYPE = "READLOG_SECTION_SHA256"
DIFF_CHANGE_TYPE = "UNIFIED_DIFF_SHA256"

_TOP_HEADING = re.compile(r"^(#{1,2})(\s)", re.MULTILINE)


# ---------------------------------------------------------------------------
# Changelog rendering
# ---------------------------------------------------------------------------


def truncate(text: str | None, limit: int = 600) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit].rstrip() + "…"


def top_commit_bullets(commits: list[CommitSummary], limit: int = 6) -> list[str]:
    """First lines of the PR's commits, skipping merges and noise, deduplicated."""
    first_lines = [c.message.split("\n", 1)[0].strip() for c in commits if c.message]
    picked = [
        line
        for line in first_lines
        if not line.lower().startswith("merge ") and len(line) > 3
    ]
    return [f"- {line}" for line in list(dict.fromkeys(picked))[:limit]]


def _demote_headings(text: str) -> str:
    # Level 1/2 headings would end the PR section early.
    return _TOP_HEADING.sub(r"###\2", text)


def render_changelog_entry(
    context: ChangeContext,
    summary: str | None,
    *,
    repo_slug: str | None = None,
) -> str:
    """Render the ``## PR #<n>: <title>`` section for one merge."""
    pr = context.pull_request
    merged = pr.merged_at.date().isoformat() if pr.merged_at else "unknown"
    if summary and summary.strip():
        summary_text = _demote_headings(summary.strip())
    else:
        fallback = next(
            (t for t in (pr.body, pr.title) if t and t.strip()), "No summary provided."
        )
        summary_text = f"**LLM disabled or unavailable.**\n\n{truncate(fallback)}"

    bullets = top_commit_bullets(context.commits) or ["- See diff for details."]

    lines = [
        f"## PR #{pr.number}: {pr.title}",
        f"*Merged:* {merged} • *Author:* {pr.author or 'unknown'} • "
        f"*Base:* {pr.base_ref} ← *Head:* {pr.head_ref}",
        "",
        "### Summary",
        summary_text,
        "",
        "### Technical Changes",
        *bullets,
        "",
    ]
    ticket = context.ticket
    if ticket is not None:
        lines += [
            "### Ticket",
            f"- **{ticket.key}: {ticket.summary}** • Status: {ticket.status} "
            f"• Priority: {ticket.priority}",
        ]
        if ticket.description:
            lines.append(_demote_headings(truncate(ticket.description, 800)))
        lines.append("")

    links: list[str] = []
    if pr.html_url:
        links.append(f"- PR: {pr.html_url}")
    elif repo_slug:
        links.append(f"- PR: https://github.com/{repo_slug}/pull/{pr.number}")
    if repo_slug and pr.base_sha and pr.head_sha:
        links.append(
            f"- Diff: https://github.com/{repo_slug}/compare/{pr.base_sha}...{pr.head_sha}"
        )
    if links:
        lines += ["### Links", *links, ""]
    lines += ["---", ""]
    return "\n".join(lines)


def insert_section(document: str | None, section: str) -> str:
    """Place *section* directly under the document title (newest first)."""
    doc = normalize_markdown(document) if document and document.strip() else EMPTY_CHANGELOG
    lines = doc.split("\n")
    if lines[0].startswith("# "):
        rest = "\n".join(lines[1:]).strip("\n")
        parts = [lines[0], "", section.rstrip("\n")]
        if rest:
            parts += ["", rest]
        return normalize_markdown("\n".join(parts))
    return normalize_markdown(section.rstrip("\n") + "\n\n" + doc)


def unified_delta(before: str, after: str, path: str) -> str:
    """Unified diff text of a documentation edit (what DOC_ONLY hashes)."""
    return "".join(
        difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


class IngestWorkflow:
    """Records documentation writes in the ledger.

    Parameters
    ----------
    ledger:
        Transaction ledger to append to.
    repository:
        Repository service for one owner/repo.
    producer:
        AI change producer; ``None`` disables AI summaries.
    tickets:
        Optional ticket system used to enrich the entry.
    doc_path:
        Changelog file that merges are written to.
    default_branch:
        Branch used for manual edits when none is given.
    timeout_seconds:
        Bound on the fan-out of PR/commit/diff/ticket reads.
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        repository: RepositoryService,
        *,
        producer: ChangeProducer | None = None,
        tickets: TicketSystem | None = None,
        doc_path: str = DEFAULT_DOC_PATH,
        default_branch: str = "main",
        max_append_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._ledger = ledger
        self._repo = repository
        self._producer = producer
        self._tickets = tickets
        self._doc_path = doc_path
        self._default_branch = default_branch
        self._max_append_attempts = max_append_attempts
        self._timeout = timeout_seconds

    # ------------------------------------------------------------------
    # PR merge -> PAIR transaction
    # ------------------------------------------------------------------

    def record_merge(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        *,
        ticket_key: str | None = None,
    ) -> Transaction:
        """Draft and write the changelog entry for a merged PR, then record it."""
        logger.info(
            "Processing %s/%s PR #%d%s",
            owner,
            repo,
            pr_number,
            f" with ticket {ticket_key}" if ticket_key else "",
        )
        context = self._gather(pr_number, ticket_key)
        pr = context.pull_request
        if not pr.merged:
            logger.warning("PR #%d is not marked merged; recording it anyway", pr_number)

        summary = self._summarize(context)
        section = render_changelog_entry(context, summary, repo_slug=f"{owner}/{repo}")

        branch = pr.base_ref
        current = self._repo.read_file(self._doc_path, branch)
        before = current.content if current is not None else EMPTY_CHANGELOG
        after = insert_section(remove_pr_sections(before, [pr.number]), section)
        if is_noop_change(before, after):
            raise NoChangeProducedError(
                f"{self._doc_path} already holds this entry for PR #{pr.number}"
            )

        ticket = context.ticket
        concept = concept_for_change(
            pr.number, ticket.key if ticket else ticket_key, pr.title
        )
        repo_branch = repo_branch_id(owner, repo, branch)
        self._ledger.check_duplicate(
            repo_branch, str(concept) if concept else None, hash_text(section)
        )

        write = self._repo.write_file(
            self._doc_path,
            after,
            f"docs(readlog): add PR #{pr.number}" + (f" + {ticket.key}" if ticket else ""),
            branch=branch,
            expected_version=current.version_token if current is not None else None,
        )
        logger.info("Updated %s on %s (commit %s)", self._doc_path, branch, write.commit_id)

        def build(parent_id: str, _parent: Transaction | None) -> Transaction:
            txn_id, created = next_transaction_id(f"PR#{pr.number}", after=parent_id)
            return Transaction(
                repo_branch=repo_branch,
                transaction_id=txn_id,
                parent_transaction_id=parent_id,
                kind=TransactionKind.PAIR,
                event_type=EventType.PR_MERGE,
                ai_generated=summary is not None,
                created_at=created,
                source_change_hash=hash_text(context.diff),
                source_change_type=SOURCE_CHANGE_TYPE,
                doc_change_hash=hash_text(section),
                doc_change_type=SECTION_CHANGE_TYPE,
                concept_key=str(concept) if concept else None,
                author=pr.author,
                pr_number=pr.number,
                pr_title=pr.title,
                ticket_key=ticket.key if ticket else ticket_key,
                merge_commit_id=pr.merge_commit_id,
                doc_file_path=self._doc_path,
                doc_file_version_id=write.version_token,
                doc_commit_id=write.commit_id,
                summary_preview=truncate(section, 400),
            )

        return self._ledger.commit(repo_branch, build, max_attempts=self._max_append_attempts)

    def _gather(self, pr_number: int, ticket_key: str | None) -> ChangeContext:
        """Fetch PR, commits, diff and ticket concurrently, then join."""
        calls: dict[str, Callable[[], Any]] = {
            "pull_request": lambda: self._repo.get_pull_request(pr_number),
            "commits": lambda: self._repo.get_pull_request_commits(pr_number),
            "diff": lambda: self._repo.get_pull_request_diff(pr_number),
        }
        if ticket_key and self._tickets is not None:
            calls["ticket"] = lambda: self._tickets.get_ticket(ticket_key)

        # Not a ``with`` block: its exit would join a hung worker.
        pool = ThreadPoolExecutor(max_workers=len(calls), thread_name_prefix="docflow-ingest")
        futures = {name: pool.submit(fn) for name, fn in calls.items()}
        results: dict[str, Any] = {}
        try:
            _, pending = wait(futures.values(), timeout=self._timeout)
            if pending:
                late = [name for name, future in futures.items() if future in pending]
                raise UpstreamFailureError(
                    f"Timed out after {self._timeout}s fetching {', '.join(late)} "
                    f"for PR #{pr_number}"
                )
            for name, future in futures.items():
                results[name] = future.result()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        ticket: TicketInfo | None = results.get("ticket")
        if ticket_key and ticket is None:
            logger.warning("Ticket %s unavailable; continuing without it", ticket_key)
        return ChangeContext(
            pull_request=results["pull_request"],
            commits=results["commits"],
            diff=results["diff"],
            ticket=ticket,
        )

    def _summarize(self, context: ChangeContext) -> str | None:
        if self._producer is None:
            return None
        try:
            return self._producer.summarize_change(context)
        except UpstreamFailureError as exc:
            logger.warning("AI summary failed; using fallback summary: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Manual edits -> DOC_ONLY transactions
    # ------------------------------------------------------------------

    def record_manual_edit(
        self,
        owner: str,
        repo: str,
        author: str,
        message: str,
        file_path: str,
        new_content: str,
        *,
        branch: str | None = None,
        event_type: EventType = EventType.MANUAL,
    ) -> Transaction:
        """Write a hand-made documentation edit and record it as DOC_ONLY."""
        branch = branch or self._default_branch
        current = self._repo.read_file(file_path, branch)
        before = current.content if current is not None else ""
        if is_noop_change(before, new_content):
            raise NoChangeProducedError(f"Manual edit leaves {file_path} unchanged")
        delta = unified_delta(before, new_content, file_path)
        repo_branch = repo_branch_id(owner, repo, branch)
        concept = concept_for_change(None, None, message)
        self._ledger.check_duplicate(
            repo_branch, str(concept) if concept else None, hash_text(delta)
        )

        write = self._repo.write_file(
            file_path,
            new_content,
            f"docs(manual): {message} by {author}\n\n{SKIP_FLAG}",
            branch=branch,
            expected_version=current.version_token if current is not None else None,
        )
        logger.info("Pushed manual edit of %s as %s", file_path, write.commit_id)
        return self._record_doc_only(
            repo_branch,
            author=author,
            message=message,
            file_path=file_path,
            delta=delta,
            commit_id=write.commit_id,
            version_token=write.version_token,
            event_type=event_type,
        )

    def record_manual_commit(
        self,
        owner: str,
        repo: str,
        author: str,
        message: str,
        commit_id: str,
        file_path: str,
        *,
        branch: str | None = None,
    ) -> Transaction:
        """Record an already-pushed documentation commit as DOC_ONLY."""
        branch = branch or self._default_branch
        after = self._repo.read_file(file_path, commit_id)
        if after is None:
            raise NotFoundError(f"{file_path} does not exist at {commit_id}")
        commit = self._repo.get_commit(commit_id)
        before_file = (
            self._repo.read_file(file_path, commit.parents[0]) if commit.parents else None
        )
        before = before_file.content if before_file is not None else ""
        logger.info("Recording manual commit %s on %s", commit_id, file_path)
        return self._record_doc_only(
            repo_branch_id(owner, repo, branch),
            author=author,
            message=message,
            file_path=file_path,
            delta=unified_delta(before, after.content, file_path),
            commit_id=commit_id,
            version_token=after.version_token,
            event_type=EventType.MANUAL,
        )

    def _record_doc_only(
        self,
        repo_branch: str,
        *,
        author: str,
        message: str,
        file_path: str,
        delta: str,
        commit_id: str,
        version_token: str | None,
        event_type: EventType,
    ) -> Transaction:
        concept = concept_for_change(None, None, message)

        def build(parent_id: str, _parent: Transaction | None) -> Transaction:
            txn_id, created = next_transaction_id(event_type.value, after=parent_id)
            return Transaction(
                repo_branch=repo_branch,
                transaction_id=txn_id,
                parent_transaction_id=parent_id,
                kind=TransactionKind.DOC_ONLY,
                event_type=event_type,
                created_at=created,
                doc_change_hash=hash_text(delta),
                doc_change_type=DIFF_CHANGE_TYPE,
                concept_key=str(concept) if concept else None,
                author=author,
                message=message,
                doc_file_path=file_path,
                doc_file_version_id=version_token,
                doc_commit_id=commit_id,
                summary_preview=truncate(delta, 400),
            )

        return self._ledger.commit(repo_branch, build, max_attempts=self._max_append_attempts)
