"""Ledger transaction model (append-only, parent-linked, sealed).

A transaction is one immutable record describing a documentation change,
optionally paired with the code change that caused it.  Records are:
- Keyed by (repo_branch, transaction_id)
- Parent-linked (a single parent, never a tree)
- Sealed (``record_hash`` is SHA-256 over every other field)
- Never edited or deleted; undo is a new REVERT transaction
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

ROOT = "ROOT"
HEAD_SORT_KEY = "HEAD"
TXN_PREFIX = "TXN#"

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class TransactionKind(str, Enum):
    """Which hashes a transaction carries."""

    PAIR = "PAIR"  # source-change hash + doc-change hash
    DOC_ONLY = "DOC_ONLY"  # doc-change hash only
    REVERT = "REVERT"  # undoes an earlier transaction


class EventType(str, Enum):
    """What triggered the documentation write."""

    PR_MERGE = "PR_MERGE"
    MANUAL = "MANUAL"
    DASHBOARD = "DASHBOARD"
    REVERT = "REVERT"


def repo_branch_id(owner: str, repo: str, branch: str) -> str:
    """Build the ledger partition key ``{owner}/{repo}#{branch}``."""
    return f"{owner}/{repo}#{branch}"


def parse_repo_branch(repo_branch: str) -> tuple[str, str, str]:
    """Split a partition key back into (owner, repo, branch)."""
    slug, sep, branch = repo_branch.partition("#")
    owner, slash, repo = slug.partition("/")
    if not sep or not slash or not owner or not repo or not branch:
        raise ValueError(f"Not a repo#branch key: {repo_branch!r}")
    return owner, repo, branch


def format_timestamp(ts: datetime) -> str:
    """Zero-padded ISO-8601 UTC with microseconds, so ids sort by time."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime(_TS_FORMAT)


def parse_transaction_id(transaction_id: str) -> tuple[datetime, str]:
    """Return (timestamp, discriminator) for a ``TXN#...`` id."""
    if not transaction_id.startswith(TXN_PREFIX):
        raise ValueError(f"Not a transaction id: {transaction_id!r}")
    _, ts, discriminator = transaction_id.split("#", 2)
    created = datetime.strptime(ts, _TS_FORMAT).replace(tzinfo=timezone.utc)
    return created, discriminator


def next_transaction_id(
    tag: str,
    *,
    after: str | None = None,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Generate a new transaction id and its creation timestamp.

    The id is ``TXN#<timestamp>#<tag>#<nonce>``.  When *after* (the parent
    id) is given, the timestamp is bumped so the new id sorts strictly after
    it even if the clock has not advanced.
    """
    created = now or datetime.now(timezone.utc)
    if after and after != ROOT:
        parent_ts, _ = parse_transaction_id(after)
        if created <= parent_ts:
            created = parent_ts + timedelta(microseconds=1)
    nonce = uuid.uuid4().hex[:8]
    return f"{TXN_PREFIX}{format_timestamp(created)}#{tag}#{nonce}", created


class Transaction(BaseModel):
    """A single immutable ledger record."""

    model_config = ConfigDict(frozen=True)

    repo_branch: str
    transaction_id: str
    parent_transaction_id: str = ROOT
    kind: TransactionKind
    event_type: EventType
    ai_generated: bool = False
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    source_change_hash: str | None = None
    source_change_type: str | None = None
    doc_change_hash: str | None = None
    doc_change_type: str | None = None

    concept_key: str | None = None
    related_concept_keys: list[str] = []

    # Provenance
    author: str | None = None
    pr_number: int | None = None
    pr_title: str | None = None
    ticket_key: str | None = None
    merge_commit_id: str | None = None
    doc_file_path: str | None = None
    doc_file_version_id: str | None = None
    doc_commit_id: str | None = None
    message: str | None = None
    summary_preview: str | None = None

    # REVERT only
    reverted_transaction_id: str | None = None
    also_removed_transaction_ids: list[str] = []
    removed_pr_numbers: list[int] = []
    code_revert_commit_id: str | None = None
    docs_revert_commit_id: str | None = None

    record_hash: str = ""  # set by the ledger on append

    @model_validator(mode="before")
    @classmethod
    def _normalize_concepts(cls, data: Any) -> Any:
        if isinstance(data, dict):
            related = set(data.get("related_concept_keys") or [])
            if data.get("concept_key"):
                related.add(data["concept_key"])
            data = {**data, "related_concept_keys": sorted(related)}
        return data

    @model_validator(mode="after")
    def _check_kind(self) -> Transaction:
        if not self.transaction_id.startswith(TXN_PREFIX):
            raise ValueError(f"transaction_id must start with {TXN_PREFIX!r}")
        if self.parent_transaction_id == self.transaction_id:
            raise ValueError("a transaction cannot be its own parent")
        if self.kind == TransactionKind.PAIR:
            if not self.source_change_hash or not self.doc_change_hash:
                raise ValueError("PAIR transactions need both hashes")
        elif self.kind == TransactionKind.DOC_ONLY:
            if self.source_change_hash:
                raise ValueError("DOC_ONLY transactions carry no source hash")
        elif self.kind == TransactionKind.REVERT:
            if not self.reverted_transaction_id:
                raise ValueError("REVERT transactions need reverted_transaction_id")
        if self.kind != TransactionKind.REVERT and (
            self.reverted_transaction_id
            or self.also_removed_transaction_ids
            or self.code_revert_commit_id
            or self.docs_revert_commit_id
        ):
            raise ValueError("revert fields are only valid on REVERT transactions")
        return self


class HeadPointer(BaseModel):
    """The mutable per-branch pointer to the latest transaction."""

    model_config = ConfigDict(frozen=True)

    repo_branch: str
    latest_transaction_id: str = ROOT
    updated_at: datetime | None = None
