"""Shared test fixtures for DocFlow."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from docflow.adapters.memory import InMemoryRepository
from docflow.core.hasher import hash_text
from docflow.core.ingest import IngestWorkflow
from docflow.core.ledger import TransactionLedger
from docflow.core.revert_engine import EMPTY_CHANGELOG, RevertEngine
from docflow.models.transactions import (
    ROOT,
    EventType,
    Transaction,
    TransactionKind,
    next_transaction_id,
)

_EVENTS = {
    TransactionKind.PAIR: EventType.PR_MERGE,
    TransactionKind.DOC_ONLY: EventType.MANUAL,
    TransactionKind.REVERT: EventType.REVERT,
}


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def ledger(tmp_dir: Path) -> TransactionLedger:
    """Provide a fresh TransactionLedger backed by a temp SQLite database."""
    return TransactionLedger(tmp_dir / "test_ledger.db")


@pytest.fixture
def repo_branch() -> str:
    """Provide a deterministic ledger partition key."""
    return "acme/webapp#main"


@pytest.fixture
def repo() -> InMemoryRepository:
    """Provide an in-memory repository holding an empty changelog."""
    return InMemoryRepository(
        {
            "READLOG.md": EMPTY_CHANGELOG,
            "app/auth.py": "def login(user, password):\n    return check(user, password)\n",
        }
    )


@pytest.fixture
def workflow(ledger: TransactionLedger, repo: InMemoryRepository) -> IngestWorkflow:
    """Provide an IngestWorkflow with AI and tickets disabled."""
    return IngestWorkflow(ledger, repo)


@pytest.fixture
def engine(ledger: TransactionLedger, repo: InMemoryRepository) -> RevertEngine:
    """Provide a RevertEngine using the heuristic rewrite only."""
    return RevertEngine(ledger, repo)


# ---------------------------------------------------------------------------
# Transaction factories shared across test modules
# ---------------------------------------------------------------------------


@pytest.fixture
def make_transaction(repo_branch: str) -> Callable[..., Transaction]:
    """Factory fixture: build a valid Transaction on top of *parent_id*."""

    def _factory(
        parent_id: str = ROOT,
        kind: TransactionKind = TransactionKind.PAIR,
        tag: str = "TEST",
        **overrides: Any,
    ) -> Transaction:
        txn_id, created = next_transaction_id(tag, after=parent_id)
        defaults: dict[str, Any] = {
            "repo_branch": repo_branch,
            "transaction_id": txn_id,
            "parent_transaction_id": parent_id,
            "kind": kind,
            "event_type": _EVENTS[kind],
            "created_at": created,
            "doc_change_hash": hash_text(f"doc {txn_id}"),
        }
        if kind == TransactionKind.PAIR:
            defaults["source_change_hash"] = hash_text(f"diff {txn_id}")
        if kind == TransactionKind.REVERT:
            defaults["reverted_transaction_id"] = parent_id
        defaults.update(overrides)
        return Transaction(**defaults)

    return _factory


@pytest.fixture
def append(
    ledger: TransactionLedger,
    repo_branch: str,
    make_transaction: Callable[..., Transaction],
) -> Callable[..., Transaction]:
    """Factory fixture: append a transaction on top of the current HEAD."""

    def _append(**overrides: Any) -> Transaction:
        return ledger.commit(
            repo_branch,
            lambda parent_id, _parent: make_transaction(parent_id, **overrides),
        )

    return _append
