"""HistoryProjection — pure read-only view over the TransactionLedger.

History is a PROJECTION of the ledger.  It does not compute truth; it
displays it.  Every call re-reads from the ledger; the projection never
keeps state of its own.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import islice

from pydantic import BaseModel, ConfigDict, Field

from docflow.adapters.base import RepositoryService
from docflow.core.errors import BrokenChainError, LedgerIntegrityError, NotFoundError
from docflow.core.ledger import TransactionLedger
from docflow.models.transactions import ROOT, Transaction, TransactionKind

logger = logging.getLogger(__name__)


class ConceptView(BaseModel):
    """Every transaction linked to one concept key, oldest first."""

    model_config = ConfigDict(frozen=True)

    concept_key: str
    transactions: list[Transaction] = []

    @property
    def reverted(self) -> bool:
        """Whether the newest transaction for the concept is a REVERT."""
        return bool(self.transactions) and (
            self.transactions[-1].kind == TransactionKind.REVERT
        )

    @property
    def pr_numbers(self) -> list[int]:
        return sorted({t.pr_number for t in self.transactions if t.pr_number is not None})


class HistorySnapshot(BaseModel):
    """A frozen, point-in-time summary of one repo_branch.

    Computed fresh on every ``snapshot()`` call and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    repo_branch: str
    head: str = ROOT
    total: int = 0
    counts: dict[str, int] = {}
    ai_generated: int = 0
    concepts: list[str] = []
    chain_valid: bool = True
    chain_error: str | None = None
    latest: Transaction | None = None
    taken_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class HistoryProjection:
    """Read-only queries over the ledger.

    Parameters
    ----------
    ledger:
        The TransactionLedger to project from.
    """

    def __init__(self, ledger: TransactionLedger) -> None:
        self._ledger = ledger

    def timeline(
        self,
        repo_branch: str,
        *,
        limit: int | None = None,
        from_id: str | None = None,
    ) -> list[Transaction]:
        """Transactions from HEAD (or *from_id*) back towards ROOT, newest first."""
        walker = self._ledger.walk_history(repo_branch, from_id)
        return list(islice(walker, limit) if limit is not None else walker)

    def concept_view(self, repo_branch: str, concept_key: str) -> ConceptView:
        return ConceptView(
            concept_key=concept_key,
            transactions=list(self._ledger.query_by_concept(repo_branch, concept_key)),
        )

    def snapshot(self, repo_branch: str) -> HistorySnapshot:
        """Summarize a branch: HEAD, per-kind counts, concepts, chain validity."""
        records = list(self._ledger.iter_transactions(repo_branch))
        counts = {kind.value: 0 for kind in TransactionKind}
        concepts: set[str] = set()
        for record in records:
            counts[record.kind.value] += 1
            concepts.update(record.related_concept_keys)

        chain_valid = True
        chain_error: str | None = None
        try:
            self._ledger.verify_chain(repo_branch)
        except (BrokenChainError, LedgerIntegrityError) as exc:
            chain_valid = False
            chain_error = str(exc)
            logger.warning("Chain verification failed for %s: %s", repo_branch, exc)

        head = self._ledger.get_head(repo_branch)
        latest = self._ledger.get_transaction(repo_branch, head)
        return HistorySnapshot(
            repo_branch=repo_branch,
            head=head,
            total=len(records),
            counts=counts,
            ai_generated=sum(1 for r in records if r.ai_generated),
            concepts=sorted(concepts),
            chain_valid=chain_valid,
            chain_error=chain_error,
            latest=latest,
        )

    def document_at(
        self,
        repo_branch: str,
        transaction_id: str,
        repository: RepositoryService,
    ) -> str:
        """Content of the documentation file as written by *transaction_id*.

        Reads the file at the transaction's recorded doc commit.  Raises
        ``NotFoundError`` when the transaction is unknown, recorded no doc
        commit, or the file is absent at that commit.
        """
        record = self._ledger.require_transaction(repo_branch, transaction_id)
        if not record.doc_commit_id or not record.doc_file_path:
            raise NotFoundError(
                f"Transaction {transaction_id} recorded no documentation commit"
            )
        content = repository.read_file(record.doc_file_path, record.doc_commit_id)
        if content is None:
            raise NotFoundError(
                f"{record.doc_file_path} not found at {record.doc_commit_id}"
            )
        return content.content
