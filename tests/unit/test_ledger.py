"""Tests for the TransactionLedger — conditional append, HEAD, queries, walks."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from docflow.core.errors import (
    ConcurrentModificationError,
    DuplicateTransactionError,
    LedgerUnavailableError,
    NotFoundError,
)
from docflow.core.ledger import TransactionLedger
from docflow.models.transactions import (
    ROOT,
    EventType,
    Transaction,
    TransactionKind,
    next_transaction_id,
)


class TestAppend:
    def test_empty_branch_head_is_root(self, ledger: TransactionLedger, repo_branch):
        assert ledger.get_head(repo_branch) == ROOT
        assert ledger.get_head_pointer(repo_branch).latest_transaction_id == ROOT

    def test_append_moves_head_and_seals(self, ledger, repo_branch, make_transaction):
        record = make_transaction(ROOT, concept_key="PR#10")
        sealed = ledger.append_transaction(repo_branch, record, ROOT)
        assert sealed.record_hash != ""
        assert ledger.get_head(repo_branch) == sealed.transaction_id
        assert ledger.get_transaction(repo_branch, sealed.transaction_id) == sealed
        pointer = ledger.get_head_pointer(repo_branch)
        assert pointer.latest_transaction_id == sealed.transaction_id
        assert pointer.updated_at is not None

    def test_stale_parent_rejected_and_nothing_written(
        self, ledger, repo_branch, make_transaction, append
    ):
        first = append()
        stale = make_transaction(ROOT)
        with pytest.raises(ConcurrentModificationError) as info:
            ledger.append_transaction(repo_branch, stale, ROOT)
        assert info.value.expected == ROOT
        assert info.value.actual == first.transaction_id
        assert ledger.get_head(repo_branch) == first.transaction_id
        assert ledger.get_transaction(repo_branch, stale.transaction_id) is None
        assert ledger.count(repo_branch) == 1

    def test_record_parent_must_match_expected(self, ledger, repo_branch, make_transaction, append):
        first = append()
        record = make_transaction(ROOT)
        with pytest.raises(ValueError):
            ledger.append_transaction(repo_branch, record, first.transaction_id)

    def test_record_branch_must_match(self, ledger, make_transaction):
        record = make_transaction(ROOT)
        with pytest.raises(ValueError):
            ledger.append_transaction("other/repo#main", record, ROOT)

    def test_duplicate_doc_hash_for_same_concept_rejected(self, ledger, repo_branch, append):
        first = append(concept_key="TICKET:ABC-1", doc_change_hash="d" * 64)
        with pytest.raises(DuplicateTransactionError):
            append(
                kind=TransactionKind.DOC_ONLY,
                concept_key="TICKET:ABC-1",
                doc_change_hash="d" * 64,
            )
        assert ledger.get_head(repo_branch) == first.transaction_id

    def test_same_doc_hash_for_other_concept_allowed(self, ledger, repo_branch, append):
        append(concept_key="TICKET:ABC-1", doc_change_hash="d" * 64)
        second = append(concept_key="TICKET:ABC-2", doc_change_hash="d" * 64)
        assert ledger.get_head(repo_branch) == second.transaction_id

    def test_doc_hash_may_repeat_after_a_different_one(self, ledger, append):
        append(concept_key="PR#1", doc_change_hash="d" * 64)
        append(kind=TransactionKind.DOC_ONLY, concept_key="PR#1", doc_change_hash="e" * 64)
        third = append(
            kind=TransactionKind.DOC_ONLY, concept_key="PR#1", doc_change_hash="d" * 64
        )
        assert third.doc_change_hash == "d" * 64

    def test_check_duplicate_is_read_only(self, ledger, repo_branch, append):
        first = append(concept_key="TICKET:ABC-1", doc_change_hash="d" * 64)
        with pytest.raises(DuplicateTransactionError) as info:
            ledger.check_duplicate(repo_branch, "TICKET:ABC-1", "d" * 64)
        assert first.transaction_id in str(info.value)
        ledger.check_duplicate(repo_branch, "TICKET:ABC-1", "e" * 64)
        ledger.check_duplicate(repo_branch, "TICKET:ABC-2", "d" * 64)
        ledger.check_duplicate(repo_branch, None, "d" * 64)
        assert ledger.count(repo_branch) == 1
        assert ledger.get_head(repo_branch) == first.transaction_id

    def test_branches_are_independent(self, ledger, make_transaction):
        a = ledger.append_transaction(
            "acme/webapp#main", make_transaction(ROOT, repo_branch="acme/webapp#main"), ROOT
        )
        b = ledger.append_transaction(
            "acme/webapp#dev", make_transaction(ROOT, repo_branch="acme/webapp#dev"), ROOT
        )
        assert ledger.get_head("acme/webapp#main") == a.transaction_id
        assert ledger.get_head("acme/webapp#dev") == b.transaction_id
        assert ledger.list_repo_branches() == ["acme/webapp#dev", "acme/webapp#main"]


class TestCommit:
    def test_builder_sees_current_head(self, ledger, repo_branch, append):
        first = append()
        seen = []

        def build(parent_id, parent):
            seen.append((parent_id, parent))
            txn_id, created = next_transaction_id("MANUAL", after=parent_id)
            return Transaction(
                repo_branch=repo_branch,
                transaction_id=txn_id,
                parent_transaction_id=parent_id,
                kind=TransactionKind.DOC_ONLY,
                event_type=EventType.MANUAL,
                created_at=created,
                doc_change_hash="f" * 64,
            )

        second = ledger.commit(repo_branch, build)
        assert seen == [(first.transaction_id, first)]
        assert second.parent_transaction_id == first.transaction_id

    def test_retries_after_lost_race(self, ledger, repo_branch, make_transaction):
        attempts = []

        def build(parent_id, _parent):
            attempts.append(parent_id)
            if len(attempts) == 1:
                # Another writer lands between our HEAD read and our append.
                ledger.append_transaction(repo_branch, make_transaction(parent_id), parent_id)
            return make_transaction(parent_id)

        recorded = ledger.commit(repo_branch, build)
        assert len(attempts) == 2
        assert attempts[0] == ROOT
        assert recorded.parent_transaction_id == attempts[1]
        assert ledger.count(repo_branch) == 2

    def test_gives_up_after_max_attempts(self, ledger, repo_branch, make_transaction):
        def build(parent_id, _parent):
            ledger.append_transaction(repo_branch, make_transaction(parent_id), parent_id)
            return make_transaction(parent_id)

        with pytest.raises(ConcurrentModificationError):
            ledger.commit(repo_branch, build, max_attempts=2)
        assert ledger.count(repo_branch) == 2

    def test_max_attempts_must_be_positive(self, ledger, repo_branch, make_transaction):
        with pytest.raises(ValueError, match="max_attempts"):
            ledger.commit(
                repo_branch, lambda parent_id, _p: make_transaction(parent_id), max_attempts=0
            )
        assert ledger.count(repo_branch) == 0


class TestQueries:
    def test_require_transaction_raises(self, ledger, repo_branch):
        with pytest.raises(NotFoundError):
            ledger.require_transaction(repo_branch, "TXN#nope")

    def test_get_transaction_ignores_head_row(self, ledger, repo_branch, append):
        append()
        assert ledger.get_transaction(repo_branch, "HEAD") is None

    def test_query_by_concept_orders_and_filters(self, ledger, repo_branch, append):
        t1 = append(concept_key="PR#4")
        t3 = append(concept_key="PR#5")
        t2 = append(kind=TransactionKind.DOC_ONLY, concept_key="PR#4")
        everything = list(ledger.query_by_concept(repo_branch, "PR#4"))
        assert [t.transaction_id for t in everything] == [t1.transaction_id, t2.transaction_id]
        later_doc_only = list(
            ledger.query_by_concept(
                repo_branch, "PR#4", after=t1.transaction_id, kind=TransactionKind.DOC_ONLY
            )
        )
        assert [t.transaction_id for t in later_doc_only] == [t2.transaction_id]
        assert t3.transaction_id not in {t.transaction_id for t in later_doc_only}

    def test_query_by_concept_matches_related_keys(self, ledger, repo_branch, append):
        txn = append(concept_key="PR#4", related_concept_keys=["TICKET:ABC-9"])
        found = list(ledger.query_by_concept(repo_branch, "TICKET:ABC-9"))
        assert [t.transaction_id for t in found] == [txn.transaction_id]

    def test_query_by_concept_is_restartable(self, ledger, repo_branch, append):
        append(concept_key="PR#4")
        assert len(list(ledger.query_by_concept(repo_branch, "PR#4"))) == 1
        assert len(list(ledger.query_by_concept(repo_branch, "PR#4"))) == 1

    def test_iter_transactions_in_creation_order(self, ledger, repo_branch, append):
        ids = [append().transaction_id for _ in range(4)]
        assert [t.transaction_id for t in ledger.iter_transactions(repo_branch)] == ids


class TestWalkHistory:
    def test_walk_from_head_to_root(self, ledger, repo_branch, append):
        ids = [append().transaction_id for _ in range(3)]
        walked = [t.transaction_id for t in ledger.walk_history(repo_branch)]
        assert walked == list(reversed(ids))

    def test_walk_from_given_id(self, ledger, repo_branch, append):
        ids = [append().transaction_id for _ in range(3)]
        walked = [t.transaction_id for t in ledger.walk_history(repo_branch, ids[1])]
        assert walked == [ids[1], ids[0]]

    def test_walk_empty_branch(self, ledger, repo_branch):
        assert list(ledger.walk_history(repo_branch)) == []

    def test_walk_unknown_start_is_not_found(self, ledger, repo_branch):
        with pytest.raises(NotFoundError):
            list(ledger.walk_history(repo_branch, "TXN#missing"))


class TestStore:
    def test_missing_store_without_create_is_unavailable(self, tmp_dir: Path):
        with pytest.raises(LedgerUnavailableError):
            TransactionLedger(tmp_dir / "absent.db", create_if_missing=False)

    def test_existing_store_opens_without_create(self, tmp_dir: Path, make_transaction, repo_branch):
        path = tmp_dir / "ledger.db"
        TransactionLedger(path).append_transaction(repo_branch, make_transaction(ROOT), ROOT)
        reopened = TransactionLedger(path, create_if_missing=False)
        assert reopened.count(repo_branch) == 1

    def test_store_without_tables_is_unavailable(self, tmp_dir: Path):
        path = tmp_dir / "empty.db"
        sqlite3.connect(str(path)).close()
        with pytest.raises(LedgerUnavailableError):
            TransactionLedger(path, create_if_missing=False)

    def test_verify_chain_valid(self, ledger, repo_branch, append):
        for _ in range(3):
            append()
        assert ledger.verify_chain(repo_branch) is True

    def test_verify_chain_empty(self, ledger, repo_branch):
        assert ledger.verify_chain(repo_branch) is True
