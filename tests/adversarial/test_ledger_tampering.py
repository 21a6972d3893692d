"""Adversarial tests — tampering with the stored ledger.

Direct SQL edits to transaction rows, seals, links or the HEAD row must
be caught by ``verify_chain`` or by the history walk.
"""

from __future__ import annotations

import json
import sqlite3

import pytest

from docflow.core.errors import BrokenChainError, LedgerIntegrityError
from docflow.models.transactions import TransactionKind


@pytest.fixture
def chain(append):
    """Three sealed transactions: PAIR -> DOC_ONLY -> PAIR."""
    return [
        append(concept_key="TICKET:SEC-42", pr_number=10),
        append(kind=TransactionKind.DOC_ONLY, concept_key="TICKET:SEC-42"),
        append(concept_key="PR#11", pr_number=11),
    ]


def _sql(ledger, statement: str, params: tuple = ()) -> None:
    with sqlite3.connect(ledger.db_path) as conn:
        conn.execute(statement, params)


class TestSealTampering:
    def test_untouched_chain_verifies(self, ledger, chain, repo_branch):
        assert ledger.verify_chain(repo_branch) is True

    def test_edited_record_body(self, ledger, chain, repo_branch):
        target = chain[1]
        record = json.loads(target.model_dump_json())
        record["doc_change_hash"] = "0" * 64
        _sql(
            ledger,
            "UPDATE ledger SET item_json = ? WHERE sort_key = ?",
            (json.dumps(record), target.transaction_id),
        )
        with pytest.raises(LedgerIntegrityError, match="Tampered"):
            ledger.verify_chain(repo_branch)

    def test_resealed_body_still_disagrees_with_seal_column(self, ledger, chain, repo_branch):
        # A forger who rewrites the seal inside the JSON but not the column.
        target = chain[0]
        record = json.loads(target.model_dump_json())
        record["record_hash"] = "f" * 64
        _sql(
            ledger,
            "UPDATE ledger SET item_json = ? WHERE sort_key = ?",
            (json.dumps(record), target.transaction_id),
        )
        with pytest.raises(LedgerIntegrityError):
            ledger.verify_chain(repo_branch)

    def test_forged_seal_column(self, ledger, chain, repo_branch):
        _sql(
            ledger,
            "UPDATE ledger SET record_hash = 'forged' WHERE sort_key = ?",
            (chain[2].transaction_id,),
        )
        with pytest.raises(LedgerIntegrityError, match="seal column"):
            ledger.verify_chain(repo_branch)


class TestLinkTampering:
    def test_deleted_middle_record(self, ledger, chain, repo_branch):
        _sql(ledger, "DELETE FROM ledger WHERE sort_key = ?", (chain[1].transaction_id,))
        with pytest.raises(BrokenChainError, match=chain[1].transaction_id):
            ledger.verify_chain(repo_branch)

    def test_head_rewound_orphans_later_records(self, ledger, chain, repo_branch):
        _sql(
            ledger,
            "UPDATE ledger SET item_json = json_set(item_json, '$.latest_transaction_id', ?) "
            "WHERE repo_branch = ? AND sort_key = 'HEAD'",
            (chain[0].transaction_id, repo_branch),
        )
        assert ledger.get_head(repo_branch) == chain[0].transaction_id
        with pytest.raises(LedgerIntegrityError, match="not reachable"):
            ledger.verify_chain(repo_branch)

    def test_cycle_is_detected_by_walk(self, ledger, chain, repo_branch):
        _sql(
            ledger,
            "UPDATE ledger SET item_json = json_set(item_json, '$.parent_transaction_id', ?) "
            "WHERE sort_key = ?",
            (chain[2].transaction_id, chain[0].transaction_id),
        )
        with pytest.raises(BrokenChainError, match="Cycle"):
            list(ledger.walk_history(repo_branch))

    def test_head_pointing_at_missing_record(self, ledger, chain, repo_branch):
        _sql(
            ledger,
            "UPDATE ledger SET item_json = json_set(item_json, '$.latest_transaction_id', ?) "
            "WHERE repo_branch = ? AND sort_key = 'HEAD'",
            ("TXN#2099-01-01T00:00:00.000000Z#GHOST#00000000", repo_branch),
        )
        with pytest.raises(BrokenChainError):
            list(ledger.walk_history(repo_branch))
