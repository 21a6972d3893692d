"""Tests for the RevertEngine — sweep, code revert, doc rewrite, recording."""

from __future__ import annotations

import pytest

from docflow.adapters.memory import InMemoryRepository
from docflow.core.errors import (
    InvalidRevertTargetError,
    NoChangeProducedError,
    NotFoundError,
    UpstreamFailureError,
)
from docflow.core.hasher import hash_text
from docflow.core.revert_engine import EMPTY_CHANGELOG, RevertEngine
from docflow.models.revert import RevertState
from docflow.models.transactions import TransactionKind

NEW_AUTH = "def login(user, password):\n    throttle(user)\n    return check(user, password)\n"

SECTIONED = """# Release / Change Log

## PR #5: Add search
Search box.

---

## PR #4: Add export
CSV export.

---
"""


def _merge_pr10(repo: InMemoryRepository):
    return repo.merge_pull_request(
        10,
        "Add login rate limiting (SEC-42)",
        {"app/auth.py": NEW_AUTH},
        commit_messages=["Add throttle helper"],
    )


def _doc(repo: InMemoryRepository) -> str:
    return repo.read_file("READLOG.md", "main").content


class TestRevertPair:
    def test_round_trip_restores_pre_pair_document(self, repo, workflow, engine, repo_branch):
        before_pair = _doc(repo)
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        assert "## PR #10" in _doc(repo)

        result = engine.revert(repo_branch, pair.transaction_id)

        assert _doc(repo) == before_pair
        assert result.doc_hash_after == hash_text(before_pair)
        assert result.transaction.doc_change_hash == hash_text(before_pair)

    def test_code_is_reverted_structurally(self, repo, workflow, engine, repo_branch):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        tip_before = repo.branches["main"]

        result = engine.revert(repo_branch, pair.transaction_id)

        code_commit = repo.get_commit(result.transaction.code_revert_commit_id)
        assert code_commit.parents == [tip_before]
        assert "throttle" not in repo.files_at("main")["app/auth.py"]
        assert "This reverts commit" in code_commit.message

    def test_revert_transaction_fields(self, repo, workflow, engine, ledger, repo_branch):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)

        result = engine.revert(repo_branch, pair.transaction_id, author="ops")
        txn = result.transaction

        assert txn.kind == TransactionKind.REVERT
        assert txn.reverted_transaction_id == pair.transaction_id
        assert txn.parent_transaction_id == pair.transaction_id
        assert txn.concept_key == "TICKET:SEC-42"
        assert txn.removed_pr_numbers == [10]
        assert txn.author == "ops"
        assert txn.docs_revert_commit_id is not None
        assert ledger.get_head(repo_branch) == txn.transaction_id
        assert result.states == [
            RevertState.LOADING,
            RevertState.CODE_REVERTING,
            RevertState.DOCS_REWRITING,
            RevertState.COMMITTING,
            RevertState.RECORDING,
            RevertState.DONE,
        ]

    def test_later_entries_survive(self, repo, workflow, engine, repo_branch):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        repo.merge_pull_request(11, "Add dark mode toggle", {"app/theme.py": "DARK = True\n"})
        workflow.record_merge("acme", "webapp", 11)

        result = engine.revert(repo_branch, pair.transaction_id)

        doc = _doc(repo)
        assert "## PR #11: Add dark mode toggle" in doc
        assert "PR #10" not in doc
        assert result.transaction.docs_revert_commit_id != result.transaction.code_revert_commit_id
        assert "docs(revert): remove PR #10" in repo.get_commit(
            result.transaction.docs_revert_commit_id
        ).message

    def test_pr_with_longer_number_prefix_survives(self, repo, workflow, engine, repo_branch):
        repo.merge_pull_request(1, "Add export", {"app/export.py": "x\n"})
        first = workflow.record_merge("acme", "webapp", 1)
        repo.merge_pull_request(12, "Add search", {"app/search.py": "s\n"})
        workflow.record_merge("acme", "webapp", 12)

        engine.revert(repo_branch, first.transaction_id)

        doc = _doc(repo)
        assert "## PR #12: Add search" in doc
        assert "pull/12" in doc
        assert "## PR #1:" not in doc


class TestConceptSweep:
    def test_manual_edit_for_same_concept_is_swept(self, repo, workflow, engine, repo_branch):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        manual = workflow.record_manual_edit(
            "acme",
            "webapp",
            "docs-team",
            "Document SEC-42 rate limit default",
            "READLOG.md",
            _doc(repo) + "\n> Ops note (SEC-42): limit defaults to 5 per minute.\n",
        )
        assert manual.concept_key == pair.concept_key

        result = engine.revert(repo_branch, pair.transaction_id)

        txn = result.transaction
        assert txn.also_removed_transaction_ids == [manual.transaction_id]
        assert txn.doc_change_hash not in (pair.doc_change_hash, manual.doc_change_hash)
        assert "Ops note" not in _doc(repo)

    def test_clustering_sweeps_same_concept_only(self, repo, ledger, append, repo_branch):
        head = repo.read_file("READLOG.md", "main")
        repo.write_file(
            "READLOG.md", SECTIONED, "seed", branch="main", expected_version=head.version_token
        )
        t1 = append(concept_key="PR#4", pr_number=4, doc_file_path="READLOG.md")
        t3 = append(concept_key="PR#5", pr_number=5, doc_file_path="READLOG.md")
        t2 = append(
            kind=TransactionKind.DOC_ONLY,
            concept_key="PR#4",
            doc_file_path="READLOG.md",
            message="Clarify export format",
        )

        result = RevertEngine(ledger, repo).revert(repo_branch, t1.transaction_id)

        assert result.transaction.also_removed_transaction_ids == [t2.transaction_id]
        assert t3.transaction_id not in result.transaction.also_removed_transaction_ids
        doc = _doc(repo)
        assert "## PR #4" not in doc
        assert "## PR #5: Add search" in doc
        assert result.transaction.code_revert_commit_id is None


class TestRevertFailures:
    def test_unknown_target_is_not_found_and_head_unchanged(
        self, repo, workflow, engine, ledger, repo_branch
    ):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        with pytest.raises(NotFoundError):
            engine.revert(repo_branch, "TXN#2020-01-01T00:00:00.000000Z#PR#1#00000000")
        assert ledger.get_head(repo_branch) == pair.transaction_id
        assert ledger.count(repo_branch) == 1

    def test_revert_target_rejected(self, repo, workflow, engine, ledger, repo_branch):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        revert = engine.revert(repo_branch, pair.transaction_id).transaction
        with pytest.raises(InvalidRevertTargetError):
            engine.revert(repo_branch, revert.transaction_id)
        assert ledger.get_head(repo_branch) == revert.transaction_id

    def test_no_change_produced(self, engine, append, ledger, repo_branch):
        target = append(
            kind=TransactionKind.DOC_ONLY, concept_key="PR#99", doc_file_path="READLOG.md"
        )
        with pytest.raises(NoChangeProducedError):
            engine.revert(repo_branch, target.transaction_id)
        assert ledger.get_head(repo_branch) == target.transaction_id

    def test_code_revert_failure_aborts_before_docs(self, repo, workflow, engine, ledger, repo_branch):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        doc_before = _doc(repo)
        tip_before = repo.branches["main"]
        repo.fail_on = {"create_commit_from_tree"}

        with pytest.raises(UpstreamFailureError) as info:
            engine.revert(repo_branch, pair.transaction_id)

        assert info.value.inconsistent is False
        assert repo.branches["main"] == tip_before
        assert _doc(repo) == doc_before
        assert ledger.get_head(repo_branch) == pair.transaction_id

    def test_docs_failure_after_code_revert_is_inconsistent(
        self, repo, workflow, engine, ledger, repo_branch, caplog
    ):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        repo.merge_pull_request(11, "Add dark mode toggle", {"app/theme.py": "DARK = True\n"})
        latest = workflow.record_merge("acme", "webapp", 11)
        repo.fail_on = {"write_file"}

        with caplog.at_level("CRITICAL", logger="docflow.core.revert_engine"):
            with pytest.raises(UpstreamFailureError) as info:
                engine.revert(repo_branch, pair.transaction_id)

        assert info.value.inconsistent is True
        assert info.value.code_revert_commit_id == repo.branches["main"]
        assert ledger.get_head(repo_branch) == latest.transaction_id
        assert any(r.levelname == "CRITICAL" for r in caplog.records)


class _RewritingProducer:
    def summarize_change(self, context):
        return None

    def generate_doc_rewrite(self, current_content, removal):
        return EMPTY_CHANGELOG + "\n_Rewritten without " + str(removal.concept_key) + "_\n"


class TestAiRewrite:
    def test_ai_rewrite_is_used_and_flagged(self, repo, workflow, ledger, repo_branch):
        _merge_pr10(repo)
        pair = workflow.record_merge("acme", "webapp", 10)
        engine = RevertEngine(ledger, repo, producer=_RewritingProducer())

        result = engine.revert(repo_branch, pair.transaction_id)

        assert result.strategy == "ai"
        assert result.transaction.ai_generated is True
        assert "_Rewritten without TICKET:SEC-42_" in _doc(repo)
