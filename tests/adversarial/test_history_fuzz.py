"""Adversarial tests — randomized histories.

Whatever mix of kinds and concepts is appended, the chain stays linear,
ids stay ordered and per-concept queries agree with the walk.
"""

from __future__ import annotations

import random

import pytest

from docflow.history.projection import HistoryProjection
from docflow.models.transactions import TransactionKind

CONCEPTS = ["TICKET:SEC-42", "TICKET:OPS-1", "PR#7", "PR#8", None]


@pytest.mark.parametrize("seed", [1, 7, 42, 1234, 9999])
def test_random_history_is_consistent(seed, ledger, append, repo_branch):
    rng = random.Random(seed)
    appended = []
    for _ in range(rng.randint(5, 25)):
        kind = rng.choice([TransactionKind.PAIR, TransactionKind.DOC_ONLY])
        overrides = {"kind": kind, "concept_key": rng.choice(CONCEPTS)}
        if appended and rng.random() < 0.2:
            overrides = {
                "kind": TransactionKind.REVERT,
                "concept_key": overrides["concept_key"],
                "reverted_transaction_id": rng.choice(appended).transaction_id,
            }
        appended.append(append(**overrides))

    assert ledger.verify_chain(repo_branch)
    walked = list(ledger.walk_history(repo_branch))
    assert [t.transaction_id for t in walked] == [
        t.transaction_id for t in reversed(appended)
    ]
    for child, parent in zip(walked, walked[1:]):
        assert child.parent_transaction_id == parent.transaction_id
        assert child.transaction_id > parent.transaction_id

    for concept in filter(None, CONCEPTS):
        expected = [t.transaction_id for t in appended if t.concept_key == concept]
        got = [t.transaction_id for t in ledger.query_by_concept(repo_branch, concept)]
        assert got == expected

    snapshot = HistoryProjection(ledger).snapshot(repo_branch)
    assert snapshot.total == len(appended)
    assert sum(snapshot.counts.values()) == len(appended)


@pytest.mark.parametrize("seed", [3, 5, 8])
def test_random_pivot_filters_after(seed, ledger, append, repo_branch):
    rng = random.Random(seed)
    appended = [
        append(kind=rng.choice([TransactionKind.PAIR, TransactionKind.DOC_ONLY]),
               concept_key="TICKET:SEC-42")
        for _ in range(12)
    ]
    pivot = rng.randrange(len(appended))
    later_docs = [
        t.transaction_id
        for t in appended[pivot + 1:]
        if t.kind == TransactionKind.DOC_ONLY
    ]
    got = ledger.query_by_concept(
        repo_branch,
        "TICKET:SEC-42",
        after=appended[pivot].transaction_id,
        kind=TransactionKind.DOC_ONLY,
    )
    assert [t.transaction_id for t in got] == later_docs
