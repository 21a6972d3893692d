"""Revert state machine models — deterministic transitions per revert request."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from docflow.models.transactions import Transaction


class RevertState(str, Enum):
    """Lifecycle of one revert request."""

    LOADING = "loading"
    CODE_REVERTING = "code_reverting"
    DOCS_REWRITING = "docs_rewriting"
    COMMITTING = "committing"
    RECORDING = "recording"
    DONE = "done"
    FAILED = "failed"


# Valid state transitions, enforced by RevertEngine.
# Terminal states (DONE, FAILED) have no outgoing transitions.
VALID_REVERT_TRANSITIONS: dict[RevertState, set[RevertState]] = {
    RevertState.LOADING: {RevertState.CODE_REVERTING, RevertState.FAILED},
    RevertState.CODE_REVERTING: {RevertState.DOCS_REWRITING, RevertState.FAILED},
    RevertState.DOCS_REWRITING: {RevertState.COMMITTING, RevertState.FAILED},
    RevertState.COMMITTING: {RevertState.RECORDING, RevertState.FAILED},
    RevertState.RECORDING: {RevertState.DONE, RevertState.FAILED},
    RevertState.DONE: set(),  # terminal
    RevertState.FAILED: set(),  # terminal
}


class RemovalSpec(BaseModel):
    """What a documentation rewrite must excise, and nothing else."""

    model_config = ConfigDict(frozen=True)

    concept_key: str | None = None
    pr_numbers: list[int] = []
    titles: list[str] = []
    related_summaries: list[str] = []  # messages of swept DOC_ONLY edits

    @property
    def is_empty(self) -> bool:
        return not (self.concept_key or self.pr_numbers or self.titles)


class RevertResult(BaseModel):
    """What a completed revert produced."""

    model_config = ConfigDict(frozen=True)

    transaction: Transaction
    states: list[RevertState]
    doc_hash_before: str
    doc_hash_after: str
    strategy: str  # which rewrite strategy produced the new content
