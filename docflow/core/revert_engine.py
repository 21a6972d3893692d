"""Semantic revert engine.

Undoes a ledger transaction together with every later DOC_ONLY edit that
shares its concept key:

    LOADING -> CODE_REVERTING -> DOCS_REWRITING -> COMMITTING -> RECORDING -> DONE

``FAILED`` is reachable from every non-terminal state.  Nothing is rolled
back automatically; the ordering guarantees that the ledger is only written
after both repository writes succeeded, so HEAD never claims a revert that
did not land.
"""

from __future__ import annotations

import logging

from docflow.adapters.base import ChangeProducer, RepositoryService
from docflow.core.errors import (
    DocflowError,
    InvalidRevertTargetError,
    NoChangeProducedError,
    NotFoundError,
    UpstreamFailureError,
)
from docflow.core.hasher import hash_text
from docflow.core.ledger import DEFAULT_MAX_ATTEMPTS, TransactionLedger
from docflow.core.rewrite import DocumentRewriter
from docflow.models.repository import WriteResult
from docflow.models.revert import (
    VALID_REVERT_TRANSITIONS,
    RemovalSpec,
    RevertResult,
    RevertState,
)
from docflow.models.transactions import (
    EventType,
    Transaction,
    TransactionKind,
    next_transaction_id,
    parse_repo_branch,
)

logger = logging.getLogger(__name__)

DEFAULT_DOC_PATH = "READLOG.md"
EMPTY_CHANGELOG = "# Release / Change Log\n"
DOC_CHANGE_TYPE = "UTF8_CONTENT_SHA256"
MAX_RELATED_SUMMARIES = 20


class InvalidRevertTransitionError(RuntimeError):
    """Raised when the engine tries to skip or re-enter a revert state."""


class _RevertRun:
    """Per-request state tracker; validates every transition."""

    def __init__(self, target_id: str) -> None:
        self.target_id = target_id
        self.state = RevertState.LOADING
        self.states: list[RevertState] = [RevertState.LOADING]

    def advance(self, target: RevertState) -> None:
        allowed = VALID_REVERT_TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise InvalidRevertTransitionError(
                f"Cannot move revert of {self.target_id} from {self.state.value} "
                f"to {target.value}"
            )
        logger.info("Revert %s: %s -> %s", self.target_id, self.state.value, target.value)
        self.state = target
        self.states.append(target)


class RevertEngine:
    """Reverts a transaction (code + docs) and records a REVERT transaction.

    Parameters
    ----------
    ledger:
        The transaction ledger to read from and append to.
    repository:
        Repository service for the owner/repo the ledger branch belongs to.
    rewriter:
        Rewrite strategy chain.  Defaults to AI-then-heuristic when a
        *producer* is given, heuristic only otherwise.
    doc_path:
        Documentation file rewritten when the target does not name one.
    max_append_attempts:
        Bound on HEAD-race retries when recording the REVERT transaction.
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        repository: RepositoryService,
        *,
        rewriter: DocumentRewriter | None = None,
        producer: ChangeProducer | None = None,
        doc_path: str = DEFAULT_DOC_PATH,
        max_append_attempts: int = DEFAULT_MAX_ATTEMPTS,
        context_lines: int = 3,
    ) -> None:
        self._ledger = ledger
        self._repo = repository
        self._rewriter = rewriter or DocumentRewriter.default(
            producer, context_lines=context_lines
        )
        self._doc_path = doc_path
        self._max_append_attempts = max_append_attempts

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def revert(
        self, repo_branch: str, target_id: str, *, author: str | None = None
    ) -> RevertResult:
        """Revert *target_id* on *repo_branch* and return the recorded result."""
        _, _, branch = parse_repo_branch(repo_branch)
        run = _RevertRun(target_id)
        code_revert_id: str | None = None
        try:
            # 1. LOADING
            target, swept = self._load(repo_branch, target_id)
            doc_path = target.doc_file_path or self._doc_path
            # The document is captured before the code revert: the restored
            # pre-merge tree carries the pre-merge document, which would hide
            # every later entry from the rewrite.
            current = self._repo.read_file(doc_path, branch)
            before = current.content if current is not None else EMPTY_CHANGELOG

            # 2. CODE_REVERTING
            run.advance(RevertState.CODE_REVERTING)
            if target.merge_commit_id:
                code_revert_id = self._revert_merge_commit(
                    target, target.merge_commit_id, branch
                )
                current = self._repo.read_file(doc_path, branch)
            else:
                logger.info(
                    "Transaction %s has no merge commit; skipping code revert", target_id
                )

            # 3. DOCS_REWRITING
            run.advance(RevertState.DOCS_REWRITING)
            removal = self._removal_spec(target, swept)
            after, strategy = self._rewriter.rewrite(before, removal)
            if after == before:
                raise NoChangeProducedError(
                    f"Rewriting {doc_path} without {removal.concept_key or target_id} "
                    f"produced no change; refusing to write an empty commit"
                )

            # 4. COMMITTING
            run.advance(RevertState.COMMITTING)
            if current is not None and current.content == after and code_revert_id:
                # The restored tree already carries the rewritten document.
                logger.info(
                    "%s already matches the rewrite after code revert %s; no doc write",
                    doc_path,
                    code_revert_id,
                )
                write = WriteResult(
                    commit_id=code_revert_id, version_token=current.version_token
                )
            else:
                write = self._repo.write_file(
                    doc_path,
                    after,
                    self._commit_message(target, removal),
                    branch=branch,
                    expected_version=current.version_token if current is not None else None,
                )

            # 5. RECORDING
            run.advance(RevertState.RECORDING)
            swept_ids = [t.transaction_id for t in swept]

            def build(parent_id: str, _parent: Transaction | None) -> Transaction:
                txn_id, created = next_transaction_id("REVERT", after=parent_id)
                return Transaction(
                    repo_branch=repo_branch,
                    transaction_id=txn_id,
                    parent_transaction_id=parent_id,
                    kind=TransactionKind.REVERT,
                    event_type=EventType.REVERT,
                    ai_generated=strategy == "ai",
                    created_at=created,
                    doc_change_hash=hash_text(after),
                    doc_change_type=DOC_CHANGE_TYPE,
                    concept_key=target.concept_key,
                    related_concept_keys=target.related_concept_keys,
                    author=author,
                    pr_number=target.pr_number,
                    pr_title=target.pr_title,
                    doc_file_path=doc_path,
                    doc_file_version_id=write.version_token,
                    doc_commit_id=write.commit_id,
                    message=f"Revert {target_id}",
                    reverted_transaction_id=target_id,
                    also_removed_transaction_ids=swept_ids,
                    removed_pr_numbers=removal.pr_numbers,
                    code_revert_commit_id=code_revert_id,
                    docs_revert_commit_id=write.commit_id,
                )

            recorded = self._ledger.commit(
                repo_branch, build, max_attempts=self._max_append_attempts
            )
            run.advance(RevertState.DONE)
        except UpstreamFailureError as exc:
            self._fail(run)
            if code_revert_id:
                logger.critical(
                    "Code for %s was reverted in %s but the documentation commit "
                    "failed; code and docs are now inconsistent: %s",
                    target_id,
                    code_revert_id,
                    exc,
                )
                raise UpstreamFailureError(
                    f"Documentation revert failed after code revert {code_revert_id}: {exc}",
                    inconsistent=True,
                    code_revert_commit_id=code_revert_id,
                ) from exc
            raise
        except DocflowError as exc:
            self._fail(run)
            if code_revert_id:
                logger.critical(
                    "Revert of %s stopped in %s after code revert %s: %s",
                    target_id,
                    run.states[-2].value,
                    code_revert_id,
                    exc,
                )
            raise

        logger.info(
            "Reverted %s as %s (swept %d doc-only edits, strategy=%s)",
            target_id,
            recorded.transaction_id,
            len(swept_ids),
            strategy,
        )
        return RevertResult(
            transaction=recorded,
            states=run.states,
            doc_hash_before=hash_text(before),
            doc_hash_after=hash_text(after),
            strategy=strategy,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _load(
        self, repo_branch: str, target_id: str
    ) -> tuple[Transaction, list[Transaction]]:
        target = self._ledger.require_transaction(repo_branch, target_id)
        if target.kind == TransactionKind.REVERT:
            raise InvalidRevertTargetError(
                f"{target_id} is a REVERT transaction; reverting a revert is not supported"
            )
        swept: list[Transaction] = []
        if target.concept_key:
            swept = list(
                self._ledger.query_by_concept(
                    repo_branch,
                    target.concept_key,
                    after=target.transaction_id,
                    kind=TransactionKind.DOC_ONLY,
                )
            )
        logger.info(
            "Revert target %s (concept=%s, sweeping %d doc-only edits)",
            target_id,
            target.concept_key,
            len(swept),
        )
        return target, swept

    def _revert_merge_commit(
        self, target: Transaction, merge_id: str, branch: str
    ) -> str:
        """Structural revert: a commit whose tree is the merge's first parent.

        The new commit is parented on the current branch tip, so later
        history is preserved; only the tree goes back.
        """
        try:
            tip = self._repo.get_branch_head(branch)
            merge = self._repo.get_commit(merge_id)
            if not merge.parents:
                raise UpstreamFailureError(
                    f"Commit {merge_id} has no parents; cannot revert"
                )
            first_parent = self._repo.get_commit(merge.parents[0])
            label = target.pr_title or (
                f"PR #{target.pr_number}" if target.pr_number else "merge"
            )
            new_commit = self._repo.create_commit_from_tree(
                first_parent.tree_id,
                tip,
                f'Revert: "{label}"\n\nThis reverts commit {merge_id}.',
            )
            self._repo.update_branch_head(branch, new_commit)
        except NotFoundError as exc:
            raise UpstreamFailureError(f"Code revert failed: {exc}") from exc
        logger.info("Reverted merge commit %s as %s", merge_id, new_commit)
        return new_commit

    @staticmethod
    def _removal_spec(target: Transaction, swept: list[Transaction]) -> RemovalSpec:
        pr_numbers = {t.pr_number for t in [target, *swept] if t.pr_number is not None}
        summaries = [t.message or t.summary_preview or "" for t in swept]
        return RemovalSpec(
            concept_key=target.concept_key,
            pr_numbers=sorted(pr_numbers),
            titles=[target.pr_title] if target.pr_title else [],
            related_summaries=[s for s in summaries if s][:MAX_RELATED_SUMMARIES],
        )

    @staticmethod
    def _commit_message(target: Transaction, removal: RemovalSpec) -> str:
        if removal.pr_numbers:
            what = ", ".join(f"PR #{n}" for n in removal.pr_numbers) + " section(s)"
        else:
            what = removal.concept_key or "entry"
        return f"docs(revert): remove {what} (revert {target.transaction_id})"

    @staticmethod
    def _fail(run: _RevertRun) -> None:
        if run.state not in (RevertState.DONE, RevertState.FAILED):
            run.advance(RevertState.FAILED)
