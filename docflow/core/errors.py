"""Error taxonomy shared by the ledger, the workflows and the revert engine.

Every failure surfaced to a caller carries a distinct ``kind`` so the CLI
(or any other trigger) can report it without string matching.
"""

from __future__ import annotations


class DocflowError(RuntimeError):
    """Base class for all DocFlow failures."""

    kind = "DocflowError"


class NotFoundError(DocflowError):
    """A target transaction or file does not exist."""

    kind = "NotFound"


class ConcurrentModificationError(DocflowError):
    """HEAD moved between read and append (optimistic concurrency lost)."""

    kind = "ConcurrentModification"

    def __init__(self, message: str, *, expected: str = "", actual: str = "") -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class BrokenChainError(DocflowError):
    """A parent link references a missing record, or the chain loops."""

    kind = "BrokenChain"


class NoChangeProducedError(DocflowError):
    """A rewrite or write would leave the document byte-identical."""

    kind = "NoChangeProduced"


class UpstreamFailureError(DocflowError):
    """A repository, AI or ticket service call failed or timed out.

    ``inconsistent`` is set when the failure happened after a code revert
    had already landed, so code and docs now disagree.
    """

    kind = "UpstreamFailure"

    def __init__(
        self,
        message: str,
        *,
        inconsistent: bool = False,
        code_revert_commit_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.inconsistent = inconsistent
        self.code_revert_commit_id = code_revert_commit_id


class InvalidRevertTargetError(DocflowError):
    """The requested transaction cannot be reverted (e.g. it is a REVERT)."""

    kind = "InvalidRevertTarget"


class DuplicateTransactionError(DocflowError):
    """The doc hash repeats the previous transaction for the same concept."""

    kind = "DuplicateTransaction"


class LedgerUnavailableError(DocflowError):
    """The ledger store is missing. Configuration error, never retried."""

    kind = "LedgerUnavailable"


class LedgerIntegrityError(DocflowError):
    """A stored transaction no longer matches its seal."""

    kind = "LedgerIntegrity"
