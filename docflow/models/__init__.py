"""DocFlow data models — all Pydantic v2, all frozen (immutable)."""

from docflow.models.concepts import ConceptKey, ConceptKind
from docflow.models.repository import (
    ChangeContext,
    CommitInfo,
    CommitSummary,
    FileContent,
    PullRequestInfo,
    TicketInfo,
    WriteResult,
)
from docflow.models.revert import (
    VALID_REVERT_TRANSITIONS,
    RemovalSpec,
    RevertResult,
    RevertState,
)
from docflow.models.transactions import (
    ROOT,
    EventType,
    HeadPointer,
    Transaction,
    TransactionKind,
)

__all__ = [
    # concepts
    "ConceptKey",
    "ConceptKind",
    # transactions
    "ROOT",
    "EventType",
    "HeadPointer",
    "Transaction",
    "TransactionKind",
    # revert
    "RevertState",
    "VALID_REVERT_TRANSITIONS",
    "RemovalSpec",
    "RevertResult",
    # repository
    "ChangeContext",
    "CommitInfo",
    "CommitSummary",
    "FileContent",
    "PullRequestInfo",
    "TicketInfo",
    "WriteResult",
]
