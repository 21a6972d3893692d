"""DocFlow: changelog automation with an append-only transaction ledger.

Every documentation change lands as a sealed, parent-linked ledger
transaction:
  - PAIR for a merged pull request (source diff hash + doc section hash)
  - DOC_ONLY for manual documentation edits
  - REVERT for semantic reverts, which undo a merge together with every
    later doc-only edit that shares its concept key
"""

__version__ = "0.1.0"
__description__ = (
    "Changelog automation with an append-only transaction ledger and semantic revert"
)

from docflow.core.ingest import IngestWorkflow
from docflow.core.ledger import TransactionLedger
from docflow.core.revert_engine import RevertEngine
from docflow.history.projection import HistoryProjection
from docflow.cli.app import app as cli

__all__ = [
    "IngestWorkflow",
    "TransactionLedger",
    "RevertEngine",
    "HistoryProjection",
    "cli",
    "__version__",
]
