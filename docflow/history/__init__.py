"""DocFlow history — pure read-only projection over the transaction ledger.

History NEVER maintains its own state.  Every call re-reads from the
ledger.  It is a projection, not a source of truth.

Modules
-------
projection
    ``HistoryProjection`` reads the ledger and produces frozen
    ``HistorySnapshot`` / ``ConceptView`` models.
renderer
    ``HistoryRenderer`` turns them into Rich renderables.
"""
