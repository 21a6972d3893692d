"""Append-only transaction ledger with a per-branch HEAD pointer, on SQLite.

The ledger is the source of truth for documentation history.  The history
views are projections of it; they never compute truth themselves.

Design:
- One table keyed by (repo_branch, sort_key).  ``sort_key = "HEAD"`` is the
  pointer row; every other row starts with ``TXN#``.
- Append-only: ``append_transaction()`` is the only write.  No update or
  delete of transaction rows.
- Insert + HEAD move happen in one ``BEGIN IMMEDIATE`` transaction,
  conditional on HEAD still naming the expected parent (optimistic CAS).
- Every row is sealed with a SHA-256 ``record_hash``.
- WAL journal mode for concurrent readers.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path

from docflow.core.errors import (
    BrokenChainError,
    ConcurrentModificationError,
    DuplicateTransactionError,
    LedgerIntegrityError,
    LedgerUnavailableError,
    NotFoundError,
)
from docflow.core.hasher import compute_record_hash
from docflow.models.transactions import (
    HEAD_SORT_KEY,
    ROOT,
    TXN_PREFIX,
    HeadPointer,
    Transaction,
    TransactionKind,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

# Upper bound for a "begins with TXN#" range scan ('$' follows '#').
_TXN_RANGE_END = "TXN$"


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_LEDGER = """
CREATE TABLE IF NOT EXISTS ledger (
    repo_branch      TEXT NOT NULL,
    sort_key         TEXT NOT NULL,
    parent_sort_key  TEXT,
    kind             TEXT,
    concept_key      TEXT,
    doc_change_hash  TEXT,
    item_json        TEXT NOT NULL,
    record_hash      TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (repo_branch, sort_key)
);
"""

_CREATE_CONCEPTS = """
CREATE TABLE IF NOT EXISTS ledger_concepts (
    repo_branch  TEXT NOT NULL,
    concept_key  TEXT NOT NULL,
    sort_key     TEXT NOT NULL,
    PRIMARY KEY (repo_branch, concept_key, sort_key)
);
"""

_CREATE_IDX_CONCEPT = """
CREATE INDEX IF NOT EXISTS idx_ledger_concept ON ledger(repo_branch, concept_key, sort_key);
"""


Builder = Callable[[str, Transaction | None], Transaction]


class TransactionLedger:
    """Append-only, HEAD-tracked transaction ledger.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    create_if_missing:
        Create the file and schema when absent.  When ``False`` a missing
        store is a configuration error raised at construction time.
    """

    def __init__(self, db_path: Path, *, create_if_missing: bool = True) -> None:
        self._db_path = Path(db_path)
        if create_if_missing:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        else:
            self._check_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly with BEGIN.
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=30.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute(_CREATE_LEDGER)
            conn.execute(_CREATE_CONCEPTS)
            conn.execute(_CREATE_IDX_CONCEPT)

    def _check_schema(self) -> None:
        if not self._db_path.exists():
            raise LedgerUnavailableError(f"Ledger store not found: {self._db_path}")
        with closing(sqlite3.connect(str(self._db_path))) as conn:
            tables = {
                row[0]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table'"
                )
            }
        missing = {"ledger", "ledger_concepts"} - tables
        if missing:
            raise LedgerUnavailableError(
                f"Ledger store {self._db_path} is missing tables: {sorted(missing)}"
            )

    # ------------------------------------------------------------------
    # HEAD
    # ------------------------------------------------------------------

    def get_head(self, repo_branch: str) -> str:
        """Return the latest transaction id for a branch, or ``"ROOT"``."""
        with closing(self._connect()) as conn:
            return self._read_head(conn, repo_branch)

    def get_head_pointer(self, repo_branch: str) -> HeadPointer:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT item_json FROM ledger WHERE repo_branch = ? AND sort_key = ?",
                (repo_branch, HEAD_SORT_KEY),
            ).fetchone()
        if row is None:
            return HeadPointer(repo_branch=repo_branch)
        return HeadPointer.model_validate_json(row[0])

    @staticmethod
    def _read_head(conn: sqlite3.Connection, repo_branch: str) -> str:
        row = conn.execute(
            "SELECT item_json FROM ledger WHERE repo_branch = ? AND sort_key = ?",
            (repo_branch, HEAD_SORT_KEY),
        ).fetchone()
        if row is None:
            return ROOT
        return json.loads(row[0]).get("latest_transaction_id") or ROOT

    # ------------------------------------------------------------------
    # Core: conditional append
    # ------------------------------------------------------------------

    def append_transaction(
        self, repo_branch: str, record: Transaction, expected_parent: str
    ) -> Transaction:
        """Insert *record* and move HEAD to it, iff HEAD == *expected_parent*.

        Returns the sealed transaction.  This is the ONLY write method.
        Raises ``ConcurrentModificationError`` (nothing written) when HEAD
        has moved, and ``DuplicateTransactionError`` when the record repeats
        the previous doc hash for its concept.
        """
        if record.repo_branch != repo_branch:
            raise ValueError(
                f"Record belongs to {record.repo_branch!r}, not {repo_branch!r}"
            )
        if record.parent_transaction_id != expected_parent:
            raise ValueError(
                f"Record parent {record.parent_transaction_id!r} does not match "
                f"expected parent {expected_parent!r}"
            )
        if expected_parent != ROOT and record.transaction_id <= expected_parent:
            raise ValueError(
                f"Transaction id {record.transaction_id!r} does not sort after "
                f"its parent {expected_parent!r}"
            )

        record_dict = record.model_dump(mode="json")
        record_dict["record_hash"] = ""
        sealed = record.model_copy(
            update={"record_hash": compute_record_hash(record_dict)}
        )

        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                actual = self._read_head(conn, repo_branch)
                if actual != expected_parent:
                    raise ConcurrentModificationError(
                        f"HEAD of {repo_branch} moved: expected {expected_parent!r}, "
                        f"found {actual!r}",
                        expected=expected_parent,
                        actual=actual,
                    )
                self._check_duplicate(conn, sealed)
                self._insert(conn, sealed)
                self._write_head(conn, repo_branch, sealed.transaction_id)
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

        logger.info(
            "Recorded %s transaction %s on %s (parent=%s, concept=%s)",
            sealed.kind.value,
            sealed.transaction_id,
            repo_branch,
            expected_parent,
            sealed.concept_key,
        )
        return sealed

    def commit(
        self,
        repo_branch: str,
        build: Builder,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> Transaction:
        """Append a transaction built against the current HEAD, retrying races.

        ``build(parent_id, parent_record)`` is called once per attempt with
        a freshly read HEAD and must return a record whose parent is
        ``parent_id``.  After *max_attempts* lost races the last
        ``ConcurrentModificationError`` is surfaced.
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        attempt = 0
        while True:
            attempt += 1
            parent_id = self.get_head(repo_branch)
            parent = None if parent_id == ROOT else self.get_transaction(repo_branch, parent_id)
            record = build(parent_id, parent)
            try:
                return self.append_transaction(repo_branch, record, parent_id)
            except ConcurrentModificationError as exc:
                logger.warning(
                    "Lost HEAD race on %s (attempt %d/%d): %s",
                    repo_branch,
                    attempt,
                    max_attempts,
                    exc,
                )
                if attempt >= max_attempts:
                    raise ConcurrentModificationError(
                        f"Gave up appending to {repo_branch} after {max_attempts} "
                        f"attempts: {exc}",
                        expected=exc.expected,
                        actual=exc.actual,
                    ) from exc

    def _check_duplicate(self, conn: sqlite3.Connection, record: Transaction) -> None:
        if conn.execute(
            "SELECT 1 FROM ledger WHERE repo_branch = ? AND sort_key = ?",
            (record.repo_branch, record.transaction_id),
        ).fetchone():
            raise DuplicateTransactionError(
                f"Transaction {record.transaction_id} already exists"
            )
        if record.kind == TransactionKind.REVERT:
            return
        self._check_concept_hash(
            conn, record.repo_branch, record.concept_key, record.doc_change_hash
        )

    def check_duplicate(
        self, repo_branch: str, concept_key: str | None, doc_change_hash: str
    ) -> None:
        """Raise ``DuplicateTransactionError`` if *doc_change_hash* repeats
        the latest one recorded for *concept_key*.

        Read-only.  Workflows call this before writing to the repository;
        ``append_transaction`` repeats the check under its write lock.
        """
        with closing(self._connect()) as conn:
            self._check_concept_hash(conn, repo_branch, concept_key, doc_change_hash)

    @staticmethod
    def _check_concept_hash(
        conn: sqlite3.Connection,
        repo_branch: str,
        concept_key: str | None,
        doc_change_hash: str,
    ) -> None:
        if not concept_key:
            return
        row = conn.execute(
            "SELECT sort_key, doc_change_hash FROM ledger "
            "WHERE repo_branch = ? AND concept_key = ? AND sort_key >= ? AND sort_key < ? "
            "ORDER BY sort_key DESC LIMIT 1",
            (repo_branch, concept_key, TXN_PREFIX, _TXN_RANGE_END),
        ).fetchone()
        if row and row[1] and row[1] == doc_change_hash:
            raise DuplicateTransactionError(
                f"doc_change_hash {doc_change_hash} for {concept_key} "
                f"repeats transaction {row[0]}"
            )

    @staticmethod
    def _insert(conn: sqlite3.Connection, record: Transaction) -> None:
        conn.execute(
            """
            INSERT INTO ledger
                (repo_branch, sort_key, parent_sort_key, kind, concept_key,
                 doc_change_hash, item_json, record_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.repo_branch,
                record.transaction_id,
                record.parent_transaction_id,
                record.kind.value,
                record.concept_key,
                record.doc_change_hash,
                record.model_dump_json(),
                record.record_hash,
            ),
        )
        conn.executemany(
            "INSERT OR IGNORE INTO ledger_concepts (repo_branch, concept_key, sort_key) "
            "VALUES (?, ?, ?)",
            [
                (record.repo_branch, key, record.transaction_id)
                for key in record.related_concept_keys
            ],
        )

    @staticmethod
    def _write_head(conn: sqlite3.Connection, repo_branch: str, transaction_id: str) -> None:
        pointer = HeadPointer(
            repo_branch=repo_branch,
            latest_transaction_id=transaction_id,
            updated_at=datetime.now(timezone.utc),
        )
        conn.execute(
            """
            INSERT INTO ledger (repo_branch, sort_key, item_json)
            VALUES (?, ?, ?)
            ON CONFLICT (repo_branch, sort_key) DO UPDATE SET item_json = excluded.item_json
            """,
            (repo_branch, HEAD_SORT_KEY, pointer.model_dump_json()),
        )

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def get_transaction(self, repo_branch: str, transaction_id: str) -> Transaction | None:
        """Return a transaction by id, or None."""
        if not transaction_id.startswith(TXN_PREFIX):
            return None
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT item_json FROM ledger WHERE repo_branch = ? AND sort_key = ?",
                (repo_branch, transaction_id),
            ).fetchone()
        return Transaction.model_validate_json(row[0]) if row else None

    def require_transaction(self, repo_branch: str, transaction_id: str) -> Transaction:
        record = self.get_transaction(repo_branch, transaction_id)
        if record is None:
            raise NotFoundError(f"Transaction not found: {transaction_id} on {repo_branch}")
        return record

    def query_by_concept(
        self,
        repo_branch: str,
        concept_key: str,
        *,
        after: str | None = None,
        kind: TransactionKind | None = None,
    ) -> Iterator[Transaction]:
        """Yield every transaction linked to *concept_key*, oldest first.

        Matches both the primary ``concept_key`` and ``related_concept_keys``.
        ``after`` restricts to transactions created strictly after that id.
        Each call is an independent pass over the store.
        """
        sql = (
            "SELECT l.item_json FROM ledger l "
            "JOIN ledger_concepts c "
            "  ON c.repo_branch = l.repo_branch AND c.sort_key = l.sort_key "
            "WHERE c.repo_branch = ? AND c.concept_key = ?"
        )
        params: list[str] = [repo_branch, concept_key]
        if after is not None:
            sql += " AND l.sort_key > ?"
            params.append(after)
        if kind is not None:
            sql += " AND l.kind = ?"
            params.append(kind.value)
        sql += " ORDER BY l.sort_key ASC"

        with closing(self._connect()) as conn:
            for (item_json,) in conn.execute(sql, params):
                yield Transaction.model_validate_json(item_json)

    def iter_transactions(self, repo_branch: str) -> Iterator[Transaction]:
        """Yield every transaction on a branch in creation order."""
        with closing(self._connect()) as conn:
            for (item_json,) in conn.execute(
                "SELECT item_json FROM ledger "
                "WHERE repo_branch = ? AND sort_key >= ? AND sort_key < ? "
                "ORDER BY sort_key ASC",
                (repo_branch, TXN_PREFIX, _TXN_RANGE_END),
            ):
                yield Transaction.model_validate_json(item_json)

    def walk_history(
        self, repo_branch: str, from_id: str | None = None
    ) -> Iterator[Transaction]:
        """Yield transactions from *from_id* (HEAD by default) back to ROOT.

        Raises ``BrokenChainError`` if a parent link names a missing record
        or the chain revisits a transaction.
        """
        current = from_id if from_id is not None else self.get_head(repo_branch)
        if current != ROOT and from_id is not None:
            self.require_transaction(repo_branch, current)

        seen: set[str] = set()
        child: str | None = None
        while current != ROOT:
            if current in seen:
                raise BrokenChainError(
                    f"Cycle in {repo_branch} history at {current}"
                )
            seen.add(current)
            record = self.get_transaction(repo_branch, current)
            if record is None:
                raise BrokenChainError(
                    f"Chain broken on {repo_branch}: {child or 'HEAD'} references "
                    f"missing transaction {current}"
                )
            yield record
            child = current
            current = record.parent_transaction_id

    def list_repo_branches(self) -> list[str]:
        """Return every repo_branch that has a HEAD pointer."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT repo_branch FROM ledger WHERE sort_key = ? ORDER BY repo_branch",
                (HEAD_SORT_KEY,),
            ).fetchall()
        return [row[0] for row in rows]

    def count(self, repo_branch: str) -> int:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM ledger "
                "WHERE repo_branch = ? AND sort_key >= ? AND sort_key < ?",
                (repo_branch, TXN_PREFIX, _TXN_RANGE_END),
            ).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self, repo_branch: str) -> bool:
        """Verify seals and linkage for a branch.

        Walks HEAD back to ROOT recomputing every ``record_hash``, then
        checks that no stored transaction is unreachable from HEAD (a
        branch in history).  Returns True or raises.
        """
        reachable: set[str] = set()
        for record in self.walk_history(repo_branch):
            record_dict = record.model_dump(mode="json")
            expected = compute_record_hash(record_dict)
            if record.record_hash != expected:
                raise LedgerIntegrityError(
                    f"Tampered transaction {record.transaction_id}: "
                    f"expected hash={expected!r}, got {record.record_hash!r}"
                )
            reachable.add(record.transaction_id)

        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT sort_key, record_hash, item_json FROM ledger "
                "WHERE repo_branch = ? AND sort_key >= ? AND sort_key < ?",
                (repo_branch, TXN_PREFIX, _TXN_RANGE_END),
            ).fetchall()
        for sort_key, record_hash, item_json in rows:
            if sort_key not in reachable:
                raise LedgerIntegrityError(
                    f"Transaction {sort_key} on {repo_branch} is not reachable from HEAD"
                )
            if json.loads(item_json).get("record_hash") != record_hash:
                raise LedgerIntegrityError(
                    f"Tampered transaction {sort_key}: stored seal column disagrees "
                    f"with the record"
                )
        return True
