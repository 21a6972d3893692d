"""Canonical hashing helpers for transaction seals and content fingerprints.

Every ledger transaction carries two payload digests (the source diff and the
documentation delta) plus a seal over the record itself.  All of them are
plain SHA-256 hex digests so they can be recomputed by anyone holding the
original text.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

EMPTY_DIGEST = hashlib.sha256(b"").hexdigest()


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes with sorted keys and compact separators.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str | None) -> str:
    """Fingerprint a text blob (diff or document section).

    ``None`` and ``""`` both hash to the empty-string digest; this never
    raises for either.
    """
    if not text:
        return EMPTY_DIGEST
    return sha256_hex(text.encode("utf-8"))


def is_noop_change(before: str | None, after: str | None) -> bool:
    """True when writing *after* over *before* would change nothing."""
    return hash_text(before) == hash_text(after)


def content_address(obj: Any) -> str:
    """Content-address a JSON-serializable object as ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


def compute_record_hash(record_dict: dict[str, Any]) -> str:
    """SHA-256 of a transaction record, excluding the ``record_hash`` field.

    This is the seal that makes each stored transaction tamper-evident.
    """
    d = {k: v for k, v in record_dict.items() if k != "record_hash"}
    return sha256_hex(canonical_json_bytes(d))
