"""Concept keys — the clustering handle linking transactions about one change."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ConceptKind(str, Enum):
    """What a concept key was derived from."""

    TICKET = "TICKET"
    PR = "PR"


class ConceptKey(BaseModel):
    """A tagged concept key: ``Ticket(id)`` or ``PrRef(n)``.

    The wire form (what the ledger stores) is ``TICKET:<id>`` or ``PR#<n>``.
    """

    model_config = ConfigDict(frozen=True)

    kind: ConceptKind
    value: str

    @classmethod
    def ticket(cls, key: str) -> ConceptKey:
        return cls(kind=ConceptKind.TICKET, value=key.strip().upper())

    @classmethod
    def pr(cls, number: int | str) -> ConceptKey:
        return cls(kind=ConceptKind.PR, value=str(int(number)))

    @classmethod
    def parse(cls, wire: str) -> ConceptKey:
        """Parse the stored wire form back into a ConceptKey.

        Raises ``ValueError`` for anything that is not a known form.
        """
        if wire.startswith("TICKET:") and len(wire) > len("TICKET:"):
            return cls.ticket(wire[len("TICKET:"):])
        if wire.startswith("PR#") and wire[3:].isdigit():
            return cls.pr(wire[3:])
        raise ValueError(f"Not a concept key: {wire!r}")

    @property
    def pr_number(self) -> int | None:
        return int(self.value) if self.kind == ConceptKind.PR else None

    def mention_tokens(self) -> list[str]:
        """Literal strings that mention this concept in prose."""
        if self.kind == ConceptKind.TICKET:
            return [self.value]
        return [f"PR #{self.value}", f"PR#{self.value}"]

    def __str__(self) -> str:
        if self.kind == ConceptKind.TICKET:
            return f"TICKET:{self.value}"
        return f"PR#{self.value}"
