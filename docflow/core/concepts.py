"""Concept extraction from free text.

A best-effort linking heuristic: a PR title that happens to mention an
unrelated ticket will be clustered under that ticket.  Nothing downstream
treats a concept key as a unique identifier.
"""

from __future__ import annotations

import re

from docflow.models.concepts import ConceptKey

TICKET_PATTERN = re.compile(r"\b([A-Z]{2,10}-\d+)\b")
PR_PATTERN = re.compile(r"\b(?:PR|pull request)\s*#(\d+)\b", re.IGNORECASE)


def extract_concept(text: str | None) -> ConceptKey | None:
    """Derive a concept key from *text*.

    Priority: a ticket token (``ABC-123``) anywhere in the text, then a
    ``PR #<n>`` / ``pull request #<n>`` reference, then ``None``.  Only the
    first occurrence of the winning pattern is used.
    """
    if not text:
        return None
    match = TICKET_PATTERN.search(text)
    if match:
        return ConceptKey.ticket(match.group(1))
    match = PR_PATTERN.search(text)
    if match:
        return ConceptKey.pr(match.group(1))
    return None


def concept_for_change(
    pr_number: int | None = None,
    ticket_key: str | None = None,
    *texts: str | None,
) -> ConceptKey | None:
    """Pick the concept for a documentation change.

    An explicit ticket key wins, then whatever the texts mention, then the
    PR number itself.
    """
    if ticket_key:
        return ConceptKey.ticket(ticket_key)
    for text in texts:
        concept = extract_concept(text)
        if concept is not None:
            return concept
    if pr_number is not None:
        return ConceptKey.pr(pr_number)
    return None
