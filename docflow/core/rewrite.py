"""Documentation rewrite strategies used when a concept is reverted.

``DocumentRewriter`` tries each strategy in order and keeps the first one
that actually changes the document:

1. **AIRewriteStrategy** — asks the change producer to excise the concept.
2. **HeuristicRewriteStrategy** — deterministic: drops ``## PR #<n>``
   sections, then drops the paragraphs that mention the concept
   or the PR title (bounded to a few lines around each mention).

The same helpers keep ingest idempotent (an existing section for a PR is
stripped before a fresh one is added).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import Protocol

from docflow.adapters.base import ChangeProducer
from docflow.core.errors import UpstreamFailureError
from docflow.models.concepts import ConceptKey
from docflow.models.revert import RemovalSpec

logger = logging.getLogger(__name__)

PR_HEADING = re.compile(r"^##\s+PR\s+#(\d+)\b")
SECTION_BOUNDARY = re.compile(r"^#{1,2}\s")
_HEADING = re.compile(r"^(#{1,6})\s")
_BLANK_RUNS = re.compile(r"\n{3,}")

DEFAULT_CONTEXT_LINES = 3


def normalize_markdown(text: str) -> str:
    """Collapse runs of blank lines and end with exactly one newline."""
    return _BLANK_RUNS.sub("\n\n", text).rstrip() + "\n"


def remove_pr_sections(markdown: str | None, pr_numbers: Iterable[int | str]) -> str:
    """Drop every ``## PR #<n>`` section for the given PR numbers.

    A section runs until the next level-1 or level-2 heading.  Returns the
    input untouched when there is nothing to remove.
    """
    if not markdown:
        return ""
    wanted = {int(n) for n in pr_numbers}
    if not wanted:
        return markdown

    lines = markdown.split("\n")
    keep: list[str] = []
    i = 0
    while i < len(lines):
        match = PR_HEADING.match(lines[i])
        if match and int(match.group(1)) in wanted:
            j = i + 1
            while j < len(lines) and not SECTION_BOUNDARY.match(lines[j]):
                j += 1
            i = j
        else:
            keep.append(lines[i])
            i += 1
    return normalize_markdown("\n".join(keep))


def _section_end(lines: Sequence[str], idx: int) -> int:
    """Index of the last line belonging to the heading at *idx*."""
    level = len(_HEADING.match(lines[idx]).group(1))
    end = idx
    while end + 1 < len(lines):
        nxt = _HEADING.match(lines[end + 1])
        if nxt and len(nxt.group(1)) <= level:
            break
        end += 1
    return end


def mention_pattern(needle: str) -> re.Pattern[str]:
    """Compile *needle* so it only matches as a whole token.

    ``PR #1`` does not match ``PR #12`` and ``ABC-1`` does not match
    ``ABC-12`` or ``XABC-1``.
    """
    needle = needle.strip()
    head = r"(?<![\w-])" if needle[:1].isalnum() else ""
    tail = r"(?!\w)" if needle[-1:].isalnum() else ""
    return re.compile(head + re.escape(needle) + tail)


def remove_mentions(
    markdown: str,
    needles: Iterable[str],
    *,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> str:
    """Drop the blocks that mention any of *needles* as a whole token.

    A mention inside a sub-heading removes that heading's section.  A
    mention in body text removes its paragraph, bounded to *context_lines*
    on either side.  The document title (``# ...``) is never removed.
    """
    patterns = [mention_pattern(n) for n in needles if n and n.strip()]
    if not markdown or not patterns:
        return markdown

    lines = markdown.split("\n")
    drop: set[int] = set()
    for idx, line in enumerate(lines):
        if idx in drop or line.startswith("# "):
            continue
        if not any(pattern.search(line) for pattern in patterns):
            continue
        if _HEADING.match(line):
            drop.update(range(idx, _section_end(lines, idx) + 1))
            continue
        start = idx
        while (
            start > 0
            and idx - start < context_lines
            and lines[start - 1].strip()
            and not _HEADING.match(lines[start - 1])
        ):
            start -= 1
        end = idx
        while (
            end + 1 < len(lines)
            and end - idx < context_lines
            and lines[end + 1].strip()
            and not _HEADING.match(lines[end + 1])
        ):
            end += 1
        drop.update(range(start, end + 1))

    if not drop:
        return markdown
    return normalize_markdown(
        "\n".join(line for i, line in enumerate(lines) if i not in drop)
    )


def mention_needles(removal: RemovalSpec) -> list[str]:
    """Literal strings whose presence marks a block as part of the concept."""
    needles: list[str] = []
    if removal.concept_key:
        try:
            needles.extend(ConceptKey.parse(removal.concept_key).mention_tokens())
        except ValueError:
            needles.append(removal.concept_key)
    for number in removal.pr_numbers:
        needles.append(f"PR #{number}")
    needles.extend(t for t in removal.titles if t and len(t.strip()) >= 4)
    return list(dict.fromkeys(needles))


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class RewriteStrategy(Protocol):
    name: str

    def rewrite(self, content: str, removal: RemovalSpec) -> str | None:
        """Return the rewritten document, or None if the strategy declines."""
        ...


class AIRewriteStrategy:
    """Ask the change producer to remove the concept and keep everything else."""

    name = "ai"

    def __init__(self, producer: ChangeProducer) -> None:
        self._producer = producer

    def rewrite(self, content: str, removal: RemovalSpec) -> str | None:
        try:
            result = self._producer.generate_doc_rewrite(content, removal)
        except UpstreamFailureError as exc:
            logger.warning("AI rewrite unavailable, falling back: %s", exc)
            return None
        if not result or not result.strip():
            return None
        return result.rstrip() + "\n"


class HeuristicRewriteStrategy:
    """Deterministic removal by PR heading, then by literal mention."""

    name = "heuristic"

    def __init__(self, *, context_lines: int = DEFAULT_CONTEXT_LINES) -> None:
        self._context_lines = context_lines

    def rewrite(self, content: str, removal: RemovalSpec) -> str | None:
        result = remove_pr_sections(content, removal.pr_numbers)
        return remove_mentions(
            result, mention_needles(removal), context_lines=self._context_lines
        )


class DocumentRewriter:
    """Run strategies in order; the first one that changes the text wins.

    Returns ``(new_content, strategy_name)``.  When no strategy changes the
    document the original content comes back with strategy ``"none"``; the
    caller decides that this is a failure.
    """

    def __init__(self, strategies: Sequence[RewriteStrategy]) -> None:
        self._strategies = list(strategies)

    @classmethod
    def default(
        cls,
        producer: ChangeProducer | None = None,
        *,
        context_lines: int = DEFAULT_CONTEXT_LINES,
    ) -> DocumentRewriter:
        strategies: list[RewriteStrategy] = []
        if producer is not None:
            strategies.append(AIRewriteStrategy(producer))
        strategies.append(HeuristicRewriteStrategy(context_lines=context_lines))
        return cls(strategies)

    def rewrite(self, content: str, removal: RemovalSpec) -> tuple[str, str]:
        for strategy in self._strategies:
            result = strategy.rewrite(content, removal)
            if result is not None and result != content:
                logger.info("Rewrite produced by %s strategy", strategy.name)
                return result, strategy.name
            logger.debug("Strategy %s produced no change", strategy.name)
        return content, "none"
