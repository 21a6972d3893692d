"""Map DocFlow error kinds to exit codes and rich-formatted messages."""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console

from docflow.core.errors import DocflowError, UpstreamFailureError

EXIT_CODES: dict[str, int] = {
    "NotFound": 2,
    "ConcurrentModification": 3,
    "BrokenChain": 4,
    "NoChangeProduced": 5,
    "UpstreamFailure": 6,
    "InvalidRevertTarget": 8,
    "DuplicateTransaction": 9,
    "LedgerUnavailable": 10,
    "LedgerIntegrity": 11,
}
INCONSISTENT_EXIT_CODE = 7


def exit_code_for(exc: DocflowError) -> int:
    if isinstance(exc, UpstreamFailureError) and exc.inconsistent:
        return INCONSISTENT_EXIT_CODE
    return EXIT_CODES.get(exc.kind, 1)


def fail(console: Console, exc: DocflowError) -> NoReturn:
    """Print *exc* and exit with the code assigned to its kind."""
    console.print(f"[bold red]{exc.kind}:[/bold red] {exc}")
    if isinstance(exc, UpstreamFailureError) and exc.inconsistent:
        console.print(
            "[bold red]Code was reverted but documentation was not.[/bold red] "
            f"Code revert commit: {exc.code_revert_commit_id}"
        )
    raise typer.Exit(code=exit_code_for(exc))
