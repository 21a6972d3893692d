"""``docflow history OWNER/REPO`` — show the ledger for a repository branch.

A read-only projection: the snapshot panel, then the timeline from HEAD
back to ROOT (or every transaction for one concept with ``--concept``).
"""

from __future__ import annotations

import typer
from rich.console import Console

from docflow.cli.errors import fail
from docflow.cli.options import load_config, split_slug
from docflow.core.errors import DocflowError
from docflow.factory import open_ledger
from docflow.history.projection import HistoryProjection
from docflow.history.renderer import HistoryRenderer
from docflow.models.transactions import repo_branch_id

console = Console()


def history_cmd(
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    branch: str = typer.Option(
        None,
        "--branch",
        "-b",
        help="Ledger branch (defaults to DOCFLOW_DEFAULT_BRANCH).",
    ),
    concept: str = typer.Option(
        None,
        "--concept",
        "-c",
        help="Only show transactions for this concept (TICKET:ABC-1 or PR#10).",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum number of transactions to show.",
    ),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (defaults to DOCFLOW_LEDGER_PATH).",
    ),
) -> None:
    """Show ledger history for a repository branch."""
    owner, repo = split_slug(console, repository)
    config = load_config(ledger_db)
    repo_branch = repo_branch_id(owner, repo, branch or config.default_branch)
    renderer = HistoryRenderer(console=console)
    try:
        projection = HistoryProjection(open_ledger(config))
        if concept:
            renderer.print_concept(projection.concept_view(repo_branch, concept))
            return
        renderer.print_snapshot(projection.snapshot(repo_branch))
        renderer.print_timeline(projection.timeline(repo_branch, limit=limit))
    except DocflowError as exc:
        fail(console, exc)
