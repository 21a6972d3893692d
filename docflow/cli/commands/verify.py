"""``docflow verify [OWNER/REPO]`` — verify ledger seals and parent links.

Without a repository every branch in the ledger is checked.
"""

from __future__ import annotations

import typer
from rich.console import Console

from docflow.cli.errors import fail
from docflow.cli.options import load_config, split_slug
from docflow.core.errors import DocflowError
from docflow.factory import open_ledger
from docflow.models.transactions import repo_branch_id

console = Console()


def verify_cmd(
    repository: str = typer.Argument(None, help="Repository as OWNER/REPO (optional)."),
    branch: str = typer.Option(
        None,
        "--branch",
        "-b",
        help="Ledger branch (defaults to DOCFLOW_DEFAULT_BRANCH).",
    ),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (defaults to DOCFLOW_LEDGER_PATH).",
    ),
) -> None:
    """Verify the hash seals and parent chain of the ledger."""
    config = load_config(ledger_db)
    try:
        ledger = open_ledger(config)
        if repository:
            owner, repo = split_slug(console, repository)
            targets = [repo_branch_id(owner, repo, branch or config.default_branch)]
        else:
            targets = ledger.list_repo_branches()

        if not targets:
            console.print("[dim]Ledger is empty; nothing to verify.[/dim]")
            return

        console.print("[bold cyan]Verifying hash chain...[/bold cyan]")
        for repo_branch in targets:
            ledger.verify_chain(repo_branch)
            console.print(
                f"[green]{repo_branch}: {ledger.count(repo_branch)} transaction(s), "
                f"chain valid.[/green]"
            )
    except DocflowError as exc:
        fail(console, exc)
