"""``docflow revert OWNER/REPO TRANSACTION_ID`` — semantic revert.

Reverts the merge behind a transaction, rewrites the documentation with
its concept removed (sweeping later doc-only edits for the same concept)
and records a REVERT transaction.
"""

from __future__ import annotations

from contextlib import ExitStack

import typer
from rich.console import Console
from rich.panel import Panel

from docflow.cli.errors import fail
from docflow.cli.options import load_config, split_slug
from docflow.core.errors import DocflowError
from docflow.core.production_guard import ProductionConfigError
from docflow.factory import (
    build_producer,
    build_repository,
    build_revert_engine,
    open_ledger,
)
from docflow.models.transactions import repo_branch_id

console = Console()


def revert_cmd(
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    transaction_id: str = typer.Argument(..., help="The TXN#... id to revert."),
    branch: str = typer.Option(
        None,
        "--branch",
        "-b",
        help="Ledger branch (defaults to DOCFLOW_DEFAULT_BRANCH).",
    ),
    author: str = typer.Option(None, "--author", "-a", help="Who requested the revert."),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (defaults to DOCFLOW_LEDGER_PATH).",
    ),
) -> None:
    """Revert a transaction and every later doc-only edit for its concept."""
    owner, repo = split_slug(console, repository)
    config = load_config(ledger_db)
    repo_branch = repo_branch_id(owner, repo, branch or config.default_branch)
    try:
        ledger = open_ledger(config)
        with ExitStack() as stack:
            repo_service = stack.enter_context(build_repository(config, owner, repo))
            producer = build_producer(config)
            if producer is not None:
                stack.enter_context(producer)
            engine = build_revert_engine(config, ledger, repo_service, producer=producer)
            result = engine.revert(repo_branch, transaction_id, author=author)
    except ProductionConfigError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    except DocflowError as exc:
        fail(console, exc)

    txn = result.transaction
    swept = ", ".join(txn.also_removed_transaction_ids) or "none"
    console.print(
        Panel(
            "\n".join([
                f"[bold green]Reverted {transaction_id}[/bold green]",
                "",
                f"[bold]Revert transaction:[/bold] {txn.transaction_id}",
                f"[bold]Also removed:[/bold]       {swept}",
                f"[bold]Code revert commit:[/bold] {txn.code_revert_commit_id or '-'}",
                f"[bold]Docs revert commit:[/bold] {txn.docs_revert_commit_id}",
                f"[bold]Rewrite strategy:[/bold]   {result.strategy}",
                f"[bold]States:[/bold]             "
                + " -> ".join(state.value for state in result.states),
            ]),
            border_style="magenta",
            padding=(1, 2),
        )
    )
