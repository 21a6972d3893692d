"""``docflow ingest OWNER/REPO PR_NUMBER`` — document a merged pull request.

Drafts the changelog entry, writes it to the repository and records a
PAIR transaction in the ledger.
"""

from __future__ import annotations

from contextlib import ExitStack

import typer
from rich.console import Console
from rich.panel import Panel

from docflow.cli.errors import fail
from docflow.cli.options import load_config, split_slug
from docflow.core.errors import DocflowError
from docflow.core.ingest import SKIP_FLAG
from docflow.core.production_guard import ProductionConfigError
from docflow.factory import (
    build_ingest_workflow,
    build_producer,
    build_repository,
    build_tickets,
    open_ledger,
)

console = Console()


def ingest_cmd(
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    pr_number: int = typer.Argument(..., help="Number of the merged pull request."),
    ticket: str = typer.Option(
        None,
        "--ticket",
        "-t",
        help="Ticket key (e.g. ABC-123) to attach to the entry.",
    ),
    merge_message: str = typer.Option(
        None,
        "--merge-message",
        help=f"Merge commit message; ingest is skipped when it contains {SKIP_FLAG}.",
    ),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (defaults to DOCFLOW_LEDGER_PATH).",
    ),
) -> None:
    """Document a merged pull request and record a PAIR transaction."""
    owner, repo = split_slug(console, repository)
    if merge_message and SKIP_FLAG in merge_message:
        console.print(f"[dim]Merge message carries {SKIP_FLAG}; nothing to do.[/dim]")
        return

    config = load_config(ledger_db)
    try:
        ledger = open_ledger(config)
        with ExitStack() as stack:
            repo_service = stack.enter_context(build_repository(config, owner, repo))
            producer = build_producer(config)
            if producer is not None:
                stack.enter_context(producer)
            tickets = build_tickets(config)
            if tickets is not None:
                stack.enter_context(tickets)
            workflow = build_ingest_workflow(
                config, ledger, repo_service, producer=producer, tickets=tickets
            )
            txn = workflow.record_merge(owner, repo, pr_number, ticket_key=ticket)
    except ProductionConfigError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    except DocflowError as exc:
        fail(console, exc)

    console.print(
        Panel(
            "\n".join([
                f"[bold green]Recorded PR #{pr_number}[/bold green]",
                "",
                f"[bold]Transaction:[/bold] {txn.transaction_id}",
                f"[bold]Concept:[/bold]     {txn.concept_key or '-'}",
                f"[bold]Doc commit:[/bold]  {txn.doc_commit_id}",
                f"[bold]AI drafted:[/bold]  {'yes' if txn.ai_generated else 'no'}",
            ]),
            border_style="green",
            padding=(1, 2),
        )
    )
