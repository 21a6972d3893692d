"""``docflow manual-edit OWNER/REPO`` — record a hand-made documentation edit.

Either pushes new file content (``--content-file``) or records a doc
commit that was already pushed (``--commit``).  Both produce a DOC_ONLY
transaction whose concept key is taken from the message.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from docflow.cli.errors import fail
from docflow.cli.options import load_config, split_slug
from docflow.core.errors import DocflowError
from docflow.core.production_guard import ProductionConfigError
from docflow.factory import build_ingest_workflow, build_repository, open_ledger

console = Console()


def manual_edit_cmd(
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    author: str = typer.Option(..., "--author", "-a", help="Who made the edit."),
    message: str = typer.Option(
        ...,
        "--message",
        "-m",
        help="What changed; a ticket key or PR #n here links the edit to that concept.",
    ),
    content_file: Path = typer.Option(
        None,
        "--content-file",
        "-f",
        help="Local file holding the new document content to push.",
    ),
    commit_id: str = typer.Option(
        None,
        "--commit",
        "-c",
        help="Record an already-pushed documentation commit instead of pushing.",
    ),
    doc_path: str = typer.Option(
        None,
        "--path",
        "-p",
        help="Documentation file in the repository (defaults to DOCFLOW_DOC_FILE_PATH).",
    ),
    branch: str = typer.Option(
        None,
        "--branch",
        "-b",
        help="Branch to write to (defaults to DOCFLOW_DEFAULT_BRANCH).",
    ),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (defaults to DOCFLOW_LEDGER_PATH).",
    ),
) -> None:
    """Record a manual documentation edit as a DOC_ONLY transaction."""
    owner, repo = split_slug(console, repository)
    if (content_file is None) == (commit_id is None):
        console.print("[bold red]Give exactly one of --content-file or --commit.[/bold red]")
        raise typer.Exit(code=1)

    config = load_config(ledger_db)
    path = doc_path or config.doc_file_path
    try:
        ledger = open_ledger(config)
        with build_repository(config, owner, repo) as repo_service:
            workflow = build_ingest_workflow(config, ledger, repo_service)
            if content_file is not None:
                txn = workflow.record_manual_edit(
                    owner,
                    repo,
                    author,
                    message,
                    path,
                    content_file.read_text(encoding="utf-8"),
                    branch=branch,
                )
            else:
                txn = workflow.record_manual_commit(
                    owner, repo, author, message, commit_id, path, branch=branch
                )
    except ProductionConfigError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    except DocflowError as exc:
        fail(console, exc)

    console.print(f"[bold green]Recorded manual edit:[/bold green] {txn.transaction_id}")
    console.print(f"  [bold]Concept:[/bold] {txn.concept_key or '[dim]none[/dim]'}")
    console.print(f"  [bold]Commit:[/bold]  {txn.doc_commit_id}")
