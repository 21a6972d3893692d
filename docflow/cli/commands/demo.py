"""``docflow demo`` — run the full ledger flow against an in-memory repository.

Merges two pull requests, records a manual note about the first one, then
semantically reverts the first merge: its changelog section, the manual
note and its code all go, the second PR stays.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from docflow.adapters.memory import InMemoryRepository
from docflow.cli.errors import fail
from docflow.config import DocflowConfig
from docflow.core.errors import DocflowError
from docflow.core.revert_engine import EMPTY_CHANGELOG
from docflow.factory import build_ingest_workflow, build_revert_engine, open_ledger
from docflow.history.projection import HistoryProjection
from docflow.history.renderer import HistoryRenderer
from docflow.models.transactions import repo_branch_id

console = Console()

DEMO_OWNER = "acme"
DEMO_REPO = "webapp"


def _reset(ledger_path: Path) -> None:
    for suffix in ("", "-wal", "-shm"):
        candidate = ledger_path.with_name(ledger_path.name + suffix)
        if candidate.exists():
            candidate.unlink()


def demo_cmd(
    ledger_db: str = typer.Option(
        ".docflow/demo-ledger.db",
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (uses demo-specific default).",
    ),
    keep: bool = typer.Option(
        False,
        "--keep",
        help="Keep an existing demo ledger instead of starting fresh.",
    ),
) -> None:
    """Run a complete ingest / manual edit / revert cycle with sample data."""
    ledger_path = Path(ledger_db)
    if not keep:
        _reset(ledger_path)

    config = DocflowConfig(ledger_path=ledger_path, ledger_create_if_missing=True)
    ledger = open_ledger(config)
    repo = InMemoryRepository(
        {
            config.doc_file_path: EMPTY_CHANGELOG,
            "app/auth.py": "def login(user, password):\n    return check(user, password)\n",
        },
        branch=config.default_branch,
    )
    workflow = build_ingest_workflow(config, ledger, repo)
    engine = build_revert_engine(config, ledger, repo)
    projection = HistoryProjection(ledger)
    renderer = HistoryRenderer(console=console)
    repo_branch = repo_branch_id(DEMO_OWNER, DEMO_REPO, config.default_branch)

    console.print()
    console.print(
        Panel(
            "[bold]DocFlow Demo[/bold]\n\n"
            "Two merges, one manual note, one semantic revert.\n"
            "Every step is recorded in the transaction ledger.",
            border_style="cyan",
            padding=(1, 2),
        )
    )

    try:
        repo.merge_pull_request(
            10,
            "Add login rate limiting (SEC-42)",
            {"app/auth.py": "def login(user, password):\n    throttle(user)\n"
                            "    return check(user, password)\n"},
            body="Throttle repeated failed logins per user.",
            commit_messages=["Add throttle helper", "Wire throttle into login"],
        )
        first = workflow.record_merge(DEMO_OWNER, DEMO_REPO, 10)
        console.print(f"[cyan]>>> Recorded PR #10:[/cyan] {first.transaction_id}")

        current = repo.read_file(config.doc_file_path, config.default_branch)
        note = (
            current.content
            + "\n> Ops note (SEC-42): the login limit defaults to 5 attempts per minute.\n"
        )
        manual = workflow.record_manual_edit(
            DEMO_OWNER,
            DEMO_REPO,
            "docs-team",
            "Document SEC-42 rate limit default",
            config.doc_file_path,
            note,
        )
        console.print(f"[cyan]>>> Recorded manual note:[/cyan] {manual.transaction_id}")

        repo.merge_pull_request(
            11,
            "Add dark mode toggle",
            {"app/theme.py": "DARK_MODE = True\n"},
            body="User-selectable dark theme.",
        )
        second = workflow.record_merge(DEMO_OWNER, DEMO_REPO, 11)
        console.print(f"[cyan]>>> Recorded PR #11:[/cyan] {second.transaction_id}")

        console.print(f"\n[magenta]>>> Reverting[/magenta] {first.transaction_id}")
        result = engine.revert(repo_branch, first.transaction_id, author="demo")
    except DocflowError as exc:
        fail(console, exc)

    console.print(
        f"[bold green]Revert recorded:[/bold green] {result.transaction.transaction_id} "
        f"(swept {len(result.transaction.also_removed_transaction_ids)} doc-only edit(s), "
        f"strategy={result.strategy})"
    )
    console.print()
    renderer.print_snapshot(projection.snapshot(repo_branch))
    renderer.print_timeline(projection.timeline(repo_branch))

    final = repo.read_file(config.doc_file_path, config.default_branch)
    code_restored = "throttle" not in repo.files_at(config.default_branch)["app/auth.py"]
    console.print(
        Panel(
            Markdown(final.content if final else ""),
            title=f"[bold]{config.doc_file_path} after revert[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print(
        f"[bold]Code reverted:[/bold] {'yes' if code_restored else 'no'}  |  "
        f"[bold]Ledger:[/bold] {ledger_path}"
    )
