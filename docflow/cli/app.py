"""Main Typer application — imports and registers all CLI commands.

Entry point: ``docflow`` (configured via pyproject.toml project.scripts).

Commands: ingest, manual-edit, revert, history, verify, demo.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from docflow.cli.commands.demo import demo_cmd
from docflow.cli.commands.history import history_cmd
from docflow.cli.commands.ingest import ingest_cmd
from docflow.cli.commands.manual_edit import manual_edit_cmd
from docflow.cli.commands.revert import revert_cmd
from docflow.cli.commands.verify import verify_cmd
from docflow.config import DocflowConfig

app = typer.Typer(
    name="docflow",
    help="DocFlow: changelog automation with an append-only ledger and semantic revert.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="ingest", help="Document a merged PR and record a PAIR transaction.")(ingest_cmd)
app.command(name="manual-edit", help="Record a manual documentation edit.")(manual_edit_cmd)
app.command(name="revert", help="Semantically revert a transaction (code + docs).")(revert_cmd)
app.command(name="history", help="Show ledger history for a repository branch.")(history_cmd)
app.command(name="verify", help="Verify ledger seals and parent chains.")(verify_cmd)
app.command(name="demo", help="Run the full flow against an in-memory repository.")(demo_cmd)


def configure_logging(level: str) -> None:
    """Route stdlib logging through Rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to DOCFLOW_LOG_LEVEL).",
    ),
) -> None:
    """DocFlow command-line interface."""
    configure_logging(log_level or DocflowConfig().log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
