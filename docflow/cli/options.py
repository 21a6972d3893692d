"""Shared helpers for CLI commands: config loading and argument parsing."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from docflow.config import DocflowConfig
from docflow.factory import parse_repo_slug


def load_config(ledger_db: str | None = None) -> DocflowConfig:
    """Read configuration from the environment, applying a ``--ledger`` override."""
    config = DocflowConfig()
    if ledger_db:
        config = config.model_copy(update={"ledger_path": Path(ledger_db)})
    return config


def split_slug(console: Console, slug: str) -> tuple[str, str]:
    try:
        return parse_repo_slug(slug)
    except ValueError as exc:
        console.print(f"[bold red]Invalid repository:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
