"""Rich terminal renderer for ledger history.

Turns ``HistorySnapshot`` and transaction lists into Rich renderables.

Color scheme
------------
- green     : PAIR
- cyan      : DOC_ONLY
- magenta   : REVERT
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from docflow.models.transactions import Transaction, TransactionKind

if TYPE_CHECKING:
    from docflow.history.projection import ConceptView, HistorySnapshot


_KIND_STYLES: dict[TransactionKind, str] = {
    TransactionKind.PAIR: "green",
    TransactionKind.DOC_ONLY: "cyan",
    TransactionKind.REVERT: "bold magenta",
}


def _short(value: str | None, width: int = 12) -> str:
    if not value:
        return "[dim]-[/dim]"
    return value if len(value) <= width else value[:width] + "…"


class HistoryRenderer:
    """Renders ledger history as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def build_timeline_table(self, transactions: list[Transaction]) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Transaction", min_width=30, no_wrap=True)
        table.add_column("Kind", justify="center")
        table.add_column("Event")
        table.add_column("Concept")
        table.add_column("PR", justify="right")
        table.add_column("AI", justify="center")
        table.add_column("Doc hash")
        table.add_column("Details")

        for txn in transactions:
            style = _KIND_STYLES.get(txn.kind, "")
            if txn.kind == TransactionKind.REVERT:
                details = f"reverts {txn.reverted_transaction_id}"
                if txn.also_removed_transaction_ids:
                    details += f" (+{len(txn.also_removed_transaction_ids)} doc-only)"
            else:
                details = txn.pr_title or txn.message or ""
            table.add_row(
                txn.transaction_id,
                f"[{style}]{txn.kind.value}[/{style}]",
                txn.event_type.value,
                txn.concept_key or "[dim]-[/dim]",
                str(txn.pr_number) if txn.pr_number is not None else "[dim]-[/dim]",
                "[yellow]yes[/yellow]" if txn.ai_generated else "[dim]no[/dim]",
                _short(txn.doc_change_hash),
                details,
            )
        return table

    def render_snapshot(self, snapshot: HistorySnapshot) -> Panel:
        counts = "  ".join(
            f"[{_KIND_STYLES[TransactionKind(kind)]}]{kind}[/]: {n}"
            for kind, n in snapshot.counts.items()
        )
        chain_status = (
            "[green]valid[/green]" if snapshot.chain_valid else "[bold red]BROKEN[/bold red]"
        )
        lines = [
            f"[bold]HEAD:[/bold] {snapshot.head}",
            f"[bold]Transactions:[/bold] {snapshot.total}  ({counts})",
            f"[bold]AI-generated:[/bold] {snapshot.ai_generated}",
            f"[bold]Concepts:[/bold] {', '.join(snapshot.concepts) or '-'}",
            f"[bold]Chain:[/bold] {chain_status}",
        ]
        if snapshot.chain_error:
            lines.append(f"[red]{escape(snapshot.chain_error)}[/red]")
        return Panel(
            Group(*(Text.from_markup(line) for line in lines)),
            title=f"[bold]DocFlow Ledger[/bold] {snapshot.repo_branch}",
            subtitle=f"Taken: {snapshot.taken_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style="blue",
            padding=(1, 2),
        )

    def print_timeline(self, transactions: list[Transaction]) -> None:
        if not transactions:
            self.console.print("[dim]No transactions recorded.[/dim]")
            return
        self.console.print(self.build_timeline_table(transactions))

    def print_snapshot(self, snapshot: HistorySnapshot) -> None:
        self.console.print(self.render_snapshot(snapshot))

    def print_concept(self, view: ConceptView) -> None:
        status = "[magenta]reverted[/magenta]" if view.reverted else "[green]active[/green]"
        self.console.print(
            f"[bold]{view.concept_key}[/bold]: {len(view.transactions)} "
            f"transaction(s), {status}"
        )
        self.print_timeline(view.transactions)
