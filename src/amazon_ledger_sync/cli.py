import os
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from amazon_ledger_sync.config.settings import SyncConfig
from amazon_ledger_sync.domain.enums import SelectionStatus
from amazon_ledger_sync.logging_setup import configure_logging
from amazon_ledger_sync.parsers.locale import render_amount
from amazon_ledger_sync.repositories.json_transaction_repository import JsonTransactionRepository
from amazon_ledger_sync.selection import normalize_order_ids, parse_order_ids
from amazon_ledger_sync.services.ledger_sync import LedgerSyncError
from amazon_ledger_sync.services.models import SyncSummary
from amazon_ledger_sync.services.progress import ProgressEvent
from amazon_ledger_sync.services.transaction_service import TransactionService
from amazon_ledger_sync.storage.json_file import JsonStoreFile, StoreConfig

SYNC_FAILED_EXIT_CODE = 2

app = typer.Typer(
    name="amazon-ledger-sync",
    help="Reconcile Amazon.de payments with a local store and sync them to YNAB",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    SelectionStatus.QUEUED: "yellow",
    SelectionStatus.SYNCED: "green",
    SelectionStatus.ALREADY_SYNCED: "dim",
    SelectionStatus.INVALID_DATE: "red",
    SelectionStatus.NOT_FOUND: "red",
}


class State:
    verbose: bool = False
    service: Optional[TransactionService] = None


state = State()


class SpinnerStatusSink:
    """Shows sync progress events as the spinner text"""

    def __init__(self, progress: Progress, task_id):
        self.progress = progress
        self.task_id = task_id

    def on_progress(self, event: ProgressEvent) -> None:
        self.progress.update(self.task_id, description=event.message)


def _fail(e: Exception, code: int = 1) -> None:
    console.print(f"[bold red]Error:[/bold red] {e}")
    if state.verbose:
        console.print_exception()
    raise typer.Exit(code=code)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    store: Path = typer.Option(
        Path("data/transactions.json"),
        "--store", "-s",
        help="Path to the transaction store",
    ),
):
    """
    Amazon Ledger Sync - Import Amazon.de payments and sync them to YNAB.
    """
    load_dotenv()
    configure_logging("DEBUG" if verbose else None)

    repository = JsonTransactionRepository(JsonStoreFile(StoreConfig(store)))
    state.service = TransactionService(repository, config=SyncConfig.from_config())
    state.verbose = verbose


@app.command(name="import")
def import_transactions(
    filepath: Path = typer.Argument(
        ...,
        help="JSON file with scraped payment history blocks",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    details: Optional[Path] = typer.Option(
        None,
        "--details", "-d",
        help="JSON file with scraped order details",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Preview without saving to the store",
    ),
):
    """
    Import scraped payment history into the store.

    Examples:
        amazon-ledger-sync import blocks.json
        amazon-ledger-sync import blocks.json --details orders.json --dry-run
    """
    try:
        console.print(Panel.fit(
            f"[bold cyan]Import Configuration[/bold cyan]\n"
            f"File: {filepath}\n"
            f"Details: {details or '-'}\n"
            f"Mode: {'DRY RUN' if dry_run else 'LIVE'}",
            border_style="cyan",
        ))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Importing transactions...", total=None)
            result = state.service.import_file(filepath, details_path=details, dry_run=dry_run)
            progress.update(task, completed=True)

        console.print(f"\n[bold]Parsed {result.parsed} transactions from {result.total_blocks} blocks[/bold]")
        if result.skipped_blocks:
            console.print(f"[yellow]⏭️  Skipped {result.skipped_blocks} blocks without order number, date or amount[/yellow]")
        if result.enriched:
            console.print(f"[cyan]🔎 Enriched {result.enriched} transactions with order details[/cyan]")

        merge = result.merge
        if dry_run:
            console.print("[yellow]DRY RUN - No changes made[/yellow]")
            console.print(f"[green]✓[/green] Would add: {merge.added}")
            console.print(f"[cyan]🔁[/cyan] Would update: {merge.updated}")
        else:
            console.print(f"[bold green]✓ Added {merge.added} new transactions[/bold green]")
            if merge.updated:
                console.print(f"[cyan]🔁 Updated {merge.updated} transactions[/cyan]")
        if merge.dropped:
            console.print(
                f"[dim]Dropped {merge.dropped} stored records "
                f"({merge.dropped_malformed} malformed, {merge.dropped_superseded} superseded, "
                f"{merge.dropped_orphan_companions} orphaned point payments, "
                f"{merge.collapsed_duplicates} duplicates)[/dim]"
            )
        console.print(f"[dim]Store: {merge.count} transactions, {merge.with_order_id} with order id[/dim]")

    except Exception as e:
        _fail(e)


@app.command(name="sync")
def sync_transactions(
    order: Optional[List[str]] = typer.Option(
        None,
        "--order", "-o",
        help="Only sync this order id (repeatable)",
    ),
    orders: Optional[str] = typer.Option(
        None,
        "--orders",
        help="Order ids as JSON array or comma separated list",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Build payloads without submitting them",
    ),
):
    """
    Submit unsynced transactions to YNAB.

    Without --order/--orders the YNAB_SELECTED_ORDER_IDS environment
    variable is used, and without that every eligible transaction.

    Examples:
        amazon-ledger-sync sync --dry-run
        amazon-ledger-sync sync --order 304-1111111-2222222
        amazon-ledger-sync sync --orders '["304-1111111-2222222"]'
    """
    try:
        selected = normalize_order_ids(list(order or []) + parse_order_ids(orders))
        if not selected:
            selected = parse_order_ids(os.getenv("YNAB_SELECTED_ORDER_IDS"))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Syncing transactions...", total=None)
            summary = state.service.sync(
                selected_ids=selected or None,
                dry_run=dry_run,
                sink=SpinnerStatusSink(progress, task),
            )
            progress.update(task, completed=True)

        _print_sync_summary(summary)

    except LedgerSyncError as e:
        _print_sync_summary(e.summary)
        _fail(e, code=SYNC_FAILED_EXIT_CODE)
    except Exception as e:
        _fail(e)


@app.command(name="list")
def list_transactions():
    """
    Show every stored transaction with its sync status.
    """
    try:
        records = state.service.list_transactions()
        if not records:
            console.print(Panel(
                "[yellow]No transactions stored yet[/yellow]",
                title="Empty Store",
                border_style="yellow",
            ))
            return

        table = Table(show_header=True, padding=(0, 1))
        table.add_column("Date", style="cyan", width=12)
        table.add_column("Order", style="white")
        table.add_column("Payee", style="dim", max_width=20)
        table.add_column("Instrument", style="dim", max_width=24)
        table.add_column("Amount", justify="right")
        table.add_column("Sync", justify="center")

        for record in records:
            if record.amount_minor_units is None:
                amount_str = f"[dim]{record.amount_text or '-'}[/dim]"
            elif record.amount_minor_units >= 0:
                amount_str = f"[green]{render_amount(record.amount_minor_units)}[/green]"
            else:
                amount_str = f"[red]{render_amount(record.amount_minor_units)}[/red]"

            if record.is_terminally_synced:
                sync_str = "[green]SYNCED[/green]"
            elif record.sync_state is not None:
                sync_str = "[yellow]UNCONFIRMED[/yellow]"
            else:
                sync_str = "[dim]-[/dim]"

            table.add_row(
                record.iso_date or record.date or "?",
                record.order_id or "-",
                record.merchant or "-",
                record.payment_instrument or "-",
                amount_str,
                sync_str,
            )

        console.print(table)
        synced = sum(1 for r in records if r.is_terminally_synced)
        console.print(f"\n[dim]{len(records)} transactions, {synced} synced[/dim]")

    except Exception as e:
        _fail(e)


@app.command(name="delete")
def delete_transactions(
    order_ids: List[str] = typer.Argument(..., help="Order ids to delete"),
):
    """
    Delete every stored transaction of the given orders.
    """
    try:
        removed = state.service.delete_transactions(order_ids)
        console.print(f"[bold green]✓ Deleted {removed} transactions[/bold green]")
    except Exception as e:
        _fail(e)


@app.command(name="reset")
def reset_sync_state(
    order_ids: List[str] = typer.Argument(..., help="Order ids to make eligible again"),
):
    """
    Forget the sync state of the given orders so the next sync submits them again.
    """
    try:
        touched = state.service.reset_sync_state(order_ids)
        console.print(f"[bold green]✓ Reset {touched} transactions[/bold green]")
    except Exception as e:
        _fail(e)


@app.command(name="set-summary")
def set_summary(
    order_id: str = typer.Argument(..., help="Order id"),
    text: str = typer.Argument(..., help="Summary text, empty to clear"),
):
    """
    Set the short summary used as ledger memo for an order.
    """
    try:
        state.service.update_ai_summary(order_id, text)
        console.print(f"[bold green]✓ Updated summary of {order_id}[/bold green]")
    except Exception as e:
        _fail(e)


def _print_sync_summary(summary: SyncSummary) -> None:
    selection = summary.selection
    totals = selection.totals
    stats = selection.candidate_stats

    summary_text = (
        f"[bold]Stored:[/bold] {totals.file_transactions} "
        f"({totals.with_order_id} with order id, {totals.with_valid_date} with valid date)\n"
        f"[bold]Eligible:[/bold] {totals.eligible_before_selection}\n"
        f"[bold]Candidates:[/bold] {stats.count} ({stats.refunds} refunds, "
        f"{render_amount(stats.total_minor_units)})"
    )
    for name, entry in selection.filters.items():
        if entry.count:
            summary_text += f"\n[yellow]{name}:[/yellow] {entry.count} ({', '.join(entry.samples)})"
    for name, entry in selection.flags.items():
        if entry.count:
            summary_text += f"\n[yellow]{name}:[/yellow] {entry.count} ({', '.join(entry.samples)})"

    response = summary.response
    if response is not None:
        summary_text += (
            f"\n{'─' * 30}\n"
            f"[green]Created:[/green] {response.created}\n"
            f"[cyan]Duplicates:[/cyan] {len(response.duplicate_import_ids)}\n"
            f"[yellow]Unconfirmed:[/yellow] {len(response.missing_import_ids)}"
        )
        if response.error:
            summary_text += f"\n[red]Error:[/red] {response.error}"

    console.print(Panel(summary_text, title="[bold]Sync Summary[/bold]", border_style="cyan", padding=(1, 2)))

    if summary.nothing_to_do:
        console.print("[yellow]Nothing to do[/yellow]")

    if summary.dry_run and summary.payloads:
        console.print("[yellow]DRY RUN - Nothing submitted[/yellow]")
        payload_table = Table(title="Payloads", show_header=True, padding=(0, 1))
        payload_table.add_column("Date", style="cyan", width=12)
        payload_table.add_column("Payee", style="dim")
        payload_table.add_column("Amount", justify="right")
        payload_table.add_column("Import id", style="white")
        payload_table.add_column("Memo", max_width=50)
        for payload in summary.payloads:
            payload_table.add_row(
                payload["date"],
                payload["payee_name"],
                render_amount(payload["amount"]),
                payload["import_id"],
                payload["memo"],
            )
        console.print(payload_table)

    if summary.statuses and selection.requested_ids:
        status_table = Table(title="Selected orders", show_header=True, box=None, padding=(0, 2))
        status_table.add_column("Order", style="white")
        status_table.add_column("Status")
        status_table.add_column("Detail", style="dim")
        for order_id, entry in summary.statuses.items():
            style = STATUS_STYLES[entry.status]
            status_table.add_row(order_id, f"[{style}]{entry.status.value}[/{style}]", entry.detail or "")
        console.print(status_table)


def cli_main():
    """Entry point for the CLI"""
    app()


if __name__ == "__main__":
    cli_main()
