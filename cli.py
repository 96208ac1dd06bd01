"""
Drift Relay CLI
===============
Operator commands for inspecting markets, the ledger and live positions.

Commands:
    python cli.py markets
    python cli.py history 42 --limit 20 --status FAILED
    python cli.py tx <signature>
    python cli.py positions <wallet address>
"""

import asyncio
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from solders.pubkey import Pubkey

from src.drift_engine.core.markets import MarketRegistry
from src.drift_engine.core.venue import VenueQueryService
from src.shared.infrastructure.solana_rpc import SolanaRpcGateway
from src.shared.system.database.core import DatabaseCore
from src.shared.system.database.repositories.transaction_repo import (
    TransactionRecord,
    TransactionRepository,
    TxStatus,
)

app = typer.Typer(
    name="drift-relay",
    help="Drift Relay - custodial perp trading pipeline",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

STATUS_STYLES = {
    TxStatus.PENDING: "yellow",
    TxStatus.CONFIRMED: "green",
    TxStatus.FAILED: "red",
}


def _ledger() -> TransactionRepository:
    repo = TransactionRepository(DatabaseCore())
    repo.init_table()
    return repo


def _ts(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: MARKETS
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def markets():
    """List the configured perp and spot markets."""
    registry = MarketRegistry.from_file()

    table = Table(title="Markets", header_style="bold cyan")
    table.add_column("Type")
    table.add_column("Index", justify="right")
    table.add_column("Symbol")
    table.add_column("Decimals", justify="right")
    table.add_column("Min Increment", justify="right")
    table.add_column("Oracle")

    for market in registry.all():
        table.add_row(
            market.market_type.name,
            str(market.market_index),
            market.symbol,
            str(market.decimals),
            f"{market.min_order_increment:,}",
            f"{str(market.oracle)[:8]}… ({market.oracle_source.name})",
        )
    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: HISTORY
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def history(
    user_id: str = typer.Argument(..., help="Chat user id"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=500),
    status: Optional[str] = typer.Option(None, "--status", help="PENDING, CONFIRMED or FAILED"),
):
    """Show a user's most recent transactions."""
    status_filter = TxStatus(status.upper()) if status else None
    records = _ledger().list_for_user(user_id, limit=limit, status=status_filter)

    if not records:
        console.print(f"[dim]No transactions for user {user_id}[/dim]")
        raise typer.Exit()

    table = Table(title=f"Transactions for {user_id}", header_style="bold cyan")
    table.add_column("Created")
    table.add_column("Type")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Hash / Error")

    for record in records:
        style = STATUS_STYLES[record.status]
        detail = record.tx_hash or record.error_type or "-"
        table.add_row(
            _ts(record.created_at),
            record.tx_type,
            f"{record.amount or '-'} {record.token_symbol or ''}".strip(),
            f"[{style}]{record.status.value}[/{style}]",
            str(record.retry_count),
            detail[:24],
        )
    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: TX
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def tx(tx_hash: str = typer.Argument(..., help="Transaction signature")):
    """Show one ledger record by signature."""
    record = _ledger().get_by_hash(tx_hash)
    if record is None:
        console.print(f"[red]No record for {tx_hash}[/red]")
        raise typer.Exit(code=1)
    _print_record(record)


def _print_record(record: TransactionRecord):
    table = Table(show_header=False, box=None)
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Record", record.id)
    table.add_row("User", record.user_id)
    table.add_row("Wallet", record.wallet_id)
    table.add_row("Type", record.tx_type)
    table.add_row("Status", record.status.value)
    table.add_row("Amount", f"{record.amount or '-'} {record.token_symbol or ''}")
    table.add_row("Market", str(record.market_index) if record.market_index is not None else "-")
    table.add_row("Retries", str(record.retry_count))
    table.add_row("Hash", record.tx_hash or "-")
    if record.error_type:
        table.add_row("Error", f"{record.error_type}: {record.error_message}")
    table.add_row("Created", _ts(record.created_at))
    table.add_row("Confirmed", _ts(record.confirmed_at))
    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: POSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def positions(
    wallet: str = typer.Argument(..., help="Wallet (authority) address"),
    sub_account: int = typer.Option(0, "--sub-account", min=0),
):
    """Show live perp positions valued at the oracle price."""
    authority = Pubkey.from_string(wallet)
    snapshots = asyncio.run(_fetch_positions(authority, sub_account))

    if not snapshots:
        console.print("[dim]No open positions[/dim]")
        raise typer.Exit()

    table = Table(title=f"Positions for {wallet[:8]}…", header_style="bold cyan")
    for column in ("Market", "Side", "Size", "Entry", "Mark", "PnL", "Margin"):
        table.add_column(column, justify="right" if column not in ("Market", "Side") else "left")

    for snap in snapshots:
        pnl_style = "green" if snap.unrealized_pnl >= 0 else "red"
        table.add_row(
            snap.symbol,
            snap.side.upper(),
            f"{snap.signed_size:,.4f}",
            f"${snap.entry_price:,.4f}",
            f"${snap.current_price:,.4f}",
            f"[{pnl_style}]${snap.unrealized_pnl:,.2f}[/{pnl_style}]",
            f"${snap.margin_used:,.2f}",
        )
    console.print(table)


async def _fetch_positions(authority: Pubkey, sub_account: int):
    rpc = SolanaRpcGateway()
    try:
        venue = VenueQueryService(rpc, MarketRegistry.from_file())
        return await venue.get_position_snapshots(authority, sub_account)
    finally:
        await rpc.close()


if __name__ == "__main__":
    app()
