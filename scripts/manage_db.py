#!/usr/bin/env python3
"""
Database and earnings management script for the agent earnings backend.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from alembic.config import Config
from alembic import command
from agent_earnings.core.database import init_database, close_database, get_session_maker, DatabaseManager
from agent_earnings.core.exceptions import EarningsEngineException
from agent_earnings.core.logging import setup_logging, get_logger
from agent_earnings.services.earnings.csv_io import parse_csv_text, render_batch_report
from agent_earnings.services.earnings.database import SqlAgentDirectory
from agent_earnings.services.earnings.engine import get_earnings_engine, reset_earnings_engine

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Database and earnings management commands")

STATUS_STYLES = {"success": "green", "failed": "red", "skipped": "yellow"}


def _run(coro_factory):
    """Run an async command body between database init and close."""
    async def _wrapper():
        setup_logging()
        await init_database()
        try:
            return await coro_factory()
        finally:
            reset_earnings_engine()
            await close_database()

    try:
        return asyncio.run(_wrapper())
    except EarningsEngineException as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)


@app.command()
def init():
    """Initialize database with tables."""
    async def _init():
        await DatabaseManager.create_tables()
        console.print("✅ Database initialized successfully!")

    _run(_init)


@app.command()
def upgrade(revision: str = "head"):
    """Apply migrations."""
    alembic_cfg = Config("alembic.ini")
    command.upgrade(alembic_cfg, revision)

    console.print(f"✅ Database upgraded to: {revision}")


@app.command()
def current():
    """Show current database revision."""
    alembic_cfg = Config("alembic.ini")
    command.current(alembic_cfg)


@app.command()
def drop():
    """Drop all tables."""
    confirm = typer.confirm("Are you sure you want to drop all tables?")
    if not confirm:
        console.print("❌ Operation cancelled")
        return

    async def _drop():
        await DatabaseManager.drop_tables()
        console.print("🗑️ All tables dropped!")

    _run(_drop)


@app.command()
def health():
    """Check database health."""
    async def _health():
        return await DatabaseManager.health_check()

    if _run(_health):
        console.print("✅ Database is healthy!")
    else:
        console.print("❌ Database health check failed!")
        sys.exit(1)


@app.command("seed-agents")
def seed_agents(csv_file: Path = typer.Argument(..., exists=True, readable=True)):
    """Create or update agents from a CSV with agent_code, full_name, tier, currency columns."""
    rows = parse_csv_text(csv_file.read_text(encoding="utf-8"))

    async def _seed():
        directory = SqlAgentDirectory(get_session_maker())
        seeded = 0
        for row in rows:
            code = (row.get("agent_code") or row.get("Agent Code") or "").strip()
            if not code:
                continue
            await directory.upsert_agent(
                code,
                full_name=row.get("full_name") or row.get("Full Name") or "",
                tier=row.get("tier") or row.get("Tier") or None,
                currency=row.get("currency") or row.get("Currency") or "USD",
            )
            seeded += 1
        return seeded

    seeded = _run(_seed)
    console.print(f"🌱 Seeded {seeded} agents")


@app.command()
def upload(
    csv_file: Path = typer.Argument(..., exists=True, readable=True),
    uploaded_by: str = typer.Option(..., "--by", help="Admin identity recorded on the batch"),
    auto_confirm: bool = typer.Option(False, "--auto-confirm", help="Confirm and apply valid entries"),
    description: Optional[str] = typer.Option(None, "--description"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write the CSV report to this path"),
):
    """Upload earnings from a CSV file and print the reconciliation report."""
    text = csv_file.read_text(encoding="utf-8")

    async def _upload():
        engine = get_earnings_engine()
        return await engine.upload_csv(
            text,
            uploaded_by=uploaded_by,
            batch_description=description,
            auto_confirm=auto_confirm,
        )

    result = _run(_upload)

    table = Table(title=f"Batch {result.batch_info.batch_id}")
    table.add_column("Row", justify="right")
    table.add_column("Agent Code", style="cyan")
    table.add_column("Status")
    table.add_column("Amount", justify="right")
    table.add_column("Earning ID")
    table.add_column("Message/Error")
    for detail in result.details:
        style = STATUS_STYLES[detail.status.value]
        table.add_row(
            str(detail.row_number),
            detail.agent_code,
            f"[{style}]{detail.status.value}[/{style}]",
            str(detail.amount),
            detail.earning_id or "",
            detail.message or detail.error or "",
        )
    console.print(table)
    console.print(
        f"Processed {result.total_processed}: {result.successful} successful, "
        f"{result.failed} failed, {result.skipped} skipped, total {result.total_amount}"
    )

    if report:
        report.write_text(render_batch_report(result), encoding="utf-8")
        console.print(f"📄 Report written to {report}")


@app.command()
def approve(
    earning_ids: List[str] = typer.Argument(...),
    reviewed_by: str = typer.Option(..., "--by"),
    notes: Optional[str] = typer.Option(None, "--notes"),
):
    """Approve one or more pending earnings."""
    async def _approve():
        return await get_earnings_engine().bulk_approve(earning_ids, reviewed_by, notes)

    summary = _run(_approve)
    console.print(summary.summary)
    for error in summary.errors:
        console.print(f"  ❌ {error['earningId']}: {error['error']}")


@app.command()
def reject(
    earning_ids: List[str] = typer.Argument(...),
    reviewed_by: str = typer.Option(..., "--by"),
    reason: str = typer.Option(..., "--reason"),
    notes: Optional[str] = typer.Option(None, "--notes"),
):
    """Reject one or more pending earnings."""
    async def _reject():
        return await get_earnings_engine().bulk_reject(earning_ids, reviewed_by, reason, notes)

    summary = _run(_reject)
    console.print(summary.summary)
    for error in summary.errors:
        console.print(f"  ❌ {error['earningId']}: {error['error']}")


@app.command("reapply-ledger")
def reapply_ledger(earning_id: str):
    """Re-apply the balance update of a confirmed earning."""
    async def _reapply():
        return await get_earnings_engine().reapply_ledger(earning_id)

    application = _run(_reapply)
    if application.applied:
        console.print(f"✅ Applied {application.delta} to agent {application.agent_id}")
    else:
        console.print("ℹ️ Ledger was already applied")


@app.command()
def status():
    """Show database and earnings status."""

    table = Table(title="Earnings Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")

    async def _status():
        is_healthy = await DatabaseManager.health_check()
        table.add_row("Database", "✅ Connected" if is_healthy else "❌ Disconnected")
        if is_healthy:
            stats = await get_earnings_engine().summarize()
            table.add_row("Pending", f"{stats.pending} ({stats.pending_amount})")
            table.add_row("Confirmed", f"{stats.confirmed} ({stats.confirmed_amount})")
            table.add_row("Cancelled", str(stats.cancelled))

    _run(_status)
    console.print(table)


if __name__ == "__main__":
    app()
