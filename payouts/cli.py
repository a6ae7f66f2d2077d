#!/usr/bin/env python3
"""
Operator console for computing and queueing payouts.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from payouts.core.config import MAINNET, OPTIMISM, ChainSettings, settings
from payouts.core.exceptions import PayoutsException
from payouts.core.logging import setup_logging, get_logger
from payouts.models import PaymentStatus, PayoutPlan, ReconciliationResult
from payouts.services.payouts import PayoutPipeline, parse_manual_entries
from payouts.services.signer import LocalAccountSigner

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help=f"{settings.app_name} commands")

STATUS_LABELS = {
    PaymentStatus.NONE: "⚪ Not submitted",
    PaymentStatus.QUEUED: "🟡 Queued in Safe",
    PaymentStatus.EXECUTED: "🟢 Executed",
}


def _run(coro):
    """Run a command coroutine, turning domain errors into exit code 1."""
    setup_logging()
    try:
        return asyncio.run(coro)
    except PayoutsException as e:
        console.print(f"❌ {e.message}")
        logger.error("Command failed", code=e.code, error=e.message, details=e.details)
        raise typer.Exit(code=1)


def _period(pipeline: PayoutPipeline, year: Optional[int], month: Optional[int]):
    if year is None and month is None:
        return pipeline.default_period()
    if year is None or month is None:
        raise typer.BadParameter("--year and --month must be given together")
    return pipeline.month(year, month)


def _link(url: str, text: str) -> str:
    return f"[link={url}]{text}[/link]"


def _print_plan(plan: PayoutPlan, chain: ChainSettings):
    title = f"{plan.flow.capitalize()} payouts"
    if plan.period is not None:
        title += f" - {plan.period.label}"

    table = Table(title=title)
    table.add_column("Recipient", style="cyan")
    table.add_column("Address")
    table.add_column("Activity", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Token")

    for record in plan.records:
        table.add_row(
            record.recipient_id,
            _link(chain.address_url(record.address), record.address),
            f"{record.activity_value:,.2f}" if record.activity_value is not None else "-",
            f"{record.allocation_percentage * 100:.2f}%" if record.allocation_percentage is not None else "-",
            f"{record.amount:,.4f}",
            record.token.symbol,
        )
    console.print(table)

    for token in plan.tokens:
        console.print(f"Total: {plan.total(token):,.4f} {token.symbol} from {plan.safe_address} on {plan.chain}")


def _print_status(result: ReconciliationResult):
    console.print(f"Status: {STATUS_LABELS[result.status]}")
    if not result.authoritative:
        for name, check in (("queue", result.queued_check), ("history", result.executed_check)):
            if check.error:
                console.print(f"⚠️ Could not check {name}: {check.error}")


async def _review_and_queue(pipeline: PayoutPipeline, plan: PayoutPlan, dry_run: bool, yes: bool):
    _print_plan(plan, pipeline.settings.chain(plan.chain))
    status = await pipeline.reconcile(plan)
    _print_status(status)

    if dry_run or not plan.records:
        return

    if status.status is not PaymentStatus.NONE and not yes:
        if not typer.confirm("This payout looks already submitted. Queue anyway?"):
            console.print("❌ Operation cancelled")
            return

    if not yes and not typer.confirm(f"Queue {plan.transfer_count} transfers from {plan.safe_address}?"):
        console.print("❌ Operation cancelled")
        return

    signer = LocalAccountSigner.from_settings(settings.signer_private_key)
    result = await pipeline.queue(plan, signer)
    report = result.report

    if report.partial:
        console.print(
            f"⚠️ Partially queued: {report.queued_count} of {len(result.batch)} transfers. "
            f"Error: {report.error}"
        )
    elif report.already_queued:
        console.print("✅ Nothing new to queue, all transfers are already pending")
    else:
        console.print(f"✅ Queued {report.queued_count} transfers ({report.skipped_count} already pending)")

    for tx_hash in report.safe_tx_hashes:
        console.print(f"   Safe tx: {tx_hash}")
    _print_status(result.reconciliation)


def _show_version(value: bool):
    if value:
        console.print(f"{settings.app_name} {settings.app_version}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit"
    ),
):
    """Compute payouts and queue them in the paying Safe."""


@app.command()
def period(
    year: Optional[int] = typer.Option(None, help="Calendar year"),
    month: Optional[int] = typer.Option(None, help="Calendar month (1-12)"),
):
    """Show the block range of a payout period."""
    async def _period_blocks():
        async with PayoutPipeline(settings) as pipeline:
            resolved = await pipeline.resolve_period(_period(pipeline, year, month), [MAINNET, OPTIMISM])

        table = Table(title=f"Period {resolved.label}")
        table.add_column("Chain", style="cyan")
        table.add_column("Start block", justify="right")
        table.add_column("End block", justify="right")
        for blocks in resolved.blocks.values():
            chain = settings.chain(blocks.chain)
            table.add_row(
                blocks.chain,
                _link(chain.block_url(blocks.start_block), str(blocks.start_block)),
                _link(chain.block_url(blocks.end_block), str(blocks.end_block)),
            )
        console.print(table)

    _run(_period_blocks())


@app.command()
def partners(
    year: Optional[int] = typer.Option(None, help="Calendar year"),
    month: Optional[int] = typer.Option(None, help="Calendar month (1-12)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute and show only"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Compute and queue spot exchange partner payouts."""
    async def _partners():
        async with PayoutPipeline(settings) as pipeline:
            plan = await pipeline.compute_partner_payouts(_period(pipeline, year, month))
            await _review_and_queue(pipeline, plan, dry_run, yes)

    _run(_partners())


@app.command()
def perps(
    year: Optional[int] = typer.Option(None, help="Calendar year"),
    month: Optional[int] = typer.Option(None, help="Calendar month (1-12)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute and show only"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Compute and queue perps frontend payouts."""
    async def _perps():
        async with PayoutPipeline(settings) as pipeline:
            plan = await pipeline.compute_perps_payouts(_period(pipeline, year, month))
            await _review_and_queue(pipeline, plan, dry_run, yes)

    _run(_perps())


@app.command()
def council(
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute and show only"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Compute and queue council member stipends."""
    async def _council():
        async with PayoutPipeline(settings) as pipeline:
            plan = await pipeline.compute_council_payouts()
            await _review_and_queue(pipeline, plan, dry_run, yes)

    _run(_council())


@app.command()
def manual(
    entries_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV of address,snx,susd"),
    safe: str = typer.Option("partners", help="partners, council or a Safe address"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute and show only"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Queue manual SNX and sUSD transfers."""
    async def _manual():
        entries = parse_manual_entries(entries_file.read_text())
        async with PayoutPipeline(settings) as pipeline:
            plan = pipeline.compute_manual_payouts(entries, safe)
            await _review_and_queue(pipeline, plan, dry_run, yes)

    _run(_manual())


if __name__ == "__main__":
    app()
