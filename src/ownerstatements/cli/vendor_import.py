#!/usr/bin/env python3
"""
Vendor Import CLI - Preview and Confirm Commands

Two-step import: `preview` extracts and matches a document and writes the
preview JSON; `confirm` commits an approved subset of it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import click

from ..core.config import Config, get_config
from ..core.json_utils import format_json, read_json, write_json
from ..storage.db import Database
from ..vendor_import import (
    ConfirmRequest,
    PreviewRequest,
    VendorImportError,
    VendorImportService,
    summarize_errors,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_with_service(config: Config, action: Callable[[VendorImportService], Awaitable[T]]) -> T:
    """Open the datastore, run one service action and translate its errors."""

    async def run() -> T:
        database = Database.from_config(config)
        try:
            await database.init_db()
            service = VendorImportService.create(config, database)
            return await action(service)
        finally:
            await database.dispose()

    try:
        return asyncio.run(run())
    except VendorImportError as e:
        raise click.ClickException(e.user_message) from e
    except Exception as e:
        logger.exception("Vendor import command failed")
        raise click.ClickException(f"Unexpected error: {type(e).__name__}. See the log for details.") from e


def _echo_preview(preview: dict[str, Any]) -> None:
    summary = preview["summary"]
    click.echo(
        f"Matched {summary['matchedPropertyCount']} properties "
        f"({summary['matchedExpenseCount']} expenses, ${summary['matchedAmount']:.2f})"
    )
    for group in preview["matched"]:
        click.echo(
            f"  ✓ {group['property']['name']}: {len(group['expenses'])} expenses, "
            f"${group['totalAmount']:.2f} (confidence {group['confidence']:.0%})"
        )
    click.echo(
        f"Unmatched {summary['unmatchedPropertyCount']} properties "
        f"({summary['unmatchedExpenseCount']} expenses, ${summary['unmatchedAmount']:.2f})"
    )
    for group in preview["unmatched"]:
        click.echo(f"  ✗ {group['propertyName']}: {len(group['expenses'])} expenses, ${group['totalAmount']:.2f}")
    if preview["errors"]:
        click.echo(f"Skipped rows: {summarize_errors(preview['errors'])}")


@click.group("vendor-import")
def vendor_import() -> None:
    """Vendor expense import commands."""
    pass


@vendor_import.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--statement", "statement_id", required=True, help="Target statement ID (sets the month)")
@click.option("--org", "organization_id", required=True, help="Organization ID")
@click.option("--user", "user_id", required=True, help="Acting user ID")
@click.option("--vendor", help="Vendor name (required for PDFs)")
@click.option("--description", help="Expense description (required for PDFs)")
@click.option("--allow-duplicates", is_flag=True, help="Proceed even if this vendor/description exists")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), help="Preview JSON output path")
@click.pass_context
def preview(
    ctx: click.Context,
    file: Path,
    statement_id: str,
    organization_id: str,
    user_id: str,
    vendor: str | None,
    description: str | None,
    allow_duplicates: bool,
    output: Path | None,
) -> None:
    """
    Extract and match a vendor document without writing any expenses.

    Examples:
      ownerstatements vendor-import preview march.xlsx --statement S1 --org O1 --user U1
      ownerstatements vendor-import preview invoice.pdf --statement S1 --org O1 --user U1
        --vendor "Acme Pools" --description "Pool service"
    """
    config = ctx.obj.get("config") if ctx.obj else None
    config = config or get_config()

    request = PreviewRequest(
        organization_id=organization_id,
        user_id=user_id,
        statement_id=statement_id,
        filename=file.name,
        data=file.read_bytes(),
        vendor=vendor,
        description=description,
        allow_duplicates=allow_duplicates,
    )

    if ctx.obj and ctx.obj.get("verbose"):
        click.echo(f"Previewing {file} for statement {statement_id}")

    async def action(service: VendorImportService):
        return await service.preview(request)

    result = _run_with_service(config, action)
    payload = result.to_dict()

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    output_file = output or config.output_dir / f"{timestamp}_{result.job.id}_preview.json"
    write_json(output_file, payload)

    click.echo(f"Import job: {result.job.id}")
    _echo_preview(payload)
    click.echo(f"Preview saved to: {output_file}")


@vendor_import.command()
@click.argument("job_id")
@click.argument("request_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--org", "organization_id", required=True, help="Organization ID")
@click.option("--user", "user_id", required=True, help="Acting user ID")
@click.option("--allow-duplicates", is_flag=True, help="Proceed even if this vendor/description exists")
@click.pass_context
def confirm(
    ctx: click.Context,
    job_id: str,
    request_json: Path,
    organization_id: str,
    user_id: str,
    allow_duplicates: bool,
) -> None:
    """
    Commit the approved matches in REQUEST_JSON.

    REQUEST_JSON holds {"targetStatementId": ..., "approvedMatches": [...]}.
    Re-running the same command after a partial failure finishes the import.
    """
    config = ctx.obj.get("config") if ctx.obj else None
    config = config or get_config()

    try:
        request = ConfirmRequest.from_dict(read_json(request_json))
    except VendorImportError as e:
        raise click.ClickException(e.user_message) from e
    except ValueError as e:
        raise click.ClickException(f"{request_json} is not valid JSON") from e

    async def action(service: VendorImportService):
        return await service.confirm(job_id, organization_id, user_id, request, allow_duplicates)

    result = _run_with_service(config, action)

    click.echo(f"Created {result.created_count} expenses ({result.skipped_count} already present)")
    click.echo(f"Updated {len(result.updated_properties)} properties:")
    for name in result.updated_properties:
        click.echo(f"  {name}")


@vendor_import.command()
@click.argument("job_id")
@click.option("--org", "organization_id", required=True, help="Organization ID")
@click.pass_context
def status(ctx: click.Context, job_id: str, organization_id: str) -> None:
    """Show an import job's state and progress as JSON."""
    config = ctx.obj.get("config") if ctx.obj else None
    config = config or get_config()

    async def action(service: VendorImportService):
        return await service.status(job_id, organization_id)

    job = _run_with_service(config, action)
    click.echo(format_json(job.to_dict()))


@vendor_import.command()
@click.argument("job_id")
@click.option("--org", "organization_id", required=True, help="Organization ID")
@click.pass_context
def cancel(ctx: click.Context, job_id: str, organization_id: str) -> None:
    """Cancel an import that has not started committing."""
    config = ctx.obj.get("config") if ctx.obj else None
    config = config or get_config()

    async def action(service: VendorImportService):
        return await service.cancel(job_id, organization_id)

    job = _run_with_service(config, action)
    click.echo(f"Import {job.id} cancelled")
