#!/usr/bin/env python3
"""
Main CLI Entry Point for Owner Statements

Provides the command-line interface for datastore setup and vendor imports.
"""

import asyncio
import logging
import os

import click

from ..core.config import get_config
from ..storage.db import Database


@click.group()
@click.option(
    "--config-env",
    type=click.Choice(["development", "test", "production"]),
    help="Override environment configuration",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_env: str | None, verbose: bool, debug: bool) -> None:
    """
    Owner Statements - Vendor Expense Import and Reconciliation

    Imports vendor invoices and spreadsheets into monthly property owner
    statements with human review before anything is written.
    """
    # Ensure context object exists
    ctx.ensure_object(dict)

    # Set environment if specified
    if config_env:
        os.environ["STATEMENTS_ENV"] = config_env

    # Configure debug logging if requested
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("ownerstatements").setLevel(logging.DEBUG)

    # Store global options
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["config"] = get_config()

    if verbose:
        click.echo(f"Environment: {ctx.obj['config'].environment.value}")
        click.echo(f"Data directory: {ctx.obj['config'].data_dir}")

    if debug:
        click.echo("Debug logging enabled")


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from ownerstatements import __author__, __version__

    click.echo(f"Owner Statements v{__version__}")
    click.echo(f"Author: {__author__}")


@main.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show current configuration (secrets redacted)."""
    config_obj = ctx.obj["config"]
    settings = config_obj.to_dict()

    click.echo("Current Configuration:")
    click.echo(f"  Environment: {settings['environment']}")
    click.echo(f"  Data Directory: {settings['data_dir']}")
    click.echo(f"  Output Directory: {settings['output_dir']}")
    click.echo(f"  Database: {settings['database']['url']}")
    click.echo(f"  AI Key: {settings['ai']['api_key'] if config_obj.ai.api_key else 'not set'}")
    click.echo(f"  Matcher: {settings['vendor_import']['matcher']}")
    click.echo(f"  Cache Backend: {settings['cache']['backend']} (prefix {settings['cache']['key_prefix']})")
    click.echo(f"  Debug Mode: {settings['debug']}")
    click.echo(f"  Log Level: {settings['log_level']}")


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create datastore tables."""
    database = Database.from_config(ctx.obj["config"])

    async def run() -> None:
        try:
            await database.init_db()
        finally:
            await database.dispose()

    asyncio.run(run())
    click.echo("Database initialized")


# Import vendor import commands
from .vendor_import import vendor_import  # noqa: E402

main.add_command(vendor_import)


if __name__ == "__main__":
    main()
