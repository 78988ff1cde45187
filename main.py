#!/usr/bin/env python3
"""
Purchase-order import CLI entry point.

Usage examples:
  python main.py check                              # Verify setup (database, settings)
  python main.py preview orders.xlsx                # Dry-run an import, write nothing
  python main.py preview orders.csv --json          # Full preview as JSON
  python main.py import orders.xlsx --user alice    # Commit an import
  python main.py orders --status draft              # List purchase orders
  python main.py serve --port 8000                  # Run the HTTP API
"""
import json
import logging
import sys
from pathlib import Path

import click

from config import Config
from importer.database import Database
from importer.reader import SpreadsheetError
from importer.reconciler import EmptyImportError, PurchaseOrderImporter


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def _make_config(db: str | None) -> Config:
    config = Config()
    if db:
        config.db_path = Path(db)
    config.ensure_output_dir()
    return config


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Preview and commit purchase-order spreadsheets."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# --------------------------------------------------------------------
# check command
# --------------------------------------------------------------------

@cli.command()
@click.option("--db", default=None, type=click.Path(), help="Path to the SQLite database")
def check(db: str | None) -> None:
    """Verify that the database is reachable and show effective settings."""
    config = _make_config(db)

    click.echo("\n=== Import Setup Check ===\n")
    try:
        stats = Database(config.db_path).get_stats()
        click.echo(f"  Database:            ✓  {config.db_path}")
        click.echo(f"  Purchase orders:     {stats.get('total_orders') or 0}")
        click.echo(f"  Products:            {stats.get('total_products') or 0}")
    except Exception as exc:
        click.echo(f"  Database:            ✗  {config.db_path} ({exc})")

    click.echo()
    click.echo(f"  Delivery lead time:  {config.delivery_lead_days} days")
    click.echo(f"  Fallback supplier:   {config.fallback_supplier}")
    click.echo(f"  PO number attempts:  {config.po_number_max_attempts}")
    click.echo(f"  Default placement:   {config.default_location_name} / "
               f"{config.default_room_name} / {config.default_rack_name}")
    click.echo()


# --------------------------------------------------------------------
# preview command
# --------------------------------------------------------------------

@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--db", default=None, type=click.Path(), help="Path to the SQLite database")
@click.option("--json", "as_json", is_flag=True, help="Print the full preview as JSON")
def preview(file: str, db: str | None, as_json: bool) -> None:
    """Show what importing FILE would create, without writing anything."""
    config = _make_config(db)
    importer = PurchaseOrderImporter(Database(config.db_path), config)
    path = Path(file)

    try:
        result = importer.preview_file(path.read_bytes(), path.name)
    except (SpreadsheetError, EmptyImportError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
        return

    s = result.summary
    click.echo()
    click.echo(f"  Rows:              {s.total_rows} ({s.skipped_rows} without ORDER NO skipped)")
    click.echo(f"  Orders:            {s.unique_orders}")
    click.echo(f"  New products:      {s.new_products}")
    click.echo(f"  Existing products: {s.existing_products}")
    click.echo()

    for order in result.orders_to_create:
        click.echo(
            f"  {order.po_number:<20} {order.supplier:<32} "
            f"{len(order.items):>3} items  {order.total_amount:>12.2f}  [{order.priority}]"
        )

    _echo_missing_columns(result.missing_columns)
    _echo_errors(result.errors)
    click.echo()


# --------------------------------------------------------------------
# import command
# --------------------------------------------------------------------

@cli.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--user", "-u", required=True, help="Identity recorded as created_by")
@click.option("--db", default=None, type=click.Path(), help="Path to the SQLite database")
def import_(file: str, user: str, db: str | None) -> None:
    """Create products and purchase orders from FILE."""
    config = _make_config(db)
    importer = PurchaseOrderImporter(Database(config.db_path), config)
    path = Path(file)

    try:
        outcome = importer.import_file(path.read_bytes(), user, path.name)
    except (SpreadsheetError, EmptyImportError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    s = outcome.summary
    click.echo()
    click.echo(f"  {outcome.message}")
    click.echo(f"  Rows: {s.total_rows}  Orders: {s.unique_orders}  "
               f"Products created: {s.products_created}")
    click.echo()
    for created in outcome.created_orders:
        click.echo(
            f"  ✓ {created.po_number:<20} {created.supplier:<32} "
            f"{created.item_count:>3} items  {created.total_amount:>12.2f}"
        )

    _echo_missing_columns(outcome.missing_columns)
    _echo_errors(outcome.errors)
    click.echo()
    if s.failed:
        sys.exit(2)


# --------------------------------------------------------------------
# orders command
# --------------------------------------------------------------------

@cli.command()
@click.option("--status", default=None, help="Only orders with this status")
@click.option("--search", default=None, help="Substring of PO number or supplier")
@click.option("--limit", default=50, show_default=True, help="Max orders to list")
@click.option("--db", default=None, type=click.Path(), help="Path to the SQLite database")
def orders(status: str | None, search: str | None, limit: int, db: str | None) -> None:
    """List purchase orders, newest first."""
    config = _make_config(db)
    rows = Database(config.db_path).list_purchase_orders(status=status, search=search, limit=limit)
    if not rows:
        click.echo("No purchase orders found.")
        return
    for r in rows:
        click.echo(
            f"  {r['po_number']:<20} {r['supplier']:<32} {r['status']:<10} "
            f"{r['item_count']:>3} items  {r['total_amount']:>12.2f}"
        )


# --------------------------------------------------------------------
# serve command
# --------------------------------------------------------------------

@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("api.app:app", host=host, port=port)


def _echo_missing_columns(missing) -> None:
    if not missing:
        return
    click.echo()
    click.echo("  Missing columns:")
    for m in missing:
        hint = f"  (found '{m.suggestion}')" if m.suggestion else ""
        click.echo(f"    ⚠ {m.column}{hint}")


def _echo_errors(errors: list[str]) -> None:
    if not errors:
        return
    click.echo()
    click.echo(f"  Errors ({len(errors)}):")
    for e in errors:
        click.echo(f"    ✗ {e}")


if __name__ == "__main__":
    cli()
