# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Command-line interface for datagate."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from datagate.config import Config, set_config
from datagate.errors import DatagateError, GuardrailRejection
from datagate.models import DataSource, QueryResult

console = Console()
error_console = Console(stderr=True)

LOG_FILE = Path(".datagate/debug.log")


def _enable_debug_logging() -> None:
    # Write debug logs to file (keeps output clean)
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(LOG_FILE, mode="w")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s"
    ))
    logging.getLogger("datagate").addHandler(file_handler)
    logging.getLogger("datagate").setLevel(logging.DEBUG)


def _fail(message: str) -> None:
    error_console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


def _print_result(result: QueryResult) -> None:
    table = Table(show_header=True)
    for field_name in result.fields:
        table.add_column(field_name)
    for row in result.rows:
        table.add_row(*["" if row.get(f) is None else str(row.get(f)) for f in result.fields])
    console.print(table)
    console.print(f"[dim]{result.row_count} rows[/dim]")


def _load_datasource(config_path: str, name: str) -> DataSource:
    try:
        cfg = Config.from_yaml(config_path)
    except Exception as e:
        error_console.print(f"[red]Config error:[/red] {escape(str(e))}")
        sys.exit(1)
    set_config(cfg)

    ds = cfg.get_datasource(name)
    if ds is None:
        declared = ", ".join(d.id for d in cfg.datasources) or "none"
        _fail(f"Data source not found: {name} (declared: {declared})")
    return ds


config_option = click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    required=True,
    help="Path to config YAML file.",
)


@click.group()
@click.version_option(version="0.1.0", prog_name="datagate")
@click.option("--debug", is_flag=True, help="Write debug logs to .datagate/debug.log.")
def cli(debug: bool):
    """datagate - guarded read-only access to SQL data sources.

    \b
    Quick start:
        datagate test warehouse -c config.yaml
        datagate query warehouse "SELECT * FROM orders" -c config.yaml
    """
    if debug:
        _enable_debug_logging()


@cli.command()
def connectors():
    """List registered connector types."""
    from datagate.catalog.connectors import list_connector_types

    table = Table(title="Connectors", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("Dialect")
    for c in list_connector_types():
        table.add_row(c["type"], c["display_name"], c["dialect"])
    console.print(table)


@cli.command()
@click.argument("name")
@config_option
def test(name: str, config: str):
    """Test the connection to a declared data source."""
    from datagate.executor import check_data_source

    ds = _load_datasource(config, name)
    try:
        result = check_data_source(ds)
    except DatagateError as e:
        _fail(str(e))
    if result.ok:
        console.print(f"[green]Connected[/green] to {ds.id} in {result.elapsed_ms} ms")
    else:
        _fail(f"Connection to {ds.id} failed after {result.elapsed_ms} ms: {result.error}")


@cli.command()
@click.argument("name")
@config_option
@click.option("--all", "show_all", is_flag=True, help="Ignore the monitored-table scope.")
def tables(name: str, config: str, show_all: bool):
    """List tables a data source exposes to queries."""
    from datagate.catalog.connectors import get_connector

    ds = _load_datasource(config, name)
    try:
        with get_connector(ds.type).create_client(ds) as client:
            found = client.get_allowed_tables(None if show_all else ds.scope)
    except DatagateError as e:
        _fail(str(e))

    if not found:
        console.print("[dim]No tables.[/dim]")
        return
    for table_name in found:
        console.print(table_name)


@cli.command()
@click.argument("name")
@config_option
@click.option("--parsed", is_flag=True, help="Show columns grouped by table with type classes.")
def schema(name: str, config: str, parsed: bool):
    """Print the compact schema of the monitored tables."""
    from datagate.catalog.schema_parser import parse_compact_schema
    from datagate.executor import load_scoped_schema

    ds = _load_datasource(config, name)
    try:
        ddl = load_scoped_schema(ds)
    except DatagateError as e:
        _fail(str(e))

    if not parsed:
        console.print(ddl, markup=False, highlight=False, soft_wrap=True)
        return

    for parsed_table in parse_compact_schema(ddl):
        table = Table(title=parsed_table.name, show_header=True)
        table.add_column("Column", style="cyan")
        table.add_column("Type")
        table.add_column("Numeric")
        table.add_column("Temporal")
        for col in parsed_table.columns:
            table.add_row(col.name, col.type, "yes" if col.is_numeric else "", "yes" if col.is_temporal else "")
        console.print(table)


@cli.command()
@click.argument("sql")
@click.option("--allow", "-a", multiple=True, help="Allowed table (repeatable).")
@click.option("--dialect", "-d", default="postgresql", show_default=True,
              type=click.Choice(["postgresql", "mysql", "sqlite"]))
@click.option("--strict", is_flag=True, help="Also check every table with a SQL parser.")
@click.option("--max-rows", type=int, default=None, help="Show the statement with this LIMIT applied.")
def validate(sql: str, allow: tuple[str, ...], dialect: str, strict: bool, max_rows: Optional[int]):
    """Check SQL against an allowlist without connecting anywhere.

    \b
    Examples:
        datagate validate "SELECT * FROM orders" -a public.orders
        datagate validate "SELECT * FROM a JOIN b ON a.id = b.id" -a a -a b --strict
    """
    from datagate.guardrails import Guardrails

    guards = Guardrails(dialect, strict_parse=strict)
    result = guards.validate_sql(sql, list(allow))
    if not result.ok:
        _fail(f"Guardrails rejected SQL: {result.reason}")
    console.print("[green]OK[/green]")
    if max_rows:
        console.print(guards.enforce_limit(sql, max_rows), markup=False, highlight=False, soft_wrap=True)


@cli.command()
@click.argument("name")
@click.argument("sql")
@config_option
@click.option("--max-rows", type=int, default=None, help="Row cap (default from config).")
@click.option("--timeout-ms", type=int, default=None, help="Statement timeout (default from config).")
@click.option("--output", "-o", type=click.Path(), help="Write rows as CSV to this file.")
def query(name: str, sql: str, config: str, max_rows: Optional[int], timeout_ms: Optional[int],
          output: Optional[str]):
    """Run SQL through the guardrails against a declared data source."""
    from datagate.executor import run_guarded_query
    from datagate.export import to_csv

    ds = _load_datasource(config, name)
    try:
        result = run_guarded_query(ds, sql, max_rows=max_rows, timeout_ms=timeout_ms)
    except GuardrailRejection as e:
        _fail(f"Guardrails rejected SQL: {e.reason}")
    except DatagateError as e:
        _fail(str(e))

    if output:
        Path(output).write_text(to_csv(result.rows, result.fields) + "\n")
        console.print(f"[green]Wrote[/green] {result.row_count} rows to {output}")
        return

    _print_result(result)


@cli.command()
@click.argument("name")
@config_option
@click.option("--question", "-q", default=None,
              help="Answer only if this asks what the data source contains.")
def overview(name: str, config: str, question: Optional[str]):
    """Summarize the monitored tables from the schema, without running SQL."""
    from datagate.executor import answer_overview_question, load_dataset_overview

    ds = _load_datasource(config, name)
    try:
        if question is None:
            result = load_dataset_overview(ds)
        else:
            result = answer_overview_question(ds, question)
            if result is None:
                _fail(f"Not a question about the data source as a whole: {question}")
    except DatagateError as e:
        _fail(str(e))

    _print_result(result)


@cli.command()
@click.option("--url", is_flag=True, help="Encrypt a full connection URL instead of a password.")
def encrypt(url: bool):
    """Encrypt a secret for a data source entry in config.yaml.

    Reads the secret from a hidden prompt and prints the fields to paste
    under the data source. Requires the vault secret in the environment.
    """
    from datagate.security.vault import encrypt_string

    label = "Connection URL" if url else "Password"
    secret = click.prompt(label, hide_input=True)
    try:
        payload = encrypt_string(secret)
    except DatagateError as e:
        _fail(str(e))

    prefix = "url" if url else "password"
    console.print(yaml.safe_dump({
        f"{prefix}_ciphertext": payload.ciphertext,
        f"{prefix}_iv": payload.iv,
        f"{prefix}_tag": payload.auth_tag,
    }, sort_keys=False), markup=False, highlight=False, soft_wrap=True)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", "-n", default=None, help="Data source id (defaults to the table name).")
@click.option("--sheet", default=None, help="Worksheet to import from a workbook.")
def upload(path: str, name: Optional[str], sheet: Optional[str]):
    """Convert a .csv/.xlsx/.xls file into a csv data source entry.

    Prints YAML to paste under ``datasources:``.
    """
    from datagate.catalog.file.spreadsheet import build_csv_upload

    file_path = Path(path)
    try:
        metadata = build_csv_upload(file_path.read_bytes(), file_path.name, sheet_name=sheet)
    except DatagateError as e:
        _fail(str(e))

    entry = {
        "id": name or metadata["table_name"],
        "name": file_path.name,
        "type": "csv",
        "scope": [metadata["table_name"]],
        "metadata": metadata,
    }
    console.print(yaml.safe_dump([entry], sort_keys=False), markup=False, highlight=False, soft_wrap=True)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
