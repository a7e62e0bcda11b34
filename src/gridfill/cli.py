"""CLI for gridfill -- page through filtered, sorted tabular files.

Usage::

    # First page of a CSV file
    gridfill show orders.csv

    # Search, filter and sort, 25 rows per page, page 2
    gridfill show orders.parquet -s acme -f status:equals:open \\
        --sort total --desc --page-size 25 --page 2

    # Numeric ordering of a text column, plus the SQL the query amounts to
    gridfill show items.csv --sort code --numeric-sort --sql

Filters are ``field:kind:value``.  ``in`` takes comma-separated values,
``between`` and ``dateRange`` take ``start..end`` (either side optional),
``isEmpty`` / ``isNotEmpty`` take no value.
"""

import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import polars as pl
import typer

from gridfill.datasource import scan_file
from gridfill.exceptions import PresetError
from gridfill.filters import BETWEEN, DATE_RANGE, IN, VALUELESS_KINDS, normalize_kind
from gridfill.models import ColumnSpec, FilterSpec, GridDefinition, GridState, SortState
from gridfill.pipeline import Pipeline, PipelineResult
from gridfill.polars_utils import columns_from_schema
from gridfill.presets import dump_preset, load_preset
from gridfill.settings import get_settings
from gridfill.sql import generate_sql

app = typer.Typer(
    name="gridfill",
    help="Filter, search, sort and page through tabular data files.",
    no_args_is_help=True,
)


def configure_logging(level: str) -> None:
    """Send log records to stderr at *level*."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def parse_filter(raw: str) -> tuple[str, FilterSpec]:
    """Parse ``field:kind:value`` into a ``(field, FilterSpec)`` pair.

    Raises:
        typer.BadParameter: If *raw* is not in that shape.
    """
    parts = raw.split(":", 2)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise typer.BadParameter(f"expected field:kind:value, got {raw!r}")
    field, kind = parts[0], parts[1]
    text = parts[2] if len(parts) == 3 else None

    canonical = normalize_kind(kind)
    if canonical in VALUELESS_KINDS:
        return field, FilterSpec(kind=kind)
    if text is None:
        raise typer.BadParameter(f"filter {raw!r} needs a value")
    if canonical == IN:
        return field, FilterSpec(kind=kind, value=[v.strip() for v in text.split(",")])
    if canonical in (BETWEEN, DATE_RANGE):
        start, sep, end = text.partition("..")
        if not sep:
            raise typer.BadParameter(f"range filter {raw!r} needs start..end")
        return field, FilterSpec(kind=kind, value={"start": start or None, "end": end or None})
    return field, FilterSpec(kind=kind, value=text)


def _echo_result(result: PipelineResult) -> None:
    page = result.page
    if page.items:
        frame = pl.DataFrame(page.items)
        with pl.Config(tbl_rows=len(page.items), tbl_cols=-1):
            typer.echo(str(frame))
    else:
        typer.echo("No matching rows.")
    typer.echo(
        f"Page {page.current_page}/{page.last_page} | "
        f"rows {page.first_item}-{page.last_item} of {page.total_count:,} matching | "
        f"source: {result.source}"
    )


@app.callback()
def main_callback(
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Logging level (default from GRIDFILL_LOG_LEVEL)")] = None,
) -> None:
    """Filter, search, sort and page through tabular data files."""
    configure_logging(log_level or get_settings().log_level)


@app.command()
def show(
    file: Annotated[Path, typer.Argument(help="Path to the data file (CSV, TSV, Parquet, JSON, NDJSON, IPC)")],
    search: Annotated[Optional[str], typer.Option("--search", "-s", help="Free-text search over searchable columns")] = None,
    filters: Annotated[Optional[list[str]], typer.Option("--filter", "-f", help="Column filter as field:kind:value (repeatable)")] = None,
    sort: Annotated[Optional[str], typer.Option("--sort", help="Field to sort by")] = None,
    desc: Annotated[bool, typer.Option("--desc", help="Sort descending")] = False,
    numeric_sort: Annotated[bool, typer.Option("--numeric-sort", help="Order text holding numbers numerically")] = False,
    page_size: Annotated[Optional[int], typer.Option("--page-size", "-n", min=0, help="Rows per page; 0 shows every row")] = None,
    page: Annotated[int, typer.Option("--page", "-p", min=1, help="Page number")] = 1,
    table: Annotated[Optional[str], typer.Option("--table", "-t", help="Table name used to qualify sort fields")] = None,
    id_field: Annotated[Optional[str], typer.Option("--id-field", help="Primary key column")] = None,
    searchable: Annotated[Optional[list[str]], typer.Option("--searchable", help="Searchable column (repeatable; default: all text columns)")] = None,
    preset: Annotated[Optional[Path], typer.Option("--preset", help="Apply a saved JSON preset first")] = None,
    save_preset: Annotated[Optional[Path], typer.Option("--save-preset", help="Write the effective search/filters/sort as a JSON preset")] = None,
    eager: Annotated[bool, typer.Option("--eager", help="Load the file into memory and filter records in Python")] = False,
    sql: Annotated[bool, typer.Option("--sql", help="Print the equivalent SQL query")] = False,
    ids: Annotated[bool, typer.Option("--ids", help="Print the identifiers of every matching row")] = False,
) -> None:
    """Show one page of FILE after search, filters and sorting.

    Options given on the command line are applied on top of --preset.
    """
    settings = get_settings()
    try:
        lf = scan_file(file)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    id_field = id_field or settings.primary_key
    schema = lf.collect_schema()
    columns = columns_from_schema(schema, id_field=id_field)
    if searchable:
        wanted = set(searchable)
        columns = [c.model_copy(update={"searchable": c.field in wanted}) for c in columns]
        columns.extend(ColumnSpec(field=f, searchable=True) for f in searchable if f not in schema)

    state = GridState().with_page_size(settings.default_page_size if page_size is None else page_size)
    if preset is not None:
        try:
            state = load_preset(preset.read_text(encoding="utf-8"), state)
        except (OSError, PresetError) as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1)

    if search is not None:
        state = state.with_search(search)
    if filters:
        try:
            parsed = dict(parse_filter(f) for f in filters)
        except typer.BadParameter as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1)
        state = state.with_filters({**state.filters, **parsed})
    if sort is not None:
        state = state.model_copy(
            update={
                "sort": SortState(
                    field=sort,
                    direction="desc" if desc else "asc",
                    treat_as_numeric_string=numeric_sort,
                )
            }
        )
    state = state.goto_page(page)

    definition = GridDefinition(
        identity=f"cli:{file.resolve()}",
        columns=columns,
        datasource=lf.collect().to_dicts() if eager else lf,
        primary_key=id_field,
        table=table or file.stem,
    )

    if sql:
        typer.echo(generate_sql(definition, state, separator=settings.relation_separator))
        typer.echo("")

    result = Pipeline(settings=settings).run(definition, state)
    _echo_result(result)

    if ids:
        typer.echo("Matched ids: " + ", ".join(str(i) for i in result.matched_ids))
    if save_preset is not None:
        save_preset.write_text(dump_preset(result.state), encoding="utf-8")
        typer.echo(f"Preset saved to {save_preset}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
