"""Render the effective grid query as portable SQL text.

The output mirrors what the queryable path does with polars: the search
OR-group AND-ed with every active filter, the qualified ORDER BY (with the
``field+0`` numeric key first when requested) and the page window.  It is
meant for debugging and for copy-pasting into DuckDB, Postgres, SQLite or
MySQL; values are inlined as escaped literals.
"""

from datetime import date, datetime
from typing import Any

from gridfill.filters import (
    BETWEEN,
    BOOLEAN,
    CONTAINS,
    DATE_RANGE,
    ENDS_WITH,
    EQUALS,
    IN,
    IS_EMPTY,
    IS_NOT_EMPTY,
    STARTS_WITH,
    ActiveFilter,
    prepare_filters,
    search_paths,
)
from gridfill.models import GridDefinition, GridState
from gridfill.polars_utils import coerce_numeric
from gridfill.sorting import resolve_sort_field


def _quote_identifier(field: str, separator: str) -> str:
    return ".".join('"' + part.replace('"', '""') + '"' for part in field.split(separator))


def _literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (datetime, date)):
        return f"'{value.isoformat(sep=' ') if isinstance(value, datetime) else value.isoformat()}'"
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def _like(value: str, prefix: str, suffix: str) -> str:
    return _literal(f"{prefix}{value}{suffix}")


def _range_sql(col: str, start: Any, end: Any) -> str:
    if start is not None and end is not None:
        return f"{col} BETWEEN {_literal(start)} AND {_literal(end)}"
    if start is not None:
        return f"{col} >= {_literal(start)}"
    return f"{col} <= {_literal(end)}"


def _numeric_or_text(value: Any) -> Any:
    number = coerce_numeric(value)
    return value if number is None else number


def filter_to_sql(active: ActiveFilter, separator: str = ".") -> str | None:
    """Translate one active filter to a SQL condition string."""
    col = _quote_identifier(active.field, separator)
    text = f"CAST({col} AS TEXT)"
    value = active.value

    if active.kind == IS_EMPTY:
        return f"({col} IS NULL OR {text} = '')"
    if active.kind == IS_NOT_EMPTY:
        return f"({col} IS NOT NULL AND {text} != '')"
    if active.kind == CONTAINS:
        return f"LOWER({text}) LIKE {_like(value.lower(), '%', '%')}"
    if active.kind == STARTS_WITH:
        return f"{text} LIKE {_like(value, '', '%')}"
    if active.kind == ENDS_WITH:
        return f"{text} LIKE {_like(value, '%', '')}"
    if active.kind == EQUALS:
        if coerce_numeric(value) is not None:
            return f"{col} = {_literal(coerce_numeric(value))}"
        return f"{text} = {_literal(value)}"
    if active.kind == IN:
        values = ", ".join(_literal(str(v)) for v in value)
        return f"{text} IN ({values})"
    if active.kind == BETWEEN:
        start, end = value
        return _range_sql(col, _numeric_or_text(start), _numeric_or_text(end))
    if active.kind == DATE_RANGE:
        return _range_sql(col, *value)
    if active.kind == BOOLEAN:
        return f"{col} = {_literal(value)}"
    return None


def generate_sql(
    definition: GridDefinition,
    state: GridState,
    *,
    table: str | None = None,
    separator: str = ".",
) -> str:
    """Generate the SQL equivalent of running *state* against *definition*.

    Args:
        definition: The grid whose columns and relation search are used.
        state: Search, filters, sort and pagination to render.
        table: Table name; defaults to ``definition.table`` or ``"df"``.
        separator: Relation path separator.

    Returns:
        A string of SQL ending in ``;``.
    """
    table = table or definition.table or "df"
    parts: list[str] = [f"SELECT * FROM {_quote_identifier(table, separator)}"]

    conditions: list[str] = []
    term = state.search.active_term
    if term:
        paths = search_paths(definition.columns, definition.relation_search, separator)
        needle = _like(term.lower(), "%", "%")
        group = [f"LOWER(CAST({_quote_identifier(p, separator)} AS TEXT)) LIKE {needle}" for p in paths]
        conditions.append("(" + " OR ".join(group) + ")" if group else "FALSE")
    for active in prepare_filters(state.filters):
        condition = filter_to_sql(active, separator)
        if condition is not None:
            conditions.append(condition)
    if conditions:
        parts.append("WHERE " + " AND ".join(conditions))

    sort = state.sort
    qualified = _quote_identifier(resolve_sort_field(sort.field, table, separator), separator)
    direction = sort.direction.upper()
    order = [f"{qualified} {direction}"]
    if sort.treat_as_numeric_string:
        order.insert(0, f"{qualified}+0 {direction}")
    parts.append("ORDER BY " + ", ".join(order))

    pagination = state.pagination
    if pagination.page_size > 0:
        # An active search always shows its first page.
        page = 1 if term else pagination.current_page
        offset = (page - 1) * pagination.page_size
        parts.append(f"LIMIT {pagination.page_size} OFFSET {offset}")

    return "\n".join(parts) + ";"
