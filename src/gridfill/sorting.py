"""Sort-key resolution and ordering for both datasource backends."""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

import polars as pl

from gridfill.datasource import (
    DataSource,
    InMemory,
    Queryable,
    QueryHandle,
    RecordCollection,
    get_field,
)
from gridfill.models import SortState
from gridfill.polars_utils import coerce_numeric, resolve_column

logger = logging.getLogger(__name__)


def resolve_sort_field(raw_field: str, table: str, separator: str = ".") -> str:
    """Qualify a bare sort field with the current table name.

    Fields that already contain *separator* are treated as relation-
    qualified and returned unchanged::

        resolve_sort_field("total", "orders")          # "orders.total"
        resolve_sort_field("customers.name", "orders")  # "customers.name"
    """
    if separator in raw_field:
        return raw_field
    return f"{table}{separator}{raw_field}"


# ---------------------------------------------------------------------------
# In-memory ordering
# ---------------------------------------------------------------------------

def _sort_key(value: Any, numeric_string: bool) -> tuple:
    """Total-order key: numbers, then dates, then text; missing values lowest.

    Mixed record types would otherwise make ``sorted`` raise.
    """
    if value is None:
        return (0, 0)
    if numeric_string and not isinstance(value, bool):
        number = coerce_numeric(value)
        # the raw text breaks ties between equal numbers ("2" before "2.0")
        return (1, 0 if number is None else number, str(value))
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, datetime):
        return (2, value.replace(tzinfo=None))
    if isinstance(value, date):
        return (2, datetime(value.year, value.month, value.day))
    return (3, str(value))


def sort_records(
    records: Iterable[Any],
    sort: SortState,
    separator: str = ".",
) -> RecordCollection:
    """Return *records* ordered by ``sort.field`` (stable).

    With ``treat_as_numeric_string`` the values are compared as numbers,
    so ``"10"`` sorts after ``"9"``; text that is not a number sorts as 0.
    """
    keyed = [
        (_sort_key(get_field(r, sort.field, None, separator), sort.treat_as_numeric_string), r)
        for r in records
    ]
    keyed.sort(key=lambda pair: pair[0], reverse=sort.descending)
    return RecordCollection(r for _, r in keyed)


# ---------------------------------------------------------------------------
# Queryable ordering
# ---------------------------------------------------------------------------

def sort_frame(
    lf: pl.LazyFrame,
    sort: SortState,
    table: str,
    separator: str = ".",
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """Attach the ORDER BY for *sort* to a LazyFrame -- **no collect**.

    The field is qualified with *table* first.  With numeric-string
    ordering, ``field`` cast to a number (``field + 0``) is the first sort
    key and the qualified field itself the second; both are always
    present.
    """
    qualified = resolve_sort_field(sort.field, table, separator)
    if schema is None:
        schema = lf.collect_schema()
    resolved = resolve_column(qualified, schema, table, separator)
    if resolved is None:
        logger.debug("sort on %r skipped: field not in schema", qualified)
        return lf
    col, _ = resolved

    by: list[pl.Expr] = []
    if sort.treat_as_numeric_string:
        # Non-numeric text counts as 0; nulls stay null.
        by.append(pl.when(col.is_not_null()).then(col.cast(pl.Float64, strict=False).fill_null(0)))
    by.append(col)
    # Nulls lead an ascending sort and trail a descending one.
    return lf.sort(
        by=by,
        descending=[sort.descending] * len(by),
        nulls_last=sort.descending,
        maintain_order=True,
    )


def apply_sort(
    source: DataSource,
    sort: SortState,
    table: str,
    separator: str = ".",
) -> DataSource:
    """Order *source* by *sort*, returning a datasource of the same variant."""
    if isinstance(source, InMemory):
        return InMemory(sort_records(source.records, sort, separator))
    lf = sort_frame(source.handle.lazy(), sort, table, separator)
    return Queryable(QueryHandle(lf, source.handle.table))
