"""Column filters and free-text search over both datasource backends.

The same logical rules apply to both variants:

* a non-empty search term matches when ANY searchable column (or declared
  relation field) contains it, case-insensitively;
* every active column filter must match (logical AND);
* filters whose value is empty are inactive and narrow nothing.

For :class:`~gridfill.datasource.InMemory` sources each record is tested
in Python.  For :class:`~gridfill.datasource.Queryable` sources the rules
are compiled into a single polars predicate and handed to
``LazyFrame.filter`` -- **no collect**.

Supported filter kinds::

    contains     case-insensitive substring
    equals       exact match (numbers compare numerically)
    in           membership in a list of values
    between      inclusive range, {"start": a, "end": b} or [a, b]
    dateRange    inclusive date/datetime range, same shapes as between
    boolean      strict boolean equality
    startsWith / endsWith
    isEmpty / isNotEmpty   (take no value)

Unknown kinds are skipped with a warning.
"""

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time
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
from gridfill.models import ColumnSpec, FilterSpec, SearchState
from gridfill.polars_utils import (
    coerce_numeric,
    col_to_str_expr,
    polars_dtype_kind,
    resolve_column,
)

logger = logging.getLogger(__name__)

CONTAINS = "contains"
EQUALS = "equals"
IN = "in"
BETWEEN = "between"
DATE_RANGE = "dateRange"
BOOLEAN = "boolean"
STARTS_WITH = "startsWith"
ENDS_WITH = "endsWith"
IS_EMPTY = "isEmpty"
IS_NOT_EMPTY = "isNotEmpty"

KNOWN_KINDS: frozenset[str] = frozenset(
    {CONTAINS, EQUALS, IN, BETWEEN, DATE_RANGE, BOOLEAN, STARTS_WITH, ENDS_WITH, IS_EMPTY, IS_NOT_EMPTY}
)
VALUELESS_KINDS: frozenset[str] = frozenset({IS_EMPTY, IS_NOT_EMPTY})

KIND_ALIASES: dict[str, str] = {
    "is": EQUALS,
    "select": EQUALS,
    "isAnyOf": IN,
    "multiSelect": IN,
    "isBetween": BETWEEN,
    "number": BETWEEN,
    "datetime": DATE_RANGE,
    "date": DATE_RANGE,
}

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}

# Failures while evaluating a single record exclude that record.
_RECORD_ERRORS = (KeyError, TypeError, ValueError, AttributeError, IndexError)


@dataclass(frozen=True)
class ActiveFilter:
    """A filter that passed validation, with its value normalised for its kind."""

    field: str
    kind: str
    value: Any = None


# ---------------------------------------------------------------------------
# Filter preparation
# ---------------------------------------------------------------------------

def normalize_kind(kind: str) -> str | None:
    """Return the canonical kind name, or ``None`` if it is unknown."""
    kind = KIND_ALIASES.get(kind, kind)
    return kind if kind in KNOWN_KINDS else None


def is_blank(value: Any) -> bool:
    """Return True for values that leave a filter inactive."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Mapping):
        if not value:
            return True
        if "start" in value or "end" in value:
            return is_blank(value.get("start")) and is_blank(value.get("end"))
        return False
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0 or all(is_blank(v) for v in value)
    return False


def to_bool(value: Any) -> bool:
    """Parse a boolean filter value.

    Raises:
        ValueError: If *value* is not a recognisable boolean.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean value: {value!r}")


def _range_bounds(value: Any) -> tuple[Any, Any]:
    if isinstance(value, Mapping):
        start, end = value.get("start"), value.get("end")
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        start, end = value
    else:
        raise ValueError(f"range filters need {{'start', 'end'}} or a pair, got {value!r}")
    return (None if is_blank(start) else start, None if is_blank(end) else end)


def _parse_datetime_bound(value: Any, *, end: bool) -> datetime | None:
    """Parse a date range bound; a date-only end bound covers the whole day."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, dt_time.max if end else dt_time.min)
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return datetime.combine(date.fromisoformat(text), dt_time.max if end else dt_time.min)
        return datetime.fromisoformat(text)
    raise ValueError(f"not a date or datetime: {value!r}")


def _normalize_value(kind: str, value: Any) -> Any:
    if kind == IN:
        if isinstance(value, (list, tuple, set, frozenset)):
            return [v for v in value if not is_blank(v)]
        return [value]
    if kind == BETWEEN:
        return _range_bounds(value)
    if kind == DATE_RANGE:
        start, end = _range_bounds(value)
        return (
            _parse_datetime_bound(start, end=False),
            _parse_datetime_bound(end, end=True),
        )
    if kind == BOOLEAN:
        return to_bool(value)
    if kind in (CONTAINS, STARTS_WITH, ENDS_WITH):
        return str(value).strip() if kind == CONTAINS else str(value)
    return value


def prepare_filters(filters: Mapping[str, FilterSpec]) -> list[ActiveFilter]:
    """Validate *filters* and return the ones that actually constrain results.

    Filters with an empty value are inactive.  Unknown kinds and values that
    cannot be interpreted for their kind are skipped with a warning.
    """
    active: list[ActiveFilter] = []
    for field, spec in filters.items():
        kind = normalize_kind(spec.kind)
        if kind is None:
            logger.warning("ignoring filter on %r: unknown kind %r", field, spec.kind)
            continue
        if kind in VALUELESS_KINDS:
            active.append(ActiveFilter(field, kind))
            continue
        if is_blank(spec.value):
            continue
        try:
            value = _normalize_value(kind, spec.value)
        except ValueError as exc:
            logger.warning("ignoring %s filter on %r: %s", kind, field, exc)
            continue
        active.append(ActiveFilter(field, kind, value))
    return active


def merge_filters(
    existing: Mapping[str, FilterSpec],
    incoming: Mapping[str, FilterSpec],
) -> dict[str, FilterSpec]:
    """Merge an incoming filter change into the accumulated filter set.

    * Incoming entry **has a value** (or is valueless by kind) → upsert.
    * Incoming entry **has no value** and the field already has a filter →
      keep the existing value but adopt the new kind.
    * Incoming entry **has no value** and the field is new → ignore.
    * Incoming mapping is **empty** → clear all filters.
    """
    if not incoming:
        return {}

    merged: dict[str, FilterSpec] = dict(existing)
    for field, spec in incoming.items():
        has_value = not is_blank(spec.value) or normalize_kind(spec.kind) in VALUELESS_KINDS
        if has_value:
            merged[field] = spec
        elif field in merged and spec.kind != merged[field].kind:
            merged[field] = merged[field].model_copy(update={"kind": spec.kind})
    return merged


def search_paths(
    columns: Iterable[ColumnSpec],
    relation_search: Mapping[str, Sequence[str]] | None = None,
    separator: str = ".",
) -> list[str]:
    """Return the field paths a search term is matched against, in order."""
    paths: list[str] = [c.search_field for c in columns if c.searchable]
    for relation, fields in (relation_search or {}).items():
        paths.extend(f"{relation}{separator}{f}" for f in fields)
    return list(dict.fromkeys(paths))


# ---------------------------------------------------------------------------
# In-memory evaluation
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _values_equal(value: Any, target: Any) -> bool:
    if value is None:
        return False
    if _is_number(value):
        number = coerce_numeric(target)
        return number is not None and value == number
    if isinstance(value, bool) or isinstance(target, bool):
        return value == target and type(value) is type(target)
    return value == target or str(value) == str(target)


def _require_number(value: Any) -> int | float:
    number = coerce_numeric(value)
    if number is None:
        raise ValueError(f"not a number: {value!r}")
    return number


def _in_range(value: Any, start: Any, end: Any) -> bool:
    if value is None:
        return False
    if _is_number(value) or _is_number(start) or _is_number(end):
        value = _require_number(value)
        start = None if start is None else _require_number(start)
        end = None if end is None else _require_number(end)
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, dt_time.min)
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise TypeError(f"not a date or datetime: {value!r}")


def _text_values(record: Any, path: str, separator: str) -> list[Any]:
    """Values at *path*, fanning out over list-valued relations."""
    value = get_field(record, path, None, separator)
    if value is not None:
        return [value]
    if separator not in path:
        return []
    relation, rest = path.split(separator, 1)
    related = get_field(record, relation, None, separator)
    if isinstance(related, (list, tuple)):
        values = []
        for item in related:
            values.extend(_text_values(item, rest, separator))
        return values
    return []


def _matches_search(record: Any, needle: str, paths: Sequence[str], separator: str) -> bool:
    for path in paths:
        for value in _text_values(record, path, separator):
            if needle in str(value).lower():
                return True
    return False


def _matches_filter(record: Any, active: ActiveFilter, separator: str) -> bool:
    kind = active.kind
    if kind in VALUELESS_KINDS:
        value = get_field(record, active.field, None, separator)
        empty = value is None or str(value) == ""
        return empty if kind == IS_EMPTY else not empty

    value = get_field(record, active.field, separator=separator)
    target = active.value

    if kind == CONTAINS:
        return value is not None and target.lower() in str(value).lower()
    if kind == EQUALS:
        return _values_equal(value, target)
    if kind == IN:
        return any(_values_equal(value, t) for t in target)
    if kind == BETWEEN:
        if isinstance(value, date):
            start, end = target
            return _in_range(
                _to_datetime(value),
                _parse_datetime_bound(start, end=False),
                _parse_datetime_bound(end, end=True),
            )
        return _in_range(value, *target)
    if kind == DATE_RANGE:
        if value is None:
            return False
        return _in_range(_to_datetime(value), *target)
    if kind == BOOLEAN:
        return isinstance(value, bool) and value is target
    if kind == STARTS_WITH:
        return value is not None and str(value).startswith(target)
    if kind == ENDS_WITH:
        return value is not None and str(value).endswith(target)
    return True


def record_matches(
    record: Any,
    *,
    term: str,
    paths: Sequence[str],
    filters: Sequence[ActiveFilter],
    separator: str = ".",
) -> bool:
    """Return True if *record* satisfies the search term and every filter.

    Raises whatever the comparison raises; :func:`filter_records` treats
    that as "no match".
    """
    if term and not _matches_search(record, term.lower(), paths, separator):
        return False
    return all(_matches_filter(record, f, separator) for f in filters)


def filter_records(
    records: Iterable[Any],
    columns: Sequence[ColumnSpec],
    search: SearchState,
    filters: Mapping[str, FilterSpec],
    relation_search: Mapping[str, Sequence[str]] | None = None,
    separator: str = ".",
) -> RecordCollection:
    """Apply search and filters to in-memory records, preserving order."""
    term = search.active_term
    active = prepare_filters(filters)
    if not term and not active:
        return records if isinstance(records, RecordCollection) else RecordCollection(records)

    paths = search_paths(columns, relation_search, separator)
    matched: list[Any] = []
    failures = 0
    for record in records:
        try:
            if record_matches(record, term=term, paths=paths, filters=active, separator=separator):
                matched.append(record)
        except _RECORD_ERRORS:
            failures += 1
            logger.debug("record excluded, filter evaluation failed: %r", record, exc_info=True)
    if failures:
        logger.debug("%d record(s) excluded by evaluation failures", failures)
    return RecordCollection(matched)


# ---------------------------------------------------------------------------
# Queryable (polars) predicates
# ---------------------------------------------------------------------------

def _temporal_expr(col: pl.Expr, dtype: pl.DataType) -> pl.Expr | None:
    if isinstance(dtype, pl.Datetime):
        return col.dt.replace_time_zone(None) if dtype.time_zone else col
    if isinstance(dtype, pl.Date):
        return col.cast(pl.Datetime)
    if polars_dtype_kind(dtype) == "string":
        return col.cast(pl.String).str.to_datetime(strict=False)
    return None


def _range_expr(col: pl.Expr, start: Any, end: Any) -> pl.Expr:
    expr = pl.lit(True)
    if start is not None:
        expr = expr & (col >= pl.lit(start))
    if end is not None:
        expr = expr & (col <= pl.lit(end))
    return expr


def build_filter_expr(
    active: ActiveFilter,
    schema: pl.Schema,
    table: str | None = None,
    separator: str = ".",
) -> pl.Expr | None:
    """Translate one active filter into a polars expression.

    A field missing from *schema* reads as empty on every row, the same
    as a missing key on an in-memory record: ``isEmpty`` matches all rows
    and every other kind matches none.

    Returns:
        A polars expression, or ``None`` for a kind it does not handle.
    """
    resolved = resolve_column(active.field, schema, table, separator)
    if resolved is None:
        logger.debug("filter on %r: field not in schema", active.field)
        return pl.lit(active.kind == IS_EMPTY)
    col, dtype = resolved
    kind = polars_dtype_kind(dtype)
    str_col = col_to_str_expr(col, dtype)
    target = active.value

    if active.kind == IS_EMPTY:
        return col.is_null() | (str_col == "")
    if active.kind == IS_NOT_EMPTY:
        return col.is_not_null() & (str_col != "")

    if active.kind == CONTAINS:
        return str_col.str.to_lowercase().str.contains(target.lower(), literal=True)
    if active.kind == STARTS_WITH:
        return str_col.str.starts_with(target)
    if active.kind == ENDS_WITH:
        return str_col.str.ends_with(target)

    if active.kind == EQUALS:
        if kind == "number":
            number = coerce_numeric(target)
            return pl.lit(False) if number is None else col == number
        if kind == "boolean":
            try:
                return col == to_bool(target)
            except ValueError:
                return pl.lit(False)
        return str_col == str(target)

    if active.kind == IN:
        if kind == "number":
            numbers = [n for n in (coerce_numeric(v) for v in target) if n is not None]
            return col.is_in(numbers)
        return str_col.is_in([str(v) for v in target])

    if active.kind == BETWEEN:
        start, end = target
        if kind == "number":
            try:
                start = None if start is None else _require_number(start)
                end = None if end is None else _require_number(end)
            except ValueError:
                return pl.lit(False)
            return _range_expr(col, start, end)
        if kind in ("date", "dateTime"):
            try:
                start = _parse_datetime_bound(start, end=False)
                end = _parse_datetime_bound(end, end=True)
            except ValueError:
                return pl.lit(False)
            return _range_expr(_temporal_expr(col, dtype), start, end)
        return _range_expr(str_col, None if start is None else str(start), None if end is None else str(end))

    if active.kind == DATE_RANGE:
        temporal = _temporal_expr(col, dtype)
        if temporal is None:
            return pl.lit(False)
        return _range_expr(temporal, *target)

    if active.kind == BOOLEAN:
        return col == target if kind == "boolean" else pl.lit(False)

    return None


def build_search_expr(
    term: str,
    paths: Sequence[str],
    schema: pl.Schema,
    table: str | None = None,
    separator: str = ".",
) -> pl.Expr:
    """OR-group of case-insensitive substring matches over *paths*.

    List-of-struct relations (one-to-many) match when any related element
    contains the term.  When no path resolves, the expression matches
    nothing.
    """
    needle = term.lower()
    exprs: list[pl.Expr] = []
    for path in paths:
        resolved = resolve_column(path, schema, table, separator)
        if resolved is not None:
            col, dtype = resolved
            exprs.append(col_to_str_expr(col, dtype).str.to_lowercase().str.contains(needle, literal=True))
            continue
        if separator in path:
            relation, field = path.split(separator, 1)
            dtype = schema.get(relation)
            if isinstance(dtype, pl.List) and isinstance(dtype.inner, pl.Struct):
                exprs.append(
                    pl.col(relation)
                    .list.eval(
                        pl.element().struct.field(field).cast(pl.String).str.to_lowercase()
                        .str.contains(needle, literal=True)
                    )
                    .list.any()
                )
                continue
        logger.debug("search path %r skipped: not in schema", path)

    if not exprs:
        return pl.lit(False)
    combined = exprs[0].fill_null(False)
    for e in exprs[1:]:
        combined = combined | e.fill_null(False)
    return combined


def build_predicate(
    schema: pl.Schema,
    columns: Sequence[ColumnSpec],
    search: SearchState,
    filters: Mapping[str, FilterSpec],
    relation_search: Mapping[str, Sequence[str]] | None = None,
    table: str | None = None,
    separator: str = ".",
) -> pl.Expr | None:
    """Compose the full predicate: (search OR-group) AND filter_1 AND ...

    Returns ``None`` when nothing constrains the result.
    """
    exprs: list[pl.Expr] = []
    term = search.active_term
    if term:
        paths = search_paths(columns, relation_search, separator)
        exprs.append(build_search_expr(term, paths, schema, table, separator))

    for active in prepare_filters(filters):
        expr = build_filter_expr(active, schema, table, separator)
        if expr is not None:
            exprs.append(expr)

    if not exprs:
        return None
    combined = exprs[0]
    for e in exprs[1:]:
        combined = combined & e
    return combined


def filter_frame(
    lf: pl.LazyFrame,
    columns: Sequence[ColumnSpec],
    search: SearchState,
    filters: Mapping[str, FilterSpec],
    relation_search: Mapping[str, Sequence[str]] | None = None,
    table: str | None = None,
    separator: str = ".",
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """Apply search and filters to a LazyFrame and return it -- **no collect**."""
    if schema is None:
        schema = lf.collect_schema()
    predicate = build_predicate(schema, columns, search, filters, relation_search, table, separator)
    if predicate is None:
        return lf
    return lf.filter(predicate)


def apply_filters(
    source: DataSource,
    columns: Sequence[ColumnSpec],
    search: SearchState,
    filters: Mapping[str, FilterSpec],
    relation_search: Mapping[str, Sequence[str]] | None = None,
    separator: str = ".",
) -> DataSource:
    """Filter *source* and return a datasource of the same variant.

    Raises:
        ConfigurationError: If a queryable handle cannot accept predicates.
    """
    t0 = time.perf_counter()
    if isinstance(source, InMemory):
        records = filter_records(source.records, columns, search, filters, relation_search, separator)
        logger.debug(
            "in-memory filter: %d -> %d records (%.1fms)",
            len(source.records), len(records), (time.perf_counter() - t0) * 1000,
        )
        return InMemory(records)

    lf = source.handle.lazy()
    filtered = filter_frame(
        lf, columns, search, filters, relation_search, source.handle.table, separator
    )
    return Queryable(QueryHandle(filtered, source.handle.table))
