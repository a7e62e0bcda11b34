"""Helpers for building polars expressions against a LazyFrame schema."""

from typing import Any, Literal

import polars as pl

from gridfill.models import ColumnSpec

ValueKind = Literal["string", "number", "boolean", "date", "dateTime", "nested"]


def polars_dtype_kind(dtype: pl.DataType) -> ValueKind:
    """Classify *dtype* by how filters compare its values."""
    if isinstance(dtype, pl.Boolean):
        return "boolean"
    if isinstance(dtype, pl.Datetime):
        return "dateTime"
    if isinstance(dtype, pl.Date):
        return "date"
    if isinstance(dtype, (pl.Struct, pl.List, pl.Array)):
        return "nested"
    if dtype.is_numeric():
        return "number"
    # String, Categorical, Enum, Duration, ...
    return "string"


def col_to_str_expr(col: pl.Expr, dtype: pl.DataType) -> pl.Expr:
    """Render *col* as text for substring and equality matching.

    Lists and arrays become their comma-joined elements and structs their
    JSON encoding; scalars are cast to ``pl.String``.
    """
    if isinstance(dtype, pl.Struct):
        return col.struct.json_encode()
    if isinstance(dtype, (pl.List, pl.Array)):
        return col.cast(pl.List(pl.String)).list.join(",")
    return col.cast(pl.String)


def coerce_numeric(value: Any) -> int | float | None:
    """Return *value* as an int or float, or ``None`` when it is not numeric.

    Booleans are not numbers here.  Strings are parsed as ``int`` before
    ``float`` so ``"10"`` stays integral.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return None


def resolve_column(
    field: str,
    schema: pl.Schema,
    table: str | None = None,
    separator: str = ".",
) -> tuple[pl.Expr, pl.DataType] | None:
    """Resolve a possibly relation-qualified field to an expression and dtype.

    Resolution order:

    1. A column whose name is exactly *field* (e.g. a joined column named
       ``"customers.name"``).
    2. A field qualified with the frame's own *table* name
       (``"orders.total"`` → ``pl.col("total")``).
    3. Nested struct access (``"customer.name"`` →
       ``pl.col("customer").struct.field("name")``).

    Returns:
        ``(expr, dtype)`` or ``None`` when nothing in *schema* matches.
    """
    if field in schema:
        return pl.col(field), schema[field]
    if separator not in field:
        return None

    head, rest = field.split(separator, 1)
    if table is not None and head == table:
        return resolve_column(rest, schema, None, separator)

    dtype = schema.get(head)
    if dtype is None:
        return None
    expr = pl.col(head)
    for part in rest.split(separator):
        if not isinstance(dtype, pl.Struct):
            return None
        match = next((f for f in dtype.fields if f.name == part), None)
        if match is None:
            return None
        expr = expr.struct.field(part)
        dtype = match.dtype
    return expr, dtype


def columns_from_schema(
    schema: pl.Schema,
    *,
    id_field: str | None = None,
    show_id_field: bool = False,
) -> list[ColumnSpec]:
    """Derive grid columns from a frame schema; no rows are read.

    Text columns are searchable and every non-nested column is sortable.
    The *id_field* column is hidden unless *show_id_field* is set.
    """
    return [
        ColumnSpec(
            field=name,
            hidden=name == id_field and not show_id_field,
            searchable=polars_dtype_kind(dtype) == "string",
            sortable=polars_dtype_kind(dtype) != "nested",
        )
        for name, dtype in schema.items()
    ]
