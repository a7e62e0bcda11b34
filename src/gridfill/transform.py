"""Computed columns applied to the rows of a single page."""

from collections.abc import Iterable, Mapping
from dataclasses import asdict, is_dataclass
from typing import Any

from gridfill.models import RowTransformSpec


def _slot_values(record: Any) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for cls in reversed(type(record).__mro__):
        slots = cls.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name not in ("__dict__", "__weakref__") and hasattr(record, name):
                values[name] = getattr(record, name)
    return values


def as_row(record: Any) -> dict[str, Any]:
    """Copy *record* into a plain dict so it can be augmented safely.

    Accepts mappings, dataclasses, named tuples, pydantic models and plain
    objects, including ones declaring ``__slots__``.  Cached records are
    shared between runs and must never be mutated.
    """
    if isinstance(record, Mapping):
        return dict(record)
    if is_dataclass(record) and not isinstance(record, type):
        return asdict(record)
    if hasattr(record, "_asdict"):
        return dict(record._asdict())
    if hasattr(record, "model_dump"):
        return record.model_dump()
    row = _slot_values(record)
    row.update(getattr(record, "__dict__", {}))
    return row


def transform_rows(items: Iterable[Any], spec: RowTransformSpec | None) -> list[Any]:
    """Apply every computed column in *spec* to each row, in declaration order.

    Later columns see the values of earlier ones.  Without a spec the
    items pass through unchanged.
    """
    if not spec:
        return list(items)

    rows: list[dict[str, Any]] = []
    for item in items:
        row = as_row(item)
        for name, func in spec.items():
            row[name] = func(row)
        rows.append(row)
    return rows
