"""Datasource classification: in-memory record collections vs. queryable frames.

A grid's datasource is an opaque value.  :func:`classify` decides once per
pipeline run which of the two backends handles it:

* :class:`InMemory` -- a ``list``/``tuple`` of records, a
  :class:`RecordCollection`, or any other non-string ``Sequence``.
* :class:`Queryable` -- everything else, wrapped in a :class:`QueryHandle`.
  Normally a polars ``LazyFrame`` or ``DataFrame``.  Values that cannot
  accept predicates are still classified as queryable and fail with
  :class:`~gridfill.exceptions.ConfigurationError` when first used.
"""

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, overload

import polars as pl

from gridfill.exceptions import ConfigurationError

_MISSING = object()


class RecordCollection(Sequence):
    """An immutable, ordered collection of records.

    Records are mappings or plain objects.  Slicing returns another
    ``RecordCollection`` so page slices keep the collection API.
    """

    __slots__ = ("_records",)

    def __init__(self, records: Iterable[Any] = ()) -> None:
        self._records: tuple[Any, ...] = tuple(records)

    @overload
    def __getitem__(self, index: int) -> Any: ...

    @overload
    def __getitem__(self, index: slice) -> "RecordCollection": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return RecordCollection(self._records[index])
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._records)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RecordCollection):
            return self._records == other._records
        if isinstance(other, (list, tuple)):
            return list(self._records) == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"RecordCollection({len(self._records)} records)"

    def pluck(self, path: str) -> list[Any]:
        """Return the value at *path* for every record that has it."""
        values: list[Any] = []
        for record in self._records:
            value = get_field(record, path, _MISSING)
            if value is not _MISSING:
                values.append(value)
        return values

    def to_list(self) -> list[Any]:
        return list(self._records)


def get_field(record: Any, path: str, default: Any = _MISSING, separator: str = ".") -> Any:
    """Read *path* from *record*, walking dotted segments into nested values.

    An exact key match wins over dotted traversal, so a flat record with a
    ``"customers.name"`` key is read directly.

    Raises:
        KeyError: If the path cannot be resolved and no *default* is given.
    """
    if isinstance(record, Mapping) and path in record:
        return record[path]

    current = record
    for part in path.split(separator):
        if isinstance(current, Mapping):
            if part not in current:
                break
            current = current[part]
        elif current is not None and hasattr(current, part):
            current = getattr(current, part)
        else:
            break
    else:
        return current

    if default is _MISSING:
        raise KeyError(path)
    return default


@dataclass(frozen=True)
class QueryHandle:
    """A predicate-buildable handle bound to a backing table.

    ``frame`` is normally a polars ``LazyFrame``; ``table`` is the name
    used to qualify bare sort fields.  The frame is not validated until
    :meth:`lazy` is called.
    """

    frame: Any
    table: str | None = None

    def lazy(self) -> pl.LazyFrame:
        """Return the frame as a LazyFrame ready for predicates.

        Raises:
            ConfigurationError: If the frame cannot accept predicates.
        """
        if isinstance(self.frame, pl.LazyFrame):
            return self.frame
        if isinstance(self.frame, pl.DataFrame):
            return self.frame.lazy()
        raise ConfigurationError(
            f"Datasource of type {type(self.frame).__name__!r} cannot accept "
            "predicates; pass a list of records, a RecordCollection or a "
            "polars LazyFrame/DataFrame."
        )


@dataclass(frozen=True)
class InMemory:
    records: RecordCollection


@dataclass(frozen=True)
class Queryable:
    handle: QueryHandle


DataSource = InMemory | Queryable


def classify(raw: Any, table: str | None = None) -> DataSource:
    """Classify an opaque datasource value.

    Never raises: anything that is not recognisably a record collection
    is treated as queryable.

    Args:
        raw: The datasource value.
        table: Table name to bind when *raw* is wrapped into a new
            :class:`QueryHandle`.

    Returns:
        Exactly one of :class:`InMemory` or :class:`Queryable`.
    """
    if isinstance(raw, RecordCollection):
        return InMemory(raw)
    if isinstance(raw, (list, tuple)):
        return InMemory(RecordCollection(raw))
    if isinstance(raw, QueryHandle):
        return Queryable(raw)
    if isinstance(raw, (pl.LazyFrame, pl.DataFrame)):
        return Queryable(QueryHandle(raw, table))
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        return InMemory(RecordCollection(raw))
    return Queryable(QueryHandle(raw, table))


# ---------------------------------------------------------------------------
# Data files
# ---------------------------------------------------------------------------

_SCANNERS: dict[str, Callable[[Path], pl.LazyFrame]] = {
    ".parquet": pl.scan_parquet,
    ".pq": pl.scan_parquet,
    ".csv": pl.scan_csv,
    ".tsv": lambda p: pl.scan_csv(p, separator="\t"),
    ".json": lambda p: pl.read_json(p).lazy(),
    ".ndjson": pl.scan_ndjson,
    ".jsonl": pl.scan_ndjson,
    ".ipc": pl.scan_ipc,
    ".arrow": pl.scan_ipc,
    ".feather": pl.scan_ipc,
}


def scan_file(path: Path) -> pl.LazyFrame:
    """Open *path* as a LazyFrame, choosing the polars reader from its suffix.

    JSON documents are read eagerly; the other formats are scanned.

    Raises:
        FileNotFoundError: If *path* is not a file.
        ValueError: If no reader handles the suffix.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"No such data file: {path}")
    scanner = _SCANNERS.get(path.suffix.lower())
    if scanner is None:
        known = ", ".join(sorted(_SCANNERS))
        raise ValueError(f"Cannot read {path.name!r}: expected one of {known}")
    return scanner(path)
