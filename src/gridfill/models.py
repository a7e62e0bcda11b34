"""Pydantic models for grid columns, filters, sort, pagination and results."""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# A computed column: receives the (already augmented) row, returns a value.
RowTransformSpec = Mapping[str, Callable[[dict[str, Any]], Any]]


class ColumnSpec(BaseModel):
    """A displayable, searchable and sortable attribute of a record.

    ``relation_field`` aliases the column to a nested or related field
    (e.g. ``"customer.name"``) that is used instead of ``field`` when the
    column is searched.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    label: str | None = None
    hidden: bool = False
    searchable: bool = False
    sortable: bool = False
    relation_field: str | None = None

    @property
    def search_field(self) -> str:
        return self.relation_field or self.field

    @property
    def title(self) -> str:
        return self.label or _humanize_field_name(self.field)


class FilterSpec(BaseModel):
    """A single column filter: a kind plus an opaque payload.

    ``kind`` is kept as a plain string so forward-incompatible kinds
    survive validation; the filter engine ignores the ones it does not
    know.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    value: Any = None


class SearchState(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str = ""

    @property
    def active_term(self) -> str:
        """The trimmed term, empty when the search is inactive."""
        return self.term.strip()


class SortState(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = "id"
    direction: Literal["asc", "desc"] = "asc"
    treat_as_numeric_string: bool = False

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


class PaginationState(BaseModel):
    """``page_size == 0`` means every matching record on a single page."""

    model_config = ConfigDict(frozen=True)

    page_size: int = Field(default=10, ge=0)
    current_page: int = Field(default=1, ge=1)


class GridState(BaseModel):
    """Interaction state owned by the caller and passed in on every run.

    All transitions return a new state; the model itself is frozen so it
    can be shared between invocations safely.
    """

    model_config = ConfigDict(frozen=True)

    search: SearchState = SearchState()
    filters: dict[str, FilterSpec] = Field(default_factory=dict)
    sort: SortState = SortState()
    pagination: PaginationState = PaginationState()

    def with_search(self, term: str) -> "GridState":
        """Apply a new search term and jump back to the first page."""
        return self.model_copy(
            update={
                "search": SearchState(term=term),
                "pagination": self.pagination.model_copy(update={"current_page": 1}),
            }
        )

    def with_page_size(
        self,
        page_size: int,
        allowed: Sequence[int] | None = None,
    ) -> "GridState":
        """Change the page size and reset to page 1.

        Raises:
            ValueError: If *page_size* is negative or not in *allowed*.
        """
        if page_size < 0:
            raise ValueError(f"Page size must be >= 0, got {page_size}")
        if allowed is not None and page_size not in allowed:
            options = ", ".join(str(v) for v in allowed)
            raise ValueError(f"Unsupported page size {page_size}. Allowed: {options}")
        return self.model_copy(
            update={"pagination": PaginationState(page_size=page_size, current_page=1)}
        )

    def goto_page(self, page: int) -> "GridState":
        return self.model_copy(
            update={"pagination": self.pagination.model_copy(update={"current_page": max(1, page)})}
        )

    def with_sort(self, field: str, *, numeric_string: bool | None = None) -> "GridState":
        """Sort by *field*, toggling the direction when it is already active."""
        if self.sort.field == field:
            direction = "asc" if self.sort.descending else "desc"
        else:
            direction = "asc"
        numeric = self.sort.treat_as_numeric_string if numeric_string is None else numeric_string
        return self.model_copy(
            update={
                "sort": SortState(
                    field=field,
                    direction=direction,
                    treat_as_numeric_string=numeric,
                )
            }
        )

    def with_filters(self, filters: Mapping[str, FilterSpec]) -> "GridState":
        return self.model_copy(
            update={
                "filters": dict(filters),
                "pagination": self.pagination.model_copy(update={"current_page": 1}),
            }
        )


class ResultPage(BaseModel):
    """One page of ordered, transformed records plus pagination metadata."""

    items: list[Any] = Field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    page_size: int = 0

    @property
    def last_page(self) -> int:
        if self.page_size == 0 or self.total_count == 0:
            return 1
        return -(-self.total_count // self.page_size)

    @property
    def first_item(self) -> int:
        """1-based position of the first item on this page, 0 when empty."""
        if not self.items:
            return 0
        return (self.current_page - 1) * self.page_size + 1 if self.page_size else 1

    @property
    def last_item(self) -> int:
        if not self.items:
            return 0
        return self.first_item + len(self.items) - 1

    @property
    def has_more_pages(self) -> bool:
        return self.current_page < self.last_page


@dataclass
class GridDefinition:
    """Static configuration of one grid instance.

    ``identity`` keys the result cache, so it must be stable across runs
    of the same grid and distinct between grids.  ``datasource`` wins over
    ``datasource_factory``; the factory is re-evaluated on every run that
    is not served from the cache.
    """

    identity: str
    columns: list[ColumnSpec] = field(default_factory=list)
    datasource: Any = None
    datasource_factory: Callable[[], Any] | None = None
    relation_search: dict[str, list[str]] = field(default_factory=dict)
    transforms: RowTransformSpec | None = None
    primary_key: str = "id"
    table: str | None = None
    update_messages: dict[str, dict[str, str]] = field(default_factory=dict)

    @property
    def searchable_columns(self) -> list[ColumnSpec]:
        return [c for c in self.columns if c.searchable]


def toggle_column(columns: Sequence[ColumnSpec], field: str) -> list[ColumnSpec]:
    """Return *columns* with ``hidden`` flipped on the column named *field*."""
    return [
        c.model_copy(update={"hidden": not c.hidden}) if c.field == field else c
        for c in columns
    ]


def _humanize_field_name(field: str) -> str:
    """Convert a snake_case or raw field name to a human-friendly header.

    Examples:
        ``"first_name"`` -> ``"First Name"``
        ``"customer.name"`` -> ``"Customer Name"``
    """
    return field.strip("_").replace(".", " ").replace("_", " ").title()
