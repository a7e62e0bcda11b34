"""The grid data pipeline: resolve, filter, sort, paginate, transform.

:class:`Pipeline` is stateless apart from its injected cache.  Callers keep
a :class:`~gridfill.models.GridDefinition` per grid instance and a
:class:`~gridfill.models.GridState` they update from user interaction, and
call :meth:`Pipeline.run` whenever either changes::

    pipeline = Pipeline()
    grid = GridDefinition(identity="orders-grid", columns=columns, datasource=lf, table="orders")
    result = pipeline.run(grid, GridState().with_search("acme"))
    result.page.items, result.page.total_count, result.matched_ids
"""

import dataclasses
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from gridfill.cache import CacheProvider, build_cache
from gridfill.datasource import (
    DataSource,
    InMemory,
    Queryable,
    QueryHandle,
    RecordCollection,
    classify,
)
from gridfill.exceptions import CacheError
from gridfill.filters import apply_filters
from gridfill.models import GridDefinition, GridState, PaginationState, ResultPage, toggle_column
from gridfill.pagination import paginate, paginate_frame
from gridfill.polars_utils import resolve_column
from gridfill.settings import Settings, get_settings
from gridfill.sorting import apply_sort
from gridfill.transform import transform_rows
from gridfill.updates import UpdateStatus, update_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """What one run hands back to the caller.

    ``matched_ids`` holds the primary keys of every record that passed
    search and filters, in sort order, regardless of the page shown.
    ``state`` is the state that was actually applied (an active search
    forces page 1).
    """

    page: ResultPage
    matched_ids: list[Any]
    state: GridState
    source: Literal["memory", "query"]
    from_cache: bool = False


@dataclass(frozen=True)
class UpdateOutcome:
    status: UpdateStatus
    message: str
    result: PipelineResult | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class Pipeline:
    """Runs grid definitions against their datasources.

    Args:
        cache: Where materialised in-memory collections are remembered.
            Defaults to the provider selected by ``Settings.cache_enabled``.
        settings: Runtime settings; defaults to :func:`get_settings`.
    """

    def __init__(
        self,
        cache: CacheProvider | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else build_cache(self.settings)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, definition: GridDefinition, state: GridState) -> PipelineResult:
        """Produce the current page for *definition* under *state*.

        Raises:
            ConfigurationError: If the datasource was classified as
                queryable but cannot accept predicates.
        """
        t0 = time.perf_counter()
        separator = self.settings.relation_separator
        table = self._table_name(definition)

        source, from_cache = self._resolve_source(definition, table)

        if state.search.active_term and state.pagination.current_page != 1:
            state = state.goto_page(1)

        filtered = apply_filters(
            source,
            definition.columns,
            state.search,
            state.filters,
            definition.relation_search,
            separator,
        )
        ordered = apply_sort(filtered, state.sort, table, separator)
        matched_ids = self._matched_ids(ordered, definition.primary_key, table, separator)
        page = self._paginate(ordered, state.pagination)
        page = page.model_copy(update={"items": transform_rows(page.items, definition.transforms)})

        if page.current_page != state.pagination.current_page:
            state = state.goto_page(page.current_page)

        kind = "memory" if isinstance(ordered, InMemory) else "query"
        logger.debug(
            "run %r: source=%s cached=%s matched=%d page=%d/%d rows=%d (%.1fms)",
            definition.identity, kind, from_cache, page.total_count,
            page.current_page, page.last_page, len(page.items),
            (time.perf_counter() - t0) * 1000,
        )
        return PipelineResult(
            page=page,
            matched_ids=matched_ids,
            state=state,
            source=kind,
            from_cache=from_cache,
        )

    def refresh(self, identity: str, records: Iterable[Any]) -> RecordCollection:
        """Replace the cached collection for *identity* immediately.

        Raises:
            CacheError: If the cache backend is unavailable.
        """
        return self.cache.put_forced(identity, RecordCollection(records))

    def forget(self, identity: str) -> None:
        """Drop the cached collection for *identity*.

        Raises:
            CacheError: If the cache backend is unavailable.
        """
        self.cache.forget(identity)

    def toggle_column(
        self,
        definition: GridDefinition,
        state: GridState,
        field: str,
    ) -> tuple[GridDefinition, PipelineResult]:
        """Flip the visibility of *field* and re-run the grid."""
        definition = dataclasses.replace(definition, columns=toggle_column(definition.columns, field))
        return definition, self.run(definition, state)

    def handle_update(
        self,
        definition: GridDefinition,
        state: GridState,
        data: Mapping[str, Any],
        updater: Callable[[Mapping[str, Any]], bool],
    ) -> UpdateOutcome:
        """Run an inline update and report the outcome.

        *updater* persists the change and returns whether it succeeded; an
        exception counts as a failure.  After a success the cached
        collection is forgotten and the grid re-runs against fresh data,
        whatever the datasource type.  After a failure nothing is re-run.
        """
        field = data.get("field")
        try:
            ok = bool(updater(data))
        except Exception:
            logger.exception("inline update for %r failed", definition.identity)
            ok = False

        status: UpdateStatus = "success" if ok else "error"
        message = update_message(status, field, definition.update_messages)
        if not ok:
            return UpdateOutcome(status, message)

        try:
            self.cache.forget(definition.identity)
        except CacheError:
            logger.warning(
                "could not forget cache entry for %r after update",
                definition.identity,
                exc_info=True,
            )
        return UpdateOutcome(status, message, self.run(definition, state))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _table_name(self, definition: GridDefinition) -> str:
        if definition.table:
            return definition.table
        if isinstance(definition.datasource, QueryHandle) and definition.datasource.table:
            return definition.datasource.table
        return self.settings.default_table_name

    def _resolve_source(self, definition: GridDefinition, table: str) -> tuple[DataSource, bool]:
        """Return the datasource for this run and whether it came from the cache.

        Cache failures degrade to live resolution; a failed producer or
        backend error never leaves a partial entry behind.
        """
        identity = definition.identity
        cache_ok = True
        try:
            cached = self.cache.get(identity)
        except CacheError:
            logger.warning("cache read for %r failed; resolving datasource live", identity, exc_info=True)
            cached = None
            cache_ok = False
        if cached is not None:
            return InMemory(cached), True

        raw = definition.datasource
        if raw is None and definition.datasource_factory is not None:
            raw = definition.datasource_factory()

        source = classify(raw, table)
        if isinstance(source, Queryable):
            if source.handle.table is None:
                source = Queryable(QueryHandle(source.handle.frame, table))
            return source, False

        if cache_ok:
            records = source.records
            try:
                source = InMemory(self.cache.put(identity, lambda: RecordCollection(records)))
            except CacheError:
                logger.warning("cache write for %r failed; continuing uncached", identity, exc_info=True)
        return source, False

    @staticmethod
    def _matched_ids(
        source: DataSource,
        primary_key: str,
        table: str,
        separator: str,
    ) -> list[Any]:
        if isinstance(source, InMemory):
            return source.records.pluck(primary_key)

        lf = source.handle.lazy()
        resolved = resolve_column(primary_key, lf.collect_schema(), table, separator)
        if resolved is None:
            logger.debug("primary key %r not in schema; no matched ids", primary_key)
            return []
        col, _ = resolved
        return lf.select(col.alias(primary_key)).collect().to_series().to_list()

    @staticmethod
    def _paginate(source: DataSource, pagination: PaginationState) -> ResultPage:
        if isinstance(source, InMemory):
            return paginate(source.records, pagination.page_size, pagination.current_page)
        return paginate_frame(source.handle.lazy(), pagination.page_size, pagination.current_page)

