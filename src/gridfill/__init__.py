"""gridfill -- filter, search, sort and paginate tabular data for grids.

Feed it a list of records or a polars LazyFrame plus column, filter and
sort configuration; get back one page of rows and the identifiers of every
matching record::

    pip install gridfill

    from gridfill import ColumnSpec, FilterSpec, GridDefinition, GridState, Pipeline

    grid = GridDefinition(
        identity="orders",
        columns=[ColumnSpec(field="status", searchable=True)],
        datasource=[{"id": 1, "status": "open"}, {"id": 2, "status": "closed"}],
    )
    state = GridState().with_filters({"status": FilterSpec(kind="equals", value="open")})
    result = Pipeline().run(grid, state)
"""

from gridfill.cache import CacheProvider, MemoryCache, NullCache, build_cache
from gridfill.datasource import (
    DataSource,
    InMemory,
    Queryable,
    QueryHandle,
    RecordCollection,
    classify,
    get_field,
    scan_file,
)
from gridfill.exceptions import CacheError, ConfigurationError, GridError, PresetError
from gridfill.filters import apply_filters, filter_frame, filter_records, merge_filters
from gridfill.models import (
    ColumnSpec,
    FilterSpec,
    GridDefinition,
    GridState,
    PaginationState,
    ResultPage,
    RowTransformSpec,
    SearchState,
    SortState,
    toggle_column,
)
from gridfill.pagination import paginate, paginate_frame
from gridfill.pipeline import Pipeline, PipelineResult, UpdateOutcome
from gridfill.polars_utils import columns_from_schema
from gridfill.presets import GridPreset, dump_preset, load_preset
from gridfill.settings import Settings, get_settings, reload_settings
from gridfill.sorting import apply_sort, resolve_sort_field
from gridfill.sql import generate_sql
from gridfill.transform import transform_rows
from gridfill.updates import update_message
