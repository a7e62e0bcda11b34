from gridfill.models import ColumnSpec, FilterSpec, GridDefinition, GridState, SearchState, SortState
from gridfill.sql import generate_sql


def _orders_grid(**overrides) -> GridDefinition:
    params = {
        "identity": "orders",
        "columns": [ColumnSpec(field="status", searchable=True), ColumnSpec(field="total")],
        "relation_search": {"customer": ["name"]},
        "table": "orders",
    }
    params.update(overrides)
    return GridDefinition(**params)


def test_search_filters_sort_and_window() -> None:
    state = (
        GridState(
            search=SearchState(term="Acme"),
            sort=SortState(field="total", direction="desc", treat_as_numeric_string=True),
            filters={"status": FilterSpec(kind="equals", value="open")},
        )
        .with_page_size(10)
        .goto_page(2)
    )

    sql = generate_sql(_orders_grid(), state)

    assert sql == (
        'SELECT * FROM "orders"\n'
        "WHERE (LOWER(CAST(\"status\" AS TEXT)) LIKE '%acme%' "
        "OR LOWER(CAST(\"customer\".\"name\" AS TEXT)) LIKE '%acme%') "
        "AND CAST(\"status\" AS TEXT) = 'open'\n"
        'ORDER BY "orders"."total"+0 DESC, "orders"."total" DESC\n'
        "LIMIT 10 OFFSET 0;"
    )


def test_page_window_without_search() -> None:
    state = GridState().with_page_size(25).goto_page(3)
    sql = generate_sql(_orders_grid(), state)
    assert sql.endswith('ORDER BY "orders"."id" ASC\nLIMIT 25 OFFSET 50;')
    assert "WHERE" not in sql


def test_page_size_zero_has_no_limit_and_relation_sort_is_kept() -> None:
    state = GridState(sort=SortState(field="customers.name")).with_page_size(0)
    sql = generate_sql(_orders_grid(), state)
    assert 'ORDER BY "customers"."name" ASC;' in sql
    assert "LIMIT" not in sql


def test_filter_kinds_render_as_conditions() -> None:
    state = GridState(
        filters={
            "total": FilterSpec(kind="between", value={"start": "10", "end": None}),
            "status": FilterSpec(kind="in", value=["open", "pending"]),
            "name": FilterSpec(kind="contains", value="O'Neil"),
            "notes": FilterSpec(kind="isEmpty"),
            "paid": FilterSpec(kind="boolean", value="yes"),
            "ignored": FilterSpec(kind="fuzzy", value="x"),
        }
    )
    sql = generate_sql(_orders_grid(), state)

    assert '"total" >= 10' in sql
    assert "CAST(\"status\" AS TEXT) IN ('open', 'pending')" in sql
    assert "LOWER(CAST(\"name\" AS TEXT)) LIKE '%o''neil%'" in sql
    assert "(\"notes\" IS NULL OR CAST(\"notes\" AS TEXT) = '')" in sql
    assert '"paid" = TRUE' in sql
    assert "ignored" not in sql


def test_search_without_searchable_columns_matches_nothing() -> None:
    grid = _orders_grid(columns=[ColumnSpec(field="total")], relation_search={})
    sql = generate_sql(grid, GridState().with_search("acme"))
    assert "WHERE FALSE" in sql


def test_table_defaults() -> None:
    sql = generate_sql(_orders_grid(table=None), GridState())
    assert sql.startswith('SELECT * FROM "df"\n')
    assert generate_sql(_orders_grid(), GridState(), table="archive").startswith('SELECT * FROM "archive"')
