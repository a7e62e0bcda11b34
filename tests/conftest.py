from collections.abc import Iterator

import polars as pl
import pytest

from gridfill.models import ColumnSpec
from gridfill.settings import reload_settings

_ENV_VARS = (
    "GRIDFILL_CACHE_ENABLED",
    "GRIDFILL_DEFAULT_PAGE_SIZE",
    "GRIDFILL_PER_PAGE_VALUES",
    "GRIDFILL_PRIMARY_KEY",
    "GRIDFILL_DEFAULT_TABLE_NAME",
    "GRIDFILL_RELATION_SEPARATOR",
    "GRIDFILL_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear env overrides and the memoised settings around every test."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    reload_settings()
    yield
    reload_settings()


@pytest.fixture
def people() -> list[dict]:
    return [
        {"id": 1, "name": "Anna", "age": 30, "active": True, "city": "Lisbon"},
        {"id": 2, "name": "Ann", "age": 25, "active": False, "city": "Porto"},
        {"id": 3, "name": "Bruno", "age": 41, "active": True, "city": "Lisbon"},
        {"id": 4, "name": "Carla", "age": 35, "active": True, "city": None},
    ]


@pytest.fixture
def people_columns() -> list[ColumnSpec]:
    return [
        ColumnSpec(field="id", sortable=True),
        ColumnSpec(field="name", searchable=True, sortable=True),
        ColumnSpec(field="age", sortable=True),
        ColumnSpec(field="city", searchable=True),
    ]


@pytest.fixture
def orders_frame() -> pl.LazyFrame:
    return pl.LazyFrame(
        {
            "id": [1, 2, 3, 4, 5],
            "status": ["open", "closed", "open", "pending", "open"],
            "total": [120.0, 80.5, 15.0, 300.0, 42.0],
            "code": ["10", "9", "100", "2", "abc"],
            "customer": [
                {"name": "Acme Corp", "country": "PT"},
                {"name": "Globex", "country": "ES"},
                {"name": "Initech", "country": "PT"},
                {"name": "Acme Labs", "country": "FR"},
                {"name": "Umbrella", "country": "DE"},
            ],
        }
    )
