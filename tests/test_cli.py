import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from gridfill.cli import app, parse_filter

runner = CliRunner()

ORDERS_CSV = """id,status,total
1,open,120.0
2,closed,80.5
3,open,15.0
4,pending,300.0
"""


@pytest.fixture
def orders_csv(tmp_path: Path) -> Path:
    path = tmp_path / "orders.csv"
    path.write_text(ORDERS_CSV, encoding="utf-8")
    return path


def test_parse_filter_shapes() -> None:
    assert parse_filter("status:equals:open")[1].value == "open"
    assert parse_filter("status:in:open, pending")[1].value == ["open", "pending"]
    assert parse_filter("total:between:10..")[1].value == {"start": "10", "end": None}
    field, spec = parse_filter("notes:isEmpty")
    assert (field, spec.kind, spec.value) == ("notes", "isEmpty", None)
    # only the first two colons split
    assert parse_filter("at:equals:12:30")[1].value == "12:30"


@pytest.mark.parametrize("raw", ["status", ":equals:x", "status:equals", "total:between:10"])
def test_parse_filter_rejects_malformed(raw: str) -> None:
    with pytest.raises(typer.BadParameter):
        parse_filter(raw)


def test_show_filters_a_file(orders_csv: Path) -> None:
    result = runner.invoke(app, ["show", str(orders_csv), "-f", "status:equals:open", "--ids"])

    assert result.exit_code == 0, result.output
    assert "Page 1/1 | rows 1-2 of 2 matching | source: query" in result.output
    assert "Matched ids: 1, 3" in result.output


def test_show_sorts_and_pages(orders_csv: Path) -> None:
    result = runner.invoke(
        app, ["show", str(orders_csv), "--sort", "total", "--desc", "-n", "2", "-p", "2", "--ids"]
    )

    assert result.exit_code == 0, result.output
    assert "Page 2/2 | rows 3-4 of 4 matching" in result.output
    assert "Matched ids: 4, 1, 2, 3" in result.output


def test_show_eager_search(orders_csv: Path) -> None:
    result = runner.invoke(app, ["show", str(orders_csv), "--eager", "-s", "PEND"])

    assert result.exit_code == 0, result.output
    assert "rows 1-1 of 1 matching | source: memory" in result.output


def test_show_no_matches(orders_csv: Path) -> None:
    result = runner.invoke(app, ["show", str(orders_csv), "-s", "zzz"])
    assert result.exit_code == 0, result.output
    assert "No matching rows." in result.output


def test_show_prints_sql(orders_csv: Path) -> None:
    result = runner.invoke(
        app, ["show", str(orders_csv), "--sql", "-f", "status:in:open,pending", "-n", "0"]
    )

    assert result.exit_code == 0, result.output
    assert 'SELECT * FROM "orders"' in result.output
    assert "IN ('open', 'pending')" in result.output
    assert "LIMIT" not in result.output


def test_preset_round_trip(orders_csv: Path, tmp_path: Path) -> None:
    preset = tmp_path / "open.json"
    saved = runner.invoke(
        app, ["show", str(orders_csv), "-s", "open", "--sort", "total", "--save-preset", str(preset)]
    )
    assert saved.exit_code == 0, saved.output
    assert json.loads(preset.read_text(encoding="utf-8"))["search"]["term"] == "open"

    loaded = runner.invoke(app, ["show", str(orders_csv), "--preset", str(preset), "--ids"])
    assert loaded.exit_code == 0, loaded.output
    assert "Matched ids: 3, 1" in loaded.output


def test_errors_exit_non_zero(orders_csv: Path, tmp_path: Path) -> None:
    missing = runner.invoke(app, ["show", str(tmp_path / "missing.csv")])
    assert missing.exit_code == 1

    bad_preset = tmp_path / "bad.json"
    bad_preset.write_text("{", encoding="utf-8")
    invalid = runner.invoke(app, ["show", str(orders_csv), "--preset", str(bad_preset)])
    assert invalid.exit_code == 1

    malformed = runner.invoke(app, ["show", str(orders_csv), "-f", "status"])
    assert malformed.exit_code == 1
