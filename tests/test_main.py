"""End-to-end tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from route_tracker.main import main
from route_tracker.store import JsonFileRouteStore

FIXES = (
    "timestamp,latitude,longitude,horizontal_accuracy\n"
    "2025-03-18T10:00:00Z,0.0,0.0,5\n"
    "2025-03-18T10:00:30Z,0.0,0.0004,5\n"
    "2025-03-18T10:01:00Z,0.0,0.001,5\n"
    "2025-03-18T10:02:00Z,0.0,0.0015,-1\n"
    "2025-03-18T10:03:00Z,0.0,0.002,5\n"
)


@pytest.fixture
def fixes_csv(tmp_path: Path) -> Path:
    target = tmp_path / "fixes.csv"
    target.write_text(FIXES, encoding="utf-8")
    return target


def test_replay_records_and_prints_statistics(
    tmp_path: Path, fixes_csv: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    store_file = tmp_path / "store.json"

    code = main(["--store", str(store_file), "replay", str(fixes_csv), "--no-geocode"])

    assert code == 0
    out = capsys.readouterr().out
    assert "Waypoints: 3" in out
    assert "Total Time: 3:00" in out
    assert "Total Distance: 223 m" in out

    document = json.loads(store_file.read_text(encoding="utf-8"))
    titles = [record["title"] for record in document["savedRoute"]]
    assert titles == ["starting point", "10:01:00", "10:03:00"]


def test_stats_export_and_reset(tmp_path: Path, fixes_csv: Path, capsys) -> None:
    store_file = tmp_path / "store.json"
    main(["--store", str(store_file), "replay", str(fixes_csv), "--no-geocode"])
    capsys.readouterr()

    assert main(["--store", str(store_file), "stats"]) == 0
    assert "Waypoints: 3" in capsys.readouterr().out

    workbook = tmp_path / "route.xlsx"
    assert main(["--store", str(store_file), "export", str(workbook)]) == 0
    assert workbook.is_file()

    assert main(["--store", str(store_file), "reset"]) == 0
    assert JsonFileRouteStore(store_file).load() == []
    capsys.readouterr()
    assert main(["--store", str(store_file), "stats"]) == 0
    out = capsys.readouterr().out
    assert "Waypoints: 0" in out
    assert "At least 2 points" in out


def test_replay_with_missing_file_fails(tmp_path: Path) -> None:
    code = main(["--store", str(tmp_path / "s.json"), "replay", str(tmp_path / "none.csv")])
    assert code == 1


LATE_FIXES = (
    "timestamp,latitude,longitude,horizontal_accuracy\n"
    "2025-03-18T10:00:00Z,0.0,0.0,5\n"
    "2025-03-18T10:01:00Z,0.0,0.001,5\n"
    "2025-03-18T10:00:50Z,0.0,0.002,5\n"
    "2025-03-18T10:02:00Z,0.0,0.003,5\n"
)


@pytest.mark.parametrize("max_age, waypoints", [(None, 3), ("20", 4)])
def test_replay_drops_late_rows_older_than_max_age(
    tmp_path: Path, capsys, max_age, waypoints: int
) -> None:
    fixes = tmp_path / "late.csv"
    fixes.write_text(LATE_FIXES, encoding="utf-8")
    argv = ["--store", str(tmp_path / "s.json"), "replay", str(fixes), "--no-geocode"]
    if max_age is not None:
        argv += ["--max-age", max_age]

    assert main(argv) == 0
    assert f"Waypoints: {waypoints}" in capsys.readouterr().out
