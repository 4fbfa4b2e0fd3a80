"""
Tests for count file parsing and the import engine
"""
from datetime import date, time

import pytest

from tcount.data.ingestion import (
    BadHeader,
    ImportEngine,
    collect_paths,
    read_vehicle_file,
    run_import,
)
from tcount.data.manager import DatabaseManager


def test_read_vehicle_file(write_vehicle_file, sample_rows, sample_vehicles):
    path = write_vehicle_file(rows=sample_rows)

    vehicles, errors, rows = read_vehicle_file(path)

    assert errors == []
    assert vehicles == sample_vehicles
    assert rows == [0, 1, 2, 3, 4]


def test_read_vehicle_file_parses_pm_times(write_vehicle_file):
    path = write_vehicle_file(rows=["1,12/31/2024,11:59:59 PM,2,14,61.0"])

    vehicles, _, _ = read_vehicle_file(path)

    assert vehicles[0].date == date(2024, 12, 31)
    assert vehicles[0].time == time(23, 59, 59)
    assert vehicles[0].vehicle_class == 14


def test_read_vehicle_file_reports_unparseable_rows(write_vehicle_file):
    path = write_vehicle_file(rows=[
        "1,6/4/2024,10:55:03 AM,1,2,34.5",
        "2,6/4/2024,not a time,1,2,34.5",
        "3,6/4/2024,10:56:00 AM,1,two,34.5",
        "4,6/4/2024,10:57:00 AM,1,2,",
    ])

    vehicles, errors, rows = read_vehicle_file(path)

    assert len(vehicles) == 1
    assert rows == [0]
    assert [e.index for e in errors] == [1, 2, 3]
    assert errors[0].vehicle is None
    assert "not a time" in errors[0].reason


def test_read_vehicle_file_bad_header(tmp_path):
    path = tmp_path / "vehicles" / "rc-166905-ew-40972-35.csv"
    path.parent.mkdir()
    path.write_text("a\nb\nc\nDate,Time,Count\n6/4/2024,10:00 AM,5\n")

    with pytest.raises(BadHeader):
        read_vehicle_file(path)


def test_collect_paths_skips_log(write_vehicle_file, data_dir, sample_rows):
    write_vehicle_file(rows=sample_rows)
    (data_dir / "log.txt").write_text("old log\n")
    (data_dir / ".hidden").write_text("x\n")

    paths = collect_paths(data_dir)

    assert [p.name for p in paths] == ["rc-166905-ew-40972-35.csv"]


def test_collect_paths_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        collect_paths(tmp_path / "nowhere")


def test_import_stores_counts(tmp_path, write_vehicle_file, data_dir, sample_rows):
    write_vehicle_file(rows=sample_rows)
    db_path = tmp_path / "counts.db"

    results = run_import(db_path, data_dir, timezone="US/Eastern", run_checks=False)

    assert len(results) == 1
    result = results[0]
    assert result.recordnum == 166905
    assert result.vehicles == 5
    assert result.class_bins == 4
    assert result.volume_rows == 2
    assert result.errors == []

    with DatabaseManager(db_path) as manager:
        assert manager.get_count_type(166905) == "Class"
        assert manager.get_class_counts(166905)["total"].sum() == 5
        assert manager.get_speed_counts(166905)["total"].sum() == 5
        assert len(manager.get_volume_counts(166905)) == 2


def test_import_logs_skipped_records(tmp_path, write_vehicle_file, data_dir, sample_rows):
    write_vehicle_file(rows=sample_rows + [
        "6,6/4/2024,11:20:00 AM,3,2,30.0",
        "7,6/4/2024,11:21:00 AM,1,15,30.0",
        "8,6/4/2024,11:22:00 AM,1,2,-1.0",
    ])
    db_path = tmp_path / "counts.db"

    result = run_import(db_path, data_dir, run_checks=False)[0]

    assert result.vehicles == 5
    assert len(result.errors) == 3
    with DatabaseManager(db_path) as manager:
        log = manager.get_import_log(166905)
    assert len(log) == 3
    assert set(log["log_level"]) == {"ERROR"}


def test_reimport_replaces_counts(tmp_path, write_vehicle_file, data_dir, sample_rows):
    path = write_vehicle_file(rows=sample_rows)
    db_path = tmp_path / "counts.db"
    engine = ImportEngine(db_path, data_dir, run_checks=False)

    engine.import_file(path)
    path.write_text(path.read_text().replace("5,6/4/2024,11:14:00 AM,2,14,15.0\n", ""))
    engine.import_file(path)

    with DatabaseManager(db_path) as manager:
        assert manager.get_class_counts(166905)["total"].sum() == 4


def test_import_skips_bad_files(tmp_path, write_vehicle_file, data_dir, sample_rows):
    write_vehicle_file(rows=sample_rows)
    write_vehicle_file(name="rc-badnum-ew-40972-35.csv", rows=sample_rows)
    write_vehicle_file(name="rc-166907-ew-40972-35.csv", rows=sample_rows, directory="misc")

    results = run_import(tmp_path / "counts.db", data_dir, run_checks=False)

    assert [r.recordnum for r in results] == [166905]


def test_import_ignores_other_count_types(tmp_path, write_vehicle_file, data_dir):
    write_vehicle_file(rows=["Date,Time,Count"], directory="15minutebicycle")

    results = run_import(tmp_path / "counts.db", data_dir, run_checks=False)

    assert results == []


def test_import_runs_checks(tmp_path, write_vehicle_file, data_dir, sample_rows):
    write_vehicle_file(rows=sample_rows)
    db_path = tmp_path / "counts.db"

    result = run_import(db_path, data_dir, timezone="US/Eastern")[0]

    # 2 of 5 vehicles are unclassified (40%)
    messages = [w.message for w in result.warnings]
    assert any(m.startswith("Unclassed vehicles are greater than 10%") for m in messages)
    with DatabaseManager(db_path) as manager:
        log = manager.get_import_log(166905)
    assert set(log["log_level"]) == {"WARNING"}
    assert len(log) == len(result.warnings)


def test_skipped_records_logged_with_file_row(tmp_path, write_vehicle_file, data_dir):
    """Test parse and aggregation errors both name the row in the file"""
    write_vehicle_file(rows=[
        "1,6/4/2024,bad,1,2,34.5",
        "2,6/4/2024,10:55:03 AM,1,99,34.5",
        "3,6/4/2024,10:56:00 AM,1,2,34.5",
        "4,6/4/2024,10:57:00 AM,7,2,34.5",
    ])
    db_path = tmp_path / "counts.db"

    result = run_import(db_path, data_dir, run_checks=False)[0]

    assert [e.index for e in result.errors] == [0, 1, 3]
    with DatabaseManager(db_path) as manager:
        messages = sorted(manager.get_import_log(166905)["message"])
    assert messages[0].startswith("row 0: unable to parse row")
    assert messages[1] == "row 1: no such vehicle class '99'"
    assert messages[2].startswith("row 3: unable to determine channel/direction")


def test_check_failure_keeps_import_result(
    tmp_path, write_vehicle_file, data_dir, sample_rows, monkeypatch
):
    """Test a database error during the post-import check does not drop the import"""
    from tcount.data import ingestion
    from tcount.data.manager import CountDataError

    def failing_check(self, recordnum, record=False):
        raise CountDataError("database is locked")

    monkeypatch.setattr(ingestion.CheckEngine, "check", failing_check)
    write_vehicle_file(rows=sample_rows)
    db_path = tmp_path / "counts.db"

    results = run_import(db_path, data_dir)

    assert [r.recordnum for r in results] == [166905]
    assert results[0].warnings == []
    with DatabaseManager(db_path) as manager:
        assert manager.get_class_counts(166905)["total"].sum() == 5


def test_header_date_follows_timezone(tmp_path, write_vehicle_file, data_dir, sample_rows):
    from tcount.utils.timezone import local_now

    write_vehicle_file(rows=sample_rows)
    db_path = tmp_path / "counts.db"

    run_import(db_path, data_dir, timezone="Pacific/Kiritimati", run_checks=False)

    with DatabaseManager(db_path) as manager:
        header = manager.get_header(166905)
    # UTC+14
    assert header["createheaderdate"] == local_now("Pacific/Kiritimati").date().isoformat()
