"""
Tests for the tcount command-line interface
"""
import json

import pytest

from tcount.cli import main


def test_init(tmp_path, capsys):
    db = tmp_path / "counts.db"

    main(["init", "--db", str(db)])

    assert db.exists()
    assert "Database ready" in capsys.readouterr().out


def test_missing_db_option(monkeypatch):
    monkeypatch.delenv("TCOUNT_DB", raising=False)
    with pytest.raises(SystemExit) as exc_info:
        main(["init"])
    assert exc_info.value.code == 1


def test_db_from_environment(tmp_path, monkeypatch):
    db = tmp_path / "env.db"
    monkeypatch.setenv("TCOUNT_DB", str(db))

    main(["init"])

    assert db.exists()


def test_import_check_report_log(tmp_path, write_vehicle_file, data_dir, sample_rows, capsys):
    write_vehicle_file(rows=sample_rows)
    db = str(tmp_path / "counts.db")

    main(["import", "--db", db, "--data-dir", str(data_dir), "--no-check"])
    assert "Imported 1 count(s)" in capsys.readouterr().out

    main(["check", "166905", "--db", db, "--record"])
    out = capsys.readouterr().out
    assert "166905: Class 2 vehicles are less than 75%" in out

    main(["log", "--db", db, "--recordnum", "166905", "--limit", "1"])
    assert len(capsys.readouterr().out.strip().splitlines()) == 1

    main(["report", "166905", "--db", db, "--output-dir", str(tmp_path / "out")])
    assert (tmp_path / "out" / "166905" / "Speed_Distribution.html").exists()


def test_check_unknown_count_exits(db_path, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["check", "1", "--db", str(db_path)])

    assert exc_info.value.code == 1
    assert "1: could not be checked" in capsys.readouterr().out


def test_command_on_missing_db(tmp_path):
    with pytest.raises(SystemExit):
        main(["log", "--db", str(tmp_path / "nope.db")])


def test_empty_log(db_path, capsys):
    main(["log", "--db", str(db_path)])
    assert "No log entries." in capsys.readouterr().out


def test_log_file_is_json_lines(tmp_path, write_vehicle_file, data_dir, sample_rows):
    write_vehicle_file(rows=sample_rows)
    log_file = tmp_path / "tcount.log"

    main([
        "import", "--db", str(tmp_path / "counts.db"), "--data-dir", str(data_dir),
        "--log-file", str(log_file),
    ])

    records = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert records
    assert any(r.get("recordnum") == 166905 for r in records)
    assert {"ts", "level", "logger", "msg"} <= set(records[0])
