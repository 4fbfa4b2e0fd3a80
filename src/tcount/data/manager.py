"""
Database Manager for tcount (Imperative Shell)

Handles all SQLite operations: schema initialisation, count header
(metadata) records, persistence of binned class / speed / volume /
bicycle counts, the reads that feed the data checks, and the import log.

Package Location: src/tcount/data/manager.py

Tables:
    ``tc_header``    one row per count (recordnum, type, filename metadata)
    ``tc_clacount``  15-minute class counts (``c1`` .. ``c13``, ``c15``, ``total``)
    ``tc_specount``  15-minute speed counts (``s1`` .. ``s14``, ``total``)
    ``tc_volcount``  daily rows of hourly volume (``am12`` .. ``pm11``)
    ``tc_bikecount`` 15-minute bicycle totals
    ``import_log``   processing errors and check warnings per count

Dates are stored as ``YYYY-MM-DD`` text and times as ``HH:MM:SS`` text.
"""

import sqlite3
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from ..analysis.counts import CLASS_FIELDS, HOUR_COLUMNS, SPEED_FIELDS
from ..analysis.metadata import CountMetadata
from ..utils.timezone import local_now


class CountDataError(Exception):
    """Raised when a query or write against the count database fails."""


_BIN_KEY_COLUMNS = ["recordnum", "countdate", "counttime", "countlane", "ctdir"]

_TABLE_COLUMNS: Dict[str, List[str]] = {
    "tc_clacount": _BIN_KEY_COLUMNS + CLASS_FIELDS + ["total"],
    "tc_specount": _BIN_KEY_COLUMNS + SPEED_FIELDS + ["total"],
    "tc_volcount": ["recordnum", "countdate", "cntdir", "totalcount"] + HOUR_COLUMNS,
    "tc_bikecount": ["recordnum", "countdate", "counttime", "total"],
}


def _int_columns(names: List[str]) -> str:
    return ",\n                ".join(f"{name} INTEGER" for name in names)


class DatabaseManager:
    """Manages SQLite database operations for traffic counts.

    Responsibilities:
        - Database initialisation with WAL mode and full schema.
        - Count header upserts and count-type lookups.
        - Replacing a count's binned rows on re-import.
        - Reading persisted rows back as DataFrames for checks and reports.
        - Import log writes and reads.

    Every failing statement is re-raised as :class:`CountDataError`.
    """

    def __init__(self, db_path: Path):
        """Initialise with path to the SQLite database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "DatabaseManager":
        try:
            self.conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise CountDataError(f"cannot open database {self.db_path}: {exc}") from exc
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _require_conn(self) -> sqlite3.Connection:
        if not self.conn:
            raise RuntimeError("No connection. Use 'with DatabaseManager(...) as m:'.")
        return self.conn

    def _read(self, sql: str, params: Optional[list] = None) -> pd.DataFrame:
        conn = self._require_conn()
        try:
            return pd.read_sql_query(sql, conn, params=params or [])
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            raise CountDataError(f"query failed: {exc}") from exc

    def _write(self, sql: str, rows: List[tuple]) -> None:
        conn = self._require_conn()
        try:
            conn.executemany(sql, rows)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise CountDataError(f"write failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_db(self) -> None:
        """Initialise database schema and indices (idempotent)."""
        conn = self._require_conn()
        cur = conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")

        cur.execute("""
            CREATE TABLE IF NOT EXISTS tc_header (
                recordnum        INTEGER PRIMARY KEY,
                type             TEXT,
                technician       TEXT,
                counter_id       INTEGER,
                direction1       TEXT,
                direction2       TEXT,
                speed_limit      INTEGER,
                createheaderdate TEXT
            )
        """)

        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS tc_clacount (
                recordnum INTEGER NOT NULL,
                countdate TEXT    NOT NULL,
                counttime TEXT    NOT NULL,
                countlane INTEGER NOT NULL,
                ctdir     TEXT    NOT NULL,
                {_int_columns(CLASS_FIELDS + ["total"])},
                UNIQUE(recordnum, countdate, counttime, countlane)
            )
        """)
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS tc_specount (
                recordnum INTEGER NOT NULL,
                countdate TEXT    NOT NULL,
                counttime TEXT    NOT NULL,
                countlane INTEGER NOT NULL,
                ctdir     TEXT    NOT NULL,
                {_int_columns(SPEED_FIELDS + ["total"])},
                UNIQUE(recordnum, countdate, counttime, countlane)
            )
        """)
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS tc_volcount (
                recordnum  INTEGER NOT NULL,
                countdate  TEXT    NOT NULL,
                cntdir     TEXT    NOT NULL,
                totalcount INTEGER,
                {_int_columns(HOUR_COLUMNS)},
                UNIQUE(recordnum, countdate, cntdir)
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS tc_bikecount (
                recordnum INTEGER NOT NULL,
                countdate TEXT    NOT NULL,
                counttime TEXT    NOT NULL,
                total     INTEGER
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS import_log (
                id        INTEGER PRIMARY KEY AUTOINCREMENT,
                logged_at TEXT    NOT NULL,
                recordnum INTEGER NOT NULL,
                message   TEXT    NOT NULL,
                log_level TEXT    NOT NULL
            )
        """)
        for table in _TABLE_COLUMNS:
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_recordnum ON {table} (recordnum)"
            )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_import_log_recordnum ON import_log (recordnum)"
        )
        conn.commit()

    # ------------------------------------------------------------------
    # Header
    # ------------------------------------------------------------------

    def upsert_header(
        self,
        metadata: CountMetadata,
        count_type: str,
        created_on: Optional[date] = None,
    ) -> None:
        """Insert or replace the ``tc_header`` row for a count.

        Args:
            metadata:   Metadata parsed from the count's filename.
            count_type: Type name stored in ``tc_header.type``
                        (e.g. ``'Class'``, ``'Volume'``, ``'Bicycle 1'``).
            created_on: Date stored in ``createheaderdate``; defaults to
                        today in :data:`DEFAULT_TIMEZONE`.
        """
        if created_on is None:
            created_on = local_now().date()
        direction2 = metadata.directions.direction2
        self._write(
            """
            INSERT OR REPLACE INTO tc_header (
                recordnum, type, technician, counter_id,
                direction1, direction2, speed_limit, createheaderdate
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [(
                metadata.recordnum, count_type, metadata.technician,
                metadata.counter_id, metadata.directions.direction1.value,
                direction2.value if direction2 else None,
                metadata.speed_limit, created_on.isoformat(),
            )],
        )

    def get_header(self, recordnum: int) -> Optional[Dict[str, Any]]:
        """Return the ``tc_header`` row as a dict, or ``None`` if absent."""
        df = self._read("SELECT * FROM tc_header WHERE recordnum = ?", [recordnum])
        if df.empty:
            return None
        return df.iloc[0].to_dict()

    def get_count_type(self, recordnum: int) -> Optional[str]:
        """Return the count type, or ``None`` when the record or type is missing."""
        header = self.get_header(recordnum)
        if header is None:
            return None
        value = header.get("type")
        return value if isinstance(value, str) and value.strip() else None

    # ------------------------------------------------------------------
    # Binned counts
    # ------------------------------------------------------------------

    def delete_counts(self, recordnum: int) -> None:
        """Remove every binned row for a count, ahead of a re-import."""
        conn = self._require_conn()
        try:
            for table in _TABLE_COLUMNS:
                conn.execute(f"DELETE FROM {table} WHERE recordnum = ?", (recordnum,))
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise CountDataError(f"delete failed: {exc}") from exc

    def _insert_frame(self, table: str, df: pd.DataFrame) -> int:
        columns = _TABLE_COLUMNS[table]
        if df.empty:
            return 0
        out = df.reindex(columns=columns).astype(object)
        for col in ("countdate", "counttime"):
            if col in out.columns:
                out[col] = out[col].map(_iso)
        out = out.where(pd.notna(out), None)
        rows = [tuple(_plain(v) for v in row) for row in out.itertuples(index=False)]
        placeholders = ", ".join("?" for _ in columns)
        self._write(
            f"INSERT OR REPLACE INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            rows,
        )
        return len(rows)

    def insert_class_counts(self, df: pd.DataFrame) -> int:
        """Insert rows shaped like ``class_counts_frame`` output. Returns row count."""
        return self._insert_frame("tc_clacount", df)

    def insert_speed_counts(self, df: pd.DataFrame) -> int:
        """Insert rows shaped like ``speed_counts_frame`` output. Returns row count."""
        return self._insert_frame("tc_specount", df)

    def insert_volume_counts(self, df: pd.DataFrame) -> int:
        """Insert rows shaped like ``hourly_volume`` output. Returns row count."""
        return self._insert_frame("tc_volcount", df)

    def insert_bike_counts(self, df: pd.DataFrame) -> int:
        """Insert 15-minute bicycle totals (``recordnum, countdate, counttime, total``)."""
        return self._insert_frame("tc_bikecount", df)

    def get_class_counts(self, recordnum: int) -> pd.DataFrame:
        """Return ``tc_clacount`` rows for a count, in time and lane order."""
        return self._read(
            "SELECT * FROM tc_clacount WHERE recordnum = ? "
            "ORDER BY countdate, counttime, countlane",
            [recordnum],
        )

    def get_speed_counts(self, recordnum: int) -> pd.DataFrame:
        """Return ``tc_specount`` rows for a count, in time and lane order."""
        return self._read(
            "SELECT * FROM tc_specount WHERE recordnum = ? "
            "ORDER BY countdate, counttime, countlane",
            [recordnum],
        )

    def get_volume_counts(self, recordnum: int) -> pd.DataFrame:
        """Return ``tc_volcount`` rows for a count, by date then direction."""
        return self._read(
            "SELECT * FROM tc_volcount WHERE recordnum = ? ORDER BY countdate, cntdir",
            [recordnum],
        )

    def get_bike_counts(self, recordnum: int) -> pd.DataFrame:
        """Return ``tc_bikecount`` rows for a count, in time order."""
        return self._read(
            "SELECT * FROM tc_bikecount WHERE recordnum = ? ORDER BY countdate, counttime",
            [recordnum],
        )

    # ------------------------------------------------------------------
    # Import log
    # ------------------------------------------------------------------

    def insert_import_log_entries(self, entries: List[Dict[str, Any]]) -> None:
        """Append entries with keys ``logged_at, recordnum, message, log_level``."""
        if not entries:
            return
        self._write(
            "INSERT INTO import_log (logged_at, recordnum, message, log_level) "
            "VALUES (?, ?, ?, ?)",
            [
                (_iso(e["logged_at"]), e["recordnum"], e["message"], e["log_level"])
                for e in entries
            ],
        )

    def get_import_log(self, recordnum: Optional[int] = None) -> pd.DataFrame:
        """Return import log entries, newest first, optionally for one count."""
        if recordnum is None:
            return self._read("SELECT * FROM import_log ORDER BY logged_at DESC, id DESC")
        return self._read(
            "SELECT * FROM import_log WHERE recordnum = ? ORDER BY logged_at DESC, id DESC",
            [recordnum],
        )


def _iso(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _plain(value: Any) -> Any:
    """Unwrap numpy scalars so ``sqlite3`` can bind them."""
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        return value.item()
    return value


# ---------------------------------------------------------------------------
# Module-level convenience wrappers
# ---------------------------------------------------------------------------

def init_db(db_path: Path) -> None:
    """Initialise a database at ``db_path``.

    Args:
        db_path: Path to the SQLite database file.
    """
    with DatabaseManager(db_path) as m:
        m.init_db()
