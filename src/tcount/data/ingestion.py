"""
tcount Import Engine (Imperative Shell)

Handles discovery and parsing of count files and drives one import pass
per file: filename metadata → parsed vehicles → binned class / speed
counts → hourly volume → SQLite → data checks.

Package Location: src/tcount/data/ingestion.py

File Layout
===========

Files are sorted into directories named for their count type (see
``CountType``).  Only individual-vehicle files (directory ``vehicles``)
are imported; they carry three metadata rows, then the header::

    Veh. No.,Date,Time,Channel,Class,Speed

followed by one row per vehicle, e.g. ``1,6/4/2024,10:55:03 AM,1,2,34.5``.

Error policy
============

* A row that cannot be parsed, or a vehicle that cannot be binned, is
  skipped and written to ``import_log`` as an ``ERROR``; the rest of the
  file is still imported.
* A file with a bad name, location or header is logged and skipped; the
  rest of the directory is still imported.
* Re-importing a recordnum replaces its previously stored counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

from ..analysis.checks import CheckWarning, UnknownCountType
from ..analysis.counts import (
    CountedVehicle,
    ProcessingError,
    class_counts_frame,
    create_speed_and_class_count,
    hourly_volume,
    speed_counts_frame,
)
from ..analysis.metadata import BadLocation, CountMetadata, CountType, InvalidFileName
from ..utils.timezone import local_now
from .checks import CheckEngine
from .manager import CountDataError, DatabaseManager

log = logging.getLogger(__name__)

VEHICLE_COUNT_HEADER = "Veh. No.,Date,Time,Channel,Class,Speed"
# Metadata rows above the header in individual-vehicle files.
VEHICLE_METADATA_ROWS = 3
# Log file that may sit in the data directory; never imported.
LOG_FILENAME = "log.txt"

_DATE_FORMAT = "%m/%d/%Y"
_TIME_FORMAT = "%I:%M:%S %p"

# tc_header.type for counts built from individual vehicles.
CLASS_COUNT_TYPE = "Class"


class BadHeader(ValueError):
    """Raised when a file's header row does not match its count type."""


@dataclass
class ImportResult:
    """Summary of one imported file."""

    path: Path
    recordnum: int
    vehicles: int = 0
    class_bins: int = 0
    speed_bins: int = 0
    volume_rows: int = 0
    errors: List[ProcessingError] = field(default_factory=list)
    warnings: List[CheckWarning] = field(default_factory=list)


# ---------------------------------------------------------------------------
# File discovery and parsing
# ---------------------------------------------------------------------------

def collect_paths(data_dir: Path) -> List[Path]:
    """Collect every file below *data_dir*, recursively, in sorted order.

    The log file and hidden files are ignored.
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FileNotFoundError(f"Data directory not found: {data_dir}")
    return sorted(
        p for p in data_dir.rglob("*")
        if p.is_file() and p.name != LOG_FILENAME and not p.name.startswith(".")
    )


def read_vehicle_file(
    path: Path,
) -> Tuple[List[CountedVehicle], List[ProcessingError], List[int]]:
    """Parse an individual-vehicle count file.

    Args:
        path: Path to the ``.txt`` / ``.csv`` file.

    Returns:
        ``(vehicles, errors, rows)``: parsed vehicles in file order, one
        :class:`ProcessingError` per data row that could not be parsed,
        and the data-row index each vehicle was read from.
        Class codes and speeds are passed through unchecked; the
        aggregator validates them.

    Raises:
        BadHeader: If the header row is not :data:`VEHICLE_COUNT_HEADER`.
    """
    df = pd.read_csv(
        path,
        skiprows=VEHICLE_METADATA_ROWS,
        header=0,
        dtype=str,
        skipinitialspace=True,
        keep_default_na=False,
    )
    df.columns = [str(c).strip() for c in df.columns]
    if ",".join(df.columns) != VEHICLE_COUNT_HEADER:
        raise BadHeader(f"no matching count type for header in `{path}`")

    df = df.apply(lambda col: col.str.strip())
    dates = pd.to_datetime(df["Date"], format=_DATE_FORMAT, errors="coerce")
    times = pd.to_datetime(df["Time"], format=_TIME_FORMAT, errors="coerce")
    channels = pd.to_numeric(df["Channel"], errors="coerce")
    classes = pd.to_numeric(df["Class"], errors="coerce")
    speeds = pd.to_numeric(df["Speed"], errors="coerce")

    valid = (
        dates.notna() & times.notna() & speeds.notna()
        & channels.notna() & (channels % 1 == 0)
        & classes.notna() & (classes % 1 == 0)
    )

    vehicles: List[CountedVehicle] = []
    errors: List[ProcessingError] = []
    rows: List[int] = []
    for idx in range(len(df)):
        if not valid.iat[idx]:
            raw = ",".join(df.iloc[idx].tolist())
            errors.append(ProcessingError(idx, None, f"unable to parse row '{raw}'"))
            continue
        vehicles.append(CountedVehicle(
            date=dates.iat[idx].date(),
            time=times.iat[idx].time(),
            channel=int(channels.iat[idx]),
            vehicle_class=int(classes.iat[idx]),
            speed=float(speeds.iat[idx]),
        ))
        rows.append(idx)
    return vehicles, errors, rows


# ---------------------------------------------------------------------------
# Import engine
# ---------------------------------------------------------------------------

class ImportEngine:
    """Imports count files from a data directory into the count database.

    Each file is an independent pass: its metadata and aggregation maps
    are built, persisted and discarded before the next file is read.

    Args:
        db_path:    Path to the SQLite database (created if missing).
        data_dir:   Root directory holding the count-type directories.
        timezone:   IANA timezone used to stamp ``import_log`` entries.
        run_checks: Run the data checks on each count after it is stored.
    """

    def __init__(
        self,
        db_path: Path,
        data_dir: Path,
        timezone: Optional[str] = None,
        run_checks: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.data_dir = Path(data_dir)
        self.timezone = timezone
        self.run_checks = run_checks

        with DatabaseManager(self.db_path) as manager:
            manager.init_db()

    def run(self) -> List[ImportResult]:
        """Import every file under the data directory.

        Returns:
            One :class:`ImportResult` per imported file; skipped files are
            only logged.
        """
        results: List[ImportResult] = []
        paths = collect_paths(self.data_dir)
        log.info(f"Found {len(paths)} file(s) in {self.data_dir}")

        for path in paths:
            try:
                result = self.import_file(path)
            except (InvalidFileName, BadLocation, BadHeader) as exc:
                log.error(f"{path}: {exc}. File not processed.")
                continue
            except (CountDataError, OSError, pd.errors.ParserError,
                    pd.errors.EmptyDataError) as exc:
                log.error(f"{path}: import failed: {exc}")
                continue
            if result is not None:
                results.append(result)
        return results

    def import_file(self, path: Path) -> Optional[ImportResult]:
        """Import a single count file.

        Returns:
            The import summary, or ``None`` for count types that are not
            imported.

        Raises:
            BadLocation, InvalidFileName, BadHeader: For a file that cannot
                be identified; nothing is written.
            CountDataError: When the database write fails.
        """
        path = Path(path)
        count_type = CountType.from_location(path)
        if count_type is not CountType.INDIVIDUAL_VEHICLE:
            log.info(f"{path}: {count_type.name} counts are not imported; skipping")
            return None

        metadata = CountMetadata.from_path(path)
        recordnum = metadata.recordnum
        log.info(f"Extracting data from {path}, a {count_type.name} count.",
                 extra={"recordnum": recordnum})

        vehicles, parse_errors, rows = read_vehicle_file(path)
        for err in parse_errors:
            log.error(f"{recordnum}: row {err.index}: {err.reason}",
                      extra={"recordnum": recordnum})

        aggregated = create_speed_and_class_count(metadata, vehicles)
        class_df = class_counts_frame(aggregated.class_counts)
        speed_df = speed_counts_frame(aggregated.speed_counts)
        volume_df = hourly_volume(aggregated.class_counts)
        # Aggregation indexes the parsed vehicles; report file rows instead.
        errors = sorted(
            parse_errors + [replace(e, index=rows[e.index]) for e in aggregated.errors],
            key=lambda e: e.index,
        )
        now = local_now(self.timezone)

        with DatabaseManager(self.db_path) as manager:
            manager.upsert_header(metadata, CLASS_COUNT_TYPE, created_on=now.date())
            manager.delete_counts(recordnum)
            manager.insert_class_counts(class_df)
            manager.insert_speed_counts(speed_df)
            manager.insert_volume_counts(volume_df)
            if errors:
                manager.insert_import_log_entries([
                    {
                        "logged_at": now,
                        "recordnum": recordnum,
                        "message": f"row {e.index}: {e.reason}",
                        "log_level": "ERROR",
                    }
                    for e in errors
                ])

        result = ImportResult(
            path=path,
            recordnum=recordnum,
            vehicles=len(vehicles) - len(aggregated.errors),
            class_bins=len(class_df),
            speed_bins=len(speed_df),
            volume_rows=len(volume_df),
            errors=errors,
        )
        log.info(
            f"{recordnum}: stored {result.vehicles} vehicle(s) in "
            f"{result.class_bins} 15-minute bin(s), {len(errors)} record(s) skipped",
            extra={"recordnum": recordnum},
        )

        if self.run_checks:
            try:
                result.warnings = CheckEngine(self.db_path, self.timezone).check(
                    recordnum, record=True
                )
            except (UnknownCountType, CountDataError) as exc:
                log.error(f"{recordnum}: data check failed: {exc}",
                          extra={"recordnum": recordnum})
        return result


def run_import(
    db_path: Path,
    data_dir: Path,
    timezone: Optional[str] = None,
    run_checks: bool = True,
) -> List[ImportResult]:
    """Convenience wrapper: import everything under *data_dir*."""
    return ImportEngine(db_path, data_dir, timezone=timezone, run_checks=run_checks).run()
