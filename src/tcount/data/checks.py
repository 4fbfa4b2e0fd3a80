"""
Count Data Check Engine (Imperative Shell)

Reads a count's persisted rows from SQLite, hands them to the pure rules
in ``tcount/analysis/checks.py``, and emits the resulting warnings to the
``tcount.check`` logger and, optionally, the ``import_log`` table.

Package Location: src/tcount/data/checks.py

Warnings are advisory.  They never stop an import and never change what
is stored.  The only hard failures are a count whose type cannot be
identified (:class:`UnknownCountType`) and database errors
(:class:`CountDataError`); both abort that one count only when several
are checked together.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..analysis.checks import (
    CheckWarning,
    CountSnapshot,
    UnknownCountType,
    rules_for_count_type,
    run_checks,
)
from ..utils.timezone import local_now
from .manager import CountDataError, DatabaseManager

log = logging.getLogger(__name__)
check_log = logging.getLogger("tcount.check")


class CheckEngine:
    """Runs the data checks for counts stored in one database.

    Args:
        db_path:  Path to the count SQLite database.
        timezone: IANA timezone used to stamp ``import_log`` entries.
    """

    def __init__(self, db_path: Path, timezone: Optional[str] = None) -> None:
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            raise FileNotFoundError(f"Database not found: {self.db_path}")
        self.timezone = timezone

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load_snapshot(self, manager: DatabaseManager, recordnum: int) -> CountSnapshot:
        """Read only the tables the count's rules need.

        Raises:
            UnknownCountType: When ``tc_header`` has no usable type.
        """
        count_type = manager.get_count_type(recordnum)
        if count_type is None:
            raise UnknownCountType(recordnum)

        rules = rules_for_count_type(count_type)
        kwargs = {}
        if "class_mix" in rules:
            kwargs["class_counts"] = manager.get_class_counts(recordnum)
        if "direction_balance" in rules or "consecutive_zeros" in rules:
            kwargs["volume_counts"] = manager.get_volume_counts(recordnum)
        if "bicycle_outliers" in rules:
            kwargs["bike_counts"] = manager.get_bike_counts(recordnum)
        if not rules:
            log.info(f"{recordnum}: no data checks apply to '{count_type}' counts")
        return CountSnapshot(recordnum=recordnum, count_type=count_type, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(self, recordnum: int, record: bool = False) -> List[CheckWarning]:
        """Run every applicable check for one count.

        Args:
            recordnum: The count to check.
            record:    Also append each warning to ``import_log``.

        Returns:
            The warnings, in rule order.

        Raises:
            UnknownCountType: If the count's type cannot be identified.
            CountDataError:   If reading or writing the database fails.
        """
        with DatabaseManager(self.db_path) as manager:
            snapshot = self._load_snapshot(manager, recordnum)
            warnings = run_checks(snapshot)

            for warning in warnings:
                check_log.warning(str(warning), extra={"recordnum": recordnum})

            if record and warnings:
                logged_at = local_now(self.timezone)
                manager.insert_import_log_entries([
                    {
                        "logged_at": logged_at,
                        "recordnum": w.recordnum,
                        "message": w.message,
                        "log_level": w.level,
                    }
                    for w in warnings
                ])

        if not warnings:
            log.info(f"{recordnum}: all data checks passed", extra={"recordnum": recordnum})
        return warnings

    def check_many(
        self,
        recordnums: Iterable[int],
        record: bool = False,
    ) -> Dict[int, List[CheckWarning]]:
        """Check several counts; a failure on one does not stop the others.

        Returns:
            Mapping of recordnum to warnings for every count that could be
            checked.  Counts that failed are logged and left out.
        """
        results: Dict[int, List[CheckWarning]] = {}
        for recordnum in recordnums:
            try:
                results[recordnum] = self.check(recordnum, record=record)
            except (UnknownCountType, CountDataError) as exc:
                log.error(f"{recordnum}: data check failed: {exc}",
                          extra={"recordnum": recordnum})
        return results
