"""
tcount Report Generator (Imperative Shell)

Thin orchestration layer: reads a count's stored rows through
``DatabaseManager``, calls the plotting functions, writes HTML.

Package Location: src/tcount/reports/generators.py

Usage::

    from pathlib import Path
    from tcount.reports.generators import ReportGenerator

    gen = ReportGenerator(db_path=Path("counts.db"), output_dir=Path("reports"))
    gen.generate_for_count(166905)
    # Writes:
    #   reports/166905/Class_Distribution.html
    #   reports/166905/Speed_Distribution.html
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from ..data.manager import DatabaseManager
from ..plotting.distributions import plot_class_distribution, plot_speed_distribution

log = logging.getLogger(__name__)


class ReportGenerator:
    """
    Generates and saves the distribution plots for individual counts.

    Args:
        db_path: Path to the count SQLite database.
        output_dir: Root directory for report output.  A sub-directory named
            for the recordnum is created inside it for each count.
    """

    def __init__(self, db_path: Path, output_dir: Path) -> None:
        self.db_path = Path(db_path)
        self.output_dir = Path(output_dir)

    def generate_for_count(self, recordnum: int) -> List[Path]:
        """
        Generate and save all plots for one count.

        A plot whose table has no rows for the count is skipped.  An error
        in one plot is logged and does not prevent the other from being
        saved.

        Args:
            recordnum: The count to report on.

        Returns:
            Paths of the HTML files written.

        Raises:
            LookupError: If the count has no ``tc_header`` row.
        """
        with DatabaseManager(self.db_path) as manager:
            header = manager.get_header(recordnum)
            if header is None:
                raise LookupError(f"{recordnum}: no such count")
            df_class = manager.get_class_counts(recordnum)
            df_speed = manager.get_speed_counts(recordnum)

        count_dir = self.output_dir / str(recordnum)
        count_dir.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []

        for name, df, plot in (
            ("Class_Distribution", df_class, plot_class_distribution),
            ("Speed_Distribution", df_speed, plot_speed_distribution),
        ):
            if df.empty:
                log.info(f"{recordnum}: {name}: no rows – skipping")
                continue
            try:
                fig = plot(df, header)
            except ValueError as exc:
                log.error(f"{recordnum}: {name} plot FAILED: {exc}")
                continue
            out_path = count_dir / f"{name}.html"
            fig.write_html(str(out_path))
            log.info(f"{recordnum}: {name} saved → {out_path}")
            written.append(out_path)

        return written


def generate_reports(db_path: Path, output_dir: Path, recordnum: int) -> List[Path]:
    """
    Convenience function: create a ``ReportGenerator`` and run one count.

    Args:
        db_path: Path to the count SQLite database.
        output_dir: Root output directory.
        recordnum: The count to report on.
    """
    return ReportGenerator(db_path=db_path, output_dir=output_dir).generate_for_count(recordnum)
