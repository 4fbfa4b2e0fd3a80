"""
tcount Command-Line Interface

Exposes five subcommands:

    tcount init                                  Create the count database
    tcount import [--no-check]                   Import count files and check them
    tcount check RECORDNUM [...] [--record]      Re-run the data checks
    tcount report RECORDNUM --output-dir DIR     Write class / speed HTML reports
    tcount log [--recordnum N]                   Show the import log

Every subcommand accepts ``--db``; ``import`` also takes ``--data-dir``.
Options left unset fall back to the ``TCOUNT_DB``, ``TCOUNT_DATA_DIR``,
``TCOUNT_TIMEZONE`` and ``TCOUNT_LOG_FILE`` environment variables.

The package must be installed (``pip install -e .``) for the ``tcount``
entry point to be available.

Package Location: src/tcount/cli.py
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .utils.logging import configure_logging
from .utils.timezone import DEFAULT_TIMEZONE

ENV_DB = "TCOUNT_DB"
ENV_DATA_DIR = "TCOUNT_DATA_DIR"
ENV_TIMEZONE = "TCOUNT_TIMEZONE"
ENV_LOG_FILE = "TCOUNT_LOG_FILE"


# ===========================================================================
# Shared helpers
# ===========================================================================

def _die(message: str) -> None:
    """Print an error message and exit with status 1.

    Args:
        message: Human-readable error text.
    """
    print(f"\n❌  Error: {message}", file=sys.stderr)
    sys.exit(1)


def _resolve_db_path(args: argparse.Namespace) -> Path:
    """Database path: ``--db`` > ``TCOUNT_DB``.

    Raises:
        SystemExit: When neither is set.
    """
    db = args.db or os.environ.get(ENV_DB)
    if not db:
        _die(f"No database given. Pass --db or set {ENV_DB}.")
    return Path(db)


def _resolve_timezone(args: argparse.Namespace) -> str:
    """Timezone: ``--timezone`` > ``TCOUNT_TIMEZONE`` > US/Eastern."""
    return args.timezone or os.environ.get(ENV_TIMEZONE) or DEFAULT_TIMEZONE


def _require_db(db_path: Path) -> None:
    if not db_path.exists():
        _die(
            f"Database not found: {db_path}\n"
            f"Tip: run 'tcount init --db {db_path}' first."
        )


# ===========================================================================
# Subcommand handlers
# ===========================================================================

# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

def handle_init(args: argparse.Namespace) -> None:
    """Create the count database and its tables (idempotent).

    Args:
        args: Parsed CLI arguments.
    """
    from tcount.data import CountDataError, init_db

    db_path = _resolve_db_path(args)
    try:
        init_db(db_path)
    except CountDataError as exc:
        _die(f"init failed: {exc}")
    print(f"✅  Database ready: {db_path}")


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------

def handle_import(args: argparse.Namespace) -> None:
    """Import every count file under the data directory.

    Files that cannot be identified are logged and skipped; the exit
    status is 0 as long as the directory itself could be read.

    Args:
        args: Parsed CLI arguments.
    """
    from tcount.data import CountDataError, ImportEngine

    db_path = _resolve_db_path(args)
    data_dir = args.data_dir or os.environ.get(ENV_DATA_DIR)
    if not data_dir:
        _die(f"No data directory given. Pass --data-dir or set {ENV_DATA_DIR}.")
    timezone = _resolve_timezone(args)

    print(f"\n🚗  Importing counts from {data_dir}")
    print(f"    DB:  {db_path}")
    print(f"    TZ:  {timezone}")

    try:
        engine = ImportEngine(
            db_path, Path(data_dir), timezone=timezone, run_checks=not args.no_check
        )
        results = engine.run()
    except (FileNotFoundError, CountDataError) as exc:
        _die(f"Import failed: {exc}")

    skipped = sum(len(r.errors) for r in results)
    warned = sum(len(r.warnings) for r in results)
    print(
        f"\n✅  Imported {len(results)} count(s): "
        f"{skipped} record(s) skipped, {warned} data-check warning(s)."
    )


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def handle_check(args: argparse.Namespace) -> None:
    """Run the data checks for one or more stored counts.

    Exits with status 1 if any count could not be checked.

    Args:
        args: Parsed CLI arguments.
    """
    from tcount.data import CheckEngine

    db_path = _resolve_db_path(args)
    _require_db(db_path)

    engine = CheckEngine(db_path, timezone=_resolve_timezone(args))
    results = engine.check_many(args.recordnums, record=args.record)

    for recordnum in args.recordnums:
        if recordnum not in results:
            print(f"  ❌  {recordnum}: could not be checked")
        elif not results[recordnum]:
            print(f"  ✅  {recordnum}: all checks passed")
        else:
            for warning in results[recordnum]:
                print(f"  ⚠️   {warning}")

    if len(results) < len(args.recordnums):
        sys.exit(1)


# ---------------------------------------------------------------------------
# report
# ---------------------------------------------------------------------------

def handle_report(args: argparse.Namespace) -> None:
    """Write the class and speed distribution reports for one count.

    Args:
        args: Parsed CLI arguments.
    """
    from tcount.data import CountDataError
    from tcount.reports import ReportGenerator

    db_path = _resolve_db_path(args)
    _require_db(db_path)

    gen = ReportGenerator(db_path, Path(args.output_dir))
    try:
        written = gen.generate_for_count(args.recordnum)
    except (LookupError, CountDataError) as exc:
        _die(str(exc))

    if not written:
        _die(f"{args.recordnum}: no class or speed counts to report")
    for path in written:
        print(f"  🖼️   {path}")


# ---------------------------------------------------------------------------
# log
# ---------------------------------------------------------------------------

def handle_log(args: argparse.Namespace) -> None:
    """Print ``import_log`` entries, newest first.

    Args:
        args: Parsed CLI arguments.
    """
    from tcount.data import CountDataError, DatabaseManager

    db_path = _resolve_db_path(args)
    _require_db(db_path)

    try:
        with DatabaseManager(db_path) as manager:
            df = manager.get_import_log(args.recordnum)
    except CountDataError as exc:
        _die(str(exc))

    if df.empty:
        print("No log entries.")
        return
    if args.limit:
        df = df.head(args.limit)
    for row in df.itertuples(index=False):
        print(f"{row.logged_at}  {row.log_level:<7}  {row.recordnum}: {row.message}")


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct and return the top-level argument parser.

    Returns:
        Configured ``ArgumentParser`` with ``init``, ``import``, ``check``,
        ``report`` and ``log`` subcommands attached.
    """
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--db",
        metavar="PATH",
        help=f"SQLite count database (default: ${ENV_DB}).",
    )
    common.add_argument(
        "--timezone",
        metavar="TZ",
        help=f"IANA timezone for log timestamps (default: ${ENV_TIMEZONE} or {DEFAULT_TIMEZONE}).",
    )
    common.add_argument(
        "--log-file",
        metavar="PATH",
        help=f"Append JSON log lines to this file (default: ${ENV_LOG_FILE}).",
    )
    common.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Show debug-level log output.",
    )

    parser = argparse.ArgumentParser(
        prog="tcount",
        description=(
            "tcount – Traffic count binning and data checks\n"
            "Import individual-vehicle counts, bin them into 15-minute class and\n"
            "speed counts, and flag counts that look wrong."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subs = parser.add_subparsers(dest="command", metavar="<command>")
    subs.required = True

    # ------------------------------------------------------------------
    # init
    # ------------------------------------------------------------------
    p_init = subs.add_parser(
        "init",
        parents=[common],
        help="Create the count database.",
    )
    p_init.set_defaults(func=handle_init)

    # ------------------------------------------------------------------
    # import
    # ------------------------------------------------------------------
    p_imp = subs.add_parser(
        "import",
        parents=[common],
        help="Import count files and run the data checks on each.",
        description=(
            "Import every count file below the data directory.\n\n"
            "Files are identified by the name of the directory they sit in\n"
            "(e.g. 'vehicles/') and by their file name:\n"
            "  <technician>-<recordnum>-<directions>-<counter id>-<speed limit>.csv\n"
            "Re-importing a count replaces its stored rows."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_imp.add_argument(
        "--data-dir",
        metavar="DIR",
        help=f"Directory holding the count files (default: ${ENV_DATA_DIR}).",
    )
    p_imp.add_argument(
        "--no-check",
        action="store_true",
        default=False,
        help="Skip the data checks after each count is stored.",
    )
    p_imp.set_defaults(func=handle_import)

    # ------------------------------------------------------------------
    # check
    # ------------------------------------------------------------------
    p_chk = subs.add_parser(
        "check",
        parents=[common],
        help="Re-run the data checks for stored counts.",
    )
    p_chk.add_argument(
        "recordnums",
        nargs="+",
        type=int,
        metavar="RECORDNUM",
        help="One or more count record numbers.",
    )
    p_chk.add_argument(
        "--record",
        action="store_true",
        default=False,
        help="Also append the warnings to the import log.",
    )
    p_chk.set_defaults(func=handle_check)

    # ------------------------------------------------------------------
    # report
    # ------------------------------------------------------------------
    p_rep = subs.add_parser(
        "report",
        parents=[common],
        help="Write class and speed distribution reports for one count.",
    )
    p_rep.add_argument(
        "recordnum",
        type=int,
        metavar="RECORDNUM",
        help="Count record number.",
    )
    p_rep.add_argument(
        "--output-dir",
        required=True,
        metavar="DIR",
        help="Reports are written to DIR/<recordnum>/.",
    )
    p_rep.set_defaults(func=handle_report)

    # ------------------------------------------------------------------
    # log
    # ------------------------------------------------------------------
    p_log = subs.add_parser(
        "log",
        parents=[common],
        help="Show the import log.",
    )
    p_log.add_argument(
        "--recordnum",
        type=int,
        metavar="N",
        help="Only entries for this count.",
    )
    p_log.add_argument(
        "--limit",
        type=int,
        default=0,
        metavar="N",
        help="Show at most N entries (default: all).",
    )
    p_log.set_defaults(func=handle_log)

    return parser


# ===========================================================================
# Entry point
# ===========================================================================

def main(argv: Optional[List[str]] = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate handler.

    This function is registered as the ``tcount`` console script entry point
    in ``pyproject.toml``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file = args.log_file or os.environ.get(ENV_LOG_FILE)
    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=Path(log_file) if log_file else None,
    )
    args.func(args)


if __name__ == "__main__":
    main()
