"""
tcount Data Package (Imperative Shell)

This package handles all I/O operations, database management,
and resource handling for tcount.

Modules:
- manager:    SQLite schema, count persistence, import log
- ingestion:  Count file discovery, parsing, and the import pass
- checks:     Data checks over stored counts
"""

from .manager import CountDataError, DatabaseManager, init_db
from .ingestion import (
    BadHeader,
    ImportEngine,
    ImportResult,
    collect_paths,
    read_vehicle_file,
    run_import,
)
from .checks import CheckEngine

__all__ = [
    # Manager
    'CountDataError',
    'DatabaseManager',
    'init_db',
    # Ingestion
    'BadHeader',
    'ImportEngine',
    'ImportResult',
    'collect_paths',
    'read_vehicle_file',
    'run_import',
    # Checks
    'CheckEngine',
]
