"""
tcount Analysis Package (Functional Core)

This package contains pure transformation functions with no I/O.
All functions accept data structures (DataFrames, dicts, etc.) and
return transformed data.

Modules:
- metadata: Directions, count types, and filename metadata
- counts:   Time binning, vehicle class / speed range binning, aggregation
- checks:   Data-quality rules over persisted counts
"""

from .metadata import (
    BadLocation,
    CountMetadata,
    CountType,
    Direction,
    Directions,
    FileNameProblem,
    InvalidFileName,
)

from .counts import (
    AggregationResult,
    BinKey,
    CountedVehicle,
    InvalidSpeed,
    InvalidVehicleClass,
    ProcessingError,
    SpeedRange,
    SpeedRangeCount,
    VehicleClass,
    VehicleClassCount,
    class_counts_frame,
    create_speed_and_class_count,
    hourly_volume,
    speed_counts_frame,
    time_bin,
)

from .checks import (
    CheckWarning,
    CountSnapshot,
    UnknownCountType,
    check_bicycle_outliers,
    check_class_mix,
    check_consecutive_zeros,
    check_direction_balance,
    rules_for_count_type,
    run_checks,
)

__all__ = [
    # Metadata
    'BadLocation',
    'CountMetadata',
    'CountType',
    'Direction',
    'Directions',
    'FileNameProblem',
    'InvalidFileName',
    # Counts
    'AggregationResult',
    'BinKey',
    'CountedVehicle',
    'InvalidSpeed',
    'InvalidVehicleClass',
    'ProcessingError',
    'SpeedRange',
    'SpeedRangeCount',
    'VehicleClass',
    'VehicleClassCount',
    'class_counts_frame',
    'create_speed_and_class_count',
    'hourly_volume',
    'speed_counts_frame',
    'time_bin',
    # Checks
    'CheckWarning',
    'CountSnapshot',
    'UnknownCountType',
    'check_bicycle_outliers',
    'check_class_mix',
    'check_consecutive_zeros',
    'check_direction_balance',
    'rules_for_count_type',
    'run_checks',
]
