"""
Count Binning and Aggregation (Functional Core)

Pure functions only.  No I/O, no SQL.

Turns individual counted vehicles into 15-minute class and speed counts,
keyed by (binned datetime, channel), and rolls class counts up into
hourly volume rows.

Package Location: src/tcount/analysis/counts.py

Unclassified Vehicle Rule:
    Vehicles with class code 0 or 14 are *unclassified*.  They are counted
    in ``c15`` **and** in ``c2`` (Passenger Cars), on the assumption that
    most unclassified vehicles are passenger vehicles.  ``total`` is
    incremented once.  A plain sum of ``c1`` .. ``c13`` plus ``c15``
    therefore double-counts unclassified vehicles; use ``total``.

Data Completeness:
    Buckets are filled exactly as observed.  A count that starts at
    10:55 produces a 10:45 bucket holding five minutes of data; the first
    and last hours of the hourly roll-up may likewise be partial.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from datetime import date, datetime, time
from enum import IntEnum
from typing import Dict, Iterable, List, NamedTuple, Optional

import numpy as np
import pandas as pd

from .metadata import CountMetadata, Direction

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidVehicleClass(ValueError):
    """Raised for a vehicle class code outside 0..14."""

    def __init__(self, code):
        self.code = code
        super().__init__(f"no such vehicle class '{code}'")


class InvalidSpeed(ValueError):
    """Raised for a negative (or non-numeric) speed."""

    def __init__(self, speed):
        self.speed = speed
        super().__init__(f"invalid speed '{speed}'")


# ---------------------------------------------------------------------------
# Time binning
# ---------------------------------------------------------------------------

def time_bin(value: time) -> time:
    """Put a time into one of four bins per hour.

    Seconds (and microseconds) are zeroed, then minutes 0-14 → 0,
    15-29 → 15, 30-44 → 30, 45-59 → 45.
    """
    return value.replace(minute=value.minute - value.minute % 15, second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Vehicle classes
# ---------------------------------------------------------------------------

class VehicleClass(IntEnum):
    """The 13 FHWA vehicle classes plus unclassified.

    Values match the persisted field numbers (``c1`` .. ``c13``, ``c15``);
    14 is an unused class group in the FHWA scheme.

    See:
        * https://www.fhwa.dot.gov/policyinformation/vehclass.cfm
        * https://www.fhwa.dot.gov/policyinformation/tmguide/tmg_2013/vehicle-types.cfm
    """

    MOTORCYCLES = 1
    PASSENGER_CARS = 2
    OTHER_FOUR_TIRE_SINGLE_UNIT_VEHICLES = 3
    BUSES = 4
    TWO_AXLE_SIX_TIRE_SINGLE_UNIT_TRUCKS = 5
    THREE_AXLE_SINGLE_UNIT_TRUCKS = 6
    FOUR_OR_MORE_AXLE_SINGLE_UNIT_TRUCKS = 7
    FOUR_OR_FEWER_AXLE_SINGLE_TRAILER_TRUCKS = 8
    FIVE_AXLE_SINGLE_TRAILER_TRUCKS = 9
    SIX_OR_MORE_AXLE_SINGLE_TRAILER_TRUCKS = 10
    FIVE_OR_FEWER_AXLE_MULTI_TRAILER_TRUCKS = 11
    SIX_AXLE_MULTI_TRAILER_TRUCKS = 12
    SEVEN_OR_MORE_AXLE_MULTI_TRAILER_TRUCKS = 13
    UNCLASSIFIED = 15

    @classmethod
    def from_num(cls, code: int) -> "VehicleClass":
        """Classify a raw class code.

        1..13 map to their FHWA class; 0 and 14 are both unclassified.

        Raises:
            InvalidVehicleClass: For any other value.
        """
        if isinstance(code, bool) or not isinstance(code, (int, np.integer)):
            raise InvalidVehicleClass(code)
        code = int(code)
        if code in (0, 14):
            return cls.UNCLASSIFIED
        if 1 <= code <= 13:
            return cls(code)
        raise InvalidVehicleClass(code)

    @property
    def field(self) -> str:
        """Name of the counter field for this class (``'c1'`` .. ``'c15'``)."""
        return f"c{self.value}"

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


# ---------------------------------------------------------------------------
# Speed ranges
# ---------------------------------------------------------------------------

# Inclusive upper bound (mph) of s1 .. s13; s14 is open-ended.
_SPEED_RANGE_UPPER_MPH = np.array(
    [15.0, 20.0, 25.0, 30.0, 35.0, 40.0, 45.0, 50.0, 55.0, 60.0, 65.0, 70.0, 75.0]
)


class SpeedRange(IntEnum):
    """The 14 speed ranges: 0-15 mph, 5-mph steps to 75, then over 75.

    Each range includes its upper bound: 15.0 is in ``S1``, 15.1 and 20.0
    are in ``S2``.
    """

    S1 = 1
    S2 = 2
    S3 = 3
    S4 = 4
    S5 = 5
    S6 = 6
    S7 = 7
    S8 = 8
    S9 = 9
    S10 = 10
    S11 = 11
    S12 = 12
    S13 = 13
    S14 = 14

    @classmethod
    def from_speed(cls, speed: float) -> "SpeedRange":
        """Bin a speed (mph) into its range.

        Raises:
            InvalidSpeed: If the speed is negative (including ``-0.0``) or
                not a number.
        """
        try:
            speed = float(speed)
        except (TypeError, ValueError):
            raise InvalidSpeed(speed)
        if math.isnan(speed) or math.copysign(1.0, speed) < 0:
            raise InvalidSpeed(speed)
        idx = int(np.searchsorted(_SPEED_RANGE_UPPER_MPH, speed, side="left"))
        return cls(idx + 1)

    @property
    def field(self) -> str:
        return f"s{self.value}"

    @property
    def label(self) -> str:
        if self is SpeedRange.S1:
            return "0-15"
        if self is SpeedRange.S14:
            return ">75"
        upper = int(_SPEED_RANGE_UPPER_MPH[self.value - 1])
        return f">{upper - 5}-{upper}"


# ---------------------------------------------------------------------------
# Per-bucket tallies
# ---------------------------------------------------------------------------

@dataclass
class VehicleClassCount:
    """Count of vehicles by vehicle class in one bucket.

    Note: unclassified vehicles are counted in ``c15`` and also in ``c2``
    (Passenger Cars), so summing ``c1`` through ``c15`` double-counts them.
    """

    recordnum: int
    direction: Direction
    c1: int = 0
    c2: int = 0
    c3: int = 0
    c4: int = 0
    c5: int = 0
    c6: int = 0
    c7: int = 0
    c8: int = 0
    c9: int = 0
    c10: int = 0
    c11: int = 0
    c12: int = 0
    c13: int = 0
    c15: int = 0
    total: int = 0

    def insert(self, vehicle_class: VehicleClass) -> "VehicleClassCount":
        """Count one vehicle of *vehicle_class*."""
        if vehicle_class is VehicleClass.UNCLASSIFIED:
            # Also counted as a passenger car.
            self.c2 += 1
        setattr(self, vehicle_class.field, getattr(self, vehicle_class.field) + 1)
        self.total += 1
        return self

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if f.name.startswith("c") or f.name == "total"}


@dataclass
class SpeedRangeCount:
    """Count of vehicles by speed range in one bucket."""

    recordnum: int
    direction: Direction
    s1: int = 0
    s2: int = 0
    s3: int = 0
    s4: int = 0
    s5: int = 0
    s6: int = 0
    s7: int = 0
    s8: int = 0
    s9: int = 0
    s10: int = 0
    s11: int = 0
    s12: int = 0
    s13: int = 0
    s14: int = 0
    total: int = 0

    def insert(self, speed: float) -> "SpeedRangeCount":
        """Count one vehicle travelling at *speed*.

        Raises:
            InvalidSpeed: Nothing is counted when the speed is rejected.
        """
        speed_range = SpeedRange.from_speed(speed)
        setattr(self, speed_range.field, getattr(self, speed_range.field) + 1)
        self.total += 1
        return self

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if f.name.startswith("s") or f.name == "total"}


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

class CountedVehicle(NamedTuple):
    """A vehicle that has been counted, with no binning applied to it."""

    date: date
    time: time
    channel: int
    vehicle_class: int
    speed: float


class BinKey(NamedTuple):
    """Identifies the 15-minute period and lane of a bucket."""

    datetime: datetime
    channel: int


@dataclass(frozen=True)
class ProcessingError:
    """A counted vehicle that was skipped, and why."""

    index: int
    vehicle: Optional[CountedVehicle]
    reason: str


@dataclass
class AggregationResult:
    """Output of one aggregation pass."""

    class_counts: Dict[BinKey, VehicleClassCount] = field(default_factory=dict)
    speed_counts: Dict[BinKey, SpeedRangeCount] = field(default_factory=dict)
    errors: List[ProcessingError] = field(default_factory=list)


def create_speed_and_class_count(
    metadata: CountMetadata,
    vehicles: Iterable[CountedVehicle],
) -> AggregationResult:
    """Create the 15-minute binned class and speed counts.

    Each vehicle's channel is resolved to a direction (channel 1 is the
    first direction, channel 2 the second), its time is binned, and its
    class and speed are counted in the bucket for ``(datetime, channel)``.
    Buckets are created on the first vehicle that lands in them.

    Vehicles that cannot be counted (unknown channel, invalid class code,
    invalid speed) are skipped and reported in ``errors``; the rest of the
    batch is still aggregated.

    Args:
        metadata: Metadata of the count; supplies ``recordnum`` and the
            channel → direction lookup.
        vehicles: Counted vehicles, in file order.

    Returns:
        :class:`AggregationResult` with both maps and the skipped records.
    """
    result = AggregationResult()
    directions = metadata.channel_directions()

    for idx, vehicle in enumerate(vehicles):
        direction = directions.get(vehicle.channel)
        if direction is None:
            _skip(result, metadata.recordnum, idx, vehicle,
                  f"unable to determine channel/direction for channel {vehicle.channel}")
            continue

        key = BinKey(datetime.combine(vehicle.date, time_bin(vehicle.time)), vehicle.channel)

        try:
            vehicle_class = VehicleClass.from_num(vehicle.vehicle_class)
            SpeedRange.from_speed(vehicle.speed)
        except (InvalidVehicleClass, InvalidSpeed) as exc:
            _skip(result, metadata.recordnum, idx, vehicle, str(exc))
            continue

        speed_count = result.speed_counts.get(key)
        if speed_count is None:
            speed_count = result.speed_counts[key] = SpeedRangeCount(metadata.recordnum, direction)
        speed_count.insert(vehicle.speed)

        class_count = result.class_counts.get(key)
        if class_count is None:
            class_count = result.class_counts[key] = VehicleClassCount(metadata.recordnum, direction)
        class_count.insert(vehicle_class)

    if result.errors:
        log.warning(
            f"{metadata.recordnum}: {len(result.errors)} vehicle record(s) skipped",
            extra={"recordnum": metadata.recordnum},
        )
    return result


def _skip(
    result: AggregationResult,
    recordnum: int,
    idx: int,
    vehicle: CountedVehicle,
    reason: str,
) -> None:
    log.error(f"{recordnum}: record {idx} skipped: {reason}", extra={"recordnum": recordnum})
    result.errors.append(ProcessingError(idx, vehicle, reason))


# ---------------------------------------------------------------------------
# DataFrame views
# ---------------------------------------------------------------------------

CLASS_FIELDS: List[str] = [vc.field for vc in VehicleClass]
SPEED_FIELDS: List[str] = [sr.field for sr in SpeedRange]

# Hourly volume columns, midnight through 11pm.
HOUR_COLUMNS: List[str] = (
    ["am12"] + [f"am{h}" for h in range(1, 12)]
    + ["pm12"] + [f"pm{h}" for h in range(1, 12)]
)


def _counts_frame(counts: Dict[BinKey, object], value_fields: List[str]) -> pd.DataFrame:
    columns = ["recordnum", "countdate", "counttime", "countlane", "ctdir"] + value_fields
    rows = []
    for key, count in sorted(counts.items(), key=lambda kv: kv[0]):
        row = {
            "recordnum": count.recordnum,
            "countdate": key.datetime.date(),
            "counttime": key.datetime.time(),
            "countlane": key.channel,
            "ctdir": count.direction.value,
        }
        row.update(count.as_dict())
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def class_counts_frame(class_counts: Dict[BinKey, VehicleClassCount]) -> pd.DataFrame:
    """Flatten class counts into rows shaped like the ``tc_clacount`` table.

    Columns: ``recordnum, countdate, counttime, countlane, ctdir,
    c1 .. c13, c15, total``; sorted by datetime then lane.
    """
    return _counts_frame(class_counts, CLASS_FIELDS + ["total"])


def speed_counts_frame(speed_counts: Dict[BinKey, SpeedRangeCount]) -> pd.DataFrame:
    """Flatten speed counts into rows shaped like the ``tc_specount`` table."""
    return _counts_frame(speed_counts, SPEED_FIELDS + ["total"])


def hourly_volume(class_counts: Dict[BinKey, VehicleClassCount]) -> pd.DataFrame:
    """Roll 15-minute class counts up to one hourly volume row per day and direction.

    Lanes travelling the same direction are summed.  Hours with no
    bucket are left null rather than zero, since no data was recorded
    for them.

    Returns:
        DataFrame with columns ``recordnum, countdate, cntdir,
        totalcount, am12 .. pm11`` sorted by date then direction.
        Empty (with those columns) when there are no counts.
    """
    columns = ["recordnum", "countdate", "cntdir", "totalcount"] + HOUR_COLUMNS
    if not class_counts:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(
        [
            (c.recordnum, k.datetime.date(), c.direction.value, k.datetime.hour, c.total)
            for k, c in class_counts.items()
        ],
        columns=["recordnum", "countdate", "cntdir", "hour", "total"],
    )
    wide = df.pivot_table(
        index=["recordnum", "countdate", "cntdir"],
        columns="hour",
        values="total",
        aggfunc="sum",
    )
    wide = wide.reindex(columns=range(24))
    wide.columns = HOUR_COLUMNS
    wide.insert(0, "totalcount", wide.sum(axis=1, min_count=1).astype("int64"))
    wide = wide.reset_index().sort_values(["countdate", "cntdir"]).reset_index(drop=True)
    wide[HOUR_COLUMNS] = wide[HOUR_COLUMNS].astype("Int64")
    return wide[columns]

