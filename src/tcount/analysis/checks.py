"""
Count Data Checks (Functional Core)

Pure functions only.  Each rule reads a :class:`CountSnapshot` (rows
already persisted for one count) and returns a list of
:class:`CheckWarning`.  Rules never raise for odd data; they warn or stay
silent.  The shell in ``tcount/data/checks.py`` does the querying and
emitting.

Package Location: src/tcount/analysis/checks.py

Rules:
    * **Class mix** (``Class`` counts): passenger cars (``c2``) below 75%
      of the total, or unclassified (``c15``) above 10%.
    * **Direction balance** (``Class``, ``Volume``, ``15 min Volume``): the
      smaller direction below 40% of the two-direction total.
    * **Consecutive zeros** (same types): two or more zero hours in a row
      between 4am and 10pm.  A null hour counts as zero.
    * **Bicycle outlier** (any type containing ``Bicycle``): any 15-minute
      total above 20.  Only the first such period is reported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np
import pandas as pd

# Passenger cars should be at least this share of a class count (percent).
CLASS_2_MIN_PCT = 75.0
# Unclassified vehicles should be at most this share of a class count (percent).
CLASS_15_MAX_PCT = 10.0
# If a count is bidirectional, one direction having less than this share of
# the total is considered abnormal.
DIR_PROPORTION_LOWER_BOUND = 0.40
# Unusually high count for bicycles in a 15-minute period.
BIKE_COUNT_MAX = 20

# Hourly columns inspected for gaps, in time order (4am through 10pm).
DAYTIME_HOURS: List[str] = (
    [f"am{h}" for h in range(4, 12)] + ["pm12"] + [f"pm{h}" for h in range(1, 11)]
)

MOTOR_VEHICLE_TYPES = ("Class", "Volume", "15 min Volume")


class UnknownCountType(Exception):
    """Raised when the type of a count cannot be identified."""

    def __init__(self, recordnum: int, reason: str = "unable to identify type of count"):
        self.recordnum = recordnum
        super().__init__(f"{recordnum}: {reason}")


@dataclass(frozen=True)
class CheckWarning:
    """An advisory message about one count."""

    recordnum: int
    message: str
    level: str = "WARNING"

    def __str__(self) -> str:
        return f"{self.recordnum}: {self.message}"


def _empty(columns: List[str]) -> pd.DataFrame:
    return pd.DataFrame(columns=columns)


@dataclass(frozen=True)
class CountSnapshot:
    """Read-only view of the persisted rows for one count.

    Attributes:
        class_counts: ``tc_clacount`` rows; uses ``c2``, ``c15``, ``total``.
        volume_counts: ``tc_volcount`` rows, one per day and direction;
            uses ``cntdir``, ``totalcount`` and :data:`DAYTIME_HOURS`.
        bike_counts: ``tc_bikecount`` rows in time order; uses ``total``
            and, when present, ``countdate`` / ``counttime``.
    """

    recordnum: int
    count_type: str
    class_counts: pd.DataFrame = field(
        default_factory=lambda: _empty(["c2", "c15", "total"])
    )
    volume_counts: pd.DataFrame = field(
        default_factory=lambda: _empty(["cntdir", "totalcount"] + DAYTIME_HOURS)
    )
    bike_counts: pd.DataFrame = field(default_factory=lambda: _empty(["total"]))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def check_class_mix(snapshot: CountSnapshot) -> List[CheckWarning]:
    """Warn if class 2 share is too low or unclassified share too high."""
    df = snapshot.class_counts
    warnings: List[CheckWarning] = []
    if df.empty:
        return warnings

    total = float(df["total"].fillna(0).sum())
    if total == 0:
        return warnings

    c2_pct = float(df["c2"].fillna(0).sum()) / total * 100.0
    c15_pct = float(df["c15"].fillna(0).sum()) / total * 100.0

    if c2_pct < CLASS_2_MIN_PCT:
        warnings.append(CheckWarning(
            snapshot.recordnum,
            f"Class 2 vehicles are less than {CLASS_2_MIN_PCT:.0f}% "
            f"({c2_pct:.1f}%) of total.",
        ))
    if c15_pct > CLASS_15_MAX_PCT:
        warnings.append(CheckWarning(
            snapshot.recordnum,
            f"Unclassed vehicles are greater than {CLASS_15_MAX_PCT:.0f}% "
            f"({c15_pct:.1f}%) of total.",
        ))
    return warnings


def check_direction_balance(snapshot: CountSnapshot) -> List[CheckWarning]:
    """Warn if motor vehicle volume is lopsided between directions.

    Totals are summed per direction; with two (or more) directions the
    smallest is compared against the largest: ``min / (min + max)``.
    """
    df = snapshot.volume_counts
    if df.empty:
        return []

    by_dir = (
        df.assign(totalcount=pd.to_numeric(df["totalcount"], errors="coerce"))
        .groupby("cntdir")["totalcount"]
        .sum()
    )
    if len(by_dir) < 2:
        return []

    smaller_dir, smaller = by_dir.idxmin(), float(by_dir.min())
    larger_dir, larger = by_dir.idxmax(), float(by_dir.max())
    combined = smaller + larger
    if combined == 0:
        return []

    smaller_share = smaller / combined
    larger_share = larger / combined
    if smaller_share >= DIR_PROPORTION_LOWER_BOUND:
        return []

    lower_pct = DIR_PROPORTION_LOWER_BOUND * 100
    return [CheckWarning(
        snapshot.recordnum,
        f"Abnormal direction proportions: {_dir_name(smaller_dir)} has "
        f"{smaller_share * 100:.1f}% of total, {_dir_name(larger_dir)} has "
        f"{larger_share * 100:.1f}%.  (Expectation is that proportions are "
        f"no less/more than {lower_pct:.0f}%/{100 - lower_pct:.0f}%.)",
    )]


def _dir_name(value) -> str:
    return str(value).capitalize()


def check_consecutive_zeros(snapshot: CountSnapshot) -> List[CheckWarning]:
    """Warn on each hour that extends a run of zero-volume hours.

    Each row is a day; hours 4am through 10pm are walked in order.  The
    first zero of a run is tolerated, every following zero warns.  Null
    hours are treated the same as zeros.
    """
    df = snapshot.volume_counts
    warnings: List[CheckWarning] = []
    if df.empty:
        return warnings

    hours = df.reindex(columns=DAYTIME_HOURS)
    values = hours.apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float, na_value=np.nan)
    is_zero = np.nan_to_num(values, nan=0.0) == 0

    for row in is_zero:
        consecutive_zeros = 0
        for hour, zero in zip(DAYTIME_HOURS, row):
            consecutive_zeros = consecutive_zeros + 1 if zero else 0
            if consecutive_zeros > 1:
                warnings.append(CheckWarning(
                    snapshot.recordnum,
                    f"Consecutive period ({hour}) with 0 vehicles counted.",
                ))
    return warnings


def check_bicycle_outliers(snapshot: CountSnapshot) -> List[CheckWarning]:
    """Warn once if any 15-minute bicycle total is above the maximum.

    Scanning stops at the first violation.
    """
    df = snapshot.bike_counts
    if df.empty:
        return []

    totals = pd.to_numeric(df["total"], errors="coerce").to_numpy(dtype=float, na_value=np.nan)
    over = np.flatnonzero(totals > BIKE_COUNT_MAX)
    if over.size == 0:
        return []

    first = int(over[0])
    where = ""
    if {"countdate", "counttime"} <= set(df.columns):
        row = df.iloc[first]
        where = f" at {row['countdate']} {row['counttime']}"
    return [CheckWarning(
        snapshot.recordnum,
        f"More than {BIKE_COUNT_MAX} in a 15-minute period for a bicycle count "
        f"({int(totals[first])}{where}).",
    )]


# ---------------------------------------------------------------------------
# Rule selection
# ---------------------------------------------------------------------------

Rule = Callable[[CountSnapshot], List[CheckWarning]]


def rules_for_count_type(count_type: Optional[str]) -> Dict[str, Rule]:
    """Return the rules that apply to a count type, by name.

    A type no rule covers (e.g. ``'Pedestrian'``) yields an empty dict.
    """
    rules: Dict[str, Rule] = {}
    if count_type == "Class":
        rules["class_mix"] = check_class_mix
    if count_type in MOTOR_VEHICLE_TYPES:
        rules["direction_balance"] = check_direction_balance
        rules["consecutive_zeros"] = check_consecutive_zeros
    if count_type and "Bicycle" in count_type:
        rules["bicycle_outliers"] = check_bicycle_outliers
    return rules


def run_checks(snapshot: CountSnapshot) -> List[CheckWarning]:
    """Run every rule that applies to the snapshot's count type.

    Raises:
        UnknownCountType: When the snapshot has no count type.
    """
    if not snapshot.count_type or not snapshot.count_type.strip():
        raise UnknownCountType(snapshot.recordnum)

    warnings: List[CheckWarning] = []
    for rule in rules_for_count_type(snapshot.count_type).values():
        warnings.extend(rule(snapshot))
    return warnings
