"""
Tests for time binning, vehicle classes, speed ranges and aggregation
"""
from datetime import date, datetime, time

import numpy as np
import pandas as pd
import pytest

from tcount.analysis.counts import (
    CLASS_FIELDS,
    HOUR_COLUMNS,
    BinKey,
    CountedVehicle,
    InvalidSpeed,
    InvalidVehicleClass,
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
from tcount.analysis.metadata import Direction


# ---------------------------------------------------------------------------
# Time binning
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, expected", [
    (time(10, 0, 0), time(10, 0)),
    (time(10, 14, 0), time(10, 0)),
    (time(10, 25, 0), time(10, 15)),
    (time(10, 29, 0), time(10, 15)),
    (time(10, 31, 0), time(10, 30)),
    (time(10, 44, 0), time(10, 30)),
    (time(10, 45, 0), time(10, 45)),
    (time(10, 59, 0), time(10, 45)),
    (time(10, 59, 59), time(10, 45)),
    (time(23, 59, 59, 999999), time(23, 45)),
])
def test_time_bin(raw, expected):
    """Test times are floored to the quarter hour with seconds zeroed"""
    assert time_bin(raw) == expected


def test_time_bin_never_changes_hour():
    for minute in range(60):
        assert time_bin(time(7, minute, 30)).hour == 7


# ---------------------------------------------------------------------------
# Vehicle classes
# ---------------------------------------------------------------------------

def test_vehicle_class_from_0_to_14_ok():
    for code in range(15):
        VehicleClass.from_num(code)


def test_vehicle_class_0_and_14_are_unclassified():
    assert VehicleClass.from_num(0) is VehicleClass.UNCLASSIFIED
    assert VehicleClass.from_num(14) is VehicleClass.UNCLASSIFIED


def test_vehicle_class_1_to_13_keep_their_number():
    for code in range(1, 14):
        assert VehicleClass.from_num(code).value == code


@pytest.mark.parametrize("code", [15, -1, 99, 2.0, "2", None, True])
def test_vehicle_class_from_bad_num_errs(code):
    with pytest.raises(InvalidVehicleClass):
        VehicleClass.from_num(code)


def test_vehicle_class_accepts_numpy_ints():
    assert VehicleClass.from_num(np.int64(9)) is VehicleClass.FIVE_AXLE_SINGLE_TRAILER_TRUCKS


def test_vehicle_class_fields():
    assert VehicleClass.MOTORCYCLES.field == "c1"
    assert VehicleClass.UNCLASSIFIED.field == "c15"
    assert "c14" not in CLASS_FIELDS
    assert len(CLASS_FIELDS) == 14


# ---------------------------------------------------------------------------
# Speed ranges
# ---------------------------------------------------------------------------

def test_speed_binning_is_correct():
    """Test every range boundary lands in the lower range"""
    speed_count = SpeedRangeCount(123, Direction.WEST)

    with pytest.raises(InvalidSpeed):
        speed_count.insert(-0.1)
    with pytest.raises(InvalidSpeed):
        speed_count.insert(-0.0)

    speeds = [
        0.0, 0.1, 15.0,  # s1
        15.1, 20.0,
        20.1, 25.0,
        25.1, 30.0,
        30.1, 35.0,
        35.1, 40.0,
        40.1, 45.0,
        45.1, 50.0,
        50.1, 55.0,
        55.1, 60.0,
        60.1, 65.0,
        65.1, 70.0,
        70.1, 75.0,  # s13
        75.1, 100.0, 120.0,  # s14
    ]
    for speed in speeds:
        speed_count.insert(speed)

    assert speed_count.s1 == 3
    for n in range(2, 14):
        assert getattr(speed_count, f"s{n}") == 2
    assert speed_count.s14 == 3
    assert speed_count.total == 30


def test_rejected_speed_counts_nothing():
    speed_count = SpeedRangeCount(123, Direction.WEST)
    with pytest.raises(InvalidSpeed):
        speed_count.insert(float("nan"))
    assert speed_count.total == 0


def test_speed_just_over_boundary():
    assert SpeedRange.from_speed(15.05) is SpeedRange.S2
    assert SpeedRange.from_speed(75.0) is SpeedRange.S13
    assert SpeedRange.from_speed(75.01) is SpeedRange.S14


def test_speed_range_labels():
    assert SpeedRange.S1.label == "0-15"
    assert SpeedRange.S2.label == ">15-20"
    assert SpeedRange.S13.label == ">70-75"
    assert SpeedRange.S14.label == ">75"


# ---------------------------------------------------------------------------
# Per-bucket class counts
# ---------------------------------------------------------------------------

def test_unclassified_is_also_counted_as_class_2():
    count = VehicleClassCount(166905, Direction.EAST)
    count.insert(VehicleClass.from_num(0))

    assert count.c2 == 1
    assert count.c15 == 1
    assert count.total == 1


def test_classified_vehicle_counted_once():
    count = VehicleClassCount(166905, Direction.EAST)
    count.insert(VehicleClass.BUSES)
    count.insert(VehicleClass.BUSES)

    assert count.c4 == 2
    assert count.total == 2
    assert count.c2 == 0


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def test_aggregation_buckets(metadata, sample_vehicles):
    """Test vehicles land in (15-minute bin, channel) buckets"""
    result = create_speed_and_class_count(metadata, sample_vehicles)

    assert result.errors == []
    assert set(result.class_counts) == set(result.speed_counts)
    assert len(result.class_counts) == 4

    key = BinKey(datetime(2024, 6, 4, 10, 45), 1)
    east = result.class_counts[key]
    assert east.direction is Direction.EAST
    assert (east.c2, east.c15, east.total) == (2, 1, 2)

    speeds = result.speed_counts[key]
    assert (speeds.s4, speeds.s5, speeds.total) == (1, 1, 2)

    west = result.class_counts[BinKey(datetime(2024, 6, 4, 11, 0), 2)]
    assert west.direction is Direction.WEST
    assert (west.c2, west.c15, west.total) == (1, 1, 1)


def test_aggregation_total_matches_accepted_vehicles(metadata, sample_vehicles):
    result = create_speed_and_class_count(metadata, sample_vehicles)

    class_total = sum(c.total for c in result.class_counts.values())
    speed_total = sum(c.total for c in result.speed_counts.values())
    assert class_total == speed_total == len(sample_vehicles)


def test_aggregation_skips_bad_records(metadata):
    day = date(2024, 6, 4)
    vehicles = [
        CountedVehicle(day, time(8, 1), 1, 2, 30.0),
        CountedVehicle(day, time(8, 2), 3, 2, 30.0),   # no such channel
        CountedVehicle(day, time(8, 3), 1, 15, 30.0),  # bad class
        CountedVehicle(day, time(8, 4), 2, 2, -4.0),   # bad speed
        CountedVehicle(day, time(8, 5), 2, 3, 31.0),
    ]

    result = create_speed_and_class_count(metadata, vehicles)

    assert [e.index for e in result.errors] == [1, 2, 3]
    assert "channel" in result.errors[0].reason
    assert result.errors[1].reason == "no such vehicle class '15'"
    assert result.errors[2].reason == "invalid speed '-4.0'"
    assert result.errors[1].vehicle == vehicles[2]
    assert sum(c.total for c in result.class_counts.values()) == 2


def test_bad_speed_leaves_no_class_count(metadata):
    """Test a rejected speed does not create a class bucket either"""
    vehicles = [CountedVehicle(date(2024, 6, 4), time(9, 0), 1, 2, float("nan"))]

    result = create_speed_and_class_count(metadata, vehicles)

    assert len(result.errors) == 1
    assert result.class_counts == {}
    assert result.speed_counts == {}


def test_one_way_count_rejects_channel_2(one_way_metadata):
    vehicles = [
        CountedVehicle(date(2024, 6, 4), time(9, 0), 1, 2, 30.0),
        CountedVehicle(date(2024, 6, 4), time(9, 1), 2, 2, 30.0),
    ]

    result = create_speed_and_class_count(one_way_metadata, vehicles)

    assert len(result.errors) == 1
    assert [k.channel for k in result.class_counts] == [1]


def test_empty_input(metadata):
    result = create_speed_and_class_count(metadata, [])
    assert result.class_counts == {}
    assert result.speed_counts == {}
    assert result.errors == []


# ---------------------------------------------------------------------------
# DataFrame views
# ---------------------------------------------------------------------------

def test_class_counts_frame(metadata, sample_vehicles):
    result = create_speed_and_class_count(metadata, sample_vehicles)
    df = class_counts_frame(result.class_counts)

    assert list(df.columns[:5]) == ["recordnum", "countdate", "counttime", "countlane", "ctdir"]
    assert len(df) == 4
    first = df.iloc[0]
    assert first["countdate"] == date(2024, 6, 4)
    assert first["counttime"] == time(10, 45)
    assert first["countlane"] == 1
    assert first["ctdir"] == "east"
    assert df["total"].sum() == 5


def test_speed_counts_frame_sorted_by_time_then_lane(metadata, sample_vehicles):
    result = create_speed_and_class_count(metadata, sample_vehicles)
    df = speed_counts_frame(result.speed_counts)

    assert list(zip(df["counttime"], df["countlane"])) == [
        (time(10, 45), 1), (time(10, 45), 2), (time(11, 0), 1), (time(11, 0), 2),
    ]


def test_hourly_volume(metadata, sample_vehicles):
    result = create_speed_and_class_count(metadata, sample_vehicles)
    df = hourly_volume(result.class_counts)

    assert list(df.columns) == ["recordnum", "countdate", "cntdir", "totalcount"] + HOUR_COLUMNS
    assert list(df["cntdir"]) == ["east", "west"]

    east = df.iloc[0]
    assert east["totalcount"] == 3
    assert east["am10"] == 2
    assert east["am11"] == 1
    assert pd.isna(east["am9"])

    west = df.iloc[1]
    assert west["totalcount"] == 2


def test_hourly_volume_sums_lanes_in_same_direction():
    from tcount.analysis.metadata import CountMetadata, Directions

    same_way = CountMetadata("rc", 1, Directions(Direction.EAST, Direction.EAST), 1)
    vehicles = [
        CountedVehicle(date(2024, 6, 4), time(13, 5), 1, 2, 30.0),
        CountedVehicle(date(2024, 6, 4), time(13, 40), 2, 2, 30.0),
    ]

    df = hourly_volume(create_speed_and_class_count(same_way, vehicles).class_counts)

    assert len(df) == 1
    assert df.iloc[0]["pm1"] == 2


def test_hourly_volume_empty():
    df = hourly_volume({})
    assert df.empty
    assert "totalcount" in df.columns
