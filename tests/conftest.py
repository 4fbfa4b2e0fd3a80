import logging
from datetime import date, time
from pathlib import Path

import pytest

from tcount.analysis.counts import CountedVehicle
from tcount.analysis.metadata import CountMetadata, Direction, Directions
from tcount.data.manager import init_db


VEHICLE_FILE_PREAMBLE = [
    "Counter: 40972",
    "Site: Sample Rd",
    "Operator: rc",
    "Veh. No.,Date,Time,Channel,Class,Speed",
]


@pytest.fixture
def metadata():
    """Two-direction count: channel 1 east, channel 2 west"""
    return CountMetadata(
        technician="rc",
        recordnum=166905,
        directions=Directions(Direction.EAST, Direction.WEST),
        counter_id=40972,
        speed_limit=35,
    )


@pytest.fixture
def one_way_metadata():
    """Single-direction count: channel 1 north only"""
    return CountMetadata(
        technician="rc",
        recordnum=166906,
        directions=Directions(Direction.NORTH),
        counter_id=40973,
    )


@pytest.fixture
def sample_vehicles():
    """Vehicles spread over two 15-minute bins and both channels"""
    day = date(2024, 6, 4)
    return [
        CountedVehicle(day, time(10, 55, 3), 1, 2, 34.5),
        CountedVehicle(day, time(10, 58, 40), 1, 0, 29.0),
        CountedVehicle(day, time(10, 59, 59), 2, 5, 41.2),
        CountedVehicle(day, time(11, 2, 10), 1, 9, 52.0),
        CountedVehicle(day, time(11, 14, 0), 2, 14, 15.0),
    ]


@pytest.fixture
def db_path(tmp_path):
    """Initialised, empty count database"""
    path = tmp_path / "counts.db"
    init_db(path)
    return path


@pytest.fixture
def write_vehicle_file(tmp_path):
    """Write an individual-vehicle file below ``<tmp>/data/vehicles/``"""
    def _write(name="rc-166905-ew-40972-35.csv", rows=None, directory="vehicles"):
        target_dir = tmp_path / "data" / directory
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        lines = VEHICLE_FILE_PREAMBLE + list(rows or [])
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write


@pytest.fixture
def sample_rows():
    """Raw rows matching ``sample_vehicles``"""
    return [
        "1,6/4/2024,10:55:03 AM,1,2,34.5",
        "2,6/4/2024,10:58:40 AM,1,0,29.0",
        "3,6/4/2024,10:59:59 AM,2,5,41.2",
        "4,6/4/2024,11:02:10 AM,1,9,52.0",
        "5,6/4/2024,11:14:00 AM,2,14,15.0",
    ]


@pytest.fixture
def data_dir(tmp_path) -> Path:
    return tmp_path / "data"


@pytest.fixture(autouse=True)
def reset_tcount_logger():
    """Undo handlers installed by ``configure_logging`` so caplog keeps working"""
    yield
    logger = logging.getLogger("tcount")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
