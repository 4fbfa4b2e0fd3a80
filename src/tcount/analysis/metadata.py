"""
Count Metadata (Functional Core)

Directions, count types, and the metadata carried in a count's filename.
No file access: paths are only inspected for their name and parent
directory.

Package Location: src/tcount/analysis/metadata.py

Filename Convention:
    Each field is separated by a dash::

        technician-recordnum-directions-counter_id-speed_limit.txt
        e.g. rc-166905-ew-40972-35.txt

    The first direction letter belongs to channel 1, the second (if any)
    to channel 2.  A speed limit of ``na`` means none was posted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union


class FileNameProblem(Enum):
    """What was wrong with a count's filename."""

    TOO_MANY_PARTS = "too many parts"
    TOO_FEW_PARTS = "too few parts"
    INVALID_TECH = "invalid technician"
    INVALID_RECORD_NUM = "invalid record number"
    INVALID_DIRECTIONS = "invalid directions"
    INVALID_COUNTER_ID = "invalid counter id"
    INVALID_SPEED_LIMIT = "invalid speed limit"


class InvalidFileName(ValueError):
    """Raised when a filename does not follow the metadata convention."""

    def __init__(self, problem: FileNameProblem, path: Union[str, Path]):
        self.problem = problem
        self.path = Path(path)
        super().__init__(
            f"the filename at {self.path} does not follow the naming convention: {problem.value}"
        )


class BadLocation(ValueError):
    """Raised when a file's directory does not name a known count type."""


class Direction(Enum):
    """The direction of a lane."""

    NORTH = "north"
    EAST = "east"
    SOUTH = "south"
    WEST = "west"

    @classmethod
    def from_string(cls, value: str) -> "Direction":
        """Parse a stored direction (``'north'``, ``'North'``, ``'n'``...)."""
        text = value.strip().lower()
        for direction in cls:
            if text in (direction.value, direction.value[0]):
                return direction
        raise ValueError(f"no such direction '{value}'")

    def __str__(self) -> str:
        return self.value.capitalize()


_DIRECTION_LETTERS: Dict[str, Direction] = {d.value[0]: d for d in Direction}


@dataclass(frozen=True)
class Directions:
    """The one or two directions a count covers."""

    direction1: Direction
    direction2: Optional[Direction] = None

    @classmethod
    def from_code(cls, code: str) -> "Directions":
        """Build from a filename code such as ``'ew'``, ``'nn'`` or ``'s'``.

        Raises:
            ValueError: When the code is not one or two direction letters
                describing a single road axis.
        """
        letters = [_DIRECTION_LETTERS.get(ch) for ch in code.lower()]
        if not 1 <= len(letters) <= 2 or None in letters:
            raise ValueError(f"invalid directions code '{code}'")
        if len(letters) == 2:
            axis = {frozenset("ns"), frozenset("ew")}
            pair = frozenset(code.lower())
            if len(pair) == 2 and pair not in axis:
                raise ValueError(f"invalid directions code '{code}'")
            return cls(letters[0], letters[1])
        return cls(letters[0])


class CountType(Enum):
    """Kind of count, as identified by the directory a file sits in."""

    FIFTEEN_MINUTE_BICYCLE = "15minutebicycle"        # Eco-Counter
    FIFTEEN_MINUTE_PEDESTRIAN = "15minutepedestrian"  # Eco-Counter
    FIFTEEN_MINUTE_VEHICLE = "15minutevehicle"        # pre-binned volume
    INDIVIDUAL_VEHICLE = "vehicles"                   # raw per-vehicle records

    @classmethod
    def from_location(cls, path: Union[str, Path]) -> "CountType":
        """Determine the count type from the directory immediately above *path*.

        Raises:
            BadLocation: When the directory name is not a known count type.
        """
        parent = Path(path).parent.name.lower()
        for count_type in cls:
            if count_type.value == parent:
                return count_type
        raise BadLocation(f"no matching count type for directory `{parent}`")


@dataclass(frozen=True)
class CountMetadata:
    """The metadata of a count.

    Immutable once derived.  Only ``directions`` takes part in aggregation,
    through :meth:`channel_directions`.
    """

    technician: str
    recordnum: int
    directions: Directions
    counter_id: int
    speed_limit: Optional[int] = None

    def channel_directions(self) -> Dict[int, Direction]:
        """Return the channel → direction lookup for this count.

        Channel 2 is only present when a second direction was configured.
        """
        mapping = {1: self.directions.direction1}
        if self.directions.direction2 is not None:
            mapping[2] = self.directions.direction2
        return mapping

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "CountMetadata":
        """Get a count's metadata from its filename.

        Args:
            path: Path to the count file; only its stem is read.

        Returns:
            Parsed :class:`CountMetadata`.

        Raises:
            InvalidFileName: With the :class:`FileNameProblem` found first.
        """
        path = Path(path)
        parts = path.stem.split("-")

        if len(parts) < 5:
            raise InvalidFileName(FileNameProblem.TOO_FEW_PARTS, path)
        if len(parts) > 5:
            raise InvalidFileName(FileNameProblem.TOO_MANY_PARTS, path)

        # Technician is initials; anything parseable as an int is not.
        if _parse_int(parts[0]) is not None or not parts[0]:
            raise InvalidFileName(FileNameProblem.INVALID_TECH, path)

        recordnum = _parse_int(parts[1])
        if recordnum is None:
            raise InvalidFileName(FileNameProblem.INVALID_RECORD_NUM, path)

        try:
            directions = Directions.from_code(parts[2])
        except ValueError:
            raise InvalidFileName(FileNameProblem.INVALID_DIRECTIONS, path)

        counter_id = _parse_int(parts[3])
        if counter_id is None:
            raise InvalidFileName(FileNameProblem.INVALID_COUNTER_ID, path)

        if parts[4] == "na":
            speed_limit = None
        else:
            speed_limit = _parse_int(parts[4])
            if speed_limit is None:
                raise InvalidFileName(FileNameProblem.INVALID_SPEED_LIMIT, path)

        return cls(
            technician=parts[0],
            recordnum=recordnum,
            directions=directions,
            counter_id=counter_id,
            speed_limit=speed_limit,
        )


def _parse_int(text: str) -> Optional[int]:
    try:
        return int(text)
    except ValueError:
        return None
