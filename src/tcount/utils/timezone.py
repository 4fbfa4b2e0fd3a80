"""Local time zone for import log timestamps."""

import logging
from datetime import datetime
from typing import Optional

import pytz
from pytz import BaseTzInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "US/Eastern"


def resolve_timezone(tz_string: Optional[str]) -> BaseTzInfo:
    """Look up the count office's time zone.

    An unset name means :data:`DEFAULT_TIMEZONE`.  An unknown name is
    logged and also replaced by the default, so a typo in
    ``TCOUNT_TIMEZONE`` never stops an import.

    Args:
        tz_string: IANA name, e.g. ``'America/New_York'``.

    Returns:
        pytz time zone.
    """
    if not tz_string:
        return pytz.timezone(DEFAULT_TIMEZONE)

    try:
        return pytz.timezone(tz_string)
    except pytz.UnknownTimeZoneError:
        logger.warning(
            f"Unknown timezone '{tz_string}'; using {DEFAULT_TIMEZONE}.",
            extra={"timezone": tz_string},
        )
        return pytz.timezone(DEFAULT_TIMEZONE)


def local_now(tz_string: Optional[str] = None) -> datetime:
    """Current wall-clock time in *tz_string*, timezone-aware, to the second."""
    return datetime.now(resolve_timezone(tz_string)).replace(microsecond=0)
