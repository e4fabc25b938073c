"""
Time Utilities

Observation timestamps are Modified Julian Dates (MJD) held as floats.
These helpers convert between MJD, datetimes and the whole/fraction Julian
date pairs expected by the sgp4 library.
"""

import math
from datetime import datetime, timezone, timedelta
from typing import Tuple

from sgp4.api import jday

from config import SECONDS_PER_DAY

# JD = MJD + MJD_OFFSET
MJD_OFFSET = 2400000.5

# sgp4init counts epoch days from 1949 December 31 00:00 UT (JD 2433281.5)
SGP4_EPOCH_MJD = 33281.0

MJD_ORIGIN = datetime(1858, 11, 17, tzinfo=timezone.utc)


def datetime_to_mjd(dt: datetime) -> float:
    """
    Convert a datetime to a Modified Julian Date.

    Naive datetimes are taken to be UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    jd, fr = jday(
        dt.year, dt.month, dt.day,
        dt.hour, dt.minute, dt.second + dt.microsecond / 1e6,
    )
    return (jd - MJD_OFFSET) + fr


def mjd_to_datetime(mjd: float) -> datetime:
    """Convert a Modified Julian Date to a timezone aware UTC datetime."""
    return MJD_ORIGIN + timedelta(days=mjd)


def mjd_to_jd_fr(mjd: float) -> Tuple[float, float]:
    """
    Split a Modified Julian Date into the (jd, fr) pair used by Satrec.sgp4.

    Keeping the whole and fractional day apart preserves sub-millisecond
    resolution in the time since epoch computed by SGP4.
    """
    whole = math.floor(mjd)
    return MJD_OFFSET + whole, mjd - whole


def offset_seconds(mjd: float, reference_mjd: float) -> float:
    """Offset of one date relative to another in seconds."""
    return (mjd - reference_mjd) * SECONDS_PER_DAY
