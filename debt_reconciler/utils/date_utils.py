"""Date parsing and cutoff utilities"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from openpyxl.utils.datetime import from_excel

_MDY_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DMY_DOTTED_PATTERN = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_YMD_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")

# Serial 1 = 1900-01-01, 60000 = 2064-04-08; anything outside is not a date
_EXCEL_SERIAL_MIN = 1
_EXCEL_SERIAL_MAX = 60000


def parse_excel_serial(serial: float) -> Optional[date]:
    """Convert a spreadsheet date serial to a date, None when out of range"""
    if not _EXCEL_SERIAL_MIN <= serial <= _EXCEL_SERIAL_MAX:
        return None
    return from_excel(serial).date()


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a spreadsheet cell or string into a date.

    Supports:
    - date / datetime objects (openpyxl returns these for date-formatted cells)
    - spreadsheet serial numbers, numeric or as strings
    - MM/DD/YYYY, DD.MM.YYYY, YYYY-MM-DD and ISO datetimes (YYYY-MM-DDTHH:MM:SS)

    Returns None when the value cannot be read as a date.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, Decimal)):
        return parse_excel_serial(float(value))

    text = str(value).strip()
    if not text:
        return None

    try:
        return parse_excel_serial(float(text))
    except ValueError:
        pass

    try:
        match = _MDY_PATTERN.match(text)
        if match:
            month, day, year = (int(g) for g in match.groups())
            return date(year, month, day)

        match = _DMY_DOTTED_PATTERN.match(text)
        if match:
            day, month, year = (int(g) for g in match.groups())
            return date(year, month, day)

        match = _YMD_PATTERN.match(text)
        if match:
            year, month, day = (int(g) for g in match.groups())
            return date(year, month, day)
    except ValueError:
        # Matched the shape but not a real calendar date (e.g. 13/45/2025)
        return None

    return None


def format_date(value: date) -> str:
    """Format date as YYYY-MM-DD"""
    return value.isoformat()


def is_after_cutoff(value: date, cutoff: date) -> bool:
    """Strictly after the cutoff date; the cutoff day itself is historical"""
    return value > cutoff


def utc_now() -> datetime:
    """Naive UTC timestamp, comparable with values read back from the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
