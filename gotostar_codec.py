# File: gotostar_codec.py
"""
Fixed-width sexagesimal codec for the GotoStar controller.

The controller speaks a small LX200 dialect with rigid field widths:

    s[D]DD*MM:SS#    signed degrees (altitude, declination, latitude, longitude)
    HH:MM:SS.S#      hours (right ascension)
    HH:MM:SS#        clock times (sidereal and local time)
    EHH# / WHH#      UTC offset, West negative

All functions here are pure: no state, no I/O, no logging. Malformed input
raises ValueError; callers turn that into a ProtocolError.

Example:
    >>> parse_signed_dms('+45*30:00#')
    45.5
    >>> format_signed_dms(-73.5, wide=True)
    '-073*30:00'
"""

import math
import re

# Sidereal rate expressed in degrees per second
SIDEREAL_RATE = 360.0 / (24.0 * 60.0 * 60.0)

# Guide rate code -> fraction of the sidereal rate
GUIDE_RATE_FACTORS = {
    '0': 1.0,
    '1': 0.8,
    '2': 0.6,
    '3': 0.4,
}

MIN_DMS_LENGTH = 10
HMS_LENGTH = 11

_DMS_PATTERN = re.compile(r'([+\- ]?)(\d{2,3})\*(\d{2}):(\d{2})#')
_HMS_PATTERN = re.compile(r'(\d{2}):(\d{2}):(\d{2}\.\d)#')
_CLOCK_PATTERN = re.compile(r'(\d{1,2}):(\d{2}):(\d{2}(?:\.\d+)?)')
_UTC_OFFSET_PATTERN = re.compile(r'([EW]) ?(\d{2})')


def parse_signed_dms(dms_str: str) -> float:
    """
    Convert a controller DMS reply to decimal degrees.

    Args:
        dms_str: Reply such as "+45*30:00#" or "-073*30:00#"

    Returns:
        float: Decimal degrees, negative when the sign is '-'

    Raises:
        TypeError: If dms_str is not a string
        ValueError: If the reply is shorter than 10 characters or the
            '*', ':' or '#' literals are missing or misplaced

    Examples:
        "+45*30:00#" -> 45.5
        "-12*34:48#" -> -12.58
        " 123*45:00#" -> 123.75
    """
    if not isinstance(dms_str, str):
        raise TypeError(f"DMS input must be string, got {type(dms_str)}")

    if len(dms_str) < MIN_DMS_LENGTH:
        raise ValueError(f"DMS reply too short: '{dms_str}'")

    match = _DMS_PATTERN.match(dms_str)
    if not match:
        raise ValueError(f"Invalid DMS format: '{dms_str}'")

    sign, degrees, minutes, seconds = match.groups()
    result = int(degrees) + int(minutes) / 60.0 + int(seconds) / 3600.0
    return -result if sign == '-' else result


def parse_time_hms(hms_str: str) -> float:
    """
    Convert a controller HMS reply to decimal hours.

    The reply is exactly 11 characters, "HH:MM:SS.S#". The seconds field
    always uses a decimal point, whatever the host locale.

    Args:
        hms_str: Reply such as "12:30:15.5#"

    Returns:
        float: Decimal hours

    Raises:
        TypeError: If hms_str is not a string
        ValueError: If the length is not 11 or the literals are misplaced

    Examples:
        "12:30:15.5#" -> 12.504305...
        "00:00:00.0#" -> 0.0
    """
    if not isinstance(hms_str, str):
        raise TypeError(f"HMS input must be string, got {type(hms_str)}")

    if len(hms_str) != HMS_LENGTH:
        raise ValueError(f"HMS reply must be {HMS_LENGTH} characters: '{hms_str}'")

    match = _HMS_PATTERN.fullmatch(hms_str)
    if not match:
        raise ValueError(f"Invalid HMS format: '{hms_str}'")

    hours, minutes, seconds = match.groups()
    return int(hours) + int(minutes) / 60.0 + float(seconds) / 3600.0


def parse_clock_time(time_str: str) -> float:
    """
    Convert a sidereal or local time reply to decimal hours.

    Accepts "HH:MM:SS#" as well as "HH:MM:SS.S#".

    Raises:
        ValueError: If the reply does not start with a clock time
    """
    if not isinstance(time_str, str):
        raise TypeError(f"Time input must be string, got {type(time_str)}")

    match = _CLOCK_PATTERN.match(time_str.strip())
    if not match:
        raise ValueError(f"Invalid time format: '{time_str}'")

    hours, minutes, seconds = match.groups()
    return int(hours) + int(minutes) / 60.0 + float(seconds) / 3600.0


def format_signed_dms(degrees: float, wide: bool = False) -> str:
    """
    Convert decimal degrees to the controller's DMS field.

    Degrees and minutes are truncated, seconds are rounded. Non-negative
    values get a leading space, negative values a '-'.

    Args:
        degrees: Decimal degrees
        wide: Use a 3-digit degree field (longitude) instead of 2 digits

    Returns:
        str: Field such as " 45*30:00" or "-073*30:00" (no terminator)

    Raises:
        ValueError: If degrees is NaN or infinite
    """
    if not isinstance(degrees, (int, float)):
        raise ValueError(f"Degrees must be numeric, got {type(degrees)}")

    if math.isnan(degrees) or math.isinf(degrees):
        raise ValueError(f"Degrees cannot be NaN or infinite: {degrees}")

    sign = '-' if degrees < 0 else ' '
    value = abs(degrees)

    deg = int(value)
    minutes = int((value - deg) * 60)
    seconds = round((value - deg - minutes / 60.0) * 3600)

    # Rounding may push seconds to 60
    if seconds >= 60:
        seconds -= 60
        minutes += 1
    if minutes >= 60:
        minutes -= 60
        deg += 1

    width = 3 if wide else 2
    return f"{sign}{deg:0{width}d}*{minutes:02d}:{seconds:02d}"


def parse_utc_offset(offset_str: str) -> int:
    """
    Convert a ":GG#" reply to a signed hour offset.

    Args:
        offset_str: Reply such as "E01#" or "W05#"

    Returns:
        int: Offset in hours, West negative

    Raises:
        ValueError: If the reply does not start with E/W and two digits
    """
    if not isinstance(offset_str, str):
        raise TypeError(f"UTC offset input must be string, got {type(offset_str)}")

    match = _UTC_OFFSET_PATTERN.match(offset_str)
    if not match:
        raise ValueError(f"Invalid UTC offset format: '{offset_str}'")

    side, hours = match.groups()
    offset = int(hours)
    return -offset if side == 'W' else offset


def format_utc_offset(hours: int) -> str:
    """Convert an hour offset to the ":SG" argument, e.g. 5 -> "+05", -3 -> "-03"."""
    if not isinstance(hours, int) or isinstance(hours, bool):
        raise ValueError(f"UTC offset must be an integer, got {type(hours)}")
    if abs(hours) > 99:
        raise ValueError(f"UTC offset does not fit two digits: {hours}")

    sign = '+' if hours > 0 else '-'
    return f"{sign}{abs(hours):02d}"


def guide_rate_to_code(rate: float) -> str:
    """
    Map a guide rate in degrees/second to the nearest controller code.

    The controller only knows 1.0, 0.8, 0.6 and 0.4 times sidereal. The
    thresholds are applied to the factor, not to the raw rate:

        factor > 0.9          -> '0' (1.0)
        0.7 < factor <= 0.9   -> '1' (0.8)
        0.5 < factor <= 0.7   -> '2' (0.6)
        factor <= 0.5         -> '3' (0.4)

    Raises:
        ValueError: If rate is negative, NaN or infinite
    """
    if math.isnan(rate) or math.isinf(rate) or rate < 0:
        raise ValueError(f"Guide rate must be a finite non-negative number: {rate}")

    factor = rate / SIDEREAL_RATE
    if factor > 0.9:
        return '0'
    elif factor > 0.7:
        return '1'
    elif factor > 0.5:
        return '2'
    return '3'


def code_to_guide_rate(code: str) -> float:
    """
    Map a ":GGS#" reply code to a guide rate in degrees/second.

    Raises:
        ValueError: If the code is not one of '0'..'3'
    """
    factor = GUIDE_RATE_FACTORS.get(code.rstrip('#').strip())
    if factor is None:
        raise ValueError(f"Unknown guide rate code: '{code}'")
    return factor * SIDEREAL_RATE
