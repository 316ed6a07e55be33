"""Parse ISO-8601 period fields into minutes.

Tracker period fields (estimation, "remind before") arrive as ISO-8601
durations. User input maps to them like this:

    "30m"       -> "PT30M"
    "2h"        -> "PT2H"
    "3d"        -> "P3D"
    "1w 2d"     -> "P1W2D"
    "2d 3h 30m" -> "P2DT3H30M"
"""
import logging
import math
import re

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR
MINUTES_PER_WEEK = 7 * MINUTES_PER_DAY

# Zero-length periods that are valid values rather than parse failures
ZERO_PERIODS = {"PT0S", "P0D"}

DATE_PART = re.compile(r"P(?:(\d+)W)?(?:(\d+)D)?")
TIME_PART = re.compile(r"T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


def parse_period(text: str | None) -> int | None:
    """
    Convert a period string of the form P[n]W[n]DT[n]H[n]M[n]S to minutes.

    Weeks and days come before the optional ``T``, hours, minutes and
    seconds after it. Missing components count as zero and seconds are
    rounded to the nearest minute.

    Returns None for empty input, for strings not starting with ``P`` and
    for anything that adds up to zero minutes other than ``PT0S``/``P0D``.
    None means "no period configured"; it is never an error to report.
    """
    if not text:
        return None

    text = text.strip()
    if not text.startswith("P"):
        logger.warning(f"Invalid period format: {text!r}")
        return None

    date_match = DATE_PART.match(text)
    weeks = int(date_match.group(1) or 0)
    days = int(date_match.group(2) or 0)

    hours = minutes = seconds = 0
    if "T" in text:
        time_match = TIME_PART.search(text)
        hours = int(time_match.group(1) or 0)
        minutes = int(time_match.group(2) or 0)
        seconds = int(time_match.group(3) or 0)

    total = (
        weeks * MINUTES_PER_WEEK
        + days * MINUTES_PER_DAY
        + hours * MINUTES_PER_HOUR
        + minutes
        + math.floor(seconds / 60 + 0.5)
    )

    if total == 0 and text not in ZERO_PERIODS:
        logger.warning(f"Failed to parse period or zero duration: {text!r}")
        return None

    logger.debug(f"Parsed period {text!r} = {total} minutes")
    return total


def format_period(weeks: int = 0, days: int = 0, hours: int = 0, minutes: int = 0) -> str:
    """Build the canonical period string for the given components."""
    date_part = ""
    if weeks:
        date_part += f"{weeks}W"
    if days:
        date_part += f"{days}D"

    time_part = ""
    if hours:
        time_part += f"{hours}H"
    if minutes:
        time_part += f"{minutes}M"

    if not date_part and not time_part:
        return "PT0S"
    return "P" + date_part + (f"T{time_part}" if time_part else "")


def describe_minutes(minutes: int) -> str:
    """Human-readable rendering of a minute count, for log messages."""
    if minutes < MINUTES_PER_HOUR:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"

    if minutes < MINUTES_PER_DAY:
        hours, mins = divmod(minutes, MINUTES_PER_HOUR)
        if mins:
            return f"{hours}h {mins}m"
        return f"{hours} hour{'s' if hours != 1 else ''}"

    if minutes < MINUTES_PER_WEEK:
        days, rest = divmod(minutes, MINUTES_PER_DAY)
        hours = rest // MINUTES_PER_HOUR
        if hours:
            return f"{days}d {hours}h"
        return f"{days} day{'s' if days != 1 else ''}"

    weeks, rest = divmod(minutes, MINUTES_PER_WEEK)
    days = rest // MINUTES_PER_DAY
    if days:
        return f"{weeks}w {days}d"
    return f"{weeks} week{'s' if weeks != 1 else ''}"
