"""Partial dates and date ranges: parsing, comparison, validation and formatting."""

import calendar
import logging
import re
from datetime import MAXYEAR, MINYEAR, date as calendar_date

from tree_models import DateOrRange, DateRange, PartialDate

logger = logging.getLogger("familygraph.date_utils")


MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
GEDCOM_MONTHS = {number: name.upper() for name, number in MONTHS.items()}

# Source qualifier tokens mapped to canonical qualifiers.
QUALIFIER_TOKENS = {"abt": "abt", "cal": "cal", "est": "est", "guess": "abt"}

DATE_MESSAGES = {
    "date.abt": "about",
    "date.cal": "calculated",
    "date.est": "estimated",
    "date.between": "between {from} and {to}",
    "date.after": "after {from}",
    "date.before": "before {to}",
}

WIKITREE_DATE_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


# ============================================================================
# Parsing
# ============================================================================

def parse_date_components(
    year: int | None,
    month: int | None,
    day: int | None,
    qualifier: str | None = None,
) -> PartialDate | None:
    """
    Build a PartialDate from structured components where 0 means "absent".
    Returns None if no component is present.
    """
    year = year or None
    month = month if month and 1 <= month <= 12 else None
    day = day if day and 1 <= day <= 31 else None
    if year is None and month is None and day is None:
        return None
    canonical = QUALIFIER_TOKENS.get(qualifier.lower()) if qualifier else None
    return PartialDate(year=year, month=month, day=day, qualifier=canonical)


def parse_wikitree_date(value: str | None, data_status: str | None = None) -> DateOrRange | None:
    """
    Parses a date in the YYYY-MM-DD format returned by WikiTree, where zeros
    mark unknown components. `data_status` turns the date into a range
    ("after", "before") or an approximation ("guess").
    """
    if not value:
        return None
    match = WIKITREE_DATE_PATTERN.match(value)
    if not match:
        logger.debug(f"Keeping unparsable WikiTree date as text: '{value}'")
        return DateOrRange(date=PartialDate(text=value))

    qualifier = data_status if data_status == "guess" else None
    parsed = parse_date_components(
        int(match.group(1)), int(match.group(2)), int(match.group(3)), qualifier
    )
    if parsed is None:
        return None
    if data_status == "after":
        return DateOrRange(date_range=DateRange(from_=parsed))
    if data_status == "before":
        return DateOrRange(date_range=DateRange(to=parsed))
    return DateOrRange(date=parsed)


def parse_decade(decade: str | None) -> DateOrRange | None:
    """A decade literal such as "1990s"; the "unknown" sentinel means absent."""
    if not decade or decade == "unknown":
        return None
    return DateOrRange(date=PartialDate(text=decade))


def _parse_date_tokens(tokens: list[str]) -> PartialDate | None:
    """Parses `[qualifier] [day] [month] [year]` tokens."""
    if not tokens:
        return None
    literal = " ".join(tokens)
    parts = [token.lower() for token in tokens]

    qualifier = None
    if parts[0] in ("abt", "cal", "est"):
        qualifier = parts.pop(0)
    year = month = day = None
    if parts and parts[-1].isdigit():
        year = int(parts.pop())
    if parts and parts[-1] in MONTHS:
        month = MONTHS[parts.pop()]
    if parts and parts[0].isdigit() and 1 <= int(parts[0]) <= 31:
        day = int(parts.pop(0))

    if parts or (year is None and month is None and day is None):
        return PartialDate(text=literal)
    return PartialDate(year=year, month=month, day=day, qualifier=qualifier)


def get_date(gedcom_date: str | None) -> DateOrRange | None:
    """
    Parses a date in GEDCOM format, e.g. "ABT 1 SEP 1990", "BET 1990 AND 1991",
    "AFT 2021" or "BEF MAR 1850". Unparsable input is kept as a text literal.
    """
    if not gedcom_date or not gedcom_date.strip():
        return None
    tokens = gedcom_date.replace("(", " ").replace(")", " ").split()
    lower = [token.lower() for token in tokens]
    first = lower[0]

    result = None
    if first == "bet" and "and" in lower:
        separator = lower.index("and")
        result = _range(tokens[1:separator], tokens[separator + 1:])
    elif first == "from" and "to" in lower[1:]:
        separator = lower.index("to", 1)
        result = _range(tokens[1:separator], tokens[separator + 1:])
    elif first in ("bef", "to"):
        result = _range([], tokens[1:])
    elif first in ("aft", "from"):
        result = _range(tokens[1:], [])
    else:
        parsed = _parse_date_tokens(tokens)
        if parsed is not None and not parsed.has_fields():
            parsed = None
        result = DateOrRange(date=parsed) if parsed else None

    if result is None:
        return DateOrRange(date=PartialDate(text=gedcom_date.strip()))
    return result


def _range(from_tokens: list[str], to_tokens: list[str]) -> DateOrRange | None:
    from_date = _parse_date_tokens(from_tokens)
    to_date = _parse_date_tokens(to_tokens)
    if from_date is None and to_date is None:
        return None
    return DateOrRange(date_range=DateRange(from_=from_date, to=to_date))


# ============================================================================
# Comparison and validity
# ============================================================================

def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def compare_partial_dates(date1: PartialDate | None, date2: PartialDate | None) -> int:
    """
    Compares two partial dates, returning -1, 0 or 1.

    Dates without a year compare as equal. A differing day on otherwise equal
    dates yields the sign of the month difference (0), so days never reorder
    dates that share a month.
    """
    if date1 is None or not date1.year or date2 is None or not date2.year:
        return 0
    if date1.year != date2.year:
        return _sign(date1.year - date2.year)
    if not date1.month or not date2.month:
        return 0
    if date1.month != date2.month:
        return _sign(date1.month - date2.month)
    if date1.day and date2.day and date1.day != date2.day:
        return _sign(date1.month - date2.month)
    return 0


def _comparable_date(date_or_range: DateOrRange | None) -> PartialDate | None:
    if date_or_range is None:
        return None
    if date_or_range.date is not None:
        return date_or_range.date
    if date_or_range.date_range is not None:
        return date_or_range.date_range.from_
    return None


def compare_dates(first: DateOrRange | None, second: DateOrRange | None) -> int:
    """Compares the exact date (or range start) of two dates-or-ranges."""
    return compare_partial_dates(_comparable_date(first), _comparable_date(second))


def is_date_range_closed(date_range: DateRange | None) -> bool:
    return date_range is not None and date_range.from_ is not None and date_range.to is not None


def are_date_ranges_overlapped(range1: DateRange, range2: DateRange) -> bool:
    """True if two closed ranges share at least one point."""
    return (
        compare_partial_dates(range1.from_, range2.to) <= 0
        and compare_partial_dates(range1.to, range2.from_) >= 0
    )


def is_valid_date(date: PartialDate | None) -> bool:
    return date is not None and date.has_fields()


def is_valid_date_range(date_range: DateRange | None) -> bool:
    if date_range is None:
        return False
    if is_date_range_closed(date_range):
        return (
            is_valid_date(date_range.from_)
            and is_valid_date(date_range.to)
            and compare_partial_dates(date_range.from_, date_range.to) <= 0
        )
    return is_valid_date(date_range.from_) or is_valid_date(date_range.to)


def is_valid_date_or_range(date_or_range: DateOrRange | None) -> bool:
    if date_or_range is None:
        return False
    return is_valid_date(date_or_range.date) or is_valid_date_range(date_or_range.date_range)


def is_calendar_year(date: PartialDate | None) -> bool:
    """False when the year cannot be represented as a calendar date."""
    return date is None or not date.year or MINYEAR <= date.year <= MAXYEAR


def to_calendar_date(date: PartialDate) -> calendar_date:
    """Converts a partial date to a calendar date, filling in January and the 1st."""
    year = date.year or MINYEAR
    month = date.month or 1
    day = min(date.day or 1, calendar.monthrange(year, month)[1])
    return calendar_date(year, month, day)


# ============================================================================
# Formatting
# ============================================================================

def _message(message_id: str, messages: dict[str, str] | None, default: str | None = None) -> str:
    if messages and message_id in messages:
        return messages[message_id]
    return DATE_MESSAGES.get(message_id, default if default is not None else message_id)


def format_date_qualifier(qualifier: str, messages: dict[str, str] | None = None) -> str:
    qualifier = qualifier.lower()
    return _message(f"date.{qualifier}", messages, qualifier)


def format_date(date: PartialDate, messages: dict[str, str] | None = None) -> str:
    """Formats a partial date showing only the known components, e.g. "about September 1990"."""
    if not date.has_fields():
        return date.text or ""

    month_name = calendar.month_name[date.month] if date.month else None
    if month_name and date.day and date.year is not None:
        formatted = f"{month_name} {date.day}, {date.year}"
    elif month_name and date.day:
        formatted = f"{month_name} {date.day}"
    else:
        formatted = " ".join(
            str(part) for part in (date.day, month_name, date.year) if part is not None
        )

    if date.qualifier:
        return f"{format_date_qualifier(date.qualifier, messages)} {formatted}"
    return formatted


def format_date_range(date_range: DateRange, messages: dict[str, str] | None = None) -> str:
    from_text = format_date(date_range.from_, messages) if date_range.from_ else ""
    to_text = format_date(date_range.to, messages) if date_range.to else ""
    if from_text and to_text:
        return _message("date.between", messages).format(**{"from": from_text, "to": to_text})
    if from_text:
        return _message("date.after", messages).format(**{"from": from_text})
    if to_text:
        return _message("date.before", messages).format(to=to_text)
    return ""


def format_date_or_range(date_or_range: DateOrRange | None, messages: dict[str, str] | None = None) -> str:
    if date_or_range is None:
        return ""
    if date_or_range.date is not None:
        return format_date(date_or_range.date, messages)
    if date_or_range.date_range is not None:
        return format_date_range(date_or_range.date_range, messages)
    return ""


def translate_date(gedcom_date: str, messages: dict[str, str] | None = None) -> str:
    """Formats a date given in GEDCOM format."""
    return format_date_or_range(get_date(gedcom_date), messages)


# ============================================================================
# GEDCOM serialization
# ============================================================================

def date_to_gedcom(date: PartialDate) -> str:
    if not date.has_fields():
        return date.text or ""
    parts = [
        date.qualifier.upper() if date.qualifier else None,
        str(date.day) if date.day else None,
        GEDCOM_MONTHS.get(date.month) if date.month else None,
        str(date.year) if date.year is not None else None,
    ]
    return " ".join(part for part in parts if part)


def date_or_range_to_gedcom(date_or_range: DateOrRange) -> str:
    if date_or_range.date is not None:
        return date_to_gedcom(date_or_range.date)
    date_range = date_or_range.date_range
    if date_range is None:
        return ""
    if date_range.from_ is not None and date_range.to is not None:
        return f"BET {date_to_gedcom(date_range.from_)} AND {date_to_gedcom(date_range.to)}"
    if date_range.from_ is not None:
        return f"AFT {date_to_gedcom(date_range.from_)}"
    if date_range.to is not None:
        return f"BEF {date_to_gedcom(date_range.to)}"
    return ""
