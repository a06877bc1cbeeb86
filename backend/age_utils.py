"""Age at death derived from birth and death dates or date ranges."""

import logging

from date_utils import (
    are_date_ranges_overlapped,
    compare_dates,
    format_date_qualifier,
    get_date,
    is_calendar_year,
    is_date_range_closed,
    is_valid_date_or_range,
    to_calendar_date,
)
from tree_models import DateOrRange, GedcomData, PartialDate

logger = logging.getLogger("familygraph.age_utils")


BIRTH_EVENT_TAGS = ["BIRT"]
DEATH_EVENT_TAGS = ["DEAT"]

AGE_MESSAGES = {
    "age.years.zero": "Less than 1 year",
    "age.years.one": "1 year",
    "age.years.other": "{age} years",
    "age.exact": "{qualifier}{years}",
    "age.more": "More than {years}",
    "age.less": "Less than {years}",
    "age.between": "Between {ageFrom} and {years}",
}


def _message(message_id: str, messages: dict[str, str] | None) -> str:
    if messages and message_id in messages:
        return messages[message_id]
    return AGE_MESSAGES[message_id]


def _plural_years(age: int, messages: dict[str, str] | None, zero: str | None = None) -> str:
    if age == 0 and zero is not None:
        return zero
    if age == 1:
        return _message("age.years.one", messages)
    return _message("age.years.other", messages).format(age=age)


def years_between(first: PartialDate, second: PartialDate) -> int:
    """Number of whole anniversaries between two dates, regardless of order."""
    start = to_calendar_date(first)
    end = to_calendar_date(second)
    if end < start:
        start, end = end, start
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def format_exact_age(birth: PartialDate, death: PartialDate, messages: dict[str, str] | None = None) -> str:
    age = years_between(birth, death)
    qualifier = birth.qualifier or death.qualifier
    prefix = f"{format_date_qualifier(qualifier, messages)} " if qualifier else ""
    years = _plural_years(age, messages, zero=_message("age.years.zero", messages))
    return _message("age.exact", messages).format(qualifier=prefix, years=years)


def format_age_more_than(birth: PartialDate, death: PartialDate, messages: dict[str, str] | None = None) -> str:
    age = years_between(birth, death)
    return _message("age.more", messages).format(years=_plural_years(age, messages))


def format_age_less_than(birth: PartialDate, death: PartialDate, messages: dict[str, str] | None = None) -> str:
    age = years_between(birth, death)
    years = _plural_years(age, messages, zero=_message("age.years.one", messages))
    return _message("age.less", messages).format(years=years)


def format_age_between(
    birth_from: PartialDate,
    birth_to: PartialDate,
    death_from: PartialDate,
    death_to: PartialDate,
    messages: dict[str, str] | None = None,
) -> str:
    age_from = years_between(birth_to, death_from)
    age_to = years_between(birth_from, death_to)
    return _message("age.between", messages).format(
        ageFrom=age_from, years=_plural_years(age_to, messages)
    )


def _partial_dates(date_or_range: DateOrRange) -> list[PartialDate | None]:
    if date_or_range.date_range is not None:
        return [date_or_range.date_range.from_, date_or_range.date_range.to]
    return [date_or_range.date]


def can_calculate_age(birth: DateOrRange | None, death: DateOrRange | None) -> bool:
    if birth is None or death is None:
        return False
    if not is_valid_date_or_range(birth) or not is_valid_date_or_range(death):
        return False
    # Years outside the calendar range cannot be measured.
    if not all(is_calendar_year(date) for date in _partial_dates(birth) + _partial_dates(death)):
        return False
    # Death before birth.
    if compare_dates(birth, death) > 0:
        return False
    # Overlapping closed ranges leave the order of events ambiguous.
    if is_date_range_closed(birth.date_range) and is_date_range_closed(death.date_range):
        return not are_date_ranges_overlapped(birth.date_range, death.date_range)
    return True


def calc_age_for_dates(
    birth: DateOrRange | None,
    death: DateOrRange | None,
    messages: dict[str, str] | None = None,
) -> str | None:
    """
    Describes the age at death, e.g. "about 31 years" or "Between 30 and 31 years".
    Returns None when the age cannot be determined.
    """
    if not can_calculate_age(birth, death):
        return None

    birth_from = birth.date_range.from_ if birth.date_range else None
    birth_to = birth.date_range.to if birth.date_range else None
    death_from = death.date_range.from_ if death.date_range else None
    death_to = death.date_range.to if death.date_range else None

    if birth.date:
        if death.date:
            return format_exact_age(birth.date, death.date, messages)
        if death_from and death_to:
            return format_age_between(birth.date, birth.date, death_from, death_to, messages)
        if death_from:
            return format_age_more_than(birth.date, death_from, messages)
        if death_to:
            return format_age_less_than(birth.date, death_to, messages)

    if birth_from and birth_to:
        if death.date:
            return format_age_between(birth_from, birth_to, death.date, death.date, messages)
        if death_from and death_to:
            return format_age_between(birth_from, birth_to, death_from, death_to, messages)
        if death_from:
            return format_age_more_than(birth_to, death_from, messages)
        if death_to:
            return format_age_less_than(birth_from, death_to, messages)

    if birth_from:
        if death.date:
            return format_age_less_than(birth_from, death.date, messages)
        if death_to:
            return format_age_less_than(birth_from, death_to, messages)

    if birth_to:
        if death.date:
            return format_age_more_than(birth_to, death.date, messages)
        if death_from:
            return format_age_more_than(birth_to, death_from, messages)

    # Both bounded from the same side only.
    return None


def calc_age(
    birth_gedcom_date: str | None,
    death_gedcom_date: str | None,
    messages: dict[str, str] | None = None,
) -> str | None:
    """Age at death from two dates in GEDCOM format."""
    if not birth_gedcom_date or not death_gedcom_date:
        return None
    return calc_age_for_dates(get_date(birth_gedcom_date), get_date(death_gedcom_date), messages)


def _first_event_date(entries, tags: list[str]) -> str | None:
    for entry in entries:
        if entry.tag not in tags:
            continue
        for sub_entry in entry.tree:
            if sub_entry.tag == "DATE" and sub_entry.data:
                return sub_entry.data
    return None


def calc_age_for_individual(
    gedcom: GedcomData,
    indi_id: str,
    messages: dict[str, str] | None = None,
) -> str | None:
    """Age at death of an individual from the detail tree, for the details panel."""
    indi = gedcom.indis.get(indi_id)
    if indi is None:
        logger.debug(f"No detail entry for individual {indi_id}")
        return None
    birth = _first_event_date(indi.tree, BIRTH_EVENT_TAGS)
    death = _first_event_date(indi.tree, DEATH_EVENT_TAGS)
    return calc_age(birth, death, messages)
