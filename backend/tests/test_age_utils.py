"""Tests for age at death calculation."""

import os
import sys

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from age_utils import calc_age, calc_age_for_individual, years_between
from tree_models import GedcomData, GedcomEntry, PartialDate


def entry(tag, data="", tree=None, level=1):
    return GedcomEntry(level=level, pointer="", tag=tag, data=data, tree=tree or [])


# ============================================================================
# Year Arithmetic
# ============================================================================

class TestYearsBetween:
    """Tests for counting whole anniversaries."""

    def test_whole_years(self):
        assert years_between(PartialDate(year=1890), PartialDate(year=1921)) == 31

    def test_one_day_short(self):
        birth = PartialDate(year=1990, month=9, day=2)
        death = PartialDate(year=2021, month=9, day=1)
        assert years_between(birth, death) == 30

    def test_order_independent(self):
        assert years_between(PartialDate(year=1921), PartialDate(year=1890)) == 31

    def test_leap_day(self):
        birth = PartialDate(year=2000, month=2, day=29)
        assert years_between(birth, PartialDate(year=2001, month=2, day=28)) == 0
        assert years_between(birth, PartialDate(year=2001, month=3, day=1)) == 1


# ============================================================================
# Exact Dates
# ============================================================================

class TestExactAge:
    """Tests for ages between two exact dates."""

    @pytest.mark.parametrize("birth,death,expected", [
        ("1999", "2000", "1 year"),
        ("1999", "2003", "4 years"),
        ("1 Sep 1990", "1 Oct 1990", "Less than 1 year"),
        ("1890", "1921", "31 years"),
        ("1 SEP 1990", "1 SEP 1991", "1 year"),
        ("2 SEP 1990", "1 SEP 1991", "Less than 1 year"),
        ("1 SEP 1990", "31 AUG 2021", "30 years"),
        ("SEP 1990", "OCT 2020", "30 years"),
    ])
    def test_exact(self, birth, death, expected):
        assert calc_age(birth, death) == expected

    def test_birth_qualifier(self):
        assert calc_age("ABT 1890", "1921") == "about 31 years"

    def test_death_qualifier(self):
        assert calc_age("1890", "EST 1921") == "estimated 31 years"

    def test_custom_messages(self):
        messages = {"age.years.other": "{age} lat", "date.abt": "około"}
        assert calc_age("ABT 1890", "1921", messages) == "około 31 lat"


# ============================================================================
# Ranges
# ============================================================================

class TestRangeAge:
    """Tests for the birth/death range cross-product."""

    @pytest.mark.parametrize("birth,death,expected", [
        # Exact birth.
        ("1990", "BET 2020 AND 2021", "Between 30 and 31 years"),
        ("1990", "AFT 2020", "More than 30 years"),
        ("1990", "BEF 2021", "Less than 31 years"),
        # Closed birth range.
        ("BET 1990 AND 1991", "2021", "Between 30 and 31 years"),
        ("BET 1900 AND 1910", "1960", "Between 50 and 60 years"),
        ("BET 1900 AND 1910", "BET 1950 AND 1960", "Between 40 and 60 years"),
        ("BET 1900 AND 1910", "AFT 1950", "More than 40 years"),
        ("BET 1900 AND 1910", "BEF 1960", "Less than 60 years"),
        # Birth after.
        ("AFT 1990", "2021", "Less than 31 years"),
        ("AFT 1990", "BET 2020 AND 2021", "Less than 31 years"),
        ("AFT 1990", "BEF 2021", "Less than 31 years"),
        # Birth before.
        ("BEF 1990", "2021", "More than 31 years"),
        ("BEF 1990", "BET 2020 AND 2021", "More than 30 years"),
        ("BEF 1990", "AFT 2021", "More than 31 years"),
    ])
    def test_ranges(self, birth, death, expected):
        assert calc_age(birth, death) == expected

    def test_less_than_zero_years(self):
        assert calc_age("1990", "BEF 1990") == "Less than 1 year"

    def test_more_than_one_year(self):
        assert calc_age("1990", "AFT 1991") == "More than 1 year"

    @pytest.mark.parametrize("birth,death", [
        ("AFT 1990", "AFT 2021"),
        ("BEF 1990", "BEF 2021"),
    ])
    def test_same_side_bounds_indeterminate(self, birth, death):
        assert calc_age(birth, death) is None


# ============================================================================
# Indeterminate Ages
# ============================================================================

class TestIndeterminate:
    """Tests for inputs where no age can be given."""

    def test_missing_date(self):
        assert calc_age("1990", None) is None
        assert calc_age(None, "1990") is None
        assert calc_age("", "1990") is None

    def test_death_before_birth(self):
        assert calc_age("1921", "1890") is None

    def test_text_date(self):
        assert calc_age("1990s", "2020") is None

    def test_overlapping_ranges(self):
        assert calc_age("BET 1900 AND 1960", "BET 1950 AND 1970") is None

    def test_reversed_range(self):
        assert calc_age("BET 1910 AND 1900", "1960") is None

    def test_year_beyond_calendar(self):
        assert calc_age("1990", "20210") is None
        assert calc_age("BET 1900 AND 1910", "AFT 20210") is None


# ============================================================================
# Detail Entries
# ============================================================================

class TestIndividualAge:
    """Tests for reading ages from the detail entry tree."""

    @pytest.fixture
    def gedcom(self):
        person = GedcomEntry(level=0, pointer="@I1@", tag="INDI", data="", tree=[
            entry("NAME", "Jan /Kowalski/"),
            entry("BIRT", tree=[entry("DATE", "ABT 1890", level=2), entry("PLAC", "Warsaw", level=2)]),
            entry("DEAT", tree=[entry("DATE", "1921", level=2)]),
        ])
        unknown = GedcomEntry(level=0, pointer="@I2@", tag="INDI", data="", tree=[
            entry("BIRT", tree=[entry("PLAC", "Kraków", level=2)]),
        ])
        return GedcomData(head=entry("HEAD", level=0), indis={"I1": person, "I2": unknown})

    def test_age_from_entries(self, gedcom):
        assert calc_age_for_individual(gedcom, "I1") == "about 31 years"

    def test_no_dates(self, gedcom):
        assert calc_age_for_individual(gedcom, "I2") is None

    def test_unknown_individual(self, gedcom):
        assert calc_age_for_individual(gedcom, "I404") is None
