from datetime import date, datetime

import pytest

from app.core.constants import ColumnType
from app.pipeline.steps.age_code import age_on, format_age_code
from app.pipeline.steps.age_range import bracket_for
from app.pipeline.steps.classify_source import classify_source
from app.pipeline.steps.derive_party import map_party
from app.pipeline.steps.format_phones import format_phone
from app.pipeline.steps.format_rdate import format_rdate
from app.pipeline.steps.tarrance import zero_pad
from app.pipeline.steps.voter_frequency import counts_as_vote, voter_frequency_years
from app.repositories.age_ranges import DEFAULT_BRACKETS
from app.samples.values import convert_value, parse_date


@pytest.mark.parametrize("raw, expected", [
    ("(202) 555-0101", "2025550101"),
    ("1-202-555-0101", "2025550101"),
    (2025550101, "2025550101"),
    ("555-0101", None),
    ("", None),
    (None, None),
])
def test_format_phone(raw, expected):
    assert format_phone(raw) == expected


@pytest.mark.parametrize("age, expected", [
    (-3, "00"),
    (0, "00"),
    (7, "07"),
    ("42", "42"),
    (42.0, "42"),
    (120, "99"),
    (None, "00"),
    ("abc", "00"),
])
def test_format_age_code(age, expected):
    assert format_age_code(age) == expected


def test_age_on_counts_completed_years():
    assert age_on(date(1980, 6, 15), date(2026, 6, 14)) == 45
    assert age_on(date(1980, 6, 15), date(2026, 6, 15)) == 46


@pytest.mark.parametrize("age, expected", [("18", 1), ("24", 1), ("25", 2), ("70", 6), ("00", None), ("12", None)])
def test_bracket_for(age, expected):
    assert bracket_for(age, DEFAULT_BRACKETS) == expected


@pytest.mark.parametrize("land, cell, expected", [
    ("2025550101", None, 1),
    (None, "2025550102", 2),
    ("2025550101", "2025550102", 3),
    ("  ", None, None),
    (None, None, None),
])
def test_classify_source(land, cell, expected):
    assert classify_source(land, cell) == expected


@pytest.mark.parametrize("label, expected", [
    ("Modeled Republican", "R"),
    ("DEMOCRAT", "D"),
    ("Independent/Other", "I"),
    ("N/A", "U"),
    ("  modeled   democrat ", "D"),
    ("Green", None),
    (None, None),
])
def test_map_party(label, expected):
    assert map_party(label) == expected


def test_format_rdate():
    assert format_rdate("3/7/2019") == "20190307"
    assert format_rdate("2019-03-07") == "20190307"
    assert format_rdate("not a date") == "not a date"
    assert format_rdate(None) is None


def test_zero_pad():
    assert zero_pad("7", 2) == "07"
    assert zero_pad(12, 2) == "12"
    assert zero_pad("N/A", 2) == "N/A"
    assert zero_pad(None, 2) is None


def test_voter_frequency_years():
    assert voter_frequency_years(2025) == [2024, 2022, 2020, 2018]
    assert voter_frequency_years(2026) == [2024, 2022, 2020, 2018]


@pytest.mark.parametrize("value, expected", [("Y", True), ("1", True), ("0", False), ("", False), ("na", False), (None, False)])
def test_counts_as_vote(value, expected):
    assert counts_as_vote(value) is expected


def test_convert_value_coerces_by_type():
    assert convert_value("42", ColumnType.INTEGER) == 42
    assert convert_value("4.5", ColumnType.INTEGER) == 4
    assert convert_value("abc", ColumnType.INTEGER) is None
    assert convert_value("yes", ColumnType.BOOLEAN) is True
    assert convert_value("3/7/2019", ColumnType.DATE) == datetime(2019, 3, 7)
    assert convert_value(7, ColumnType.TEXT) == "7"
    assert convert_value("", ColumnType.TEXT) is None


def test_parse_date_accepts_compact_dates():
    assert parse_date("20190307") == datetime(2019, 3, 7)
    assert parse_date("garbage") is None
