from __future__ import annotations

from datetime import date

from services.event_date_parser import ParsedDates, normalize_iso_date, parse_dates

TODAY = date(2025, 6, 1)


def test_german_day_month_year():
    assert parse_dates("Am 25. September 2025 in Berlin", today=TODAY) == ParsedDates("2025-09-25", None)


def test_german_slash_day_range():
    assert parse_dates("Termin: 18./19.09.2025", today=TODAY) == ParsedDates("2025-09-18", "2025-09-19")


def test_german_dash_day_range():
    assert parse_dates("12.-14.03.2026, Frankfurt", today=TODAY) == ParsedDates("2026-03-12", "2026-03-14")


def test_full_numeric_range():
    assert parse_dates("01.10.2025 - 03.10.2025", today=TODAY) == ParsedDates("2025-10-01", "2025-10-03")


def test_bis_range_with_month_name():
    assert parse_dates("vom 4. bis 6. November 2025", today=TODAY) == ParsedDates("2025-11-04", "2025-11-06")


def test_english_month_day_range():
    assert parse_dates("March 5-7, 2026 | London", today=TODAY) == ParsedDates("2026-03-05", "2026-03-07")


def test_iso_range():
    assert parse_dates("2025-10-01 to 2025-10-02", today=TODAY) == ParsedDates("2025-10-01", "2025-10-02")


def test_english_single_date():
    assert parse_dates("Join us on October 9, 2025", today=TODAY) == ParsedDates("2025-10-09", None)


def test_numeric_single_date():
    assert parse_dates("Datum: 09.10.2025", today=TODAY) == ParsedDates("2025-10-09", None)


def test_day_month_without_year_is_never_in_the_past():
    assert parse_dates("am 3. Mai", today=TODAY) == ParsedDates("2026-05-03", None)
    assert parse_dates("am 3. Juli", today=TODAY) == ParsedDates("2025-07-03", None)


def test_impossible_dates_are_skipped():
    assert parse_dates("31.02.2025", today=TODAY) == ParsedDates()
    assert parse_dates("", today=TODAY) == ParsedDates()
    assert parse_dates(None) == ParsedDates()


def test_implausible_full_range_falls_through_to_single_date():
    parsed = parse_dates("01.10.1999 - 03.10.1999", today=TODAY)
    assert parsed.starts_at == "1999-10-01"
    assert parsed.ends_at is None


def test_normalize_iso_date():
    assert normalize_iso_date("2025-09-25T09:00:00+02:00") == "2025-09-25"
    assert normalize_iso_date("25. September 2025") == "2025-09-25"
    assert normalize_iso_date("18./19.09.2025") == "2025-09-18"
    assert normalize_iso_date("Sep 25 2025") == "2025-09-25"
    assert normalize_iso_date("2025-13-01") is None
    assert normalize_iso_date("soon") is None
    assert normalize_iso_date(None) is None
