"""Tests for value normalisation (identifiers, dates, durations, languages)."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from avails_mapping.formats import (
    FormatError,
    boolean_to_xml,
    date_time_to_xml,
    duration_to_xml,
    is_eidr,
    normalize_date,
    normalize_eidr,
    parse_id_format,
    parse_language,
    region_element,
    validate_region,
)


# ---------------------------------------------------------------------------
# EIDR
# ---------------------------------------------------------------------------

class TestEidr:
    def test_doi_form_rewritten_to_urn_uppercase(self):
        out = normalize_eidr("10.5240/aaaa-bbbb-cccc-dddd-eeee-f")
        assert out == "urn:eidr:10.5240:AAAA-BBBB-CCCC-DDDD-EEEE-F"

    def test_short_form_uppercase(self):
        out = normalize_eidr("10.5240/aaaa-bbbb-cccc-dddd-eeee-f", form="short")
        assert out == "10.5240/AAAA-BBBB-CCCC-DDDD-EEEE-F"

    def test_urn_form_already_canonical(self):
        urn = "urn:eidr:10.5240:AAAA-BBBB-CCCC-DDDD-EEEE-F"
        assert parse_id_format(urn) == "eidr-URN"
        assert normalize_eidr(urn) == urn

    def test_both_forms_agree(self):
        assert normalize_eidr("10.5240/1111-2222-3333-4444-5555-C") == \
            normalize_eidr("urn:eidr:10.5240:1111-2222-3333-4444-5555-c")

    def test_malformed_suffix_rejected(self):
        with pytest.raises(FormatError):
            normalize_eidr("10.5240/AAAA-BBBB-CCCC")

    def test_not_an_eidr(self):
        assert not is_eidr("md:cid:org:studio:movie-1")
        assert parse_id_format("md:cid:org:x") == "MovieLabs"
        assert parse_id_format("ABC123") == "user"
        with pytest.raises(FormatError):
            normalize_eidr("ABC123")


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------

class TestDates:
    def test_leap_day_in_non_leap_year_rejected(self):
        with pytest.raises(FormatError):
            normalize_date("2021-02-29")

    def test_leap_day_in_leap_year_accepted(self):
        assert normalize_date("2020-02-29") == "2020-02-29"

    def test_month_name_and_iso_forms_agree(self):
        assert normalize_date("15-jan-2020") == normalize_date("2020-01-15")
        assert normalize_date("15-JAN-2020") == "2020-01-15"

    def test_us_slash_form(self):
        assert normalize_date("01/15/2020") == "2020-01-15"

    def test_garbage_rejected(self):
        with pytest.raises(FormatError):
            normalize_date("sometime next year")

    def test_date_time_start_and_end_of_day(self):
        assert date_time_to_xml("2020-01-15") == "2020-01-15T00:00:00"
        assert date_time_to_xml("2020-01-15", round_off=True) == \
            "2020-01-15T23:59:59"

    def test_date_time_with_time_passes_through(self):
        assert date_time_to_xml("2020-01-15T10:30:00Z") == "2020-01-15T10:30:00Z"


# ---------------------------------------------------------------------------
# Durations and booleans
# ---------------------------------------------------------------------------

class TestDurationsAndBooleans:
    @pytest.mark.parametrize("raw,expected", [
        ("2", "PT2H"),
        ("1:45", "PT1H45M"),
        ("1:45:30", "PT1H45M30S"),
        ("PT1H30M", "PT1H30M"),
        ("P2D", "P2D"),
    ])
    def test_duration(self, raw, expected):
        assert duration_to_xml(raw) == expected

    def test_bad_duration(self):
        with pytest.raises(FormatError):
            duration_to_xml("ninety minutes")

    @pytest.mark.parametrize("raw,expected", [
        ("Yes", "true"), ("y", "true"), ("TRUE", "true"),
        ("No", "false"), ("n", "false"), ("f", "false"),
    ])
    def test_boolean(self, raw, expected):
        assert boolean_to_xml(raw) == expected

    def test_bad_boolean(self):
        with pytest.raises(FormatError):
            boolean_to_xml("maybe")


# ---------------------------------------------------------------------------
# Languages and regions
# ---------------------------------------------------------------------------

class TestLanguagesAndRegions:
    def test_plain_language(self):
        assert parse_language("en-US") == ("en-US", None)

    def test_suffix_only_when_allowed(self):
        assert parse_language("fr:dub", allow_suffix=True) == ("fr", "dub")
        with pytest.raises(FormatError):
            parse_language("fr:dub")

    def test_unknown_suffix(self):
        with pytest.raises(FormatError):
            parse_language("fr:voiceover", allow_suffix=True)

    def test_bad_language_tag(self):
        with pytest.raises(FormatError):
            parse_language("english!")

    def test_region_element(self):
        assert region_element("US") == "country"
        assert region_element("CA-QC") == "countryRegion"

    def test_validate_region(self):
        assert validate_region("CA-QC") == "CA-QC"
        with pytest.raises(FormatError):
            validate_region("United States")
