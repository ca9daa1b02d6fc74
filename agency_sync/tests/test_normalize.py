"""Test the field normalizer."""

from __future__ import annotations

import json
from datetime import date

import pytest

from agency_sync.sync.normalize import PersonRef, normalize, normalize_month, parse_number


def test_time_from_hhmmss():
    assert normalize("time", "01:30:00") == 1.5


def test_time_from_duration_json():
    assert normalize("time", '{"duration": 5400}') == 1.5


def test_time_from_additional_value_sessions():
    raw = json.dumps({"additional_value": [{"duration": 1800}, {"duration": 1800}]})
    assert normalize("time_tracking", raw) == 1.0


def test_time_from_text_fallback():
    assert normalize("time", "{}", text="02:15:00") == 2.25


@pytest.mark.parametrize("raw", ["garbage", "{not json", "99:99:99", '{"duration": -5}', [], True])
def test_malformed_time_is_none(raw):
    assert normalize("time", raw) is None


def test_status_label_text_and_json():
    assert normalize("status", None, text=" Done ") == "Done"
    assert normalize("status", '{"label": {"text": "Working on it"}}') == "Working on it"
    assert normalize("status", '{"index": 1}') is None


def test_people_persons_and_teams():
    raw = json.dumps({"personsAndTeams": [{"id": 11, "kind": "person"}, {"id": 2, "kind": "team"}, {"kind": "person"}]})
    people = normalize("people", raw)

    assert people == [PersonRef("11", "person"), PersonRef("2", "team")]
    assert [p.is_person for p in people] == [True, False]
    assert normalize("people", '{"personsAndTeams": []}') is None


def test_date_variants():
    assert normalize("date", '{"date": "2024-03-05"}') == date(2024, 3, 5)
    assert normalize("date", "2024-03-05T10:00:00Z") == date(2024, 3, 5)
    assert normalize("date", "05/03/2024") == date(2024, 3, 5)
    assert normalize("date", None, text="5 Mar 2024") == date(2024, 3, 5)
    assert normalize("date", "someday") is None


def test_number_variants():
    assert normalize("number", '"1250.5"') == 1250.5
    assert normalize("number", "$1,250.50") == 1250.5
    assert normalize("number", 42) == 42.0
    assert normalize("number", "n/a") is None


def test_labels_and_text():
    assert normalize("labels", None, text="Video, Static") == ["Video", "Static"]
    assert normalize("dropdown", '{"ids": [1, 2]}') == ["1", "2"]
    assert normalize("text", '"hello"') == "hello"
    assert normalize("long_text", "plain words") == "plain words"


def test_empty_input_is_none():
    assert normalize("text", None) is None
    assert normalize("number", "") is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01", "2024-01"),
        ("2024-1-15", "2024-01"),
        ("03/2024", "2024-03"),
        ("January 2024", "2024-01"),
        ("Sept 2023", "2023-09"),
        (date(2024, 7, 1), "2024-07"),
        ("2024-13", None),
        ("next month", None),
    ],
)
def test_normalize_month(value, expected):
    assert normalize_month(value) == expected


def test_parse_number_accounting_negative():
    assert parse_number("(1,000)") == -1000.0
    assert parse_number("AUD 99") == 99.0
    assert parse_number(True) is None
