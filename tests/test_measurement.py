from __future__ import annotations

import time

import pytest

from models.errors import (
    InvalidDatabaseName,
    InvalidFieldName,
    InvalidMeasurementName,
    InvalidTagName,
    InvalidTagValue,
    MissingValue,
)
from models.measurement import Measurement


def _measurement(name: str = "m", database: str = "db") -> Measurement:
    measurement = Measurement(database=database, name=name)
    measurement.set_value("1")
    return measurement


def test_invalid_measurement_name() -> None:
    with pytest.raises(InvalidMeasurementName):
        _measurement(name="m & m").validate()
    with pytest.raises(InvalidMeasurementName):
        _measurement(name="").validate()


def test_invalid_database_name() -> None:
    with pytest.raises(InvalidDatabaseName):
        _measurement(database="?invalid db").validate()


def test_empty_database_uses_default() -> None:
    _measurement(database="").validate()


def test_missing_value() -> None:
    measurement = Measurement(database="db", name="m")

    with pytest.raises(MissingValue):
        measurement.validate()

    measurement.set_value("")
    measurement.validate()

    measurement.set_value("222")
    measurement.validate()


def test_invalid_field_name() -> None:
    measurement = _measurement()
    measurement.values["bad field"] = "1"

    with pytest.raises(InvalidFieldName):
        measurement.validate()


def test_tags() -> None:
    measurement = _measurement()
    measurement.tag("foo", "bar")
    assert "foo=bar" in measurement.format()

    measurement.tag("foo=bar", "baz")
    with pytest.raises(InvalidTagName):
        measurement.validate()

    measurement = _measurement()
    measurement.tag("foo", "baz=bar")
    with pytest.raises(InvalidTagValue):
        measurement.validate()


def test_tag_value_allows_colon_and_semicolon() -> None:
    measurement = _measurement()
    measurement.tag("mac", "00:11:22;x")
    measurement.validate()


def test_names_with_trailing_newline_are_rejected() -> None:
    with pytest.raises(InvalidMeasurementName):
        _measurement(name="m\n").validate()


def test_format_sorts_tags() -> None:
    measurement = Measurement(database="", name="temp", timestamp=1500000000000000000)
    measurement.tag("b", "2")
    measurement.tag("a", "1")
    measurement.set_value("21.5")

    assert measurement.format() == "temp,a=1,b=2 value=21.5 1500000000000000000"


def test_format_without_tags() -> None:
    measurement = Measurement(database="", name="temp", timestamp=7)
    measurement.set_value("3i")
    measurement.values["other"] = '"x"'

    assert measurement.format() == 'temp value=3i,other="x" 7'


def test_timestamp_is_captured_at_creation() -> None:
    before = time.time_ns()
    measurement = Measurement(database="", name="m")
    after = time.time_ns()

    assert before <= measurement.timestamp <= after
