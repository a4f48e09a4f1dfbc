from __future__ import annotations

import pytest

from models.errors import IndexOutOfRange, KeyNotFound, ParseError, ValidationError
from services.context import TemplateContext
from services.subscription import Subscription

JSON_PAYLOAD = """{
  "x": "y",
  "foo": {
    "bar": "value",
    "intvalue": 123,
    "floatvalue": 1.5,
    "wholefloat": 2.0,
    "flag": true,
    "nothing": null,
    "arr": [1, 2, 3],
    "nested": [{"id": "first"}, {"id": "second"}]
  }
}"""


def test_topic_segments() -> None:
    ctx = TemplateContext("foo/bar/baz", "123")

    assert ctx.topic(0) == "foo"
    assert ctx.topic(2) == "baz"
    with pytest.raises(IndexOutOfRange):
        ctx.topic(3)
    with pytest.raises(IndexOutOfRange):
        ctx.topic(4)
    with pytest.raises(IndexOutOfRange):
        ctx.topic(-1)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("x", "y"),
        ("foo.bar", "value"),
        ("foo.intvalue", "123"),
        ("foo.floatvalue", "1.5"),
        ("foo.wholefloat", "2"),
        ("foo.flag", "true"),
        ("foo.arr.1", "2"),
        ("foo.nested.1.id", "second"),
    ],
)
def test_json_paths(path: str, expected: str) -> None:
    assert TemplateContext("foo/bar/baz", JSON_PAYLOAD).json(path) == expected


@pytest.mark.parametrize(
    "path",
    [
        "nope.x",
        "doesnotexist.foo.bar",
        "foo.nonexist",
        "foo.bar.baz",
        "foo",
        "foo.arr",
        "foo.arr.3",
        "foo.arr.-1",
        "foo.arr.x",
        "foo.nothing",
    ],
)
def test_json_missing_paths(path: str) -> None:
    with pytest.raises(KeyNotFound):
        TemplateContext("foo/bar/baz", JSON_PAYLOAD).json(path)


def test_json_missing_key_is_named() -> None:
    with pytest.raises(KeyNotFound) as excinfo:
        TemplateContext("t", JSON_PAYLOAD).json("foo.missing")
    assert "missing" in str(excinfo.value)


@pytest.mark.parametrize("payload", ["this is not JSON", ""])
def test_json_invalid_payload(payload: str) -> None:
    with pytest.raises(ParseError):
        TemplateContext("foo/bar/baz", payload).json("foo.bar")


def test_csv_columns() -> None:
    ctx = TemplateContext("foo/bar/baz", "123,5.5,abc")

    assert ctx.csv(0) == "123"
    assert ctx.csv(1) == "5.5"
    assert ctx.csv(2) == "abc"
    with pytest.raises(IndexOutOfRange):
        ctx.csv(3)
    with pytest.raises(IndexOutOfRange):
        ctx.csv(4)


def test_csv_quoted_fields() -> None:
    ctx = TemplateContext("t", '"a,b",c\nnext,line')

    assert ctx.csv(0) == "a,b"
    assert ctx.csv(1) == "c"


@pytest.mark.parametrize("payload", ["", "\n", '"unterminated,1'])
def test_csv_invalid_payload(payload: str) -> None:
    with pytest.raises(ParseError):
        TemplateContext("t", payload).csv(0)


def test_csv_separator_from_subscription() -> None:
    ctx = TemplateContext("t", "1;2", subscription=Subscription(csv_separator=";"))
    assert ctx.csv(1) == "2"


def test_csv_separator_must_be_single_character() -> None:
    ctx = TemplateContext("t", "1++2", subscription=Subscription(csv_separator="++"))

    with pytest.raises(ValidationError):
        ctx.csv(0)


def test_json_too_deeply_nested_is_a_parse_error() -> None:
    payload = "[" * 100_000 + "]" * 100_000

    with pytest.raises(ParseError):
        TemplateContext("t", payload).json("0")
