"""JSON parsing with type guards."""

from __future__ import annotations

import pytest

from PkgTools.TransferIO.errors import JsonParseError, JsonTypeError
from PkgTools.TransferIO.jsonutils import is_object, parse_json, try_parse_json


def test_parse_json_without_predicate_returns_any_value():
    assert parse_json("[1, 2]") == [1, 2]
    assert parse_json('"text"') == "text"
    assert parse_json("null") is None


def test_parse_json_error_includes_source_text():
    with pytest.raises(JsonParseError) as excinfo:
        parse_json("{'single': 'quotes'}")

    assert "due to JSON: {'single': 'quotes'}" in str(excinfo.value)
    assert isinstance(excinfo.value, ValueError)


def test_predicate_rejection_is_a_type_error():
    with pytest.raises(JsonTypeError, match="did not match required form") as excinfo:
        parse_json("[1]", is_object)

    assert isinstance(excinfo.value, TypeError)


def test_try_parse_json_swallows_both_failure_kinds():
    assert try_parse_json("{") is None
    assert try_parse_json("[1]", is_object) is None
    assert try_parse_json('{"a": 1}', is_object) == {"a": 1}


def test_guards():
    assert is_object({"a": 1})
    assert not is_object([])
    assert not is_object("ab")
