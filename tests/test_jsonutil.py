import json

import pytest

from pactkit.jsonutil import format_json_object, format_json_string, is_json_formatted_object


def test_format_json_string_indents_with_tabs():
    assert format_json_string('{"a":1}') == '{\n\t"a": 1\n}'


def test_format_json_string_round_trip():
    document = '{"name": "bob", "items": [1, 2, {"x": null}], "ok": true}'
    assert json.loads(format_json_string(document)) == json.loads(document)


def test_format_json_string_preserves_key_order():
    out = format_json_string('{"z": 1, "a": 2}')
    assert out.index('"z"') < out.index('"a"')


def test_format_json_string_invalid_gives_empty():
    assert format_json_string("{not json") == ""


def test_format_json_object_sorts_keys():
    out = format_json_object({"b": 1, "a": 2})
    assert out.index('"a"') < out.index('"b"')
    assert json.loads(out) == {"a": 2, "b": 1}


def test_format_json_object_matches_string_form():
    obj = {"k": [1, 2]}
    assert format_json_object(obj) == format_json_string(json.dumps(obj))


def test_format_json_object_unencodable_gives_empty():
    assert format_json_object({"s": {1, 2}}) == ""


@pytest.mark.parametrize(
    "value, expected",
    [
        ('{"a": 1}', True),
        ("{}", True),
        ("[1, 2]", False),
        ('"text"', False),
        ("not json", False),
        (b'{"a": 1}', False),
        ({"a": 1}, False),
        (None, False),
    ],
)
def test_is_json_formatted_object(value, expected):
    assert is_json_formatted_object(value) is expected