"""
Tests for request body decoding.
"""
from urllib.parse import urlencode

import pytest

from services.body_decoder import BodyKind, RawBody, add_field, decode, media_type, parse_urlencoded


class TestUrlEncoded:
    """Bodies without a JSON content type are parsed as url-encoded pairs"""

    def test_basic_pairs_are_percent_decoded(self):
        raw = RawBody.from_bytes(b"name=Ada+Lovelace&email=ada%40example.com")

        result = decode(raw, "application/x-www-form-urlencoded")

        assert result == {"name": "Ada Lovelace", "email": "ada@example.com"}

    def test_missing_content_type_defaults_to_urlencoded(self):
        assert decode(RawBody.from_text("a=1"), None) == {"a": "1"}

    def test_pair_without_equals_gets_empty_value(self):
        assert parse_urlencoded("subscribe&name=x") == {"subscribe": "", "name": "x"}

    def test_empty_segments_and_empty_keys_are_skipped(self):
        assert parse_urlencoded("a=1&&=orphan&b=2&") == {"a": "1", "b": "2"}

    def test_repeated_key_keeps_last_value(self):
        assert parse_urlencoded("color=red&color=blue") == {"color": "blue"}

    def test_bracket_suffix_groups_values(self):
        result = parse_urlencoded("interests%5B%5D=music&interests[]=sport&name=x")

        assert result == {"interests": ["music", "sport"], "name": "x"}

    def test_json_text_under_other_content_type_is_not_parsed_as_json(self):
        result = decode(RawBody.from_text('{"a":1}'), "text/plain")

        assert result == {'{"a":1}': ""}

    def test_invalid_utf8_is_replaced_not_raised(self):
        result = decode(RawBody.from_bytes(b"name=\xff\xfe"), "")

        assert result == {"name": "\ufffd\ufffd"}

    def test_scalar_then_group_keeps_both_values(self):
        assert parse_urlencoded("tag=x&tag[]=y&tag[]=z") == {"tag": ["x", "y", "z"]}

    @pytest.mark.parametrize("mapping", [
        {"name": "Ada Lovelace", "email": "ada@example.com"},
        {"message": "Grüße aus Köln ✓", "city": "東京"},
        {"note": "a+b=c & d%e", "empty": ""},
        {"first name": "  padded  ", "q": "?#/"},
    ])
    def test_urlencoded_bodies_decode_to_the_encoded_mapping(self, mapping):
        raw = RawBody.from_bytes(urlencode(mapping).encode("ascii"))

        assert decode(raw, "application/x-www-form-urlencoded") == mapping


class TestJson:
    """application/json bodies"""

    def test_json_object(self):
        raw = RawBody.from_bytes(b'{"name": "Ada", "age": 36}')

        assert decode(raw, "application/json") == {"name": "Ada", "age": 36}

    def test_content_type_parameters_and_case_are_ignored(self):
        raw = RawBody.from_text('{"x": "y"}')

        assert decode(raw, "Application/JSON; charset=utf-8") == {"x": "y"}

    def test_malformed_json_yields_empty_mapping(self):
        assert decode(RawBody.from_text("{not json"), "application/json") == {}

    def test_non_object_json_yields_empty_mapping(self):
        assert decode(RawBody.from_text("[1, 2, 3]"), "application/json") == {}
        assert decode(RawBody.from_text('"hello"'), "application/json") == {}

    def test_empty_body_yields_empty_mapping(self):
        assert decode(RawBody.from_bytes(b""), "application/json") == {}


class TestMapping:
    """Bodies already parsed by the host framework"""

    def test_mapping_is_returned_unchanged_whatever_the_content_type(self):
        raw = RawBody.from_mapping({"name": "Ada", "tags": ["a", "b"]})

        assert raw.kind is BodyKind.MAPPING
        assert decode(raw, "application/json") == {"name": "Ada", "tags": ["a", "b"]}

    def test_empty_mapping_yields_empty_mapping(self):
        assert decode(RawBody.from_mapping({}), "multipart/form-data") == {}
        assert decode(RawBody.from_mapping(None), None) == {}


def test_media_type_strips_parameters():
    assert media_type("multipart/form-data; boundary=xyz") == "multipart/form-data"
    assert media_type(None) == ""


class TestAddField:
    def test_plain_key_overwrites(self):
        result = {"a": "1"}

        add_field(result, "a", "2")

        assert result == {"a": "2"}

    def test_group_key_appends_to_existing_list(self):
        result = {"tags": ["x"]}

        add_field(result, "tags[]", "y")

        assert result == {"tags": ["x", "y"]}

    def test_bare_suffix_is_a_plain_key(self):
        result = {}

        add_field(result, "[]", "v")

        assert result == {"[]": "v"}
