"""Tests for the typed-value codec.

Tests:
    - Encoding rules (None dropped, numbers as doubles, enums as strings)
    - Numeric tags decode to the same float
    - Zero values for absent or null data
    - Unknown tags ignored, wrong tags rejected with a path
"""

import pytest

from errors import MappingError
from models import Exchange
from typed_codec import (
    FieldType, TaggedValue, ValueKind, decode, encode, fields_from_wire, fields_to_wire,
    zero_value,
)


class TestEncode:
    def test_none_is_not_encoded(self):
        assert encode(None, FieldType.STRING) is None
        assert encode(None, FieldType.NUMBER) is None

    def test_numbers_always_encode_as_double(self):
        tagged = encode(100, FieldType.NUMBER)
        assert tagged == TaggedValue(ValueKind.DOUBLE, 100.0)
        assert tagged.to_wire() == {"doubleValue": 100.0}

    def test_bool_is_not_a_number(self):
        with pytest.raises(TypeError):
            encode(True, FieldType.NUMBER)

    def test_enum_encodes_its_value(self):
        assert encode(Exchange.BSE, FieldType.STRING).to_wire() == {"stringValue": "BSE"}

    def test_string_list(self):
        tagged = encode(["a", "b"], FieldType.STRING_LIST)
        assert tagged.to_wire() == {
            "arrayValue": {"values": [{"stringValue": "a"}, {"stringValue": "b"}]}
        }

    def test_record_list_wraps_maps(self):
        inner = {"id": TaggedValue(ValueKind.STRING, "x")}
        tagged = encode([inner], FieldType.RECORD_LIST)
        assert tagged.to_wire() == {
            "arrayValue": {"values": [{"mapValue": {"fields": {"id": {"stringValue": "x"}}}}]}
        }

    def test_integer_travels_as_string(self):
        assert TaggedValue(ValueKind.INTEGER, 42).to_wire() == {"integerValue": "42"}


class TestDecodeNumbers:
    def test_integer_and_double_decode_to_same_number(self):
        as_int = TaggedValue.from_wire({"integerValue": "100"}, "entryPrice")
        as_double = TaggedValue.from_wire({"doubleValue": 100.0}, "entryPrice")
        assert decode(as_int, FieldType.NUMBER, "entryPrice") == 100.0
        assert decode(as_double, FieldType.NUMBER, "entryPrice") == 100.0
        assert isinstance(decode(as_int, FieldType.NUMBER, "entryPrice"), float)

    def test_non_numeric_integer_raises(self):
        tagged = TaggedValue.from_wire({"integerValue": "abc"}, "stoploss")
        with pytest.raises(MappingError) as exc:
            decode(tagged, FieldType.NUMBER, "stoploss")
        assert exc.value.path == "stoploss"


class TestDecodeDefaults:
    @pytest.mark.parametrize("field_type,expected", [
        (FieldType.STRING, ""),
        (FieldType.NUMBER, 0.0),
        (FieldType.BOOLEAN, False),
        (FieldType.STRING_LIST, []),
    ])
    def test_absent_value_gives_zero(self, field_type, expected):
        assert decode(None, field_type, "x") == expected
        assert decode(TaggedValue(ValueKind.NULL), field_type, "x") == expected
        assert zero_value(field_type) == expected

    def test_array_without_values_is_empty(self):
        tagged = TaggedValue.from_wire({"arrayValue": {}}, "alerts")
        assert decode(tagged, FieldType.STRING_LIST, "alerts") == []

    def test_timestamp_accepted_for_string_field(self):
        tagged = TaggedValue.from_wire({"timestampValue": "2024-01-01T00:00:00Z"}, "date")
        assert decode(tagged, FieldType.STRING, "date") == "2024-01-01T00:00:00Z"


class TestDecodeShape:
    def test_unknown_tag_is_ignored(self):
        assert TaggedValue.from_wire({"geoPointValue": {"latitude": 1}}, "x") is None
        parsed = fields_from_wire({
            "where": {"geoPointValue": {"latitude": 1}},
            "symbol": {"stringValue": "INFY"},
        })
        assert list(parsed) == ["symbol"]

    def test_wrong_kind_raises_with_path(self):
        tagged = TaggedValue.from_wire({"stringValue": "high"}, "stoploss")
        with pytest.raises(MappingError) as exc:
            decode(tagged, FieldType.NUMBER, "stoploss")
        assert exc.value.path == "stoploss"
        assert exc.value.error_code == "MAPPING_ERROR"

    def test_non_object_wrapper_raises(self):
        with pytest.raises(MappingError):
            TaggedValue.from_wire("INFY", "stockSymbol")

    def test_string_list_drops_non_strings(self):
        tagged = TaggedValue.from_wire({"arrayValue": {"values": [
            {"stringValue": "keep"}, {"doubleValue": 1}, {"nullValue": None},
        ]}}, "alerts")
        assert decode(tagged, FieldType.STRING_LIST, "alerts") == ["keep"]

    def test_string_list_skips_untagged_entries(self):
        tagged = TaggedValue.from_wire({"arrayValue": {"values": ["bare", {"stringValue": "ok"}]}}, "alerts")
        assert decode(tagged, FieldType.STRING_LIST, "alerts") == ["ok"]

    def test_record_list_rejects_non_map_entry(self):
        tagged = TaggedValue.from_wire({"arrayValue": {"values": [
            {"mapValue": {"fields": {}}},
            {"stringValue": "oops"},
        ]}}, "actions")
        with pytest.raises(MappingError) as exc:
            decode(tagged, FieldType.RECORD_LIST, "actions")
        assert exc.value.path == "actions[1]"

    def test_nested_fields_survive_wire_round_trip(self):
        raw = {
            "baseline": {"mapValue": {"fields": {
                "stoploss": {"doubleValue": 95.5},
                "durationText": {"stringValue": "3m"},
            }}},
        }
        assert fields_to_wire(fields_from_wire(raw)) == raw
