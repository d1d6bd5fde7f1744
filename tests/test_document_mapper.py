"""Tests for the document mapper.

Tests:
    - Record → document → record is the identity
    - Masked encoding carries only the named fields
    - Lenient decoding (defaults, enum fallbacks, numeric tags)
    - Structural errors name the offending path
"""

import logging

import pytest

from document_mapper import (
    ALL_FIELDS, Document, changed_fields, from_document, mask_for, record_from_wire,
    resolve_field, to_document,
)
from errors import MappingError, ValidationError
from models import Action, Baseline, Exchange, Term, TradeActionType


class TestRoundTrip:
    def test_record_survives_document_round_trip(self, saved_record):
        assert from_document(to_document(saved_record)) == saved_record

    def test_record_survives_wire_json_round_trip(self, saved_record):
        saved_record.posted_at = "2024-01-02T10:00:00.000Z"
        saved_record.baseline = Baseline(1400.0, 1800.0, "3 months")
        wire = to_document(saved_record).to_wire()
        wire["name"] = "projects/demo/databases/(default)/documents/stockRecommendations/abc123"
        assert record_from_wire(wire) == saved_record

    def test_draft_has_no_document_name(self, draft_record):
        assert to_document(draft_record).name is None

    def test_every_field_present_in_full_encoding(self, saved_record):
        doc = to_document(saved_record)
        assert "stockExchange" in doc.fields
        assert "recommendation" in doc.fields
        assert "postedAt" not in doc.fields  # None is omitted


class TestFieldMask:
    def test_single_field_mask_is_minimal(self, saved_record):
        doc = to_document(saved_record, ["stoploss"])
        assert set(doc.fields) == {"stoploss"}

    def test_attribute_names_are_accepted(self, saved_record):
        doc = to_document(saved_record, ["target_price", "duration_text"])
        assert set(doc.fields) == {"targetPrice", "durationText"}

    def test_masked_none_is_left_out(self, saved_record):
        doc = to_document(saved_record, ["exitPrice", "stoploss"])
        assert set(doc.fields) == {"stoploss"}

    def test_mask_for_dedupes_and_keeps_order(self):
        assert mask_for(["stoploss", "targetPrice", "stoploss"]) == ["stoploss", "targetPrice"]
        assert mask_for(["action"]) == ["recommendation"]

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError) as exc:
            resolve_field("colour")
        assert exc.value.field == "colour"

    def test_all_fields_covers_wire_names(self):
        assert "isMarkedForDeletion" in ALL_FIELDS
        assert "baseline" in ALL_FIELDS


class TestLenientDecode:
    def test_stored_document_decodes(self, wire_document):
        record = record_from_wire(wire_document)
        assert record.id == "abc123"
        assert record.exchange is Exchange.BSE
        assert record.term is Term.LONG
        assert record.action is Action.BUY
        assert record.entry_price == 3500.0
        assert record.posted_at == "2024-03-01T10:00:00Z"
        assert record.alerts == []

    def test_missing_optional_fields_are_none(self, wire_document):
        record = record_from_wire(wire_document)
        assert record.cmp is None
        assert record.exit_price is None
        assert record.is_marked_for_deletion is None
        assert record.baseline is None

    def test_missing_required_fields_get_zero_values(self, wire_document):
        record = record_from_wire(wire_document)
        assert record.current_price == 0.0
        assert record.target_hit is False

    def test_missing_action_note_and_range_decode_to_defaults(self, wire_document):
        action = record_from_wire(wire_document).actions[0]
        assert action.type is TradeActionType.AVERAGING
        assert action.note == ""
        assert action.entry_range_min == 0.0
        assert action.entry_range_max == 0.0

    def test_unknown_enum_falls_back(self, wire_document, caplog):
        wire_document["fields"]["recommendation"] = {"stringValue": "STRONG_BUY"}
        with caplog.at_level(logging.WARNING):
            record = record_from_wire(wire_document)
        assert record.action is Action.HOLD
        assert "STRONG_BUY" in caplog.text

    def test_integer_and_double_prices_decode_equal(self, wire_document):
        as_int = record_from_wire(wire_document)
        wire_document["fields"]["entryPrice"] = {"doubleValue": 3500.0}
        as_double = record_from_wire(wire_document)
        assert as_int.entry_price == as_double.entry_price

    def test_null_on_optional_field_means_unset(self, wire_document):
        wire_document["fields"]["cmp"] = {"nullValue": None}
        wire_document["fields"]["exitPrice"] = {"nullValue": None}
        wire_document["fields"]["baseline"] = {"nullValue": None}
        record = record_from_wire(wire_document)
        assert record.cmp is None
        assert record.exit_price is None
        assert record.baseline is None

    def test_untagged_alert_entries_are_dropped(self, wire_document):
        wire_document["fields"]["alerts"] = {"arrayValue": {"values": [
            "bare", {"stringValue": "Results on 12 Jan"}, 7,
        ]}}
        assert record_from_wire(wire_document).alerts == ["Results on 12 Jan"]

    def test_untagged_action_entry_still_rejected(self, wire_document):
        wire_document["fields"]["actions"]["arrayValue"]["values"].append("bare")
        with pytest.raises(MappingError) as exc:
            record_from_wire(wire_document)
        assert exc.value.path == "actions[1]"

    def test_document_id_is_last_path_segment(self):
        assert Document(name="projects/p/databases/(default)/documents/c/xyz").doc_id == "xyz"
        assert Document().doc_id is None


class TestStructuralErrors:
    def test_non_map_action_entry(self, wire_document):
        wire_document["fields"]["actions"]["arrayValue"]["values"].append({"stringValue": "bad"})
        with pytest.raises(MappingError) as exc:
            record_from_wire(wire_document)
        assert exc.value.path == "actions[1]"

    def test_wrong_tag_on_nested_field(self, wire_document):
        action = wire_document["fields"]["actions"]["arrayValue"]["values"][0]
        action["mapValue"]["fields"]["entryPrice"] = {"booleanValue": True}
        with pytest.raises(MappingError) as exc:
            record_from_wire(wire_document)
        assert exc.value.path == "actions[0].entryPrice"

    def test_document_without_name(self, wire_document):
        del wire_document["name"]
        with pytest.raises(MappingError) as exc:
            record_from_wire(wire_document)
        assert exc.value.path == "name"

    def test_document_must_be_an_object(self):
        with pytest.raises(MappingError):
            record_from_wire(["not", "a", "document"])


class TestChangedFields:
    def test_no_changes(self, saved_record):
        assert changed_fields(saved_record, saved_record.clone()) == []

    def test_reports_wire_names_in_table_order(self, saved_record):
        edited = saved_record.clone()
        edited.alerts.append("New alert")
        edited.stoploss = 1350.0
        assert changed_fields(saved_record, edited) == ["stoploss", "alerts"]

    def test_cleared_optional_field_is_a_change(self, saved_record):
        edited = saved_record.clone()
        edited.cmp = None
        assert changed_fields(saved_record, edited) == ["cmp"]
