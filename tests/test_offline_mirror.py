"""Tests for the offline JSON mirror."""

import json

import pytest

from errors import NotFound, ValidationError
from models import Baseline, NEW_ID
from store_interface import OfflineMirrorStore


class TestCrud:
    def test_create_assigns_id_and_timestamps(self, mirror, draft_record):
        created = mirror.create(draft_record)
        assert created.id == "id-1"
        assert created.created_at == created.updated_at
        assert draft_record.id == NEW_ID

    def test_get_returns_equal_record(self, mirror, draft_record):
        created = mirror.create(draft_record)
        assert mirror.get(created.id) == created

    def test_get_missing_raises(self, mirror):
        with pytest.raises(NotFound):
            mirror.get("missing")

    def test_update_missing_raises(self, mirror, saved_record):
        with pytest.raises(NotFound):
            mirror.update("missing", saved_record)

    def test_masked_update_touches_only_masked_fields(self, mirror, draft_record):
        created = mirror.create(draft_record)
        edited = created.clone()
        edited.stoploss = 1350.0
        edited.reason = "not sent"

        updated = mirror.update(created.id, edited, ["stoploss"])

        assert updated.stoploss == 1350.0
        assert updated.reason == draft_record.reason
        assert mirror.get(created.id).reason == draft_record.reason

    def test_full_update_keeps_created_at(self, mirror, draft_record):
        created = mirror.create(draft_record)
        edited = created.clone()
        edited.created_at = None
        edited.target_price = 1900.0
        updated = mirror.update(created.id, edited)
        assert updated.created_at == created.created_at
        assert updated.target_price == 1900.0

    def test_delete_is_idempotent(self, mirror, draft_record):
        created = mirror.create(draft_record)
        mirror.delete(created.id)
        mirror.delete(created.id)
        with pytest.raises(NotFound):
            mirror.get(created.id)

    def test_list_excludes_archived_by_default(self, mirror, draft_record):
        live = mirror.create(draft_record)
        archived = draft_record.clone()
        archived.is_marked_for_deletion = True
        old = mirror.create(archived)

        assert [r.id for r in mirror.list()] == [live.id]
        assert {r.id for r in mirror.list(include_archived=True)} == {live.id, old.id}
        assert len(mirror.list(page_size=1, include_archived=True)) == 1

    def test_records_persist_across_instances(self, tmp_path, draft_record):
        first = OfflineMirrorStore(tmp_path, id_factory=lambda: "fixed")
        first.create(draft_record)
        second = OfflineMirrorStore(tmp_path)
        assert second.get("fixed").stock_symbol == "INFY"

        table = json.loads((tmp_path / "stock_ideas.json").read_text())
        assert table["fixed"]["exchange"] == "NSE"
        assert table["fixed"]["actions"][0]["type"] == "AVERAGING"


class TestPut:
    def test_upserts_under_own_id(self, mirror, saved_record):
        mirror.put(saved_record)
        assert mirror.get("abc123") == saved_record

    def test_rejects_unsaved_record(self, mirror, draft_record):
        with pytest.raises(ValidationError) as exc:
            mirror.put(draft_record)
        assert exc.value.field == "id"


class TestBaselines:
    def test_first_write_wins(self, mirror):
        first = Baseline(100.0, 150.0, "3m")
        assert mirror.save_baseline("abc", first) == first
        assert mirror.save_baseline("abc", Baseline(90.0, 160.0, "6m")) == first
        assert mirror.get_baseline("abc") == first

    def test_missing_baseline(self, mirror):
        assert mirror.get_baseline("nothing") is None

    def test_delete_removes_baseline(self, mirror, draft_record):
        created = mirror.create(draft_record)
        mirror.save_baseline(created.id, Baseline(1.0, 2.0, "x"))
        mirror.delete(created.id)
        assert mirror.get_baseline(created.id) is None
