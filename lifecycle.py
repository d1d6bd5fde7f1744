"""
Lifecycle & Diff Engine — Draft → Published → Amended → Archived.

Simple public API: save / publish / edit / archive / hard_delete / list
Hides: transition guards, baseline capture, modified-flag diffing, range
validation, and which field mask each transition sends to the store.

Published and Amended differ only in the modified flags. Archived is
terminal.

Known race: publish() checks the stored postedAt and then writes it, with
no lock in between. Two editors publishing the same draft at the same
moment can both succeed. Updates are last-writer-wins for the same reason.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from config import DEFAULT_PAGE_SIZE
from document_mapper import RECORD_FIELDS, mask_for, resolve_field
from errors import AlreadyPublished, ValidationError
from models import (
    Baseline, ExitDetails, ModifiedFlags, RecommendationRecord, utc_now_iso,
)
from store_interface import RecommendationStore

logger = logging.getLogger(__name__)

ARCHIVE_MASK = (
    "isMarkedForDeletion", "exitPrice", "exitDate", "exitTime", "profitEarned",
)

# Written only by the engine or the store, never through edit()
_PROTECTED_ATTRS = {
    "id", "posted_at", "baseline", "created_at", "updated_at", "is_marked_for_deletion",
}

# What save() sends when no mask is given; the store stamps updatedAt itself
EDITABLE_FIELDS = tuple(
    spec.wire for spec in RECORD_FIELDS if spec.attr not in _PROTECTED_ATTRS
)


def compute_diff(baseline: Optional[Baseline], current: RecommendationRecord) -> ModifiedFlags:
    """Plain inequality against the publish snapshot. No baseline, no flags."""
    if baseline is None:
        return ModifiedFlags()
    return ModifiedFlags(
        stoploss_changed=baseline.stoploss != current.stoploss,
        target_price_changed=baseline.target_price != current.target_price,
        duration_changed=baseline.duration_text != current.duration_text,
    )


def validate_record(record: RecommendationRecord):
    """Raise ValidationError for ranges with min > max or duplicate action ids."""
    _check_range("entryRangeMin", record.entry_range_min, record.entry_range_max)

    seen = set()
    for i, action in enumerate(record.actions):
        _check_range(f"actions[{i}].entryRangeMin", action.entry_range_min, action.entry_range_max)
        if action.id in seen:
            raise ValidationError(f"actions[{i}].id", f"Duplicate trade action id: {action.id}")
        seen.add(action.id)


def _check_range(field: str, low: Optional[float], high: Optional[float]):
    if low and high and low > high:
        raise ValidationError(field, f"Entry range minimum {low} exceeds maximum {high}")


class RecommendationLifecycle:
    """Owns every state transition. The store is injected, never global."""

    def __init__(self, store: RecommendationStore):
        self.store = store

    # ── Persistence ─────────────────────────────────────────────────────

    def save(self, record: RecommendationRecord,
             field_mask: Optional[Iterable[str]] = None) -> RecommendationRecord:
        """Create a new draft or update an existing record.

        Updates never touch postedAt, baseline or the archive flag, so a
        stale copy cannot undo publish() or archive(). Without a mask every
        editable field is sent.
        """
        self._ensure_not_archived(record)
        validate_record(record)

        if record.is_new:
            return self.refresh_flags(self.store.create(record))

        mask = self._editable_mask(field_mask)
        self._ensure_not_archived(self.store.get(record.id))
        stored = self.store.update(record.id, record, mask)
        return self.refresh_flags(stored)

    def get(self, record_id: str) -> RecommendationRecord:
        return self.refresh_flags(self.store.get(record_id))

    def list(self, page_size: int = DEFAULT_PAGE_SIZE,
             include_archived: bool = False) -> List[RecommendationRecord]:
        records = self.store.list(page_size=page_size, include_archived=include_archived)
        return [self.refresh_flags(r) for r in records]

    # ── Transitions ─────────────────────────────────────────────────────

    def publish(self, record: RecommendationRecord) -> RecommendationRecord:
        """Draft → Published. The only place a baseline is ever written."""
        if record.posted_at:
            raise AlreadyPublished(record.id, record.posted_at)
        self._ensure_not_archived(record)
        validate_record(record)

        if record.is_new:
            record = self.store.create(record)
        else:
            stored = self.store.get(record.id)
            if stored.posted_at:
                raise AlreadyPublished(record.id, stored.posted_at)

        baseline = Baseline(
            stoploss=record.stoploss,
            target_price=record.target_price,
            duration_text=record.duration_text,
        )
        publishing = record.clone()
        publishing.posted_at = utc_now_iso()
        publishing.baseline = baseline

        published = self.store.update(publishing.id, publishing)
        self.store.save_baseline(published.id, baseline)
        logger.info(
            f"Published {published.id} ({published.stock_symbol}): "
            f"SL {baseline.stoploss} / TGT {baseline.target_price} / {baseline.duration_text}"
        )
        return self.refresh_flags(published)

    def edit(self, record: RecommendationRecord, changes: Dict[str, Any]) -> RecommendationRecord:
        """Apply changes in memory and recompute the modified flags.

        Accepts wire or attribute names. Returns a new record; the input is
        left untouched.
        """
        self._ensure_not_archived(record)

        edited = record.clone()
        for name, value in changes.items():
            spec = resolve_field(name)
            if spec.attr in _PROTECTED_ATTRS:
                raise ValidationError(spec.wire, f"{spec.wire} cannot be edited directly")
            if spec.enum is not None and not isinstance(value, spec.enum):
                try:
                    value = spec.enum(value)
                except ValueError:
                    raise ValidationError(spec.wire, f"Invalid {spec.wire}: {value!r}") from None
            setattr(edited, spec.attr, copy.deepcopy(value))

        edited.modified_flags = compute_diff(edited.baseline, edited)
        return edited

    def archive(self, record: RecommendationRecord, exit_details: ExitDetails) -> RecommendationRecord:
        """Soft delete with exit details. Validates before touching anything."""
        if record.is_new:
            raise ValidationError("id", "Save the stock idea before archiving it")
        self._ensure_not_archived(record)

        if not exit_details.exit_price or exit_details.exit_price <= 0:
            raise ValidationError("exitPrice", "Exit price must be greater than 0")
        if not (exit_details.exit_date or "").strip():
            raise ValidationError("exitDate", "Exit date is required")
        if not (exit_details.exit_time or "").strip():
            raise ValidationError("exitTime", "Exit time is required")

        archiving = record.clone()
        archiving.is_marked_for_deletion = True
        archiving.exit_price = exit_details.exit_price
        archiving.exit_date = exit_details.exit_date.strip()
        archiving.exit_time = exit_details.exit_time.strip()
        if exit_details.profit_earned is not None:
            archiving.profit_earned = exit_details.profit_earned

        archived = self.store.update(archiving.id, archiving, ARCHIVE_MASK)
        logger.info(f"Archived {archived.id} ({archived.stock_symbol}) exit @ {archived.exit_price}")
        return self.refresh_flags(archived)

    def hard_delete(self, record: RecommendationRecord) -> None:
        """Permanent removal from any state."""
        if record.is_new:
            return
        self.store.delete(record.id)
        logger.info(f"Hard-deleted {record.id} ({record.stock_symbol})")

    # ── Helpers ─────────────────────────────────────────────────────────

    @staticmethod
    def refresh_flags(record: RecommendationRecord) -> RecommendationRecord:
        record.modified_flags = compute_diff(record.baseline, record)
        return record

    @staticmethod
    def _editable_mask(field_mask: Optional[Iterable[str]]) -> List[str]:
        if field_mask is None:
            return list(EDITABLE_FIELDS)
        mask = mask_for(field_mask)
        for name in mask:
            if resolve_field(name).attr in _PROTECTED_ATTRS:
                raise ValidationError(name, f"{name} cannot be saved directly")
        return mask

    @staticmethod
    def _ensure_not_archived(record: RecommendationRecord):
        if record.is_archived:
            raise ValidationError("isMarkedForDeletion", "Archived stock ideas cannot change")
