"""
Document Mapper — whole records to and from tagged-field documents.

Simple interface:
    to_document(record, field_mask=None) -> Document
    from_document(doc) -> RecommendationRecord
    changed_fields(before, after) -> [wire names]

Hides: the wire name of every field, which fields are optional, enum
fallbacks, nested trade actions and the nested baseline.

The tagged representation stops here. Nothing above this module sees a
TaggedValue.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

from errors import MappingError, ValidationError
from models import (
    Action, Baseline, Exchange, RecommendationRecord, Term, TradeAction,
    TradeActionType, enum_or_default,
)
from typed_codec import (
    FieldType, TaggedValue, ValueKind, decode, encode, fields_from_wire, fields_to_wire,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Field tables
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FieldSpec:
    wire: str
    attr: str
    type: FieldType
    # Optional fields decode to None when absent; the rest to the zero value
    optional: bool = False
    enum: Optional[Type] = None
    enum_default: Any = None
    nested: Tuple["FieldSpec", ...] = ()
    factory: Optional[Callable[..., Any]] = None


ACTION_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("id", "id", FieldType.STRING),
    FieldSpec("type", "type", FieldType.STRING,
              enum=TradeActionType, enum_default=TradeActionType.AVERAGING),
    FieldSpec("date", "date", FieldType.STRING),
    FieldSpec("entryPrice", "entry_price", FieldType.NUMBER),
    FieldSpec("entryRangeMin", "entry_range_min", FieldType.NUMBER),
    FieldSpec("entryRangeMax", "entry_range_max", FieldType.NUMBER),
    FieldSpec("note", "note", FieldType.STRING),
)

BASELINE_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("stoploss", "stoploss", FieldType.NUMBER),
    FieldSpec("targetPrice", "target_price", FieldType.NUMBER),
    FieldSpec("durationText", "duration_text", FieldType.STRING),
)

RECORD_FIELDS: Tuple[FieldSpec, ...] = (
    # Required scalars
    FieldSpec("userId", "user_id", FieldType.STRING),
    FieldSpec("stockSymbol", "stock_symbol", FieldType.STRING),
    FieldSpec("stockName", "stock_name", FieldType.STRING),
    FieldSpec("stockExchange", "exchange", FieldType.STRING,
              enum=Exchange, enum_default=Exchange.NSE),
    FieldSpec("term", "term", FieldType.STRING, enum=Term, enum_default=Term.MID),
    FieldSpec("recommendation", "action", FieldType.STRING,
              enum=Action, enum_default=Action.HOLD),
    FieldSpec("date", "date", FieldType.STRING),
    FieldSpec("entryPrice", "entry_price", FieldType.NUMBER),
    FieldSpec("currentPrice", "current_price", FieldType.NUMBER),
    FieldSpec("targetPrice", "target_price", FieldType.NUMBER),
    FieldSpec("stoploss", "stoploss", FieldType.NUMBER),
    FieldSpec("potentialLeftPct", "potential_left_pct", FieldType.NUMBER),
    FieldSpec("durationText", "duration_text", FieldType.STRING),
    FieldSpec("reason", "reason", FieldType.STRING),
    FieldSpec("createdBy", "created_by", FieldType.STRING),
    FieldSpec("targetHit", "target_hit", FieldType.BOOLEAN),
    FieldSpec("stoplossHit", "stoploss_hit", FieldType.BOOLEAN),

    # Optional scalars
    FieldSpec("entryRangeMin", "entry_range_min", FieldType.NUMBER, optional=True),
    FieldSpec("entryRangeMax", "entry_range_max", FieldType.NUMBER, optional=True),
    FieldSpec("cmp", "cmp", FieldType.NUMBER, optional=True),
    FieldSpec("changePct", "change_pct", FieldType.NUMBER, optional=True),
    FieldSpec("imageUrl", "image_url", FieldType.STRING, optional=True),
    FieldSpec("researchReportUrl", "research_report_url", FieldType.STRING, optional=True),
    FieldSpec("postedAt", "posted_at", FieldType.TIMESTAMP, optional=True),
    FieldSpec("exitPrice", "exit_price", FieldType.NUMBER, optional=True),
    FieldSpec("exitDate", "exit_date", FieldType.STRING, optional=True),
    FieldSpec("exitTime", "exit_time", FieldType.STRING, optional=True),
    FieldSpec("profitEarned", "profit_earned", FieldType.STRING, optional=True),
    FieldSpec("isMarkedForDeletion", "is_marked_for_deletion", FieldType.BOOLEAN, optional=True),
    FieldSpec("createdAt", "created_at", FieldType.TIMESTAMP, optional=True),
    FieldSpec("updatedAt", "updated_at", FieldType.TIMESTAMP, optional=True),

    # Collections
    FieldSpec("actions", "actions", FieldType.RECORD_LIST,
              nested=ACTION_FIELDS, factory=TradeAction),
    FieldSpec("alerts", "alerts", FieldType.STRING_LIST),
    FieldSpec("baseline", "baseline", FieldType.RECORD, optional=True,
              nested=BASELINE_FIELDS, factory=Baseline),
)

_BY_WIRE: Dict[str, FieldSpec] = {spec.wire: spec for spec in RECORD_FIELDS}
_BY_ATTR: Dict[str, FieldSpec] = {spec.attr: spec for spec in RECORD_FIELDS}

ALL_FIELDS: Tuple[str, ...] = tuple(spec.wire for spec in RECORD_FIELDS)


def resolve_field(name: str) -> FieldSpec:
    """Look up a record field by wire name or attribute name."""
    spec = _BY_WIRE.get(name) or _BY_ATTR.get(name)
    if spec is None:
        raise ValidationError(name, f"Unknown stock idea field: {name}")
    return spec


def attribute_for(name: str) -> str:
    return resolve_field(name).attr


# ═══════════════════════════════════════════════════════════════════════════
# Document
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Document:
    """A stored document. `name` is its resource path; the last segment is the id."""
    name: Optional[str] = None
    fields: Dict[str, TaggedValue] = field(default_factory=dict)
    create_time: Optional[str] = None
    update_time: Optional[str] = None

    @property
    def doc_id(self) -> Optional[str]:
        if not self.name:
            return None
        return self.name.rstrip("/").rsplit("/", 1)[-1]

    def to_wire(self) -> Dict[str, Any]:
        return {"fields": fields_to_wire(self.fields)}

    @classmethod
    def from_wire(cls, raw: Any) -> "Document":
        if not isinstance(raw, dict):
            raise MappingError("document", f"expected an object, got {type(raw).__name__}")
        return cls(
            name=raw.get("name"),
            fields=fields_from_wire(raw.get("fields")),
            create_time=raw.get("createTime"),
            update_time=raw.get("updateTime"),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Record → Document
# ═══════════════════════════════════════════════════════════════════════════

def to_document(record: RecommendationRecord,
                field_mask: Optional[Iterable[str]] = None) -> Document:
    """Encode a record. With a mask, only the named fields are encoded.

    A masked field whose value is None is left out of the body; sent with
    the same mask, that clears the field on the server.
    """
    if field_mask is None:
        specs = RECORD_FIELDS
    else:
        specs = _dedupe(resolve_field(name) for name in field_mask)

    fields = _encode_fields(record, specs)
    name = None if record.is_new else record.id
    return Document(name=name, fields=fields)


def mask_for(field_mask: Iterable[str]) -> List[str]:
    """Normalise a mask of wire or attribute names to wire names, in order."""
    return [spec.wire for spec in _dedupe(resolve_field(name) for name in field_mask)]


def _dedupe(specs: Iterable[FieldSpec]) -> Tuple[FieldSpec, ...]:
    seen = {}
    for spec in specs:
        seen.setdefault(spec.wire, spec)
    return tuple(seen.values())


def _encode_fields(obj: Any, specs: Iterable[FieldSpec]) -> Dict[str, TaggedValue]:
    encoded = {}
    for spec in specs:
        value = getattr(obj, spec.attr)
        if spec.type == FieldType.RECORD_LIST:
            value = [_encode_fields(item, spec.nested) for item in value or []]
        elif spec.type == FieldType.RECORD and value is not None:
            value = _encode_fields(value, spec.nested)
        tagged = encode(value, spec.type)
        if tagged is not None:
            encoded[spec.wire] = tagged
    return encoded


# ═══════════════════════════════════════════════════════════════════════════
# Document → Record
# ═══════════════════════════════════════════════════════════════════════════

def from_document(doc: Document) -> RecommendationRecord:
    """Decode every known field. The id comes from the resource path."""
    record_id = doc.doc_id
    if not record_id:
        raise MappingError("name", "document has no resource name")

    values = _decode_fields(doc.fields, RECORD_FIELDS, path="")
    return RecommendationRecord(id=record_id, **values)


def record_from_wire(raw: Any) -> RecommendationRecord:
    return from_document(Document.from_wire(raw))


def _decode_fields(fields: Dict[str, TaggedValue], specs: Iterable[FieldSpec],
                   path: str) -> Dict[str, Any]:
    values = {}
    for spec in specs:
        field_path = f"{path}.{spec.wire}" if path else spec.wire
        tagged = fields.get(spec.wire)

        if spec.optional and (tagged is None or tagged.kind == ValueKind.NULL):
            values[spec.attr] = None
            continue

        native = decode(tagged, spec.type, field_path)

        if spec.enum is not None:
            native = _decode_enum(spec, native, field_path)
        elif spec.type == FieldType.RECORD_LIST:
            native = [
                spec.factory(**_decode_fields(item, spec.nested, f"{field_path}[{i}]"))
                for i, item in enumerate(native)
            ]
        elif spec.type == FieldType.RECORD:
            native = spec.factory(**_decode_fields(native, spec.nested, field_path)) if native else None

        values[spec.attr] = native
    return values


def _decode_enum(spec: FieldSpec, raw: str, path: str):
    member = enum_or_default(spec.enum, raw, spec.enum_default)
    if raw and member.value != raw:
        logger.warning(f"{path}: unknown value {raw!r}, using {member.value}")
    return member


# ═══════════════════════════════════════════════════════════════════════════
# Diffing
# ═══════════════════════════════════════════════════════════════════════════

def changed_fields(before: RecommendationRecord, after: RecommendationRecord) -> List[str]:
    """Wire names whose encoded values differ, in field-table order."""
    old = to_document(before).fields
    new = to_document(after).fields
    return [
        spec.wire for spec in RECORD_FIELDS
        if old.get(spec.wire) != new.get(spec.wire)
    ]
