"""
Typed-Value Codec — one value at a time between native Python and the
document store's tagged wire format.

The store never infers a type from JSON shape. Every value travels inside
a single-key wrapper naming its type:

    {"stringValue": "INFY"}
    {"doubleValue": 1520.5}          {"integerValue": "1520"}
    {"booleanValue": false}
    {"timestampValue": "2024-01-01T10:30:00Z"}
    {"arrayValue": {"values": [...]}}
    {"mapValue": {"fields": {...}}}

Rules:
  • None is never encoded. The caller omits the field instead.
  • Numbers always encode as doubleValue; either numeric tag decodes to float
    (integerValue arrives as a JSON string and is converted).
  • A missing tag, or a tag with no value, decodes to the type's zero value.
  • Unknown tags are ignored.
  • A tag of the wrong kind for the field raises MappingError with the path.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import MappingError

logger = logging.getLogger(__name__)


class ValueKind(Enum):
    """Wire discriminators. The value is the JSON key used on the wire."""
    STRING = "stringValue"
    INTEGER = "integerValue"
    DOUBLE = "doubleValue"
    BOOLEAN = "booleanValue"
    TIMESTAMP = "timestampValue"
    ARRAY = "arrayValue"
    MAP = "mapValue"
    NULL = "nullValue"


_KIND_BY_TAG = {kind.value: kind for kind in ValueKind}


class FieldType(Enum):
    """Logical type a field is declared with on the native side."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    STRING_LIST = "string_list"
    RECORD_LIST = "record_list"
    RECORD = "record"


# Wire kinds each logical type accepts on read
_ACCEPTED_KINDS = {
    FieldType.STRING: (ValueKind.STRING, ValueKind.TIMESTAMP),
    FieldType.NUMBER: (ValueKind.DOUBLE, ValueKind.INTEGER),
    FieldType.BOOLEAN: (ValueKind.BOOLEAN,),
    FieldType.TIMESTAMP: (ValueKind.TIMESTAMP, ValueKind.STRING),
    FieldType.STRING_LIST: (ValueKind.ARRAY,),
    FieldType.RECORD_LIST: (ValueKind.ARRAY,),
    FieldType.RECORD: (ValueKind.MAP,),
}


@dataclass(frozen=True)
class TaggedValue:
    """A value paired with its wire discriminator.

    `value` holds str / float / int / bool for scalars, a list of
    TaggedValue for ARRAY and a dict of name → TaggedValue for MAP.
    """
    kind: ValueKind
    value: Any = None

    # ── Wire form ───────────────────────────────────────────────────────

    def to_wire(self) -> Dict[str, Any]:
        if self.kind == ValueKind.ARRAY:
            return {self.kind.value: {"values": [v.to_wire() for v in self.value or []]}}
        if self.kind == ValueKind.MAP:
            return {self.kind.value: {"fields": fields_to_wire(self.value or {})}}
        if self.kind == ValueKind.INTEGER:
            # int64 travels as a JSON string
            return {self.kind.value: str(self.value)}
        return {self.kind.value: self.value}

    @classmethod
    def from_wire(cls, raw: Any, path: str) -> Optional["TaggedValue"]:
        """Parse one wire wrapper. Returns None when it carries no known tag."""
        if not isinstance(raw, dict):
            raise MappingError(path, f"expected a tagged value object, got {type(raw).__name__}")

        for tag, payload in raw.items():
            kind = _KIND_BY_TAG.get(tag)
            if kind is None:
                continue
            if kind == ValueKind.ARRAY:
                return cls(kind, _array_from_wire(payload, path))
            if kind == ValueKind.MAP:
                return cls(kind, _map_from_wire(payload, path))
            return cls(kind, payload)

        logger.debug(f"{path}: no known tag in {sorted(raw)}")
        return None


def fields_to_wire(fields: Dict[str, TaggedValue]) -> Dict[str, Any]:
    return {name: tv.to_wire() for name, tv in fields.items()}


def fields_from_wire(raw: Any, path: str = "") -> Dict[str, TaggedValue]:
    """Parse a `fields` object. Entries without a known tag are dropped."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise MappingError(path or "fields", f"expected an object, got {type(raw).__name__}")
    parsed = {}
    for name, value in raw.items():
        tv = TaggedValue.from_wire(value, _join(path, name))
        if tv is not None:
            parsed[name] = tv
    return parsed


def _array_from_wire(payload: Any, path: str) -> List[TaggedValue]:
    if payload is None:
        return []
    if not isinstance(payload, dict):
        raise MappingError(path, "arrayValue must be an object")
    values = payload.get("values")
    if values is None:
        # The store omits "values" for an empty array
        return []
    if not isinstance(values, list):
        raise MappingError(path, "arrayValue.values must be a list")
    parsed = []
    for i, raw in enumerate(values):
        if not isinstance(raw, dict):
            logger.debug(f"{path}[{i}]: untagged entry {raw!r}")
            parsed.append(TaggedValue(ValueKind.NULL))
            continue
        tv = TaggedValue.from_wire(raw, f"{path}[{i}]")
        # Keep position so list decoders can reject or filter it
        parsed.append(tv if tv is not None else TaggedValue(ValueKind.NULL))
    return parsed


def _map_from_wire(payload: Any, path: str) -> Dict[str, TaggedValue]:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise MappingError(path, "mapValue must be an object")
    return fields_from_wire(payload.get("fields"), path)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


# ═══════════════════════════════════════════════════════════════════════════
# Encode
# ═══════════════════════════════════════════════════════════════════════════

def encode(value: Any, field_type: FieldType) -> Optional[TaggedValue]:
    """Native → tagged. Returns None for None so the caller drops the key."""
    if value is None:
        return None

    if field_type == FieldType.STRING:
        return TaggedValue(ValueKind.STRING, value.value if isinstance(value, Enum) else str(value))

    if field_type == FieldType.NUMBER:
        if isinstance(value, bool):
            raise TypeError(f"Refusing to encode bool {value!r} as a number")
        return TaggedValue(ValueKind.DOUBLE, float(value))

    if field_type == FieldType.BOOLEAN:
        return TaggedValue(ValueKind.BOOLEAN, bool(value))

    if field_type == FieldType.TIMESTAMP:
        if isinstance(value, datetime):
            value = value.isoformat()
        return TaggedValue(ValueKind.TIMESTAMP, value)

    if field_type == FieldType.STRING_LIST:
        return TaggedValue(ValueKind.ARRAY, [TaggedValue(ValueKind.STRING, str(v)) for v in value])

    if field_type == FieldType.RECORD_LIST:
        return TaggedValue(ValueKind.ARRAY, [TaggedValue(ValueKind.MAP, dict(v)) for v in value])

    if field_type == FieldType.RECORD:
        return TaggedValue(ValueKind.MAP, dict(value))

    raise ValueError(f"Unknown field type: {field_type}")


# ═══════════════════════════════════════════════════════════════════════════
# Decode
# ═══════════════════════════════════════════════════════════════════════════

_ZERO = {
    FieldType.STRING: "",
    FieldType.NUMBER: 0.0,
    FieldType.BOOLEAN: False,
    FieldType.TIMESTAMP: "",
}


def zero_value(field_type: FieldType) -> Any:
    if field_type in (FieldType.STRING_LIST, FieldType.RECORD_LIST):
        return []
    if field_type == FieldType.RECORD:
        return {}
    return _ZERO[field_type]


def decode(tagged: Optional[TaggedValue], field_type: FieldType, path: str) -> Any:
    """Tagged → native, defaulting absent data to the zero value.

    RECORD yields a dict of name → TaggedValue and RECORD_LIST a list of
    such dicts; turning those into domain objects is the mapper's job.
    """
    if tagged is None or tagged.kind == ValueKind.NULL:
        return zero_value(field_type)

    if tagged.kind not in _ACCEPTED_KINDS[field_type]:
        raise MappingError(path, f"expected {field_type.value}, found {tagged.kind.value}")

    if tagged.value is None:
        return zero_value(field_type)

    if field_type in (FieldType.STRING, FieldType.TIMESTAMP):
        return str(tagged.value)

    if field_type == FieldType.NUMBER:
        return _to_float(tagged, path)

    if field_type == FieldType.BOOLEAN:
        if not isinstance(tagged.value, bool):
            raise MappingError(path, f"booleanValue is not a bool: {tagged.value!r}")
        return tagged.value

    if field_type == FieldType.STRING_LIST:
        strings = [v.value for v in tagged.value if v.kind == ValueKind.STRING and v.value is not None]
        dropped = len(tagged.value) - len(strings)
        if dropped:
            logger.debug(f"{path}: dropped {dropped} entries without a string tag")
        return strings

    if field_type == FieldType.RECORD_LIST:
        records = []
        for i, item in enumerate(tagged.value):
            if item.kind != ValueKind.MAP:
                raise MappingError(f"{path}[{i}]", f"expected a nested record, found {item.kind.value}")
            records.append(item.value or {})
        return records

    # FieldType.RECORD
    return tagged.value


def _to_float(tagged: TaggedValue, path: str) -> float:
    raw = tagged.value
    if isinstance(raw, bool):
        raise MappingError(path, f"{tagged.kind.value} holds a bool")
    try:
        if tagged.kind == ValueKind.INTEGER:
            return float(int(raw))
        return float(raw)
    except (TypeError, ValueError) as e:
        raise MappingError(path, f"{tagged.kind.value} is not numeric: {raw!r}") from e
