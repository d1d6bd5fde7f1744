"""Core data models — single source of truth for a stock idea.

All derived values (state, calculated target, buy-zone check, recent
updates) are computed here so the lifecycle engine, the editor and the
display never disagree about them.
"""

from __future__ import annotations

import copy
import random
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Id of a record that has never been saved
NEW_ID = "new"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class Exchange(Enum):
    NSE = "NSE"
    BSE = "BSE"


class Term(Enum):
    SHORT = "short"
    MID = "mid"
    LONG = "long"


class Action(Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class TradeActionType(Enum):
    AVERAGING = "AVERAGING"
    PARTIAL_BOOKING = "PARTIAL_BOOKING"
    ADD_ALERT = "ADD_ALERT"


class LifecycleState(Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"
    AMENDED = "Amended"
    ARCHIVED = "Archived"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def new_local_id() -> str:
    """Timestamp + random suffix. Best-effort unique, not collision-proof."""
    stamp = _to_base36(time.time_ns() // 1_000_000)
    suffix = "".join(random.choice(_BASE36) for _ in range(11))
    return stamp + suffix


def parse_iso(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def enum_or_default(enum_cls, raw: Any, default):
    """Map a stored string onto an enum member, falling back to default."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return default


@dataclass
class TradeAction:
    id: str
    type: TradeActionType
    date: str
    entry_price: float
    # 0 means "no range given"
    entry_range_min: float = 0.0
    entry_range_max: float = 0.0
    note: str = ""

    @property
    def sort_key(self) -> datetime:
        return parse_iso(self.date) or datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Baseline:
    """Publish-time snapshot. Written once, never mutated."""
    stoploss: float
    target_price: float
    duration_text: str


@dataclass
class ModifiedFlags:
    stoploss_changed: bool = False
    target_price_changed: bool = False
    duration_changed: bool = False

    @property
    def any_changed(self) -> bool:
        return self.stoploss_changed or self.target_price_changed or self.duration_changed


@dataclass
class ExitDetails:
    exit_price: float
    exit_date: str
    exit_time: str
    profit_earned: Optional[str] = None


@dataclass
class RecommendationRecord:
    user_id: str
    stock_symbol: str
    stock_name: str
    exchange: Exchange
    term: Term
    action: Action
    date: str
    entry_price: float
    target_price: float
    stoploss: float
    potential_left_pct: float
    duration_text: str
    reason: str
    created_by: str

    id: Optional[str] = None
    current_price: float = 0.0
    target_hit: bool = False
    stoploss_hit: bool = False
    entry_range_min: Optional[float] = None
    entry_range_max: Optional[float] = None
    cmp: Optional[float] = None
    change_pct: Optional[float] = None
    image_url: Optional[str] = None
    research_report_url: Optional[str] = None
    posted_at: Optional[str] = None
    exit_price: Optional[float] = None
    exit_date: Optional[str] = None
    exit_time: Optional[str] = None
    profit_earned: Optional[str] = None
    is_marked_for_deletion: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    actions: List[TradeAction] = field(default_factory=list)
    alerts: List[str] = field(default_factory=list)
    baseline: Optional[Baseline] = None

    # UI-only, recomputed on every edit
    modified_flags: ModifiedFlags = field(default_factory=ModifiedFlags, compare=False)

    @classmethod
    def blank(cls, user_id: str, created_by: str) -> "RecommendationRecord":
        """An unsaved draft carrying the NEW_ID sentinel."""
        return cls(
            user_id=user_id,
            stock_symbol="",
            stock_name="",
            exchange=Exchange.NSE,
            term=Term.MID,
            action=Action.BUY,
            date=utc_now_iso(),
            entry_price=0.0,
            target_price=0.0,
            stoploss=0.0,
            potential_left_pct=0.0,
            duration_text="",
            reason="",
            created_by=created_by,
            id=NEW_ID,
        )

    # ── Lifecycle view ─────────────────────────────────────────────────────

    @property
    def is_new(self) -> bool:
        return not self.id or self.id == NEW_ID

    @property
    def is_published(self) -> bool:
        return bool(self.posted_at)

    @property
    def is_archived(self) -> bool:
        return bool(self.is_marked_for_deletion)

    @property
    def state(self) -> LifecycleState:
        if self.is_archived:
            return LifecycleState.ARCHIVED
        if not self.is_published:
            return LifecycleState.DRAFT
        if self.modified_flags.any_changed:
            return LifecycleState.AMENDED
        return LifecycleState.PUBLISHED

    # ── Derived values ─────────────────────────────────────────────────────

    @property
    def calculated_target_price(self) -> Optional[float]:
        """Entry × (1 + potential% / 100); potential is in percent, e.g. 25."""
        if self.entry_price > 0 and self.potential_left_pct > 0:
            return self.entry_price * (1 + self.potential_left_pct / 100)
        return None

    @property
    def is_outside_buy_zone(self) -> bool:
        if not self.cmp or not self.entry_range_min or not self.entry_range_max:
            return False
        return self.cmp < self.entry_range_min or self.cmp > self.entry_range_max

    def recent_updates(self, limit: int = 3) -> List[TradeAction]:
        """Most recent trade actions first. The stored order is left alone."""
        return sorted(self.actions, key=lambda a: a.sort_key, reverse=True)[:limit]

    def clone(self) -> "RecommendationRecord":
        """Deep copy; actions and alerts are never shared with the original."""
        return copy.deepcopy(self)

    # ── Plain JSON (offline mirror) ────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("modified_flags", None)
        data["exchange"] = self.exchange.value
        data["term"] = self.term.value
        data["action"] = self.action.value
        for entry, action in zip(data["actions"], self.actions):
            entry["type"] = action.type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecommendationRecord":
        actions = [
            TradeAction(
                id=a.get("id", ""),
                type=enum_or_default(TradeActionType, a.get("type"), TradeActionType.AVERAGING),
                date=a.get("date", ""),
                entry_price=float(a.get("entry_price") or 0.0),
                entry_range_min=float(a.get("entry_range_min") or 0.0),
                entry_range_max=float(a.get("entry_range_max") or 0.0),
                note=a.get("note") or "",
            )
            for a in data.get("actions") or []
        ]
        baseline = data.get("baseline")
        known = {
            k: v for k, v in data.items()
            if k in _RECORD_FIELD_NAMES and k not in ("actions", "baseline", "exchange", "term", "action")
        }
        return cls(
            **known,
            exchange=enum_or_default(Exchange, data.get("exchange"), Exchange.NSE),
            term=enum_or_default(Term, data.get("term"), Term.MID),
            action=enum_or_default(Action, data.get("action"), Action.HOLD),
            actions=actions,
            baseline=Baseline(**baseline) if baseline else None,
        )


_RECORD_FIELD_NAMES = {
    name for name in RecommendationRecord.__dataclass_fields__ if name != "modified_flags"
}
