"""
Terminal Display Module

- Stock-idea table with lifecycle state per row
- Single-idea card with modified-since-publish markers
- Recent trade updates (latest first)
"""

import logging
from datetime import datetime
from typing import List

from config import RECENT_UPDATES_LIMIT, TERMINAL_WIDTH
from models import (
    Action, LifecycleState, RecommendationRecord, TradeAction, TradeActionType, parse_iso,
)

logger = logging.getLogger(__name__)

_ACTION_LABELS = {
    TradeActionType.AVERAGING: "Averaging",
    TradeActionType.PARTIAL_BOOKING: "Partial booking",
    TradeActionType.ADD_ALERT: "Alert added",
}


def format_trade_action(action: TradeAction) -> str:
    """'Averaging @ 2560 on 01 Jan'."""
    parsed = parse_iso(action.date)
    when = parsed.strftime("%d %b") if parsed else action.date
    label = _ACTION_LABELS.get(action.type, action.type.value)
    return f"{label} @ {action.entry_price:g} on {when}"


def recent_trade_updates(record: RecommendationRecord, limit: int = RECENT_UPDATES_LIMIT) -> List[str]:
    return [format_trade_action(a) for a in record.recent_updates(limit)]


class Display:
    def __init__(self, width: int = TERMINAL_WIDTH, currency: str = "INR"):
        self.width = width
        self.currency = currency

    def _fc(self, amount) -> str:
        """Format currency."""
        if amount is None:
            return "—"
        symbols = {"INR": "₹", "EUR": "€"}
        sym = symbols.get(self.currency, "$")
        return f"{sym}{amount:,.2f}"

    def show_header(self, title: str = "STOCK IDEAS"):
        w = self.width
        print("=" * w)
        print(f"{title:^{w}}")
        print("=" * w)
        print(f"  Last Updated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print("=" * w)
        print()

    def show_list(self, records: List[RecommendationRecord]):
        w = self.width
        print(f"┌{'─' * (w - 2)}┐")
        print(f"│{'RECOMMENDATIONS':^{w - 2}}│")
        print(f"├{'─' * (w - 2)}┤")

        if not records:
            print(f"│{'No stock ideas':^{w - 2}}│")
            print(f"└{'─' * (w - 2)}┘")
            return

        header = (
            f"│ {'Id':20s} │ {'Symbol':10s} │ {'Exch':4s} │ {'Act':4s} │ {'Term':5s} │ "
            f"{'Entry':>12s} │ {'Target':>12s} │ {'Stop':>12s} │ {'State':9s} │ {'Actions':>7s} │"
        )
        print(header)
        print(f"├{'─' * (w - 2)}┤")

        for rec in records:
            print(
                f"│ {(rec.id or '')[:20]:20s} │ {rec.stock_symbol[:10]:10s} │ "
                f"{rec.exchange.value:4s} │ {rec.action.value:4s} │ {rec.term.value:5s} │ "
                f"{self._fc(rec.entry_price):>12s} │ {self._fc(rec.target_price):>12s} │ "
                f"{self._fc(rec.stoploss):>12s} │ {rec.state.value:9s} │ {len(rec.actions):>7d} │"
            )

        print(f"└{'─' * (w - 2)}┘")
        print()

    def show_record(self, rec: RecommendationRecord):
        w = self.width
        action_colors = {
            Action.BUY: "\033[92m",
            Action.HOLD: "\033[93m",
            Action.SELL: "\033[91m",
        }
        reset = "\033[0m"
        color = action_colors.get(rec.action, reset)
        flags = rec.modified_flags

        print(f"┌{'─' * (w - 2)}┐")
        print(
            f"│ {color}{rec.stock_symbol:10s}{reset} │ {rec.stock_name} ({rec.exchange.value}) │ "
            f"Action: {color}{rec.action.value}{reset} │ Term: {rec.term.value} │ "
            f"State: {rec.state.value}"
        )
        print(f"├{'─' * (w - 2)}┤")

        price_line = f"│  Entry: {self._fc(rec.entry_price)}"
        if rec.entry_range_min and rec.entry_range_max:
            price_line += f" ({self._fc(rec.entry_range_min)} – {self._fc(rec.entry_range_max)})"
        price_line += f"  │  Target: {self._fc(rec.target_price)}{self._marker(flags.target_price_changed)}"
        if rec.calculated_target_price is not None:
            price_line += f" (calc {self._fc(rec.calculated_target_price)})"
        price_line += f"  │  Stop: {self._fc(rec.stoploss)}{self._marker(flags.stoploss_changed)}"
        price_line += f"  │  Duration: {rec.duration_text}{self._marker(flags.duration_changed)}"
        print(price_line)

        if rec.cmp is not None:
            change = f" ({rec.change_pct:+.2f}%)" if rec.change_pct is not None else ""
            print(f"│  CMP: {self._fc(rec.cmp)}{change}  │  Potential left: {rec.potential_left_pct:.1f}%")
        if rec.is_outside_buy_zone:
            print("│  ⚠ CMP is outside the buy zone")
        if rec.posted_at:
            print(f"│  Published: {rec.posted_at}")
        if rec.is_archived:
            print(
                f"│  Exited @ {self._fc(rec.exit_price)} on {rec.exit_date} {rec.exit_time}"
                f"  │  Profit: {rec.profit_earned or '—'}"
            )

        updates = recent_trade_updates(rec)
        if updates:
            print(f"├{'─' * (w - 2)}┤")
            print("│  RECENT UPDATES:")
            for line in updates:
                print(f"│    • {line}")

        if rec.alerts:
            print(f"├{'─' * (w - 2)}┤")
            for alert in rec.alerts:
                print(f"│  🔔 {alert}")

        if rec.reason:
            print(f"├{'─' * (w - 2)}┤")
            self._print_wrapped(f"│  REASON: {rec.reason}", w)
        print(f"└{'─' * (w - 2)}┘")

    @staticmethod
    def _marker(changed: bool) -> str:
        return " ✎" if changed else ""

    def _print_wrapped(self, text: str, width: int):
        words = text.split()
        line = ""
        for word in words:
            if len(line) + len(word) + 1 > width - 3:
                print(f"{line:<{width - 1}}│")
                line = "│  " + word + " "
            else:
                line += word + " " if line else "│  " + word + " "
        if line:
            print(f"{line:<{width - 1}}│")


def state_counts(records: List[RecommendationRecord]) -> dict:
    counts = {state: 0 for state in LifecycleState}
    for rec in records:
        counts[rec.state] += 1
    return counts
