"""
Stock Idea Editor — session orchestrator and command line.

One EditorSession edits one record at a time:
1. open() loads the record and keeps a pristine copy next to the working copy
2. edits go through the lifecycle engine, which recomputes modified flags
3. save() sends only the fields that differ from the pristine copy
4. every saved record is mirrored to the offline store when one is attached
5. discard() throws the working copy away; the stored record is untouched
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from typing import Optional

from config import (
    DEFAULT_CREATED_BY, DEFAULT_PAGE_SIZE, DEFAULT_USER_ID, LOG_FORMAT,
    LOG_LEVEL, LOGS_DIR, STORE_BACKEND,
)
from display import Display, state_counts
from document_mapper import changed_fields
from errors import StockIdeaError, ValidationError
from file_storage import StorageService
from lifecycle import RecommendationLifecycle
from models import (
    NEW_ID, ExitDetails, ModifiedFlags, RecommendationRecord, TradeAction,
    TradeActionType, new_local_id, utc_now_iso,
)
from quote_service import QuoteService
from store_interface import OfflineMirrorStore, create_store

logger = logging.getLogger(__name__)


class EditorSession:
    """Explicit replacement for a global "current idea". Nothing is shared."""

    def __init__(
        self,
        lifecycle: RecommendationLifecycle,
        mirror: Optional[OfflineMirrorStore] = None,
        storage: Optional[StorageService] = None,
        quotes: Optional[QuoteService] = None,
        user_id: str = DEFAULT_USER_ID,
        created_by: str = DEFAULT_CREATED_BY,
    ):
        self.lifecycle = lifecycle
        self.mirror = mirror if mirror is not lifecycle.store else None
        self.storage = storage
        self.quotes = quotes
        self.user_id = user_id
        self.created_by = created_by

        self.pristine: Optional[RecommendationRecord] = None
        self.current: Optional[RecommendationRecord] = None

    # ── Loading ─────────────────────────────────────────────────────────

    def open(self, record_id: str = NEW_ID) -> RecommendationRecord:
        if record_id == NEW_ID:
            record = RecommendationRecord.blank(self.user_id, self.created_by)
        else:
            record = self.lifecycle.get(record_id)
        self._reset(record)
        logger.info(f"Opened {record_id} ({record.state.value})")
        return self.current

    def discard(self) -> RecommendationRecord:
        """Drop unsaved edits."""
        self.current = self._require(self.pristine).clone()
        return self.current

    @property
    def modified_flags(self) -> ModifiedFlags:
        return self._require(self.current).modified_flags

    @property
    def is_dirty(self) -> bool:
        return bool(changed_fields(self._require(self.pristine), self._require(self.current)))

    # ── Editing ─────────────────────────────────────────────────────────

    def edit(self, **changes) -> RecommendationRecord:
        self.current = self.lifecycle.edit(self._require(self.current), changes)
        return self.current

    def add_action(
        self,
        action_type: TradeActionType = TradeActionType.AVERAGING,
        entry_price: float = 0.0,
        date: Optional[str] = None,
        entry_range_min: float = 0.0,
        entry_range_max: float = 0.0,
        note: str = "",
    ) -> TradeAction:
        action = TradeAction(
            id=new_local_id(),
            type=action_type,
            date=date or utc_now_iso(),
            entry_price=entry_price,
            entry_range_min=entry_range_min,
            entry_range_max=entry_range_max,
            note=note,
        )
        current = self._require(self.current)
        self.edit(actions=current.actions + [action])
        return action

    def remove_action(self, action_id: str) -> RecommendationRecord:
        current = self._require(self.current)
        return self.edit(actions=[a for a in current.actions if a.id != action_id])

    def add_alert(self, text: str) -> RecommendationRecord:
        text = (text or "").strip()
        if not text:
            return self._require(self.current)
        return self.edit(alerts=self._require(self.current).alerts + [text])

    def remove_alert(self, index: int) -> RecommendationRecord:
        alerts = self._require(self.current).alerts
        return self.edit(alerts=[a for i, a in enumerate(alerts) if i != index])

    def refresh_quote(self) -> RecommendationRecord:
        if self.quotes is None:
            return self._require(self.current)
        refreshed = self.quotes.refresh(self._require(self.current))
        return self.edit(cmp=refreshed.cmp, change_pct=refreshed.change_pct)

    # ── Attachments ─────────────────────────────────────────────────────

    def attach_research_report(self, data: bytes, original_name: str, content_type: str) -> str:
        if self.storage is None:
            raise ValidationError("researchReportUrl", "No file storage configured")
        symbol = self._require(self.current).stock_symbol or "stock"
        ext = original_name.rsplit(".", 1)[-1] if "." in original_name else "bin"
        filename = f"{symbol}_report_{int(time.time() * 1000)}.{ext}"
        url = self.storage.upload_research_report(data, original_name, content_type, filename=filename)
        self.edit(research_report_url=url)
        return url

    def remove_research_report(self) -> RecommendationRecord:
        current = self._require(self.current)
        if current.research_report_url and self.storage is not None:
            self.storage.delete_file(current.research_report_url)
        return self.edit(research_report_url=None)

    # ── Persistence ─────────────────────────────────────────────────────

    def save(self) -> RecommendationRecord:
        current = self._require(self.current)
        if current.is_new:
            stored = self.lifecycle.save(current)
        else:
            mask = changed_fields(self._require(self.pristine), current)
            if not mask:
                logger.info(f"{current.id}: nothing to save")
                return current
            stored = self.lifecycle.save(current, mask)

        self._mirror(stored)
        self._reset(stored)
        return self.current

    def publish(self) -> RecommendationRecord:
        published = self.lifecycle.publish(self._require(self.current))
        self._mirror(published)
        if self.mirror is not None and published.baseline is not None:
            self.mirror.save_baseline(published.id, published.baseline)
        self._reset(published)
        return self.current

    def archive(self, exit_details: ExitDetails) -> RecommendationRecord:
        archived = self.lifecycle.archive(self._require(self.current), exit_details)
        self._mirror(archived)
        self._reset(archived)
        return self.current

    def delete(self) -> None:
        current = self._require(self.current)
        self.lifecycle.hard_delete(current)
        if self.mirror is not None and not current.is_new:
            self.mirror.delete(current.id)
        self.pristine = None
        self.current = None

    # ── Internal ────────────────────────────────────────────────────────

    def _mirror(self, record: RecommendationRecord):
        if self.mirror is None:
            return
        try:
            self.mirror.put(record)
        except OSError as e:
            logger.error(f"Offline mirror write failed for {record.id}: {e}")

    def _reset(self, record: RecommendationRecord):
        self.pristine = record
        self.current = record.clone()

    @staticmethod
    def _require(record: Optional[RecommendationRecord]) -> RecommendationRecord:
        if record is None:
            raise ValidationError("id", "No stock idea is open")
        return record


# ═══════════════════════════════════════════════════════════════════════════
# Command line
# ═══════════════════════════════════════════════════════════════════════════

def configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOGS_DIR / f"editor_{datetime.now().strftime('%Y%m%d')}.log"),
            logging.StreamHandler(),
        ],
    )


def build_session(backend: str = STORE_BACKEND) -> EditorSession:
    store = create_store(backend)
    mirror = OfflineMirrorStore() if backend != "offline" else None
    return EditorSession(
        RecommendationLifecycle(store),
        mirror=mirror,
        storage=StorageService() if backend == "firestore" else None,
        quotes=QuoteService(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stock idea editor")
    parser.add_argument("--backend", default=STORE_BACKEND, choices=["offline", "firestore"])
    sub = parser.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("list", help="List stock ideas")
    ls.add_argument("--all", action="store_true", help="Include archived ideas")
    ls.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE)

    for name in ("show", "publish", "delete", "quote"):
        cmd = sub.add_parser(name)
        cmd.add_argument("id")

    archive = sub.add_parser("archive", help="Exit and archive a stock idea")
    archive.add_argument("id")
    archive.add_argument("--exit-price", type=float, required=True)
    archive.add_argument("--exit-date", required=True)
    archive.add_argument("--exit-time", required=True)
    archive.add_argument("--profit")
    return parser


def run(args: argparse.Namespace, session: EditorSession, display: Display) -> int:
    if args.command == "list":
        records = session.lifecycle.list(page_size=args.page_size, include_archived=args.all)
        records.sort(key=lambda r: r.updated_at or r.created_at or "", reverse=True)
        display.show_header()
        display.show_list(records)
        counts = state_counts(records)
        print("  " + " │ ".join(f"{state.value}: {n}" for state, n in counts.items()))
        return 0

    session.open(args.id)

    if args.command == "publish":
        session.publish()
    elif args.command == "quote":
        session.refresh_quote()
        session.save()
    elif args.command == "archive":
        session.archive(ExitDetails(args.exit_price, args.exit_date, args.exit_time, args.profit))
    elif args.command == "delete":
        session.delete()
        print(f"  Deleted {args.id}")
        return 0

    display.show_record(session.current)
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging()
    try:
        sys.exit(run(args, build_session(args.backend), Display()))
    except StockIdeaError as e:
        logger.error(f"{e.error_code}: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
