"""
Shared pytest fixtures for the stock-idea tests.

- Data directory pointed at a throwaway temp dir before config is imported
- Sample records (draft, saved) and a sample wire document
- Offline stores under tmp_path with deterministic ids
- Fake HTTP responses for the REST clients
"""

import itertools
import json
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

os.environ["STOCK_IDEAS_DATA_DIR"] = tempfile.mkdtemp(prefix="stock-ideas-tests-")
os.environ["STORE_BACKEND"] = "offline"

sys.path.insert(0, str(Path(__file__).parent.parent))

from lifecycle import RecommendationLifecycle  # noqa: E402
from models import (  # noqa: E402
    NEW_ID, Action, Exchange, RecommendationRecord, Term, TradeAction, TradeActionType,
)
from store_interface import OfflineMirrorStore  # noqa: E402


# =============================================================================
# Records
# =============================================================================


def _record(record_id):
    return RecommendationRecord(
        id=record_id,
        user_id="admin",
        stock_symbol="INFY",
        stock_name="Infosys Ltd",
        exchange=Exchange.NSE,
        term=Term.MID,
        action=Action.BUY,
        date="2024-01-01T09:15:00.000Z",
        entry_price=1500.0,
        target_price=1800.0,
        stoploss=1400.0,
        potential_left_pct=20.0,
        duration_text="3 months",
        reason="Strong deal pipeline and margin recovery",
        created_by="admin",
        entry_range_min=1480.0,
        entry_range_max=1520.0,
        cmp=1510.0,
        actions=[
            TradeAction(
                id="act-1",
                type=TradeActionType.AVERAGING,
                date="2024-01-05T10:00:00.000Z",
                entry_price=1450.0,
                entry_range_min=1440.0,
                entry_range_max=1460.0,
                note="Added on dip",
            ),
            TradeAction(
                id="act-2",
                type=TradeActionType.PARTIAL_BOOKING,
                date="2024-02-10T11:30:00.000Z",
                entry_price=1700.0,
            ),
        ],
        alerts=["Results on 12 Jan"],
    )


@pytest.fixture
def draft_record() -> RecommendationRecord:
    """Unsaved draft carrying the NEW_ID sentinel."""
    return _record(NEW_ID)


@pytest.fixture
def saved_record() -> RecommendationRecord:
    return _record("abc123")


@pytest.fixture
def wire_document() -> dict:
    """A stored document as the REST endpoint returns it."""
    return {
        "name": "projects/demo/databases/(default)/documents/stockRecommendations/abc123",
        "fields": {
            "userId": {"stringValue": "admin"},
            "stockSymbol": {"stringValue": "TCS"},
            "stockName": {"stringValue": "Tata Consultancy Services"},
            "stockExchange": {"stringValue": "BSE"},
            "term": {"stringValue": "long"},
            "recommendation": {"stringValue": "BUY"},
            "date": {"stringValue": "2024-03-01T09:15:00.000Z"},
            "entryPrice": {"integerValue": "3500"},
            "targetPrice": {"doubleValue": 4200.5},
            "stoploss": {"doubleValue": 3300},
            "potentialLeftPct": {"doubleValue": 20},
            "durationText": {"stringValue": "1 year"},
            "reason": {"stringValue": "Large deal wins"},
            "createdBy": {"stringValue": "admin"},
            "postedAt": {"timestampValue": "2024-03-01T10:00:00Z"},
            "actions": {"arrayValue": {"values": [
                {"mapValue": {"fields": {
                    "id": {"stringValue": "a1"},
                    "type": {"stringValue": "AVERAGING"},
                    "date": {"stringValue": "2024-03-10T10:00:00Z"},
                    "entryPrice": {"doubleValue": 3400},
                }}},
            ]}},
            "alerts": {"arrayValue": {}},
        },
        "createTime": "2024-03-01T09:15:00.000000Z",
        "updateTime": "2024-03-01T10:00:00.000000Z",
    }


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def mirror(tmp_path, id_factory) -> OfflineMirrorStore:
    return OfflineMirrorStore(tmp_path / "offline", id_factory=id_factory)


@pytest.fixture
def lifecycle(mirror) -> RecommendationLifecycle:
    return RecommendationLifecycle(mirror)


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def make_response():
    """Build a fake requests.Response."""

    def _make(status_code=200, payload=None, text=None):
        resp = MagicMock()
        resp.status_code = status_code
        resp.ok = status_code < 400
        body = text if text is not None else ("" if payload is None else json.dumps(payload))
        resp.text = body
        resp.content = body.encode()
        if payload is None and text is not None:
            resp.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            resp.json.return_value = payload
        return resp

    return _make


@pytest.fixture
def session():
    fake = MagicMock()
    fake.headers = {}
    return fake
