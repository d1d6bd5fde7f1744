"""
Recommendation Store — Firestore REST v1 + offline mirror

Key design decisions:
─────────────────────
1. One interface, two backends: the remote document store and a local
   JSON mirror with the same CRUD semantics.
2. Create sends the full tagged document; update sends only the masked
   fields plus updateMask.fieldPaths, so untouched server fields survive.
3. Update carries currentDocument.exists=true: a missing id is a 404
   (NotFound) instead of an upsert.
4. Delete is idempotent in both backends.
5. No retries. Transport failures surface as TransportError.
6. Updates are last-writer-wins. There is no concurrency token.

Auth: static API key sent as the `key` query parameter.

Deep module:
  Simple interface → create / get / update / delete / list
  Hides: URLs, query parameters, tagged encoding, JSON files, locking
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from config import (
    DEFAULT_PAGE_SIZE, FIRESTORE_API_KEY, FIRESTORE_PROJECT_ID, FIRESTORE_URL_TEMPLATE,
    OFFLINE_BASELINES_TABLE, OFFLINE_DIR, OFFLINE_RECORDS_TABLE,
    RECOMMENDATIONS_COLLECTION, REQUEST_TIMEOUT,
)
from document_mapper import ALL_FIELDS, attribute_for, mask_for, record_from_wire, to_document
from errors import MappingError, NotFound, TransportError, ValidationError
from models import Baseline, RecommendationRecord, new_local_id, utc_now_iso

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Abstract Interface
# ═══════════════════════════════════════════════════════════════════════════

class RecommendationStore(ABC):
    @abstractmethod
    def create(self, record: RecommendationRecord) -> RecommendationRecord:
        pass

    @abstractmethod
    def get(self, record_id: str) -> RecommendationRecord:
        pass

    @abstractmethod
    def update(
        self, record_id: str, record: RecommendationRecord,
        field_mask: Optional[Iterable[str]] = None,
    ) -> RecommendationRecord:
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        pass

    @abstractmethod
    def list(
        self, page_size: int = DEFAULT_PAGE_SIZE, include_archived: bool = False,
    ) -> List[RecommendationRecord]:
        pass

    def save_baseline(self, record_id: str, baseline: Baseline) -> Baseline:
        """Side-channel baseline write. The remote document already carries it."""
        return baseline


# ═══════════════════════════════════════════════════════════════════════════
# Firestore REST store
# ═══════════════════════════════════════════════════════════════════════════

class FirestoreStore(RecommendationStore):
    """
    Firestore REST v1 implementation over one collection.

    Endpoints:
        GET    documents/{collection}?pageSize=N
        GET    documents/{collection}/{id}
        POST   documents/{collection}
        PATCH  documents/{collection}/{id}?updateMask.fieldPaths=...
        DELETE documents/{collection}/{id}

    Usage:
        store = FirestoreStore(project_id="my-app", api_key="...")
        record = store.create(draft)
    """

    def __init__(
        self,
        project_id: str = "",
        api_key: str = "",
        collection: str = RECOMMENDATIONS_COLLECTION,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.project_id = project_id or FIRESTORE_PROJECT_ID
        self.api_key = api_key or FIRESTORE_API_KEY
        self.collection = collection
        self.timeout = timeout
        self.base_url = FIRESTORE_URL_TEMPLATE.format(project=self.project_id)

        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    # ── CRUD ────────────────────────────────────────────────────────────

    def create(self, record: RecommendationRecord) -> RecommendationRecord:
        stamped = record.clone()
        stamped.created_at = utc_now_iso()
        stamped.updated_at = stamped.created_at

        body = to_document(stamped).to_wire()
        resp = self._request("POST", json_data=body)
        created = record_from_wire(resp)
        logger.info(f"Created {self.collection}/{created.id} ({created.stock_symbol})")
        return created

    def get(self, record_id: str) -> RecommendationRecord:
        resp = self._request("GET", record_id)
        return record_from_wire(resp)

    def update(
        self, record_id: str, record: RecommendationRecord,
        field_mask: Optional[Iterable[str]] = None,
    ) -> RecommendationRecord:
        mask = mask_for(field_mask if field_mask is not None else ALL_FIELDS)
        if "updatedAt" not in mask:
            mask.append("updatedAt")

        stamped = record.clone()
        stamped.updated_at = utc_now_iso()
        body = to_document(stamped, mask).to_wire()

        params = [("updateMask.fieldPaths", name) for name in mask]
        params.append(("currentDocument.exists", "true"))

        resp = self._request("PATCH", record_id, params=params, json_data=body)
        updated = record_from_wire(resp)
        logger.info(f"Updated {self.collection}/{record_id}: {', '.join(mask)}")
        return updated

    def delete(self, record_id: str) -> None:
        try:
            self._request("DELETE", record_id)
        except NotFound:
            logger.debug(f"Delete of missing {self.collection}/{record_id} ignored")
            return
        logger.info(f"Deleted {self.collection}/{record_id}")

    def list(
        self, page_size: int = DEFAULT_PAGE_SIZE, include_archived: bool = False,
    ) -> List[RecommendationRecord]:
        resp = self._request("GET", params=[("pageSize", str(page_size))])
        records = [record_from_wire(doc) for doc in resp.get("documents") or []]
        if not include_archived:
            records = [r for r in records if not r.is_archived]
        logger.info(f"Listed {len(records)} from {self.collection}")
        return records

    # ── HTTP Layer ──────────────────────────────────────────────────────

    def _url(self, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{self.collection}"
        return f"{url}/{record_id}" if record_id else url

    def _request(
        self, method: str, record_id: Optional[str] = None,
        params: Optional[List[Tuple[str, str]]] = None,
        json_data: Optional[dict] = None,
    ) -> Dict[str, Any]:
        """One call, no retry. The key never appears in logs or errors."""
        url = self._url(record_id)
        query = [("key", self.api_key)] + list(params or [])
        logger.debug(f"{method} {url}")

        try:
            resp = self._session.request(
                method, url, params=query, json=json_data, timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout: {method} {url}")
            raise TransportError(method, url, body="timeout") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {method} {url}: {e}")
            raise TransportError(method, url, body=str(e)) from e

        if resp.status_code == 404 and record_id:
            raise NotFound(record_id)
        if not resp.ok:
            logger.error(f"Firestore {resp.status_code} on {method} {url}: {resp.text[:300]}")
            raise TransportError(method, url, resp.status_code, resp.text)

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise MappingError("response", f"{method} {url} returned invalid JSON") from e


# ═══════════════════════════════════════════════════════════════════════════
# Offline mirror (local JSON)
# ═══════════════════════════════════════════════════════════════════════════

class OfflineMirrorStore(RecommendationStore):
    """Local full-record cache with the same CRUD semantics as the remote store.

    Two JSON tables: records keyed by id and baselines keyed by id. Every
    mutation goes through one lock.
    """

    def __init__(
        self,
        directory: Path = OFFLINE_DIR,
        id_factory: Callable[[], str] = new_local_id,
    ):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._records_path = self.directory / f"{OFFLINE_RECORDS_TABLE}.json"
        self._baselines_path = self.directory / f"{OFFLINE_BASELINES_TABLE}.json"
        self._new_id = id_factory
        self._lock = threading.RLock()

    # ── CRUD ────────────────────────────────────────────────────────────

    def create(self, record: RecommendationRecord) -> RecommendationRecord:
        with self._lock:
            records = self._read(self._records_path)
            stored = record.clone()
            stored.id = self._new_id()
            stored.created_at = utc_now_iso()
            stored.updated_at = stored.created_at
            records[stored.id] = stored.to_dict()
            self._write(self._records_path, records)
        logger.info(f"Offline create {stored.id} ({stored.stock_symbol})")
        return stored

    def get(self, record_id: str) -> RecommendationRecord:
        with self._lock:
            records = self._read(self._records_path)
        if record_id not in records:
            raise NotFound(record_id)
        return RecommendationRecord.from_dict(records[record_id])

    def update(
        self, record_id: str, record: RecommendationRecord,
        field_mask: Optional[Iterable[str]] = None,
    ) -> RecommendationRecord:
        with self._lock:
            records = self._read(self._records_path)
            if record_id not in records:
                raise NotFound(record_id)

            if field_mask is None:
                merged = record.clone()
                merged.created_at = records[record_id].get("created_at")
            else:
                merged = RecommendationRecord.from_dict(records[record_id])
                source = record.clone()
                for name in mask_for(field_mask):
                    attr = attribute_for(name)
                    setattr(merged, attr, getattr(source, attr))

            merged.id = record_id
            merged.updated_at = utc_now_iso()
            records[record_id] = merged.to_dict()
            self._write(self._records_path, records)
        logger.info(f"Offline update {record_id}")
        return merged

    def delete(self, record_id: str) -> None:
        with self._lock:
            records = self._read(self._records_path)
            baselines = self._read(self._baselines_path)
            removed = records.pop(record_id, None)
            baselines.pop(record_id, None)
            self._write(self._records_path, records)
            self._write(self._baselines_path, baselines)
        if removed is None:
            logger.debug(f"Offline delete of missing {record_id} ignored")
        else:
            logger.info(f"Offline delete {record_id}")

    def list(
        self, page_size: int = DEFAULT_PAGE_SIZE, include_archived: bool = False,
    ) -> List[RecommendationRecord]:
        with self._lock:
            records = self._read(self._records_path)
        decoded = [RecommendationRecord.from_dict(data) for data in records.values()]
        if not include_archived:
            decoded = [r for r in decoded if not r.is_archived]
        return decoded[:page_size]

    def put(self, record: RecommendationRecord) -> RecommendationRecord:
        """Upsert under the record's own id (mirroring a remotely saved record)."""
        if record.is_new:
            raise ValidationError("id", "Only a saved stock idea can be mirrored")
        with self._lock:
            records = self._read(self._records_path)
            records[record.id] = record.to_dict()
            self._write(self._records_path, records)
        logger.debug(f"Offline mirror put {record.id}")
        return record

    # ── Baselines ───────────────────────────────────────────────────────

    def save_baseline(self, record_id: str, baseline: Baseline) -> Baseline:
        """First write wins; an existing baseline is never overwritten."""
        with self._lock:
            baselines = self._read(self._baselines_path)
            if record_id in baselines:
                logger.warning(f"Baseline for {record_id} already stored — keeping it")
                return Baseline(**baselines[record_id])
            baselines[record_id] = asdict(baseline)
            self._write(self._baselines_path, baselines)
        return baseline

    def get_baseline(self, record_id: str) -> Optional[Baseline]:
        with self._lock:
            baselines = self._read(self._baselines_path)
        data = baselines.get(record_id)
        return Baseline(**data) if data else None

    # ── JSON tables ─────────────────────────────────────────────────────

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            return json.load(f)

    @staticmethod
    def _write(path: Path, table: Dict[str, Any]):
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w") as f:
            json.dump(table, f, indent=2)
        tmp.replace(path)


# ═══════════════════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════════════════

def create_store(store_type: str = "offline", **kwargs) -> RecommendationStore:
    """
    Create a store:
        "offline"   → local JSON mirror
        "firestore" → Firestore REST collection
    """
    if store_type == "offline":
        return OfflineMirrorStore(**kwargs)
    elif store_type == "firestore":
        return FirestoreStore(**kwargs)
    else:
        raise ValueError(f"Unknown store: {store_type}")
