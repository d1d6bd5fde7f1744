"""
File storage — research reports and stock images.

Uploads a blob under a path prefix and returns a durable download URL.
Knows nothing about recommendation state; the editor decides which URL
field the result lands in.
"""

import logging
import re
import time
from typing import Optional
from urllib.parse import quote, unquote, urlparse

import requests

from config import (
    FIRESTORE_API_KEY, IMAGE_MAX_BYTES, IMAGE_PATH_PREFIX, REPORT_CONTENT_TYPES,
    REPORT_MAX_BYTES, REPORT_PATH_PREFIX, REQUEST_TIMEOUT, STORAGE_BASE_URL,
)
from errors import TransportError, ValidationError

logger = logging.getLogger(__name__)


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", name)


class StorageService:
    """Object-store REST client (Firebase Storage v0 layout)."""

    def __init__(
        self,
        base_url: str = STORAGE_BASE_URL,
        api_key: str = "",
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or FIRESTORE_API_KEY
        self.timeout = timeout
        self._session = session or requests.Session()

    # ── Uploads ─────────────────────────────────────────────────────────

    def upload_file(
        self,
        data: bytes,
        path_prefix: str,
        filename: Optional[str] = None,
        original_name: str = "upload",
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store `data` at path_prefix + filename and return its download URL."""
        final_name = filename or f"{int(time.time() * 1000)}_{sanitize_filename(original_name)}"
        object_path = f"{path_prefix}{final_name}"

        params = {"uploadType": "media", "name": object_path}
        if self.api_key:
            params["key"] = self.api_key
        try:
            resp = self._session.post(
                self.base_url, params=params, data=data,
                headers={"Content-Type": content_type}, timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Upload failed: {object_path}: {e}")
            raise TransportError("POST", self.base_url, body=str(e)) from e

        if not resp.ok:
            logger.error(f"Storage {resp.status_code} uploading {object_path}: {resp.text[:300]}")
            raise TransportError("POST", self.base_url, resp.status_code, resp.text)

        meta = resp.json()
        url = self.download_url(meta.get("name", object_path), meta.get("downloadTokens"))
        logger.info(f"Uploaded {object_path} ({len(data):,} bytes)")
        return url

    def upload_image(
        self,
        data: bytes,
        original_name: str,
        content_type: str,
        path_prefix: str = IMAGE_PATH_PREFIX,
        filename: Optional[str] = None,
    ) -> str:
        if not content_type.startswith("image/"):
            raise ValidationError("imageUrl", "File must be an image")
        if len(data) > IMAGE_MAX_BYTES:
            raise ValidationError("imageUrl", "Image file size must be less than 5MB")
        return self.upload_file(data, path_prefix, filename, original_name, content_type)

    def upload_research_report(
        self,
        data: bytes,
        original_name: str,
        content_type: str,
        path_prefix: str = REPORT_PATH_PREFIX,
        filename: Optional[str] = None,
    ) -> str:
        if content_type not in REPORT_CONTENT_TYPES:
            raise ValidationError(
                "researchReportUrl",
                "File must be a PDF, Word document, Excel file, or text file",
            )
        if len(data) > REPORT_MAX_BYTES:
            raise ValidationError("researchReportUrl", "Document file size must be less than 10MB")
        return self.upload_file(data, path_prefix, filename, original_name, content_type)

    # ── Delete ──────────────────────────────────────────────────────────

    def delete_file(self, url: str) -> None:
        object_path = self.object_path(url)
        target = f"{self.base_url}/{quote(object_path, safe='')}"
        params = {"key": self.api_key} if self.api_key else {}
        try:
            resp = self._session.delete(target, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Delete failed: {object_path}: {e}")
            raise TransportError("DELETE", target, body=str(e)) from e

        if not resp.ok:
            logger.error(f"Storage {resp.status_code} deleting {object_path}: {resp.text[:300]}")
            raise TransportError("DELETE", target, resp.status_code, resp.text)
        logger.info(f"Deleted {object_path}")

    # ── URLs ────────────────────────────────────────────────────────────

    def download_url(self, object_path: str, token: Optional[str] = None) -> str:
        url = f"{self.base_url}/{quote(object_path, safe='')}?alt=media"
        if token:
            url += f"&token={token}"
        return url

    @staticmethod
    def object_path(url: str) -> str:
        """Recover the object path from a download URL (…/o/<encoded path>?…)."""
        path = urlparse(url).path
        if "/o/" not in path:
            raise ValidationError("url", f"Not a storage download URL: {url}")
        return unquote(path.split("/o/", 1)[1])
