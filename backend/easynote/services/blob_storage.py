"""
Blob object-store adapter.

Each note is stored as one JSON document, notes/<id>.json, in a Vercel Blob
store addressed with the BLOB_READ_WRITE_TOKEN bearer token. Routes and the
adapter never build HTTP requests themselves; they go through BlobClient.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import requests
from pydantic import ValidationError

from ..config import Config
from ..exceptions import ConnectivityFailure
from .adapter import WELCOME_NOTE_ID, StorageAdapter, list_active, search_active, welcome_note
from .models import Note, NoteMeta, StorageUsage, now_ms

logger = logging.getLogger(__name__)

NOTES_PREFIX = "notes/"


@dataclass(frozen=True)
class BlobObject:
    pathname: str
    url: str
    size: int


class BlobClient:
    """Minimal client for the blob store HTTP API."""

    def __init__(
        self,
        token: str,
        *,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        if not token:
            raise ValueError("BLOB_READ_WRITE_TOKEN is required for blob storage")
        self.token = token
        self.base_url = (base_url or Config.BLOB_API_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout or Config.BLOB_REQUEST_TIMEOUT

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "authorization": f"Bearer {self.token}",
            "x-api-version": Config.BLOB_API_VERSION,
        }
        headers.update(extra)
        return headers

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            raise ConnectivityFailure(f"Blob store request failed: {e}") from e

    def list(self, prefix: str = "") -> Iterator[BlobObject]:
        """Yield every blob under prefix, following pagination cursors."""
        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"limit": 1000}
            if prefix:
                params["prefix"] = prefix
            if cursor:
                params["cursor"] = cursor
            payload = self._request("GET", self.base_url, headers=self._headers(), params=params).json()
            for blob in payload.get("blobs", []):
                yield BlobObject(
                    pathname=blob["pathname"],
                    url=blob["url"],
                    size=int(blob.get("size") or 0),
                )
            cursor = payload.get("cursor")
            if not payload.get("hasMore") or not cursor:
                return

    def put(self, pathname: str, body: str, content_type: str = "application/json") -> BlobObject:
        data = body.encode("utf-8")
        payload = self._request(
            "PUT",
            f"{self.base_url}/{pathname}",
            headers=self._headers(
                **{
                    "x-content-type": content_type,
                    "x-add-random-suffix": "0",
                    "x-allow-overwrite": "1",
                }
            ),
            data=data,
        ).json()
        return BlobObject(pathname=payload.get("pathname", pathname), url=payload["url"], size=len(data))

    def fetch(self, url: str) -> str:
        return self._request("GET", url).text

    def delete(self, urls: List[str]) -> None:
        if not urls:
            return
        self._request(
            "POST",
            f"{self.base_url}/delete",
            headers=self._headers(**{"content-type": "application/json"}),
            json={"urls": urls},
        )


def _pathname(note_id: str) -> str:
    return f"{NOTES_PREFIX}{note_id}.json"


class BlobStorage(StorageAdapter):
    """Blob adapter; listing reads every document, fine for personal note sets."""

    kind = "blob"

    def __init__(self, client: BlobClient):
        self.client = client

    def _find(self, note_id: str) -> Optional[BlobObject]:
        pathname = _pathname(note_id)
        for blob in self.client.list(prefix=pathname):
            if blob.pathname == pathname:
                return blob
        return None

    def _load(self, blob: BlobObject) -> Optional[Note]:
        try:
            return Note.model_validate_json(self.client.fetch(blob.url))
        except ValidationError as e:
            logger.warning("Skipping unreadable note document %s: %s", blob.pathname, e)
            return None

    def _load_all(self) -> List[Note]:
        notes = []
        for blob in self.client.list(prefix=NOTES_PREFIX):
            if not blob.pathname.endswith(".json"):
                continue
            note = self._load(blob)
            if note is not None:
                notes.append(note)
        return notes

    def list(self) -> List[NoteMeta]:
        return list_active(self._load_all())

    def get(self, note_id: str) -> Optional[Note]:
        blob = self._find(note_id)
        if blob is None:
            return welcome_note() if note_id == WELCOME_NOTE_ID else None
        return self._load(blob)

    def save(self, note: Note) -> None:
        self.client.put(_pathname(note.id), note.model_dump_json(by_alias=True))

    def delete(self, note_id: str, purge: bool = False) -> None:
        blob = self._find(note_id)
        if blob is None:
            return
        if purge:
            self.client.delete([blob.url])
            return
        note = self._load(blob)
        if note is not None:
            note.deleted_at = now_ms()
            self.save(note)

    def search(self, query: str) -> List[NoteMeta]:
        if not query or not query.strip():
            return []
        return search_active(self._load_all(), query)

    def export_all(self) -> List[Note]:
        return self._load_all()

    def get_usage(self) -> StorageUsage:
        used = sum(blob.size for blob in self.client.list())
        return StorageUsage(used=used, total=Config.BLOB_CAPACITY_BYTES)
