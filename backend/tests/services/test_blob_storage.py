"""
Tests for the blob store HTTP client and adapter in easynote/services/blob_storage.py.

HTTP traffic is replaced with a mocked requests session.
"""
from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from easynote.exceptions import ConnectivityFailure
from easynote.services.blob_storage import NOTES_PREFIX, BlobClient, BlobObject, BlobStorage
from easynote.services.models import Note


def _response(payload=None, text: str = "", error: Exception | None = None) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = payload or {}
    resp.text = text
    if error is not None:
        resp.raise_for_status.side_effect = error
    return resp


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def client(session):
    return BlobClient("secret-token", base_url="https://blob.example", session=session, timeout=5)


# ============================================================================
# BlobClient
# ============================================================================


def test_client_requires_token():
    """A blob client cannot be built without a write token."""
    with pytest.raises(ValueError):
        BlobClient("")


def test_list_follows_pagination(client, session):
    """Yields blobs across pages until hasMore is false."""
    session.request.side_effect = [
        _response(
            {
                "blobs": [{"pathname": "notes/a.json", "url": "https://b/a", "size": 10}],
                "cursor": "next",
                "hasMore": True,
            }
        ),
        _response(
            {
                "blobs": [{"pathname": "notes/b.json", "url": "https://b/b", "size": 20}],
                "hasMore": False,
            }
        ),
    ]

    blobs = list(client.list(prefix="notes/"))

    assert [b.pathname for b in blobs] == ["notes/a.json", "notes/b.json"]
    assert [b.size for b in blobs] == [10, 20]
    second_call = session.request.call_args_list[1]
    assert second_call.kwargs["params"]["cursor"] == "next"
    assert second_call.kwargs["params"]["prefix"] == "notes/"


def test_requests_carry_bearer_token(client, session):
    session.request.return_value = _response({"blobs": []})

    list(client.list())

    headers = session.request.call_args.kwargs["headers"]
    assert headers["authorization"] == "Bearer secret-token"
    assert session.request.call_args.kwargs["timeout"] == 5


def test_put_overwrites_at_fixed_pathname(client, session):
    """Notes are written without a random suffix so the id maps to one path."""
    session.request.return_value = _response(
        {"url": "https://b/notes/n1.json", "pathname": "notes/n1.json"}
    )

    blob = client.put("notes/n1.json", '{"id": "n1"}')

    method, url = session.request.call_args.args
    headers = session.request.call_args.kwargs["headers"]
    assert method == "PUT"
    assert url == "https://blob.example/notes/n1.json"
    assert headers["x-add-random-suffix"] == "0"
    assert headers["x-content-type"] == "application/json"
    assert blob.url == "https://b/notes/n1.json"


def test_delete_posts_urls(client, session):
    session.request.return_value = _response({})

    client.delete(["https://b/notes/n1.json"])

    method, url = session.request.call_args.args
    assert method == "POST"
    assert url == "https://blob.example/delete"
    assert session.request.call_args.kwargs["json"] == {"urls": ["https://b/notes/n1.json"]}


def test_delete_with_no_urls_skips_request(client, session):
    client.delete([])
    session.request.assert_not_called()


def test_http_error_becomes_connectivity_failure(client, session):
    """Errors from the blob service are surfaced, never turned into empty results."""
    session.request.return_value = _response(error=requests.HTTPError("503 Service Unavailable"))

    with pytest.raises(ConnectivityFailure):
        list(client.list())


def test_network_error_becomes_connectivity_failure(client, session):
    session.request.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(ConnectivityFailure):
        client.fetch("https://b/notes/n1.json")


# ============================================================================
# BlobStorage
# ============================================================================


def test_storage_skips_unreadable_documents():
    """A corrupt document does not break listing of the others."""
    good = Note(id="good", title="Good", created_at=1, updated_at=1)
    fake = MagicMock()
    fake.list.return_value = [
        BlobObject(pathname=f"{NOTES_PREFIX}good.json", url="u-good", size=1),
        BlobObject(pathname=f"{NOTES_PREFIX}bad.json", url="u-bad", size=1),
    ]
    fake.fetch.side_effect = lambda url: (
        good.model_dump_json(by_alias=True) if url == "u-good" else "{not json"
    )

    notes = BlobStorage(fake).list()

    assert [n.id for n in notes] == ["good"]


def test_storage_writes_camel_case_documents():
    fake = MagicMock()
    note = Note(id="n1", title="T", created_at=1, updated_at=2, is_pinned=True)

    BlobStorage(fake).save(note)

    pathname, body = fake.put.call_args.args
    assert pathname == "notes/n1.json"
    document = json.loads(body)
    assert document["isPinned"] is True
    assert document["updatedAt"] == 2


def test_storage_reads_documents_missing_optional_fields():
    """Documents written by older versions only have the core fields."""
    fake = MagicMock()
    fake.list.return_value = [BlobObject(pathname="notes/old.json", url="u", size=1)]
    fake.fetch.return_value = json.dumps(
        {"id": "old", "title": "Old", "content": "x", "createdAt": 1, "updatedAt": 2}
    )

    note = BlobStorage(fake).get("old")

    assert note.is_pinned is False
    assert note.deleted_at is None
    assert note.tags == []


def test_storage_usage_sums_blob_sizes():
    fake = MagicMock()
    fake.list.return_value = [
        BlobObject(pathname="notes/a.json", url="a", size=100),
        BlobObject(pathname="media/b.png", url="b", size=400),
    ]

    usage = BlobStorage(fake).get_usage()

    assert usage.used == 500
    assert usage.total == 250 * 1024 * 1024
