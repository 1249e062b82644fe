"""
Tests for the object storage client
"""
import json

import httpx
import pytest

from campuscast.core.exceptions import PersistenceError
from campuscast.services.storage_service import StorageService, normalize_storage_path

BASE_URL = "https://project.supabase.co"


def make_storage(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StorageService(BASE_URL, "service-key", "podcasts", client=client)


class TestNormalizeStoragePath:

    def test_plain_path_unchanged(self):
        assert normalize_storage_path("10/abc.mp3", "podcasts") == "10/abc.mp3"

    def test_bucket_prefix_stripped(self):
        assert normalize_storage_path("podcasts/10/abc.mp3", "podcasts") == "10/abc.mp3"

    def test_leading_slash_stripped(self):
        assert normalize_storage_path("/podcasts/10/abc.mp3", "podcasts") == "10/abc.mp3"


@pytest.mark.asyncio
async def test_upload_posts_blob():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(200, json={"Key": "podcasts/10/abc.mp3"})

    storage = make_storage(handler)
    stored = await storage.upload("10/abc.mp3", b"ID3audio", "audio/mpeg")

    assert stored == "10/abc.mp3"
    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/storage/v1/object/podcasts/10/abc.mp3"
    assert request.headers["Authorization"] == "Bearer service-key"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["Content-Type"] == "audio/mpeg"
    assert request.content == b"ID3audio"


@pytest.mark.asyncio
async def test_upload_failure_raises_persistence_error():
    storage = make_storage(lambda request: httpx.Response(409, json={"error": "Duplicate"}))

    with pytest.raises(PersistenceError):
        await storage.upload("10/abc.mp3", b"x", "audio/mpeg")


@pytest.mark.asyncio
async def test_signed_url_relative_path_made_absolute():
    bodies = []

    def handler(request: httpx.Request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"signedURL": "/object/sign/podcasts/10/abc.mp3?token=t"})

    storage = make_storage(handler)
    url = await storage.create_signed_url("podcasts/10/abc.mp3", 3600)

    assert url == f"{BASE_URL}/storage/v1/object/sign/podcasts/10/abc.mp3?token=t"
    assert bodies == [{"expiresIn": 3600}]


@pytest.mark.asyncio
async def test_signed_url_absolute_kept():
    storage = make_storage(lambda request: httpx.Response(200, json={"signedUrl": "https://cdn.example/x?token=t"}))

    assert await storage.create_signed_url("10/abc.mp3", 60) == "https://cdn.example/x?token=t"


@pytest.mark.asyncio
async def test_signed_url_missing_raises():
    storage = make_storage(lambda request: httpx.Response(200, json={}))

    with pytest.raises(PersistenceError):
        await storage.create_signed_url("10/abc.mp3", 60)


@pytest.mark.asyncio
async def test_remove_sends_prefixes():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(200, json=[])

    storage = make_storage(handler)
    await storage.remove(["podcasts/10/abc.mp3", "10/def.mp3"])

    assert requests[0].method == "DELETE"
    assert str(requests[0].url) == f"{BASE_URL}/storage/v1/object/podcasts"
    assert json.loads(requests[0].content) == {"prefixes": ["10/abc.mp3", "10/def.mp3"]}


@pytest.mark.asyncio
async def test_remove_nothing_makes_no_request():
    def handler(request: httpx.Request):
        raise AssertionError("unexpected request")

    storage = make_storage(handler)
    await storage.remove([])


@pytest.mark.asyncio
async def test_transport_error_raises_persistence_error():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    storage = make_storage(handler)

    with pytest.raises(PersistenceError):
        await storage.remove(["10/abc.mp3"])


def test_public_url():
    storage = StorageService(BASE_URL + "/", None, "podcasts", client=httpx.AsyncClient())

    assert storage.public_url("10/abc.mp3") == f"{BASE_URL}/storage/v1/object/public/podcasts/10/abc.mp3"
