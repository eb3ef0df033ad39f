# Infrastructure services: image storage, change feed, passwords and tokens.

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from group_order.core.config import get_settings
from group_order.core.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from group_order.services.realtime import ChangeEvent, MemoryChangeFeed
from group_order.services.storage import HostedStorageService, LocalStorageService


# =============================================================================
# STORAGE
# =============================================================================

class TestLocalStorage:

    async def test_upload_and_delete(self, tmp_path):
        storage = LocalStorageService(root=str(tmp_path))

        result = await storage.upload(b"img", "Banner.PNG", "image/png")

        assert result.success
        assert result.path.startswith("stores/") and result.path.endswith(".png")
        assert result.public_url == f"/uploads/{result.path}"
        assert (tmp_path / result.path).read_bytes() == b"img"

        deleted = await storage.delete(result.path)
        assert deleted.success
        assert not (tmp_path / result.path).exists()

    async def test_delete_missing(self, tmp_path):
        storage = LocalStorageService(root=str(tmp_path))

        result = await storage.delete("stores/nothing.png")

        assert not result.success
        assert result.error_message == "Object not found"

    async def test_path_outside_root(self, tmp_path):
        storage = LocalStorageService(root=str(tmp_path / "uploads"))

        result = await storage.delete("../secret.txt")

        assert not result.success


class TestHostedStorage:

    @pytest.fixture
    def hosted_settings(self, monkeypatch):
        settings = get_settings()
        monkeypatch.setattr(settings, "storage_url", "https://project.example.com/")
        monkeypatch.setattr(settings, "storage_api_key", "service-key")
        monkeypatch.setattr(settings, "storage_bucket", "store-images")
        return settings

    def test_requires_credentials(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "storage_url", None)

        with pytest.raises(ValueError):
            HostedStorageService()

    async def test_upload(self, hosted_settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "ok"})

        storage = HostedStorageService(transport=httpx.MockTransport(handler))
        result = await storage.upload(b"img", "banner.jpg", "image/jpeg")

        assert result.success
        assert result.public_url == (
            f"https://project.example.com/storage/v1/object/public/store-images/{result.path}"
        )
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == f"/storage/v1/object/store-images/{result.path}"
        assert request.headers["authorization"] == "Bearer service-key"
        assert request.headers["content-type"] == "image/jpeg"

    async def test_upload_rejected(self, hosted_settings):
        storage = HostedStorageService(
            transport=httpx.MockTransport(lambda request: httpx.Response(403, text="denied"))
        )

        result = await storage.upload(b"img", "banner.jpg")

        assert not result.success
        assert result.error_message == "denied"

    async def test_delete_by_prefix(self, hosted_settings):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=[])

        storage = HostedStorageService(transport=httpx.MockTransport(handler))
        result = await storage.delete("stores/abc.jpg")

        assert result.success
        assert bodies == [{"prefixes": ["stores/abc.jpg"]}]


# =============================================================================
# CHANGE FEED
# =============================================================================

class TestMemoryChangeFeed:

    async def test_fan_out(self):
        feed = MemoryChangeFeed()
        await feed.start()

        async with feed.subscribe() as first, feed.subscribe() as second:
            assert feed.subscriber_count == 2
            await feed.publish(ChangeEvent(table="orders", action="insert", record_id=1, group_id=3))

            a = await asyncio.wait_for(first.__anext__(), timeout=1)
            b = await asyncio.wait_for(second.__anext__(), timeout=1)

        assert a.group_id == b.group_id == 3
        assert feed.subscriber_count == 0
        await feed.stop()

    async def test_stop_ends_subscriptions(self):
        feed = MemoryChangeFeed()
        await feed.start()
        assert await feed.health_check()

        async with feed.subscribe() as events:
            await feed.stop()
            received = [event async for event in events]

        assert received == []
        assert not await feed.health_check()

    async def test_full_queue_drops_events(self):
        feed = MemoryChangeFeed(max_queue=1)
        await feed.start()

        async with feed.subscribe() as events:
            await feed.publish(ChangeEvent(table="stores", action="insert", record_id=1))
            await feed.publish(ChangeEvent(table="stores", action="insert", record_id=2))
            first = await asyncio.wait_for(events.__anext__(), timeout=1)

        assert first.record_id == 1

    def test_event_json(self):
        event = ChangeEvent(table="products", action="update", store_id=2)

        restored = ChangeEvent.from_json(event.to_json())

        assert restored == event


# =============================================================================
# SECURITY
# =============================================================================

def test_password_hashing():
    hashed = get_password_hash("lunch-admin-pw")

    assert hashed != "lunch-admin-pw"
    assert verify_password("lunch-admin-pw", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("lunch-admin-pw", "not-a-bcrypt-hash")


def test_access_token():
    token = create_access_token("7", extra_claims={"role": "admin"})

    payload = decode_access_token(token)

    assert payload["sub"] == "7"
    assert payload["role"] == "admin"


def test_expired_or_tampered_token():
    expired = create_access_token("7", expires_delta=timedelta(seconds=-1))

    assert decode_access_token(expired) is None
    assert decode_access_token("garbage") is None
