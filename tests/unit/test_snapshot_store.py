"""
Unit tests for the Redis-backed snapshot store.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from replenisher.enums import Currency
from replenisher.exceptions import SnapshotStoreError
from replenisher.services.snapshot_store import SnapshotStore


@pytest.mark.unit
class TestSnapshotStore:
    def test_key_for_prefixes_job_id_once(self):
        assert SnapshotStore.key_for("repeat:s:1") == "orderData:repeat:s:1"
        assert SnapshotStore.key_for("orderData:repeat:s:1") == "orderData:repeat:s:1"

    @pytest.mark.asyncio
    async def test_put_writes_hash_fields(self, snapshot_store, fake_redis, order_snapshot):
        key = await snapshot_store.put("repeat:s:1", order_snapshot)

        assert key == "orderData:repeat:s:1"
        fields = fake_redis.data[key]
        assert fields["paymentMethod"] == "card"
        assert fields["shippingCountry"] == "DE"
        assert fields["paymentMethodId"] == "pm_123"
        assert fields["currency"] == "eur"
        assert '"product_id": 11' in fields["orderItems"]

    @pytest.mark.asyncio
    async def test_get_returns_stored_snapshot(self, snapshot_store, order_snapshot):
        key = await snapshot_store.put("repeat:s:1", order_snapshot)
        assert await snapshot_store.get(key) == order_snapshot

    @pytest.mark.asyncio
    async def test_optional_fields_are_omitted(self, snapshot_store, fake_redis, order_snapshot):
        bare = order_snapshot.model_copy(
            update={"currency": None, "payment_method_id": None}
        )
        key = await snapshot_store.put("repeat:s:2", bare)

        assert "currency" not in fake_redis.data[key]
        restored = await snapshot_store.get(key)
        assert restored.currency is None
        assert restored.payment_method_id is None

    @pytest.mark.asyncio
    async def test_get_missing_or_unset_key(self, snapshot_store):
        assert await snapshot_store.get("orderData:nope") is None
        assert await snapshot_store.get(None) is None

    @pytest.mark.asyncio
    async def test_get_malformed_snapshot_raises(self, snapshot_store, fake_redis):
        fake_redis.data["orderData:bad"] = {"paymentMethod": "card"}
        with pytest.raises(SnapshotStoreError, match="malformed"):
            await snapshot_store.get("orderData:bad")

    @pytest.mark.asyncio
    async def test_delete_is_noop_for_missing_keys(self, snapshot_store):
        await snapshot_store.delete(None)
        await snapshot_store.delete("orderData:never-written")

    @pytest.mark.asyncio
    async def test_rotate_replaces_old_entry(self, snapshot_store, fake_redis, order_snapshot):
        old_key = await snapshot_store.put("repeat:s:1", order_snapshot)
        new_snapshot = order_snapshot.model_copy(update={"currency": Currency.USD})

        new_key = await snapshot_store.rotate(old_key, "repeat:s:2", new_snapshot)

        assert new_key == "orderData:repeat:s:2"
        assert old_key not in fake_redis.data
        assert (await snapshot_store.get(new_key)).currency == Currency.USD

    @pytest.mark.asyncio
    async def test_rotate_onto_same_key_keeps_entry(self, snapshot_store, order_snapshot):
        key = await snapshot_store.put("repeat:s:1", order_snapshot)
        assert await snapshot_store.rotate(key, "repeat:s:1", order_snapshot) == key
        assert await snapshot_store.exists(key)

    @pytest.mark.asyncio
    async def test_redis_errors_become_store_errors(self, snapshot_store, fake_redis, order_snapshot):
        fake_redis.fail_writes = True
        with pytest.raises(SnapshotStoreError, match="Failed to write"):
            await snapshot_store.put("repeat:s:1", order_snapshot)

    @pytest.mark.asyncio
    async def test_requires_connection(self, order_snapshot):
        store = SnapshotStore(client=None, redis_url="redis://localhost:6379/0")
        with pytest.raises(SnapshotStoreError, match="not connected"):
            await store.put("repeat:s:1", order_snapshot)
        assert (await store.health_check())["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        client = AsyncMock()
        client.ping.side_effect = RedisConnectionError("refused")
        store = SnapshotStore(client=client)

        with pytest.raises(SnapshotStoreError, match="Redis connection failed"):
            await store.connect()

    @pytest.mark.asyncio
    async def test_close_releases_client(self, snapshot_store, fake_redis):
        await snapshot_store.close()
        assert fake_redis.closed
        assert snapshot_store.client is None
