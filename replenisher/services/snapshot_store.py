# replenisher/services/snapshot_store.py
"""
Snapshot Store - order contents frozen for the next pending occurrence.

Each snapshot is a Redis hash keyed by the pending occurrence's job id
(orderData:{job_id}). The key is recorded on the replenishment row as
next_job_id, which is how cancel and resume find the order contents again.
"""

import json
from typing import Dict, Optional

from pydantic import ValidationError
from redis import asyncio as redis
from redis.exceptions import RedisError

from ..config import settings
from ..constants import SNAPSHOT_KEY_PREFIX
from ..enums import LogEmoji, LoggerName, LogSource
from ..exceptions import SnapshotStoreError
from ..models.replenishment_model import OrderSnapshot
from .logger import get_service_logger

logger = get_service_logger(LoggerName.SNAPSHOT_STORE, LogSource.SYSTEM)


class SnapshotStore:
    """Async Redis-backed store of order snapshots."""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        redis_url: Optional[str] = None,
    ) -> None:
        self.redis_url = redis_url or settings.redis_url
        self.client = client

    async def connect(self) -> None:
        """Open the Redis connection and verify it with a ping."""
        if self.client is None:
            self.client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                health_check_interval=30,
            )
        try:
            await self.client.ping()
            logger.info("Snapshot store connected", emoji=LogEmoji.STORAGE)
        except RedisError as e:
            raise SnapshotStoreError(f"Redis connection failed: {e}") from e

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def health_check(self) -> Dict[str, str]:
        if self.client is None:
            return {"status": "unhealthy", "error": "Not connected"}
        try:
            await self.client.ping()
        except RedisError as e:
            return {"status": "unhealthy", "error": str(e)}
        return {"status": "healthy"}

    def _require_client(self) -> redis.Redis:
        if self.client is None:
            raise SnapshotStoreError("Snapshot store not connected")
        return self.client

    @staticmethod
    def key_for(job_id: str) -> str:
        """Snapshot key of a pending occurrence job id."""
        if job_id.startswith(SNAPSHOT_KEY_PREFIX):
            return job_id
        return f"{SNAPSHOT_KEY_PREFIX}{job_id}"

    @staticmethod
    def _serialize(snapshot: OrderSnapshot) -> Dict[str, str]:
        fields = {
            "paymentMethod": snapshot.payment_method.value,
            "shippingCountry": snapshot.shipping_country,
            "orderItems": json.dumps(
                [item.model_dump() for item in snapshot.order_items]
            ),
        }
        if snapshot.payment_method_id:
            fields["paymentMethodId"] = snapshot.payment_method_id
        if snapshot.currency:
            fields["currency"] = snapshot.currency.value
        return fields

    @staticmethod
    def _deserialize(fields: Dict[str, str]) -> OrderSnapshot:
        return OrderSnapshot(
            payment_method=fields["paymentMethod"],
            shipping_country=fields["shippingCountry"],
            order_items=json.loads(fields["orderItems"]),
            payment_method_id=fields.get("paymentMethodId"),
            currency=fields.get("currency"),
        )

    async def put(self, job_id: str, snapshot: OrderSnapshot) -> str:
        """
        Write the snapshot for a pending occurrence.

        Returns:
            The snapshot key, to be stored on the row as next_job_id
        """
        key = self.key_for(job_id)
        try:
            await self._require_client().hset(key, mapping=self._serialize(snapshot))
        except RedisError as e:
            raise SnapshotStoreError(f"Failed to write snapshot {key}: {e}") from e

        logger.debug(f"Stored order snapshot {key}")
        return key

    async def get(self, key: Optional[str]) -> Optional[OrderSnapshot]:
        """Read a snapshot; None when the key is unset or has no data."""
        if not key:
            return None
        try:
            fields = await self._require_client().hgetall(key)
        except RedisError as e:
            raise SnapshotStoreError(f"Failed to read snapshot {key}: {e}") from e

        if not fields:
            return None

        try:
            return self._deserialize(fields)
        except (KeyError, ValueError, ValidationError) as e:
            raise SnapshotStoreError(f"Snapshot {key} is malformed: {e}") from e

    async def delete(self, key: Optional[str]) -> None:
        """Delete a snapshot. Deleting an unset or missing key is a no-op."""
        if not key:
            return
        try:
            await self._require_client().delete(key)
        except RedisError as e:
            raise SnapshotStoreError(f"Failed to delete snapshot {key}: {e}") from e

        logger.debug(f"Deleted order snapshot {key}")

    async def exists(self, key: Optional[str]) -> bool:
        if not key:
            return False
        try:
            return bool(await self._require_client().exists(key))
        except RedisError as e:
            raise SnapshotStoreError(f"Failed to check snapshot {key}: {e}") from e

    async def rotate(
        self, old_key: Optional[str], new_job_id: str, snapshot: OrderSnapshot
    ) -> str:
        """
        Move a snapshot to the key of the next pending occurrence.

        The superseded entry is deleted before the new one is written so the
        next-occurrence slot never has two live snapshots.
        """
        if old_key and old_key != self.key_for(new_job_id):
            await self.delete(old_key)
        return await self.put(new_job_id, snapshot)
