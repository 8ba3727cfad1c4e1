"""
Unit tests for the replenishment query facade.
"""

from datetime import timedelta

import pytest

from replenisher.enums import RecurrenceUnit, ReplenishmentStatus
from replenisher.exceptions import ReplenishmentNotFoundError, UserNotFoundError
from replenisher.models.replenishment_model import (
    ReplenishmentFilters,
    ReplenishmentUpdate,
)
from replenisher.utils.time_utils import utc_now
from tests.conftest import OTHER_USER_ID, USER_ID


@pytest.fixture
def seeded(scheduler, order_data, replenishment_ops):
    async def seed():
        first = await scheduler.create(USER_ID, order_data, 1, RecurrenceUnit.DAY)
        second = await scheduler.create(USER_ID, order_data, 2, RecurrenceUnit.WEEK)
        other = await scheduler.create(OTHER_USER_ID, order_data, 1, RecurrenceUnit.MONTH)
        paid_at = utc_now() - timedelta(days=1)
        await replenishment_ops.update_replenishment(
            first.id, ReplenishmentUpdate(last_payment_date=paid_at, executions=1)
        )
        await replenishment_ops.update_replenishment(
            first.id,
            ReplenishmentUpdate(last_payment_date=paid_at + timedelta(hours=1), executions=2),
        )
        return first, second, other

    return seed


@pytest.mark.unit
class TestReplenishmentService:
    @pytest.mark.asyncio
    async def test_customer_listing_is_scoped_and_projected(self, replenishment_service, seeded):
        first, second, _ = await seeded()

        listing = await replenishment_service.get_customer_replenishments(USER_ID)

        assert listing.total == 2
        by_id = {item.id: item for item in listing.replenishments}
        assert set(by_id) == {first.id, second.id}
        assert by_id[first.id].payment_count == 2
        assert by_id[first.id].payments[0].payment_date > by_id[first.id].payments[1].payment_date
        assert by_id[second.id].payments == []

    @pytest.mark.asyncio
    async def test_projection_hides_scheduling_keys(self, replenishment_service, seeded):
        first, _, _ = await seeded()

        projected = await replenishment_service.get_replenishment_by_id(USER_ID, first.id)
        dumped = projected.model_dump()

        assert "scheduler_id" not in dumped
        assert "next_job_id" not in dumped
        assert "customer_id" not in dumped
        assert dumped["executions"] == 2

    @pytest.mark.asyncio
    async def test_foreign_replenishment_is_not_found(self, replenishment_service, seeded):
        _, _, other = await seeded()
        with pytest.raises(ReplenishmentNotFoundError):
            await replenishment_service.get_replenishment_by_id(USER_ID, other.id)

    @pytest.mark.asyncio
    async def test_unknown_user(self, replenishment_service):
        with pytest.raises(UserNotFoundError):
            await replenishment_service.get_customer_replenishments(999)

    @pytest.mark.asyncio
    async def test_admin_filters(self, replenishment_service, seeded):
        _, second, other = await seeded()

        weekly = await replenishment_service.get_all_replenishments(
            ReplenishmentFilters(unit=RecurrenceUnit.WEEK, interval=2)
        )
        everything = await replenishment_service.get_all_replenishments()
        active = await replenishment_service.get_all_replenishments(
            ReplenishmentFilters(status=ReplenishmentStatus.ACTIVE)
        )

        assert [item.id for item in weekly.replenishments] == [second.id]
        assert everything.total == 3
        assert active.total == 3
