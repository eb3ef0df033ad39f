# Group service: opening and closing groups, placing and cancelling orders.

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from group_order.core.config import get_settings
from group_order.models import DailyGroup, Order
from group_order.schemas import GroupCreate, OrderCancel, OrderCreate, StoreUpsert
from group_order.services import catalog, groups
from group_order.services.errors import (
    ConfirmationMismatchError,
    GroupExpiredError,
    GroupNotFoundError,
    InvalidDeadlineError,
    OrderNotFoundError,
    StoreNotFoundError,
)
from tests.conftest import utc

NOW = utc(2026, 10, 17, 2, 0, 0)          # 10:00 in Taipei
DEADLINE = utc(2026, 10, 17, 4, 0, 0)     # 12:00 in Taipei


@pytest.fixture
async def store(session):
    store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
    return store


@pytest.fixture
async def group(session, store):
    return await groups.open_group(
        session,
        GroupCreate(store_id=store.id, end_time=DEADLINE, name="Lunch"),
        now=NOW,
    )


def fried_rice(customer="Amy", quantity=1) -> OrderCreate:
    return OrderCreate(item_name="Fried Rice", price=90, quantity=quantity, customer_name=customer)


async def order_count(session, group_id) -> int:
    result = await session.execute(
        select(func.count()).select_from(Order).where(Order.group_id == group_id)
    )
    return result.scalar_one()


class TestOpenGroup:

    async def test_opens_for_today_in_office_timezone(self, session, group, store):
        assert group.id is not None
        assert group.order_date == date(2026, 10, 17)
        assert group.store.name == "Golden Bento"
        assert group.display_name == "Lunch"

    async def test_date_follows_office_timezone(self, session, store):
        # 17:00 UTC on the 17th is already the 18th in Taipei
        late = utc(2026, 10, 17, 17, 0, 0)
        group = await groups.open_group(
            session,
            GroupCreate(store_id=store.id, end_time=late + timedelta(hours=1)),
            now=late,
        )

        assert group.order_date == date(2026, 10, 18)
        assert group.display_name == f"Group #{group.id}"

    async def test_naive_clock_is_read_as_utc(self, session, store):
        late = datetime(2026, 10, 17, 17, 0, 0)

        group = await groups.open_group(
            session,
            GroupCreate(store_id=store.id, end_time=utc(2026, 10, 17, 18, 0, 0)),
            now=late,
        )

        assert group.order_date == date(2026, 10, 18)
        assert get_settings().today(late) == get_settings().today(utc(2026, 10, 17, 17, 0, 0))

    async def test_deadline_must_be_in_the_future(self, session, store):
        with pytest.raises(InvalidDeadlineError):
            await groups.open_group(
                session, GroupCreate(store_id=store.id, end_time=NOW), now=NOW
            )

    async def test_unknown_store(self, session):
        with pytest.raises(StoreNotFoundError):
            await groups.open_group(session, GroupCreate(store_id=99, end_time=DEADLINE), now=NOW)

    def test_naive_deadline_is_office_local(self):
        data = GroupCreate(store_id=1, end_time="2026-10-17T12:00:00")

        assert data.end_time == DEADLINE
        assert get_settings().timezone == "Asia/Taipei"


class TestTodayGroups:

    async def test_lists_only_today_in_id_order(self, session, store):
        today = date(2026, 10, 17)
        session.add(DailyGroup(store_id=store.id, order_date=date(2026, 10, 16), end_time=DEADLINE))
        await session.commit()

        first = await groups.open_group(session, GroupCreate(store_id=store.id, end_time=DEADLINE), now=NOW)
        second = await groups.open_group(session, GroupCreate(store_id=store.id, end_time=DEADLINE), now=NOW)

        listed, active = await groups.get_active_group(session, second.id, today=today)
        assert [g.id for g in listed] == [first.id, second.id]
        assert active.id == second.id

        await groups.close_group(session, second.id)
        listed, active = await groups.get_active_group(session, second.id, today=today)
        assert [g.id for g in listed] == [first.id]
        assert active.id == first.id

    async def test_no_groups_today(self, session):
        listed, active = await groups.get_active_group(session, None, today=date(2026, 10, 17))

        assert listed == []
        assert active is None


class TestPlaceOrder:

    async def test_place_before_deadline(self, session, group):
        order = await groups.place_order(session, group.id, fried_rice(quantity=2), now=NOW)

        assert order.id is not None
        assert order.quantity == 2
        assert order.created_at is not None
        assert await order_count(session, group.id) == 1

    async def test_refused_after_deadline(self, session, group):
        with pytest.raises(GroupExpiredError):
            await groups.place_order(session, group.id, fried_rice(), now=DEADLINE + timedelta(seconds=1))

        assert await order_count(session, group.id) == 0

    async def test_refused_at_deadline(self, session, group):
        with pytest.raises(GroupExpiredError):
            await groups.place_order(session, group.id, fried_rice(), now=DEADLINE)

    async def test_custom_item_is_allowed(self, session, group):
        order = await groups.place_order(
            session,
            group.id,
            OrderCreate(item_name="Extra egg", price=15, customer_name="Ben"),
            now=NOW,
        )

        assert order.item_name == "Extra egg"
        assert order.quantity == 1

    async def test_unknown_group(self, session):
        with pytest.raises(GroupNotFoundError):
            await groups.place_order(session, 123, fried_rice(), now=NOW)


class TestCancelOrder:

    async def test_cancel_with_matching_name(self, session, group):
        order = await groups.place_order(session, group.id, fried_rice("Amy"), now=NOW)

        await groups.cancel_order(session, order.id, OrderCancel(customer_name="Amy"), now=NOW)

        assert await order_count(session, group.id) == 0

    async def test_name_mismatch_keeps_order(self, session, group):
        order = await groups.place_order(session, group.id, fried_rice("Amy"), now=NOW)

        with pytest.raises(ConfirmationMismatchError):
            await groups.cancel_order(session, order.id, OrderCancel(customer_name="amy"), now=NOW)

        assert await order_count(session, group.id) == 1

    async def test_refused_after_deadline(self, session, group):
        order = await groups.place_order(session, group.id, fried_rice("Amy"), now=NOW)

        with pytest.raises(GroupExpiredError):
            await groups.cancel_order(
                session, order.id, OrderCancel(customer_name="Amy"), now=DEADLINE + timedelta(minutes=5)
            )

        assert await order_count(session, group.id) == 1

    async def test_unknown_order(self, session, group):
        with pytest.raises(OrderNotFoundError):
            await groups.cancel_order(session, 555, OrderCancel(customer_name="Amy"), now=NOW)


class TestGroupOrders:

    async def test_summary_and_totals(self, session, group):
        await groups.place_order(session, group.id, fried_rice("Amy", 2), now=NOW)
        await groups.place_order(session, group.id, fried_rice("Ben", 1), now=NOW)
        await groups.place_order(
            session, group.id, OrderCreate(item_name="Tea", price=10.1, customer_name="Amy"), now=NOW
        )

        details = await groups.load_group_orders(session, group.id, now=NOW)

        assert not details.expired
        assert [o.item_name for o in details.orders] == ["Tea", "Fried Rice", "Fried Rice"]
        assert [(row.name, row.count, row.total) for row in details.summary] == [
            ("Tea", 1, 10.1),
            ("Fried Rice", 3, 270.0),
        ]
        assert details.total_count == 4
        assert details.total_amount == 280.1

    async def test_expired_flag(self, session, group):
        details = await groups.load_group_orders(session, group.id, now=DEADLINE)

        assert details.expired


class TestCloseGroup:

    async def test_removes_group_and_its_orders(self, session, group):
        await groups.place_order(session, group.id, fried_rice("Amy"), now=NOW)
        await groups.place_order(session, group.id, fried_rice("Ben"), now=NOW)

        closed = await groups.close_group(session, group.id)

        assert closed.id == group.id
        assert await order_count(session, group.id) == 0
        with pytest.raises(GroupNotFoundError):
            await groups.get_group(session, group.id)

    async def test_unknown_group(self, session):
        with pytest.raises(GroupNotFoundError):
            await groups.close_group(session, 77)
