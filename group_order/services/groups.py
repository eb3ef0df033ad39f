"""
Group Service

Daily group order windows and the orders placed against them:
- Today's groups and the one a page should show
- Opening a group for a store with a deadline
- Closing a group (its orders go with it)
- Placing and cancelling orders, both refused once the deadline passed

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from group_order.core.config import get_settings
from group_order.models import DailyGroup, Order
from group_order.schemas import (
    GroupCreate,
    GroupOrdersResponse,
    OrderCancel,
    OrderCreate,
    OrderResponse,
)
from group_order.services.catalog import get_store
from group_order.services.errors import (
    ConfirmationMismatchError,
    GroupExpiredError,
    GroupNotFoundError,
    InvalidDeadlineError,
    OrderNotFoundError,
)
from group_order.services.ordering import (
    is_expired,
    select_active_group,
    summarize_orders,
    summary_totals,
)

logger = logging.getLogger(__name__)


# =============================================================================
# GROUPS
# =============================================================================

async def list_today_groups(
    session: AsyncSession,
    today: Optional[date] = None,
) -> list[DailyGroup]:
    """Groups whose order date is today (office timezone), oldest first."""
    today = today or get_settings().today()
    result = await session.execute(
        select(DailyGroup)
        .where(DailyGroup.order_date == today)
        .order_by(DailyGroup.id)
    )
    return list(result.scalars().all())


async def get_active_group(
    session: AsyncSession,
    previous_id: Optional[int] = None,
    today: Optional[date] = None,
) -> tuple[list[DailyGroup], Optional[DailyGroup]]:
    groups = await list_today_groups(session, today)
    return groups, select_active_group(groups, previous_id)


async def get_group(session: AsyncSession, group_id: int) -> DailyGroup:
    group = await session.get(DailyGroup, group_id)
    if group is None:
        raise GroupNotFoundError(f"Group #{group_id} not found")
    return group


async def open_group(
    session: AsyncSession,
    data: GroupCreate,
    now: Optional[datetime] = None,
) -> DailyGroup:
    """
    Start a group order for a store, dated today.

    Raises:
        StoreNotFoundError: unknown store
        InvalidDeadlineError: the deadline is not in the future
    """
    store = await get_store(session, data.store_id)

    if is_expired(data.end_time, now):
        raise InvalidDeadlineError("The deadline must be in the future")

    group = DailyGroup(
        store_id=store.id,
        order_date=get_settings().today(now),
        end_time=data.end_time,
        name=data.name,
    )
    group.store = store
    session.add(group)
    await session.commit()
    await session.refresh(group)

    logger.info(
        f"Group #{group.id} opened for store #{store.id} '{store.name}' "
        f"until {data.end_time.isoformat()}"
    )
    return group


async def close_group(session: AsyncSession, group_id: int) -> DailyGroup:
    """Remove a group together with all of its orders."""
    group = await get_group(session, group_id)

    await session.execute(delete(Order).where(Order.group_id == group_id))
    await session.execute(delete(DailyGroup).where(DailyGroup.id == group_id))
    await session.commit()

    logger.info(f"Group #{group_id} closed")
    return group


# =============================================================================
# ORDERS
# =============================================================================

async def list_group_orders(session: AsyncSession, group_id: int) -> list[Order]:
    """Orders of a group, newest first."""
    result = await session.execute(
        select(Order)
        .where(Order.group_id == group_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(result.scalars().all())


async def load_group_orders(
    session: AsyncSession,
    group_id: int,
    now: Optional[datetime] = None,
) -> GroupOrdersResponse:
    """Orders of a group with the per-item summary and the footer totals."""
    group = await get_group(session, group_id)
    orders = await list_group_orders(session, group_id)

    summary = summarize_orders(orders)
    total_count, total_amount = summary_totals(summary)

    return GroupOrdersResponse(
        group_id=group.id,
        expired=is_expired(group.end_time, now),
        orders=[OrderResponse.model_validate(order) for order in orders],
        summary=summary,
        total_count=total_count,
        total_amount=total_amount,
    )


async def place_order(
    session: AsyncSession,
    group_id: int,
    data: OrderCreate,
    now: Optional[datetime] = None,
) -> Order:
    """
    Add an order to a group.

    Raises:
        GroupNotFoundError: the group is gone
        GroupExpiredError: the deadline has passed
    """
    group = await get_group(session, group_id)
    if is_expired(group.end_time, now):
        raise GroupExpiredError("Ordering for this group has closed")

    order = Order(
        group_id=group.id,
        item_name=data.item_name,
        price=data.price,
        quantity=data.quantity,
        customer_name=data.customer_name,
    )
    session.add(order)
    await session.commit()
    await session.refresh(order)

    logger.info(
        f"Order #{order.id} placed in group #{group.id}: "
        f"{order.customer_name} - {order.item_name} x{order.quantity}"
    )
    return order


async def cancel_order(
    session: AsyncSession,
    order_id: int,
    data: OrderCancel,
    now: Optional[datetime] = None,
) -> Order:
    """
    Remove one order after the purchaser name has been re-typed.

    The name check guards against mis-clicks only; anyone may type any
    name.

    Raises:
        OrderNotFoundError: unknown order
        GroupExpiredError: the group's deadline has passed
        ConfirmationMismatchError: the typed name differs from the order's
    """
    order = await session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"Order #{order_id} not found")

    group = await get_group(session, order.group_id)
    if is_expired(group.end_time, now):
        raise GroupExpiredError("This group has closed; orders can no longer be cancelled")

    if data.customer_name.strip() != order.customer_name:
        raise ConfirmationMismatchError("The name does not match this order")

    await session.delete(order)
    await session.commit()

    logger.info(f"Order #{order_id} cancelled in group #{group.id}")
    return order
