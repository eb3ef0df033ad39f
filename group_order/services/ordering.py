"""
Order Summary & Deadline Rules

Pure functions shared by the API, the pages and the exports:
    - summarize_orders: fold a group's order rows into per-item rows
    - is_expired / describe_time_left: deadline gate and countdown text
    - select_active_group: which of today's groups a page should show

Nothing here touches the database or the clock unless `now` is omitted.

Author: Khalil Bannouri
Version: 1.0.0
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, TypeVar

from group_order.schemas import OrderDetail, SummaryItem

G = TypeVar("G")


def round_one_decimal(value: float) -> float:
    """Round half-up to one decimal (the way the summary has always shown money)."""
    return math.floor(value * 10 + 0.5) / 10


# =============================================================================
# AGGREGATION
# =============================================================================

def summarize_orders(orders: Iterable) -> list[SummaryItem]:
    """
    Group order rows by item name.

    Each row carries the summed quantity, the money total (rounded to one
    decimal after every addition so repeated fractional prices do not
    drift) and the individual orders that make it up, so each one can be
    cancelled from the summary table.

    Item names are compared as-is: "Tea" and "tea" are two rows.
    Rows come out in first-seen order.

    Args:
        orders: objects with id, item_name, price, quantity, customer_name

    Returns:
        list of SummaryItem, empty for no orders
    """
    stats: dict[str, SummaryItem] = {}

    for order in orders:
        qty = order.quantity or 1
        row = stats.get(order.item_name)
        if row is None:
            row = stats[order.item_name] = SummaryItem(
                name=order.item_name, count=0, total=0.0
            )
        row.count += qty
        row.total = round_one_decimal(row.total + order.price * qty)
        row.order_details.append(
            OrderDetail(id=order.id, customer_name=order.customer_name, quantity=qty)
        )

    return list(stats.values())


def summary_totals(summary: Sequence[SummaryItem]) -> tuple[int, float]:
    """Footer line of the summary table: (portions, amount)."""
    total_count = sum(row.count for row in summary)
    total_amount = round_one_decimal(sum(row.total for row in summary))
    return total_count, total_amount


# =============================================================================
# DEADLINE GATE
# =============================================================================

def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(end_time: datetime, now: Optional[datetime] = None) -> bool:
    """
    True once the deadline is reached.

    The check is `now >= end_time`: at exactly the deadline the group is
    closed.
    """
    now = as_utc(now) if now is not None else utcnow()
    return now >= as_utc(end_time)


@dataclass
class TimeLeft:
    """Countdown state of one group."""
    expired: bool
    seconds_left: int
    text: str


def describe_time_left(end_time: datetime, now: Optional[datetime] = None) -> TimeLeft:
    """Countdown shown on the store banner, e.g. "1h 05m 09s left"."""
    now = as_utc(now) if now is not None else utcnow()
    end = as_utc(end_time)

    if is_expired(end, now):
        return TimeLeft(expired=True, seconds_left=0, text="Closed")

    seconds = int((end - now).total_seconds())
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return TimeLeft(
        expired=False,
        seconds_left=seconds,
        text=f"{hours}h {minutes:02d}m {secs:02d}s left",
    )


# =============================================================================
# ACTIVE GROUP SELECTION
# =============================================================================

def select_active_group(groups: Sequence[G], previous_id: Optional[int]) -> Optional[G]:
    """
    Pick the group a page should display.

    - previous_id still among today's groups: keep it
    - otherwise: the group with the lowest id
    - no groups today: None (the page offers to start one)
    """
    if not groups:
        return None

    if previous_id is not None:
        for group in groups:
            if group.id == previous_id:
                return group

    return min(groups, key=lambda g: g.id)
