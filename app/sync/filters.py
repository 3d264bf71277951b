# app/sync/filters.py
"""
Client-side narrowing of the *loaded* order window.

Filters never fetch; they only narrow what the store already holds,
which is why load-more is disabled while any filter is active.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from app.models.order import OrderStatus
from app.models.user import UserRole
from app.schemas.order import ConsolidatedLine, OrderRead
from app.services.transition_policy import Actor

# Orders that no longer (or not yet) need stock.
NOT_PENDING = frozenset({OrderStatus.CANCELLED, OrderStatus.DELIVERED, OrderStatus.DRAFT})


@dataclass(frozen=True)
class OrderFilter:
    search: str = ""
    # fulfillment city id or destination name
    city: str | None = None
    status: OrderStatus | None = None
    order_type: str | None = None
    seller_id: uuid.UUID | None = None
    date_start: date | None = None
    date_end: date | None = None

    @property
    def active(self) -> bool:
        return any(
            (
                self.search.strip(),
                self.city,
                self.status,
                self.order_type,
                self.seller_id,
                self.date_start,
                self.date_end,
            )
        )

    def matches(self, order: OrderRead) -> bool:
        term = self.search.strip().lower()
        if term and not (
            term in order.id.lower()
            or term in order.client_name.lower()
            or term in order.user_name.lower()
        ):
            return False
        if self.city and str(order.city_id) != self.city and order.destination_name != self.city:
            return False
        if self.status and order.status != self.status:
            return False
        if self.order_type and order.order_type != self.order_type:
            return False
        if self.seller_id and order.user_id != self.seller_id:
            return False
        created = order.created_at.date()
        if self.date_start and created < self.date_start:
            return False
        if self.date_end and created > self.date_end:
            return False
        return True


def visible_to(order: OrderRead, viewer: Actor) -> bool:
    """Role-based visibility of a single order."""
    role = viewer.role
    if role == UserRole.ADMIN:
        return True
    if role == UserRole.SELLER:
        return order.user_id == viewer.id
    if role == UserRole.DELIVERY:
        return order.assigned_delivery_id == viewer.id
    if role == UserRole.PRODUCTION and order.status == OrderStatus.DRAFT:
        return False
    return viewer.covers(order.city_id)


def apply_filter(
    orders: Iterable[OrderRead],
    order_filter: OrderFilter,
    viewer: Actor | None = None,
) -> list[OrderRead]:
    """Filtered orders, newest first."""
    result = [
        o
        for o in orders
        if order_filter.matches(o) and (viewer is None or visible_to(o, viewer))
    ]
    return sorted(result, key=lambda o: o.created_at, reverse=True)


def consolidate(orders: Iterable[OrderRead]) -> list[ConsolidatedLine]:
    """
    Total pending quantity per product+presentation.

    Cancelled, delivered and draft orders are left out.
    """
    totals: dict[tuple[uuid.UUID, uuid.UUID], ConsolidatedLine] = {}
    for order in orders:
        if order.status in NOT_PENDING:
            continue
        for item in order.items:
            key = (item.product_id, item.presentation_id)
            line = totals.get(key)
            if line is None:
                line = ConsolidatedLine(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    presentation_id=item.presentation_id,
                    presentation_name=item.presentation_name,
                    total=0,
                )
                totals[key] = line
            line.total += item.quantity
    return list(totals.values())
