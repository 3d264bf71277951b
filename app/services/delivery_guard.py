# app/services/delivery_guard.py
from datetime import date, datetime, timezone
from typing import Callable

from app.core.exceptions import DenialKind, DriverUnavailable, TransitionDenied
from app.models.order import TERMINAL_STATUSES
from app.models.user import MANAGEMENT_ROLES, User, UserRole
from app.services.transition_policy import Actor, OrderSnapshot


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DeliveryAssignmentGuard:
    """
    Validates the order <-> delivery person association.

    Rules:
      - only management staff covering the order's city may assign
      - closed orders (Entregado / Cancelado / Rechazado) take no driver
      - a driver whose unavailable_dates contains today is refused
      - re-assigning the same driver is a no-op

    Re-assigning an order already in DISPATCH is allowed here; the
    in-flight lock only concerns status changes.
    """

    def __init__(self, today: Callable[[], date] = utc_today):
        self._today = today

    def today_str(self) -> str:
        return self._today().isoformat()

    def check(self, order: OrderSnapshot, actor: Actor, driver: User) -> bool:
        """
        Raise if the assignment must be refused.

        Returns:
            True if the assignment changes anything, False for a no-op.
        """
        if actor.role not in MANAGEMENT_ROLES or not actor.covers(order.city_id):
            raise TransitionDenied(
                DenialKind.ROLE_INSUFFICIENT,
                "Only staff in charge of this order can assign a delivery person.",
            )

        if order.status in TERMINAL_STATUSES:
            raise TransitionDenied(
                DenialKind.ORDER_CLOSED,
                f"Order is already closed ({order.status.value}).",
            )

        if order.assigned_delivery_id == driver.id:
            return False

        today = self.today_str()
        if today in (driver.unavailable_dates or []):
            raise DriverUnavailable(driver.name, today)

        return True

    @staticmethod
    def is_eligible(user: User | None) -> bool:
        return (
            user is not None
            and user.is_active
            and user.role == UserRole.DELIVERY.value
        )
