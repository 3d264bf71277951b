# app/services/notification_service.py
import enum
import logging
from dataclasses import dataclass
from typing import Callable

from app.core.change_feed import ChangeEvent, ChangeFeed
from app.core.sound import SoundCue, SoundPlayer
from app.models.order import OrderStatus
from app.models.user import UserRole
from app.services.transition_policy import Actor

logger = logging.getLogger(__name__)


class AlertTone(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Alert:
    message: str
    tone: AlertTone
    order_id: str | None = None
    sound: SoundCue | None = None

    def to_dict(self) -> dict:
        return {
            "type": "alert",
            "message": self.message,
            "tone": self.tone.value,
            "order_id": self.order_id,
            "sound": self.sound.value if self.sound else None,
        }


def _id(value) -> str | None:
    return None if value in (None, "") else str(value)


class NotificationDispatcher:
    """
    Turns order-table change events into alerts for one viewer.

    Rules:
      - INSERT: Admin always; Warehouse / Production only when the
        order's fulfillment city is assigned to them. "new_order" sound.
      - UPDATE, viewer is the order's seller and status changed:
        success for Entregado, error for Rechazado, info otherwise.
      - UPDATE, viewer is Delivery and was just assigned (was not
        before): "assigned" sound.
    """

    def __init__(
        self,
        viewer: Actor,
        sink: Callable[[Alert], None],
        player: SoundPlayer | None = None,
    ):
        self.viewer = viewer
        self.sink = sink
        self.player = player

    def attach(self, feed: ChangeFeed) -> Callable[[], None]:
        return feed.subscribe(self.handle)

    def handle(self, event: ChangeEvent) -> None:
        for alert in self.alerts_for(event):
            self.sink(alert)
            if alert.sound and self.player is not None:
                self.player.play(alert.sound)

    def alerts_for(self, event: ChangeEvent) -> list[Alert]:
        if event.table != "orders":
            return []
        if event.type == "INSERT":
            return self._on_insert(event.new)
        if event.type == "UPDATE":
            return self._on_status_change(event.new, event.old) + self._on_assignment(
                event.new, event.old
            )
        return []

    # ----- Rules -----

    def _on_insert(self, new: dict) -> list[Alert]:
        role = self.viewer.role
        relevant = role == UserRole.ADMIN or (
            role in (UserRole.WAREHOUSE, UserRole.PRODUCTION)
            and _id(new.get("city_id")) in self.viewer.assigned_cities
        )
        if not relevant:
            return []
        return [
            Alert(
                message=f"New order received: {new.get('client_name', '')}",
                tone=AlertTone.INFO,
                order_id=_id(new.get("id")),
                sound=SoundCue.NEW_ORDER,
            )
        ]

    def _on_status_change(self, new: dict, old: dict) -> list[Alert]:
        if self.viewer.role != UserRole.SELLER:
            return []
        if _id(new.get("user_id")) != str(self.viewer.id):
            return []
        new_status = new.get("status")
        if not new_status or new_status == old.get("status"):
            return []

        tone = AlertTone.INFO
        if new_status == OrderStatus.DELIVERED.value:
            tone = AlertTone.SUCCESS
        elif new_status == OrderStatus.REJECTED.value:
            tone = AlertTone.ERROR
        return [
            Alert(
                message=f"Your order for {new.get('client_name', '')} is now: {new_status}",
                tone=tone,
                order_id=_id(new.get("id")),
            )
        ]

    def _on_assignment(self, new: dict, old: dict) -> list[Alert]:
        if self.viewer.role != UserRole.DELIVERY:
            return []
        me = str(self.viewer.id)
        if _id(new.get("assigned_delivery_id")) != me:
            return []
        if _id(old.get("assigned_delivery_id")) == me:
            return []
        return [
            Alert(
                message=f"New order assigned: {new.get('client_name', '')}",
                tone=AlertTone.SUCCESS,
                order_id=_id(new.get("id")),
                sound=SoundCue.ASSIGNED,
            )
        ]
