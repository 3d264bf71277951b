# app/sync/sources.py
from typing import Callable

from fastapi import HTTPException
from sqlmodel import Session

from app.models.order import OrderStatus
from app.schemas.order import OrderCommentRead, OrderDraft, OrderRead
from app.services.order_service import OrderService
from app.services.transition_policy import Actor


class ServiceOrderSource:
    """
    OrderSource backed by OrderService, one short-lived Session per call,
    acting as a fixed actor.
    """

    def __init__(
        self,
        service: OrderService,
        session_factory: Callable[[], Session],
        actor: Actor,
    ):
        self.service = service
        self.session_factory = session_factory
        self.actor = actor

    def fetch_page(self, page: int, page_size: int) -> list[OrderRead]:
        with self.session_factory() as session:
            return self.service.list_orders(session, self.actor, page, page_size).orders

    def fetch_one(self, order_id: str) -> OrderRead | None:
        with self.session_factory() as session:
            try:
                return self.service.get_order(session, self.actor, order_id)
            except HTTPException as exc:
                if exc.status_code == 404:
                    return None
                raise

    def create_order(self, draft: OrderDraft) -> str:
        with self.session_factory() as session:
            return self.service.create_order(session, self.actor, draft)

    def update_order(self, order_id: str, draft: OrderDraft) -> None:
        with self.session_factory() as session:
            self.service.update_order(session, self.actor, order_id, draft)

    def update_order_status(
        self,
        order_id: str,
        target: OrderStatus,
        reason: str | None = None,
    ) -> None:
        with self.session_factory() as session:
            self.service.update_status(session, self.actor, order_id, target, reason)

    def confirm_delivery(self, order_id: str) -> None:
        with self.session_factory() as session:
            self.service.confirm_delivery(session, self.actor, order_id)

    def assign_delivery(self, order_id: str, delivery_user_id) -> None:
        with self.session_factory() as session:
            self.service.assign_delivery(session, self.actor, order_id, delivery_user_id)

    def add_comment(self, order_id: str, content: str) -> OrderCommentRead:
        with self.session_factory() as session:
            return self.service.add_comment(session, self.actor, order_id, content)
