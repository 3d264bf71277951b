# app/services/order_service.py
import logging
import threading
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from app.core.change_feed import ChangeEvent, ChangeFeed
from app.core.exceptions import PersistenceFailure
from app.models.order import Order, OrderComment, OrderItem, OrderStatus
from app.models.user import User
from app.repositories.catalog_repo import CatalogRepository
from app.repositories.order_repo import OrderRepository, OrderScope
from app.repositories.user_repo import UserRepository
from app.schemas.order import (
    OrderCommentRead,
    OrderDraft,
    OrderItemIn,
    OrderItemRead,
    OrderLogRead,
    OrderPage,
    OrderRead,
)
from app.services.delivery_guard import DeliveryAssignmentGuard
from app.services.transition_policy import (
    Actor,
    OrderSnapshot,
    TransitionDecision,
    TransitionPolicy,
)

logger = logging.getLogger(__name__)

LOG_CREATED = "Pedido creado"
LOG_UPDATED = "Pedido actualizado"
LOG_ASSIGNED = "Repartidor asignado"

# Serializes "read max id -> insert -> commit" within this process.
_ID_ALLOCATION_LOCK = threading.Lock()
ID_ALLOCATION_ATTEMPTS = 3

# Header columns a live UPDATE event carries to other viewers.
CHANGE_COLUMNS = ("status", "assigned_delivery_id", "updated_at")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_items(items: list[OrderItemIn]) -> list[OrderItemIn]:
    """
    Drop lines with quantity <= 0 and merge duplicate
    product+presentation lines, keeping first-seen order.
    """
    merged: dict[tuple[uuid.UUID, uuid.UUID], OrderItemIn] = {}
    for item in items:
        if item.quantity <= 0:
            continue
        key = (item.product_id, item.presentation_id)
        if key in merged:
            existing = merged[key]
            merged[key] = existing.model_copy(
                update={"quantity": existing.quantity + item.quantity}
            )
        else:
            merged[key] = item
    return list(merged.values())


class OrderService:
    """
    Business logic for the order workflow.

    Responsibilities:
      - create / edit orders (header + items + log in one transaction)
      - status changes through the TransitionPolicy
      - delivery assignment through the DeliveryAssignmentGuard
      - comments
      - publish row changes on the ChangeFeed after commit

    Every refusal is raised before the first write.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        user_repo: UserRepository,
        catalog_repo: CatalogRepository,
        policy: TransitionPolicy | None = None,
        guard: DeliveryAssignmentGuard | None = None,
        feed: ChangeFeed | None = None,
        default_actor_name: str = "Sistema",
    ):
        self.order_repo = order_repo
        self.user_repo = user_repo
        self.catalog_repo = catalog_repo
        self.policy = policy or TransitionPolicy()
        self.guard = guard or DeliveryAssignmentGuard()
        self.feed = feed
        self.default_actor_name = default_actor_name

    # -------- Actors --------

    def actor_for(self, session: Session, user: User) -> Actor:
        """Resolve a user's city scope against the principal cities."""
        return Actor.from_user(user, self.catalog_repo.principal_city_ids(session))

    def _actor_name(self, actor: Actor) -> str:
        return (actor.name or "").strip() or self.default_actor_name

    # -------- Reads --------

    def list_orders(
        self,
        session: Session,
        actor: Actor,
        page: int = 0,
        page_size: int = 50,
    ) -> OrderPage:
        """
        Newest-first page of the orders visible to the actor.

        has_more is True when the page came back full.
        """
        if page < 0 or page_size <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="page must be >= 0 and page_size > 0",
            )
        rows = self.order_repo.list_page(
            session,
            skip=page * page_size,
            limit=page_size,
            scope=OrderScope.for_actor(actor),
        )
        return OrderPage(
            orders=[self._build_order_dto(session, o) for o in rows],
            page=page,
            page_size=page_size,
            has_more=len(rows) == page_size,
        )

    def get_order(self, session: Session, actor: Actor, order_id: str) -> OrderRead:
        order = self._get_visible(session, actor, order_id)
        return self._build_order_dto(session, order)

    def available_transitions(
        self,
        session: Session,
        actor: Actor,
        order_id: str,
    ) -> list[OrderStatus]:
        order = self._get_visible(session, actor, order_id)
        return self.policy.available_targets(OrderSnapshot.of(order), actor)

    # -------- Create / edit --------

    def create_order(self, session: Session, actor: Actor, draft: OrderDraft) -> str:
        """
        Create an order for the acting seller.

        Steps (single transaction, id allocation serialized):
          1. Normalize items; refuse an empty cart unless saving a draft.
          2. Allocate ORD-### as max + 1.
          3. Insert header, items, then the creation log.
          4. Commit and publish INSERT.
        """
        items = normalize_items(draft.items)
        initial = draft.status or OrderStatus.SENT
        if not items and initial != OrderStatus.DRAFT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Order must contain at least one item",
            )

        actor_name = self._actor_name(actor)
        for attempt in range(1, ID_ALLOCATION_ATTEMPTS + 1):
            with _ID_ALLOCATION_LOCK:
                try:
                    order_id = self.order_repo.next_order_id(session)
                    now = _utcnow()
                    order = Order(
                        id=order_id,
                        user_id=actor.id,
                        user_name=actor_name,
                        client_name=draft.client_name,
                        client_tax_id=draft.client_tax_id,
                        client_phone=draft.client_phone,
                        origin_city_name=draft.origin_city_name,
                        order_type=draft.order_type,
                        destination_name=draft.destination_name,
                        city_id=draft.city_id,
                        city_name=draft.city_name,
                        warehouse_id=draft.warehouse_id,
                        warehouse_name=draft.warehouse_name,
                        status=initial.value,
                        created_at=now,
                        updated_at=now,
                    )
                    self.order_repo.create_order(session, order)
                    self.order_repo.create_items(session, self._item_rows(order_id, items))
                    self.order_repo.add_log(session, order_id, LOG_CREATED, actor_name)
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    if attempt == ID_ALLOCATION_ATTEMPTS:
                        logger.error("Could not allocate an order id: %s", exc)
                        raise PersistenceFailure("create the order", exc) from exc
                    logger.warning("Order id collision, retrying (attempt %d)", attempt)
                    continue
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.error("Error creating order: %s", exc)
                    raise PersistenceFailure("create the order", exc) from exc
            break

        session.refresh(order)
        self._publish("INSERT", order)
        return order_id

    def update_order(
        self,
        session: Session,
        actor: Actor,
        order_id: str,
        draft: OrderDraft,
    ) -> OrderRead:
        """
        Overwrite the header, replace items wholesale, append an edit log.

        Only DRAFT / REVIEW orders can be edited.
        """
        order = self._get_visible(session, actor, order_id)
        self.policy.ensure_editable(OrderSnapshot.of(order), actor)

        items = normalize_items(draft.items)
        if not items and order.status != OrderStatus.DRAFT.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Order must contain at least one item",
            )

        old = self._row(order)
        try:
            order.client_name = draft.client_name
            order.client_tax_id = draft.client_tax_id
            order.client_phone = draft.client_phone
            order.order_type = draft.order_type
            order.destination_name = draft.destination_name
            order.city_id = draft.city_id
            order.city_name = draft.city_name
            order.warehouse_id = draft.warehouse_id
            order.warehouse_name = draft.warehouse_name
            order.updated_at = _utcnow()
            self.order_repo.update_order(session, order)

            self.order_repo.delete_items_for_order(session, order_id)
            self.order_repo.create_items(session, self._item_rows(order_id, items))
            self.order_repo.add_log(session, order_id, LOG_UPDATED, self._actor_name(actor))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Error updating order %s: %s", order_id, exc)
            raise PersistenceFailure("update the order", exc) from exc

        session.refresh(order)
        self._publish("UPDATE", order, old)
        return self._build_order_dto(session, order)

    # -------- Status --------

    def update_status(
        self,
        session: Session,
        actor: Actor,
        order_id: str,
        target: OrderStatus,
        reason: str | None = None,
    ) -> OrderRead:
        """
        Request a status change.

        Raises TransitionDenied / ReasonRequired before any write.
        Re-requesting the current status is a no-op (no write, no log).
        """
        order = self._get_visible(session, actor, order_id)
        decision = self.policy.decide(OrderSnapshot.of(order), actor, target, reason)
        return self._apply_decision(session, actor, order, decision)

    def confirm_delivery(self, session: Session, actor: Actor, order_id: str) -> OrderRead:
        """DISPATCH -> DELIVERED by the assigned delivery person."""
        order = self._get_visible(session, actor, order_id)
        decision = self.policy.confirm_delivery(OrderSnapshot.of(order), actor)
        return self._apply_decision(session, actor, order, decision)

    def _apply_decision(
        self,
        session: Session,
        actor: Actor,
        order: Order,
        decision: TransitionDecision,
    ) -> OrderRead:
        if decision.noop:
            return self._build_order_dto(session, order)

        old = self._row(order)
        try:
            order.status = decision.target.value
            order.updated_at = _utcnow()
            self.order_repo.update_order(session, order)
            self.order_repo.add_log(
                session, order.id, decision.log_message, self._actor_name(actor)
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Error updating status of order %s: %s", order.id, exc)
            raise PersistenceFailure("update the order status", exc) from exc

        session.refresh(order)
        logger.info(
            "Order %s: %s -> %s by %s",
            order.id,
            decision.current.value,
            decision.target.value,
            actor.name,
        )
        self._publish("UPDATE", order, old)
        return self._build_order_dto(session, order)

    # -------- Delivery assignment --------

    def assign_delivery(
        self,
        session: Session,
        actor: Actor,
        order_id: str,
        delivery_user_id: uuid.UUID,
    ) -> OrderRead:
        """
        Assign (or re-assign) a delivery person.

        Raises DriverUnavailable if the driver is off today.
        """
        order = self._get_visible(session, actor, order_id)
        driver = self.user_repo.get_by_id(session, delivery_user_id)
        if not self.guard.is_eligible(driver):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selected user is not an active delivery person",
            )

        if not self.guard.check(OrderSnapshot.of(order), actor, driver):
            return self._build_order_dto(session, order)

        old = self._row(order)
        try:
            order.assigned_delivery_id = driver.id
            order.updated_at = _utcnow()
            self.order_repo.update_order(session, order)
            self.order_repo.add_log(session, order.id, LOG_ASSIGNED, self._actor_name(actor))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Error assigning delivery on order %s: %s", order.id, exc)
            raise PersistenceFailure("assign the delivery person", exc) from exc

        session.refresh(order)
        self._publish("UPDATE", order, old)
        return self._build_order_dto(session, order)

    # -------- Comments --------

    def add_comment(
        self,
        session: Session,
        actor: Actor,
        order_id: str,
        content: str,
    ) -> OrderCommentRead:
        order = self._get_visible(session, actor, order_id)
        comment = OrderComment(
            order_id=order.id,
            user_id=actor.id,
            user_name=self._actor_name(actor),
            content=content,
        )
        try:
            self.order_repo.add_comment(session, comment)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Error adding comment to order %s: %s", order.id, exc)
            raise PersistenceFailure("add the comment", exc) from exc

        session.refresh(comment)
        return OrderCommentRead.model_validate(comment, from_attributes=True)

    # -------- Helpers --------

    def _get_visible(self, session: Session, actor: Actor, order_id: str) -> Order:
        """
        404 if the order does not exist or is outside the actor's scope.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order or not OrderScope.for_actor(actor).allows(order):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        return order

    @staticmethod
    def _item_rows(order_id: str, items: list[OrderItemIn]) -> list[OrderItem]:
        return [
            OrderItem(
                order_id=order_id,
                product_id=it.product_id,
                product_name=it.product_name,
                presentation_id=it.presentation_id,
                presentation_name=it.presentation_name,
                quantity=it.quantity,
            )
            for it in items
        ]

    @staticmethod
    def _row(order: Order) -> dict:
        return order.model_dump(mode="json")

    def _publish(self, kind: str, order: Order, old: dict | None = None) -> None:
        if self.feed is None:
            return
        self.feed.publish(
            ChangeEvent(type=kind, table="orders", new=self._row(order), old=old or {})
        )

    def _build_order_dto(self, session: Session, order: Order) -> OrderRead:
        """
        Compose OrderRead from ORM rows: items, logs oldest-first,
        comments newest-first.
        """
        items = self.order_repo.list_items_for_order(session, order.id)
        logs = self.order_repo.list_logs_for_order(session, order.id)
        comments = self.order_repo.list_comments_for_order(session, order.id)

        return OrderRead(
            id=order.id,
            user_id=order.user_id,
            user_name=order.user_name,
            client_name=order.client_name,
            client_tax_id=order.client_tax_id,
            client_phone=order.client_phone,
            origin_city_name=order.origin_city_name,
            order_type=order.order_type,
            destination_name=order.destination_name,
            city_id=order.city_id,
            city_name=order.city_name,
            warehouse_id=order.warehouse_id,
            warehouse_name=order.warehouse_name,
            status=order.status,
            assigned_delivery_id=order.assigned_delivery_id,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[
                OrderItemRead(
                    product_id=it.product_id,
                    product_name=it.product_name,
                    presentation_id=it.presentation_id,
                    presentation_name=it.presentation_name,
                    quantity=it.quantity,
                )
                for it in items
            ],
            logs=[
                OrderLogRead(timestamp=log.timestamp, message=log.message, user_name=log.user_name)
                for log in logs
            ],
            comments=[
                OrderCommentRead.model_validate(c, from_attributes=True) for c in comments
            ],
        )
