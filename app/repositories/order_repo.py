# app/repositories/order_repo.py
import re
import uuid

from sqlalchemy import delete, func
from sqlmodel import Session, select

from app.models.order import Order, OrderComment, OrderItem, OrderLog, OrderStatus
from app.models.user import UserRole


class OrderScope:
    """
    Row visibility for a listing, resolved from the viewer.

    None fields mean "no restriction".
    """

    def __init__(
        self,
        city_ids: list[uuid.UUID] | None = None,
        user_id: uuid.UUID | None = None,
        assigned_delivery_id: uuid.UUID | None = None,
        hide_drafts: bool = False,
    ):
        self.city_ids = city_ids
        self.user_id = user_id
        self.assigned_delivery_id = assigned_delivery_id
        self.hide_drafts = hide_drafts

    @classmethod
    def for_actor(cls, actor) -> "OrderScope":
        role = actor.role
        if role == UserRole.SELLER:
            return cls(user_id=actor.id)
        if role == UserRole.DELIVERY:
            return cls(assigned_delivery_id=actor.id)
        hide_drafts = role == UserRole.PRODUCTION
        if actor.sees_all_cities:
            return cls(hide_drafts=hide_drafts)
        city_ids = []
        for raw in actor.assigned_cities:
            try:
                city_ids.append(uuid.UUID(str(raw)))
            except ValueError:
                continue
        return cls(city_ids=city_ids, hide_drafts=hide_drafts)

    def apply(self, stmt):
        if self.city_ids is not None:
            stmt = stmt.where(Order.city_id.in_(self.city_ids))
        if self.user_id is not None:
            stmt = stmt.where(Order.user_id == self.user_id)
        if self.assigned_delivery_id is not None:
            stmt = stmt.where(Order.assigned_delivery_id == self.assigned_delivery_id)
        if self.hide_drafts:
            stmt = stmt.where(Order.status != OrderStatus.DRAFT.value)
        return stmt

    def allows(self, order: Order) -> bool:
        """Python-side counterpart of apply() for a single loaded order."""
        if self.city_ids is not None and order.city_id not in self.city_ids:
            return False
        if self.user_id is not None and order.user_id != self.user_id:
            return False
        if (
            self.assigned_delivery_id is not None
            and order.assigned_delivery_id != self.assigned_delivery_id
        ):
            return False
        if self.hide_drafts and order.status == OrderStatus.DRAFT.value:
            return False
        return True


class OrderRepository:
    """
    Data access layer for orders, order_items, order_logs, order_comments.

    NOTE:
      - No commits here; create/edit are multi-step transactions.
        The service is responsible for calling session.commit().
    """

    def __init__(self, id_prefix: str = "ORD"):
        self.id_prefix = id_prefix
        self._id_pattern = re.compile(rf"^{re.escape(id_prefix)}-(\d+)$")

    # ---- Orders ----

    def list_page(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        scope: OrderScope | None = None,
    ) -> list[Order]:
        stmt = select(Order)
        if scope is not None:
            stmt = scope.apply(stmt)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def get_by_id(self, session: Session, order_id: str) -> Order | None:
        return session.get(Order, order_id)

    def next_order_id(self, session: Session) -> str:
        """
        Highest numeric suffix + 1, zero padded to 3 digits.

        Longer ids sort first so ORD-1000 wins over ORD-999. Ids with a
        non-numeric suffix (imported rows) are skipped. The caller must
        hold the allocation lock until commit.
        """
        stmt = (
            select(Order.id)
            .where(Order.id.like(f"{self.id_prefix}-%"))
            .order_by(func.length(Order.id).desc(), Order.id.desc())
        )

        next_number = 1
        for candidate in session.exec(stmt).all():
            match = self._id_pattern.match(candidate)
            if match:
                next_number = int(match.group(1)) + 1
                break
        return f"{self.id_prefix}-{next_number:03d}"

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing.
        """
        session.add(order)
        session.flush()
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        return order

    # ---- Order items ----

    def list_items_for_order(self, session: Session, order_id: str) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        return session.exec(stmt).all()

    def create_items(self, session: Session, items: list[OrderItem]) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        return items

    def delete_items_for_order(self, session: Session, order_id: str) -> None:
        session.exec(delete(OrderItem).where(OrderItem.order_id == order_id))
        session.flush()

    # ---- Logs ----

    def add_log(self, session: Session, order_id: str, message: str, user_name: str) -> OrderLog:
        log = OrderLog(order_id=order_id, message=message, user_name=user_name)
        session.add(log)
        session.flush()
        return log

    def list_logs_for_order(self, session: Session, order_id: str) -> list[OrderLog]:
        stmt = (
            select(OrderLog)
            .where(OrderLog.order_id == order_id)
            .order_by(OrderLog.timestamp)
        )
        return session.exec(stmt).all()

    # ---- Comments ----

    def add_comment(self, session: Session, comment: OrderComment) -> OrderComment:
        session.add(comment)
        session.flush()
        return comment

    def list_comments_for_order(self, session: Session, order_id: str) -> list[OrderComment]:
        stmt = (
            select(OrderComment)
            .where(OrderComment.order_id == order_id)
            .order_by(OrderComment.created_at.desc())
        )
        return session.exec(stmt).all()

    # ---- Usage checks (referential conflicts) ----

    def any_item_with_product(self, session: Session, product_id: uuid.UUID) -> bool:
        stmt = select(OrderItem.id).where(OrderItem.product_id == product_id).limit(1)
        return session.exec(stmt).first() is not None

    def any_item_with_presentation(self, session: Session, presentation_id: uuid.UUID) -> bool:
        stmt = select(OrderItem.id).where(OrderItem.presentation_id == presentation_id).limit(1)
        return session.exec(stmt).first() is not None

    def any_order_with(self, session: Session, column, value) -> bool:
        stmt = select(Order.id).where(column == value).limit(1)
        return session.exec(stmt).first() is not None
