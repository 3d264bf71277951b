# app/models/order.py
import enum
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """
    Fulfillment pipeline. Values are the persisted column values.

      DRAFT -> SENT -> REVIEW -> PRODUCTION -> DISPATCH -> DELIVERED
      CANCELLED / REJECTED are terminal side exits.
    """

    DRAFT = "Borrador"
    SENT = "Enviado"
    REVIEW = "En Revisión"
    PRODUCTION = "En Producción"
    DISPATCH = "En Despacho"
    DELIVERED = "Entregado"
    CANCELLED = "Cancelado"
    REJECTED = "Rechazado"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REJECTED}
)
EDITABLE_STATUSES = frozenset({OrderStatus.DRAFT, OrderStatus.REVIEW})


class Order(SQLModel, table=True):
    """
    Order header.

    - id: human readable sequential id, e.g. "ORD-042"
    - city_id / warehouse_id: fulfillment location (where stock comes from)
    - destination_name: delivery point, independent of the warehouse
    - assigned_delivery_id: weak reference to a Delivery user
    """

    __tablename__ = "orders"

    id: str = Field(primary_key=True, max_length=32)

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
        description="Seller who created the order",
    )
    user_name: str = Field(description="Seller display name at creation time")

    client_name: str
    client_tax_id: str | None = Field(default=None)
    client_phone: str | None = Field(default=None)

    origin_city_name: str | None = Field(
        default=None,
        description="Seller's home city",
    )

    # Dynamic enumeration, see order_types table
    order_type: str = Field(index=True)

    destination_name: str = Field(index=True)

    city_id: uuid.UUID = Field(foreign_key="cities.id", index=True)
    city_name: str
    warehouse_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="warehouses.id",
        index=True,
    )
    warehouse_name: str | None = Field(default=None)

    status: str = Field(
        default=OrderStatus.SENT.value,
        index=True,
        description="Order status lifecycle",
    )

    assigned_delivery_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
    )

    created_at: datetime = Field(
        default_factory=_utcnow,
        index=True,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        description="Last write timestamp (UTC)",
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order. Replaced wholesale on every edit.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: str = Field(foreign_key="orders.id", index=True)

    product_id: uuid.UUID = Field(foreign_key="products.id", index=True)
    product_name: str

    presentation_id: uuid.UUID = Field(foreign_key="presentations.id", index=True)
    presentation_name: str

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )


class OrderLog(SQLModel, table=True):
    """
    Append-only history entry (by convention, not by constraint).
    """

    __tablename__ = "order_logs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: str = Field(foreign_key="orders.id", index=True)
    timestamp: datetime = Field(default_factory=_utcnow)
    message: str
    user_name: str


class OrderComment(SQLModel, table=True):
    __tablename__ = "order_comments"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: str = Field(foreign_key="orders.id", index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id")
    user_name: str
    content: str
    created_at: datetime = Field(default_factory=_utcnow)
