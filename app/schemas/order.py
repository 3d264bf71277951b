# app/schemas/order.py
import uuid
from datetime import date, datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from app.models.order import OrderStatus


class OrderItemIn(SQLModel):
    """
    One cart line.

    quantity <= 0 is accepted here and dropped by the service, the same
    way a cart line decremented to zero disappears.
    """

    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    product_name: str
    presentation_id: uuid.UUID
    presentation_name: str
    quantity: int


class OrderDraft(SQLModel):
    """
    Payload for creating or editing an order.

    Backend derives:
      - user_id / user_name from token on create
      - id = next ORD-### on create
      - status = 'Enviado' unless a draft is requested
    """

    model_config = ConfigDict(extra="forbid")

    client_name: str
    client_tax_id: str | None = None
    client_phone: str | None = None
    origin_city_name: str | None = None
    order_type: str
    destination_name: str
    city_id: uuid.UUID
    city_name: str
    warehouse_id: uuid.UUID | None = None
    warehouse_name: str | None = None
    items: list[OrderItemIn] = Field(default_factory=list)

    # Only honoured on create; DRAFT or SENT.
    status: OrderStatus | None = None

    @field_validator("client_name", "order_type", "destination_name", "city_name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("client_tax_id", "client_phone", "origin_city_name", "warehouse_name")
    @classmethod
    def normalize_optional(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None

    @field_validator("status")
    @classmethod
    def initial_status(cls, v: OrderStatus | None) -> OrderStatus | None:
        if v is not None and v not in (OrderStatus.DRAFT, OrderStatus.SENT):
            raise ValueError("new orders start as Borrador or Enviado")
        return v


class OrderItemRead(SQLModel):
    product_id: uuid.UUID
    product_name: str
    presentation_id: uuid.UUID
    presentation_name: str
    quantity: int


class OrderLogRead(SQLModel):
    timestamp: datetime
    message: str
    user_name: str


class OrderCommentRead(SQLModel):
    id: uuid.UUID
    order_id: str
    user_id: uuid.UUID
    user_name: str
    content: str
    created_at: datetime


class OrderRead(SQLModel):
    """
    Full order view: header, items, logs (oldest first) and
    comments (newest first).
    """

    id: str
    user_id: uuid.UUID
    user_name: str
    client_name: str
    client_tax_id: str | None = None
    client_phone: str | None = None
    origin_city_name: str | None = None
    order_type: str
    destination_name: str
    city_id: uuid.UUID
    city_name: str
    warehouse_id: uuid.UUID | None = None
    warehouse_name: str | None = None
    status: OrderStatus
    assigned_delivery_id: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemRead] = Field(default_factory=list)
    logs: list[OrderLogRead] = Field(default_factory=list)
    comments: list[OrderCommentRead] = Field(default_factory=list)


class OrderPage(SQLModel):
    """One page of the newest-first listing."""

    orders: list[OrderRead]
    page: int
    page_size: int
    has_more: bool


class OrderCreated(SQLModel):
    id: str


class OrderStatusUpdate(SQLModel):
    """
    Payload to change order status.

    reason is mandatory for Cancelado / Rechazado; checked by the policy
    so the refusal carries its own error code.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
    reason: str | None = None


class DeliveryAssign(SQLModel):
    model_config = ConfigDict(extra="forbid")

    delivery_user_id: uuid.UUID


class CommentCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    content: str = Field(max_length=2000)

    @field_validator("content")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("comment cannot be empty")
        return v


class ConsolidatedLine(SQLModel):
    """Pending quantity of one product+presentation across orders."""

    product_id: uuid.UUID
    product_name: str
    presentation_id: uuid.UUID
    presentation_name: str
    total: int


class OrderFilterParams(SQLModel):
    """Filter sent over the live order socket. Empty fields match everything."""

    model_config = ConfigDict(extra="forbid")

    search: str = ""
    city: str | None = None
    status: OrderStatus | None = None
    order_type: str | None = None
    seller_id: uuid.UUID | None = None
    date_start: date | None = None
    date_end: date | None = None

    @field_validator("city", "order_type")
    @classmethod
    def normalize_optional(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None
