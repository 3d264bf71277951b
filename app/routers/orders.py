# app/routers/orders.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import (
    require_auth,
    require_delivery,
    require_management,
    require_order_creator,
)
from app.core.change_feed import get_change_feed
from app.core.config import get_settings
from app.database import get_session
from app.models.order import OrderStatus
from app.models.user import User
from app.repositories.catalog_repo import CatalogRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.user_repo import UserRepository
from app.schemas.order import (
    CommentCreate,
    DeliveryAssign,
    OrderCommentRead,
    OrderCreated,
    OrderDraft,
    OrderPage,
    OrderRead,
    OrderStatusUpdate,
)
from app.services.order_service import OrderService
from app.services.transition_policy import TransitionPolicy

settings = get_settings()

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository(id_prefix=settings.ORDER_ID_PREFIX)
user_repo = UserRepository()
catalog_repo = CatalogRepository()
service = OrderService(
    order_repo,
    user_repo,
    catalog_repo,
    policy=TransitionPolicy(production_full_access=settings.PRODUCTION_FULL_ACCESS),
    # With Supabase realtime the database itself is the event source.
    feed=get_change_feed() if settings.REALTIME_SOURCE == "local" else None,
    default_actor_name=settings.DEFAULT_ACTOR_NAME,
)


# -------- Listing / reading --------


@router.get("", response_model=OrderPage)
def list_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    page: int = 0,
    page_size: int | None = None,
):
    """
    Newest-first page of the orders visible to the caller.

    - Sellers: own orders. Delivery: orders assigned to them.
    - Warehouse / Production: orders of their assigned cities
      (principal-city staff and admins see everything).
    - `has_more` is false once a page comes back short.
    """
    actor = service.actor_for(session, current_user)
    return service.list_orders(session, actor, page, page_size or settings.ORDER_PAGE_SIZE)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(
    order_id: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Get one order with items, logs and comments.
    """
    return service.get_order(session, service.actor_for(session, current_user), order_id)


@router.get("/{order_id}/transitions", response_model=list[OrderStatus])
def list_available_transitions(
    order_id: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Statuses the caller may move this order to right now.
    """
    actor = service.actor_for(session, current_user)
    return service.available_transitions(session, actor, order_id)


# -------- Create / edit --------


@router.post("", response_model=OrderCreated, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderDraft,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_order_creator),
):
    """
    Create an order (seller or admin). Starts as Enviado unless
    `status` is Borrador.
    """
    actor = service.actor_for(session, current_user)
    return OrderCreated(id=service.create_order(session, actor, payload))


@router.put("/{order_id}", response_model=OrderRead)
def update_order(
    order_id: str,
    payload: OrderDraft,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Edit header fields and replace all items.

    Only while the order is Borrador or En Revisión.
    """
    actor = service.actor_for(session, current_user)
    return service.update_order(session, actor, order_id, payload)


# -------- Workflow --------


@router.patch("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_management),
):
    """
    Move an order through the pipeline (management staff).

    Refusals (409) carry a `kind`:
      missing_driver | in_transit_lock | role_insufficient | order_closed.
    Cancelado / Rechazado without a reason -> 422 reason_required.
    """
    actor = service.actor_for(session, current_user)
    return service.update_status(session, actor, order_id, payload.status, payload.reason)


@router.post("/{order_id}/deliver", response_model=OrderRead)
def confirm_delivery(
    order_id: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_delivery),
):
    """
    Delivery person confirms En Despacho -> Entregado.
    """
    actor = service.actor_for(session, current_user)
    return service.confirm_delivery(session, actor, order_id)


@router.put("/{order_id}/delivery", response_model=OrderRead)
def assign_delivery(
    order_id: str,
    payload: DeliveryAssign,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_management),
):
    """
    Assign or re-assign the delivery person.

    409 driver_unavailable if the driver is marked off today.
    """
    actor = service.actor_for(session, current_user)
    return service.assign_delivery(session, actor, order_id, payload.delivery_user_id)


@router.post(
    "/{order_id}/comments",
    response_model=OrderCommentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    order_id: str,
    payload: CommentCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Add a note to an order the caller can see.
    """
    actor = service.actor_for(session, current_user)
    return service.add_comment(session, actor, order_id, payload.content)
