# app/routers/catalog.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import require_admin, require_auth
from app.database import get_session
from app.repositories.catalog_repo import CatalogRepository
from app.repositories.order_repo import OrderRepository
from app.schemas.catalog import (
    CityCreate,
    CityRead,
    CityUpdate,
    NamedCreate,
    NamedRead,
    NamedUpdate,
    PresentationCreate,
    PresentationRead,
    PresentationUpdate,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    WarehouseCreate,
    WarehouseRead,
    WarehouseUpdate,
)
from app.services.catalog_service import CatalogService

router = APIRouter(prefix="/catalog", tags=["Catalog"])

service = CatalogService(CatalogRepository(), OrderRepository())


# -------- Read (any authenticated user) --------


@router.get("/{kind}", dependencies=[Depends(require_auth)])
def list_entities(kind: str, session: Session = Depends(get_session)):
    """
    List a configuration table.

    kind: cities | warehouses | categories | products | presentations |
          destinations | order-types
    """
    return service.list_all(session, kind)


# -------- Admin writes --------


@router.post(
    "/cities",
    response_model=CityRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_city(payload: CityCreate, session: Session = Depends(get_session)):
    """Create a city; `is_principal` grants its staff full authority."""
    return service.create_city(session, payload)


@router.post(
    "/warehouses",
    response_model=WarehouseRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_warehouse(payload: WarehouseCreate, session: Session = Depends(get_session)):
    return service.create_warehouse(session, payload)


@router.post(
    "/products",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_product(payload: ProductCreate, session: Session = Depends(get_session)):
    return service.create_product(session, payload)


@router.patch(
    "/products/{product_id}",
    response_model=ProductRead,
    dependencies=[Depends(require_admin)],
)
def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    session: Session = Depends(get_session),
):
    """Partial update of a product (admin only)."""
    return service.update_product(session, product_id, payload)


@router.post(
    "/presentations",
    response_model=PresentationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_presentation(payload: PresentationCreate, session: Session = Depends(get_session)):
    return service.create_presentation(session, payload)


@router.post(
    "/{kind}",
    response_model=NamedRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_named(kind: str, payload: NamedCreate, session: Session = Depends(get_session)):
    """
    Create a category, destination or order type.
    """
    return service.create_named(session, kind, payload)


@router.patch(
    "/cities/{city_id}",
    response_model=CityRead,
    dependencies=[Depends(require_admin)],
)
def update_city(
    city_id: uuid.UUID,
    payload: CityUpdate,
    session: Session = Depends(get_session),
):
    """
    Partial update of a city. Setting `is_principal` gives its staff full
    authority from their next request on; clearing it restricts them.
    """
    return service.update(session, "cities", city_id, payload)


@router.patch(
    "/warehouses/{warehouse_id}",
    response_model=WarehouseRead,
    dependencies=[Depends(require_admin)],
)
def update_warehouse(
    warehouse_id: uuid.UUID,
    payload: WarehouseUpdate,
    session: Session = Depends(get_session),
):
    return service.update(session, "warehouses", warehouse_id, payload)


@router.patch(
    "/presentations/{presentation_id}",
    response_model=PresentationRead,
    dependencies=[Depends(require_admin)],
)
def update_presentation(
    presentation_id: uuid.UUID,
    payload: PresentationUpdate,
    session: Session = Depends(get_session),
):
    return service.update(session, "presentations", presentation_id, payload)


@router.patch(
    "/{kind}/{entity_id}",
    response_model=NamedRead,
    dependencies=[Depends(require_admin)],
)
def update_named(
    kind: str,
    entity_id: uuid.UUID,
    payload: NamedUpdate,
    session: Session = Depends(get_session),
):
    """
    Rename or (de)activate a category, destination or order type.
    Renames do not touch the orders and products that stored the old name.
    """
    return service.update(session, kind, entity_id, payload)


@router.delete(
    "/{kind}/{entity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_entity(
    kind: str,
    entity_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Delete a configuration entity (admin only).

    409 referential_conflict while orders (or products / warehouses)
    still reference it.
    """
    service.delete(session, kind, entity_id)
