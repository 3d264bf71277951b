# app/services/catalog_service.py
import logging
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session, SQLModel

from app.core.exceptions import ReferentialConflict
from app.models.catalog import (
    Category,
    City,
    Destination,
    OrderType,
    Presentation,
    Product,
    Warehouse,
)
from app.models.order import Order
from app.repositories.catalog_repo import CatalogRepository
from app.repositories.order_repo import OrderRepository
from app.schemas.catalog import (
    CatalogUpdate,
    CityCreate,
    NamedCreate,
    PresentationCreate,
    ProductCreate,
    ProductUpdate,
    WarehouseCreate,
)

logger = logging.getLogger(__name__)

# Entity kind -> (table class, label used in messages)
ENTITIES: dict[str, tuple[type[SQLModel], str]] = {
    "cities": (City, "city"),
    "warehouses": (Warehouse, "warehouse"),
    "categories": (Category, "category"),
    "products": (Product, "product"),
    "presentations": (Presentation, "presentation"),
    "destinations": (Destination, "destination"),
    "order-types": (OrderType, "order type"),
}


class CatalogService:
    """
    Configuration entities read and written by the order workflow.

    Responsibilities:
      - create/list/update the configuration tables
      - refuse deletes of entities still referenced (ReferentialConflict),
        checked before the delete is issued
    """

    def __init__(self, repo: CatalogRepository, order_repo: OrderRepository):
        self.repo = repo
        self.order_repo = order_repo

    # ----- Generic -----

    def _model(self, kind: str) -> tuple[type[SQLModel], str]:
        if kind not in ENTITIES:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown catalog entity: {kind}",
            )
        return ENTITIES[kind]

    def list_all(self, session: Session, kind: str) -> list[SQLModel]:
        model, _ = self._model(kind)
        return self.repo.list_all(session, model)

    def get(self, session: Session, kind: str, entity_id: uuid.UUID) -> SQLModel:
        model, label = self._model(kind)
        entity = self.repo.get(session, model, entity_id)
        if not entity:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{label.capitalize()} not found",
            )
        return entity

    def delete(self, session: Session, kind: str, entity_id: uuid.UUID) -> None:
        """
        Delete after the usage check for this kind of entity.

        Raises:
            ReferentialConflict: if orders/products/warehouses still use it.
        """
        entity = self.get(session, kind, entity_id)
        self._ensure_unused(session, kind, entity)
        self.repo.delete(session, entity)
        logger.info("Deleted %s %s", kind, entity_id)

    def _ensure_unused(self, session: Session, kind: str, entity) -> None:
        in_use = False
        message = ""
        if kind == "products":
            in_use = self.order_repo.any_item_with_product(session, entity.id)
            message = "This product cannot be deleted because existing orders use it."
        elif kind == "presentations":
            in_use = self.order_repo.any_item_with_presentation(session, entity.id)
            message = "This presentation cannot be deleted because existing orders use it."
        elif kind == "warehouses":
            in_use = self.order_repo.any_order_with(session, Order.warehouse_id, entity.id)
            message = "This warehouse cannot be deleted because existing orders use it."
        elif kind == "destinations":
            in_use = self.order_repo.any_order_with(session, Order.destination_name, entity.name)
            message = "This destination cannot be deleted because existing orders use it."
        elif kind == "order-types":
            in_use = self.order_repo.any_order_with(session, Order.order_type, entity.name)
            message = "This order type cannot be deleted because existing orders use it."
        elif kind == "categories":
            in_use = self.repo.any_product_in_category(session, entity.name)
            message = "This category cannot be deleted because it still has products."
        elif kind == "cities":
            in_use = self.repo.any_warehouse_in_city(session, entity.id) or (
                self.order_repo.any_order_with(session, Order.city_id, entity.id)
            )
            message = (
                "This city cannot be deleted because it has warehouses or orders. "
                "Delete its warehouses first."
            )

        if in_use:
            raise ReferentialConflict(ENTITIES[kind][1], message)

    # ----- Creates -----

    def create_city(self, session: Session, payload: CityCreate) -> City:
        return self.repo.save(session, City(**payload.model_dump()))

    def create_warehouse(self, session: Session, payload: WarehouseCreate) -> Warehouse:
        self.get(session, "cities", payload.city_id)
        return self.repo.save(session, Warehouse(**payload.model_dump()))

    def create_named(self, session: Session, kind: str, payload: NamedCreate) -> SQLModel:
        """Categories, destinations and order types."""
        model, _ = self._model(kind)
        if model not in (Category, Destination, OrderType):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{kind} cannot be created from a name only",
            )
        return self.repo.save(session, model(**payload.model_dump()))

    def create_presentation(self, session: Session, payload: PresentationCreate) -> Presentation:
        return self.repo.save(session, Presentation(**payload.model_dump()))

    def create_product(self, session: Session, payload: ProductCreate) -> Product:
        self._ensure_category(session, payload.category)
        return self.repo.save(session, Product(**payload.model_dump()))

    # ----- Updates -----

    def update(
        self,
        session: Session,
        kind: str,
        entity_id: uuid.UUID,
        payload: CatalogUpdate,
    ) -> SQLModel:
        """
        Partial update of a city, warehouse, presentation, category,
        destination or order type. Products go through update_product.

        Flipping a city's `is_principal` changes the authority of its
        staff from their next request on.
        """
        if kind == "products":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Products are updated through their own endpoint",
            )
        entity = self.get(session, kind, entity_id)
        data = payload.model_dump(exclude_unset=True)
        if kind == "warehouses" and data.get("city_id") is not None:
            self.get(session, "cities", data["city_id"])
        unknown = sorted(field for field in data if not hasattr(entity, field))
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot update {', '.join(unknown)} on {kind}",
            )
        for field, value in data.items():
            if value is not None:
                setattr(entity, field, value)
        logger.info("Updated %s %s: %s", kind, entity_id, sorted(data))
        return self.repo.save(session, entity)

    def update_product(
        self,
        session: Session,
        product_id: uuid.UUID,
        payload: ProductUpdate,
    ) -> Product:
        """
        Partial update; only fields explicitly sent are applied.
        """
        product = self.get(session, "products", product_id)
        data = payload.model_dump(exclude_unset=True)
        if data.get("category") is not None:
            self._ensure_category(session, data["category"])
        for field, value in data.items():
            if value is not None:
                setattr(product, field, value)
        return self.repo.save(session, product)

    def _ensure_category(self, session: Session, name: str) -> None:
        if not any(c.name == name for c in self.repo.list_all(session, Category)):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown category: {name}",
            )
