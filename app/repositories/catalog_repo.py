# app/repositories/catalog_repo.py
import uuid
from typing import TypeVar

from sqlmodel import Session, SQLModel, select

from app.models.catalog import City, Product, Warehouse

Entity = TypeVar("Entity", bound=SQLModel)


class CatalogRepository:
    """
    Data access layer for the configuration tables
    (cities, warehouses, categories, products, presentations,
    destinations, order types).

    - Pure DB operations, generic over the SQLModel table class.
    """

    def get(self, session: Session, model: type[Entity], entity_id: uuid.UUID) -> Entity | None:
        return session.get(model, entity_id)

    def list_all(self, session: Session, model: type[Entity]) -> list[Entity]:
        stmt = select(model).order_by(model.name)
        return session.exec(stmt).all()

    def save(self, session: Session, entity: Entity) -> Entity:
        session.add(entity)
        session.commit()
        session.refresh(entity)
        return entity

    def delete(self, session: Session, entity: SQLModel) -> None:
        session.delete(entity)
        session.commit()

    # ----- Lookups used by the workflow -----

    def principal_city_ids(self, session: Session) -> list[uuid.UUID]:
        stmt = select(City.id).where(City.is_principal == True)  # noqa: E712
        return session.exec(stmt).all()

    def any_warehouse_in_city(self, session: Session, city_id: uuid.UUID) -> bool:
        stmt = select(Warehouse.id).where(Warehouse.city_id == city_id).limit(1)
        return session.exec(stmt).first() is not None

    def any_product_in_category(self, session: Session, category_name: str) -> bool:
        stmt = select(Product.id).where(Product.category == category_name).limit(1)
        return session.exec(stmt).first() is not None
