# app/models/catalog.py
import uuid

from sqlmodel import SQLModel, Field


class City(SQLModel, table=True):
    """
    Fulfillment city.

    is_principal marks the central warehouse city whose staff get full
    transition authority over every order.
    """

    __tablename__ = "cities"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    name: str = Field(max_length=100, unique=True, index=True)
    is_principal: bool = Field(default=False)


class Warehouse(SQLModel, table=True):
    __tablename__ = "warehouses"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    city_id: uuid.UUID = Field(foreign_key="cities.id", index=True)
    name: str = Field(max_length=100)

    # Local | Principal
    type: str = Field(default="Local")


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    name: str = Field(max_length=100, unique=True, index=True)
    active: bool = Field(default=True)


class Product(SQLModel, table=True):
    """
    Catalog product. `category` holds the category name, not its id.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    name: str = Field(max_length=100, index=True)
    category: str = Field(index=True)
    available: bool = Field(default=True)
    image_url: str | None = Field(default=None)


class Presentation(SQLModel, table=True):
    """Package size, e.g. 'Libra', 'Medio Galón', 'Galón'."""

    __tablename__ = "presentations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    name: str = Field(max_length=100)
    weight_kg: float = Field(default=0, ge=0)


class Destination(SQLModel, table=True):
    __tablename__ = "destinations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    name: str = Field(max_length=100, unique=True, index=True)
    active: bool = Field(default=True)


class OrderType(SQLModel, table=True):
    """Sale, Tasting, Exchange, Sample, Promo, Donation, ..."""

    __tablename__ = "order_types"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    name: str = Field(max_length=100, unique=True, index=True)
    active: bool = Field(default=True)
