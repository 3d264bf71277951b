# app/schemas/catalog.py
import uuid
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

WarehouseType = Literal["Local", "Principal"]


class NamedCreate(SQLModel):
    """
    Shared payload for the simple name-only configuration entities
    (categories, destinations, order types).
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=100)
    active: bool = True

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class NamedRead(SQLModel):
    id: uuid.UUID
    name: str
    active: bool


class CityCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=100)
    is_principal: bool = False

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class CityRead(SQLModel):
    id: uuid.UUID
    name: str
    is_principal: bool


class WarehouseCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    city_id: uuid.UUID
    name: str = Field(max_length=100)
    type: WarehouseType = "Local"

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class WarehouseRead(SQLModel):
    id: uuid.UUID
    city_id: uuid.UUID
    name: str
    type: WarehouseType


class ProductCreate(SQLModel):
    """
    Payload for creating a product.

    - category is the category *name*; it must exist.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=100)
    category: str = Field(max_length=100)
    available: bool = True
    image_url: str | None = None

    @field_validator("name", "category")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class ProductUpdate(SQLModel):
    """
    Partial update payload for products.
    Any field left as None will not be changed.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=100)
    category: str | None = Field(default=None, max_length=100)
    available: bool | None = None
    image_url: str | None = None


class ProductRead(SQLModel):
    id: uuid.UUID
    name: str
    category: str
    available: bool
    image_url: str | None


class PresentationCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=100)
    weight_kg: float = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class PresentationRead(SQLModel):
    id: uuid.UUID
    name: str
    weight_kg: float


class CatalogUpdate(SQLModel):
    """
    Base for partial updates of configuration entities.
    Any field left as None will not be changed.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class NamedUpdate(CatalogUpdate):
    active: bool | None = None


class CityUpdate(CatalogUpdate):
    is_principal: bool | None = None


class WarehouseUpdate(CatalogUpdate):
    city_id: uuid.UUID | None = None
    type: WarehouseType | None = None


class PresentationUpdate(CatalogUpdate):
    weight_kg: float | None = Field(default=None, ge=0)
