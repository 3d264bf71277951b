# app/models/user.py
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class UserRole(str, enum.Enum):
    """Application roles. Values are the persisted column values."""

    SELLER = "Vendedor"
    WAREHOUSE = "Bodega"
    PRODUCTION = "Producción"
    ADMIN = "Administrador"
    DELIVERY = "Repartidor"


MANAGEMENT_ROLES = frozenset({UserRole.WAREHOUSE, UserRole.PRODUCTION, UserRole.ADMIN})


class User(SQLModel, table=True):
    """
    Staff profile.

    Identity:
      - id: MUST match Supabase auth.users.id (UUID from JWT "sub")

    Scope:
      - assigned_cities: ids (as strings) of the cities this user works for
      - unavailable_dates: 'YYYY-MM-DD' days a delivery user cannot take orders

    JSON columns are replaced, never mutated in place, so SQLAlchemy
    notices the change.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email from Supabase auth.users",
    )

    name: str = Field(
        max_length=100,
        description="Display name used in logs and comments",
    )

    role: str = Field(
        default=UserRole.SELLER.value,
        index=True,
        description="Application role, see UserRole",
    )

    assigned_cities: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    unavailable_dates: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
