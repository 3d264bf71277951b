# app/schemas/user.py
import uuid
from datetime import date, datetime

from pydantic import EmailStr, ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from app.models.user import UserRole


class UserBase(SQLModel):
    """
    Shared fields for read models.

    Validation rules:
      - email must be a valid EmailStr
      - name cannot be empty or whitespace
    """

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    name: str = Field(max_length=100)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class UserCreate(UserBase):
    """
    Admin payload to register a staff member.

    id must be the Supabase auth user id so the JWT `sub` resolves to
    this profile.
    """

    id: uuid.UUID
    role: UserRole
    assigned_cities: list[uuid.UUID] = Field(default_factory=list)


class UserRead(UserBase):
    """Response schema returned to clients."""

    model_config = ConfigDict(extra="ignore")

    id: uuid.UUID
    role: UserRole
    assigned_cities: list[str]
    unavailable_dates: list[str]
    is_active: bool
    created_at: datetime


class UserUpdate(SQLModel):
    """
    Admin partial update. Fields left as None are not changed.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=100)
    role: UserRole | None = None
    assigned_cities: list[uuid.UUID] | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class UnavailableDate(SQLModel):
    """A day (YYYY-MM-DD) a delivery user cannot take orders."""

    model_config = ConfigDict(extra="forbid")

    day: date
