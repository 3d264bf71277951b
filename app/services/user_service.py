# app/services/user_service.py
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.user import User, UserRole
from app.repositories.user_repo import UserRepository
from app.schemas.user import UserCreate, UserUpdate


class UserService:
    """
    Business logic for User.

    Responsibilities:
      - staff provisioning by admins (no self sign-up)
      - soft delete (is_active = False); users are referenced by orders
      - delivery availability calendar
      - map domain errors to HTTP errors
    """

    def __init__(self, repo: UserRepository):
        self.repo = repo

    # ----- Self profile -----

    def get_me(self, current_user: User) -> User:
        """Return the current authenticated user."""
        return current_user

    def add_unavailable_date(self, session: Session, current_user: User, day: str) -> User:
        """
        Mark a day as unavailable. Delivery staff only.

        Dates are kept sorted and unique.
        """
        self._ensure_delivery(current_user)
        dates = sorted(set(current_user.unavailable_dates or []) | {day})
        current_user.unavailable_dates = dates
        return self.repo.update(session, current_user)

    def remove_unavailable_date(self, session: Session, current_user: User, day: str) -> User:
        self._ensure_delivery(current_user)
        current_user.unavailable_dates = [
            d for d in (current_user.unavailable_dates or []) if d != day
        ]
        return self.repo.update(session, current_user)

    @staticmethod
    def _ensure_delivery(user: User) -> None:
        if user.role != UserRole.DELIVERY.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only delivery staff manage availability",
            )

    # ----- Management operations -----

    def list_users(self, session: Session, skip: int, limit: int) -> list[User]:
        """List users with pagination (admin only)."""
        return self.repo.list_all(session, skip=skip, limit=limit)

    def list_delivery_users(self, session: Session) -> list[User]:
        """Active drivers, for the assignment picker."""
        return self.repo.list_active_by_role(session, UserRole.DELIVERY)

    def get_user(self, session: Session, user_id: uuid.UUID) -> User:
        """
        Get a user by id (admin only).

        Raises:
            HTTPException(404): if not found.
        """
        user = self.repo.get_by_id(session, user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        return user

    def create_user(self, session: Session, payload: UserCreate) -> User:
        """
        Register a staff profile for an existing Supabase auth user.

        Raises:
            HTTPException(409): if the id or email is already taken.
        """
        if self.repo.get_by_id(session, payload.id) or self.repo.get_by_email(
            session, payload.email
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User already exists",
            )
        user = User(
            id=payload.id,
            email=payload.email,
            name=payload.name,
            role=payload.role.value,
            assigned_cities=[str(c) for c in payload.assigned_cities],
        )
        return self.repo.create(session, user)

    def update_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: UserUpdate,
    ) -> User:
        """Partial update of name, role, cities and active flag."""
        user = self.get_user(session, user_id)
        if payload.name is not None:
            user.name = payload.name
        if payload.role is not None:
            user.role = payload.role.value
        if payload.assigned_cities is not None:
            user.assigned_cities = [str(c) for c in payload.assigned_cities]
        if payload.is_active is not None:
            user.is_active = payload.is_active
        return self.repo.update(session, user)

    def deactivate_user(self, session: Session, user_id: uuid.UUID) -> None:
        """Soft delete: the row stays so logs and assignments still resolve."""
        user = self.get_user(session, user_id)
        user.is_active = False
        self.repo.update(session, user)
