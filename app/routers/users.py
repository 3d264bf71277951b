# app/routers/users.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import require_admin, require_auth, require_management
from app.database import get_session
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import UnavailableDate, UserCreate, UserRead, UserUpdate
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])

repo = UserRepository()
service = UserService(repo)


# -------- Self profile --------


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(require_auth)):
    """
    Return the authenticated user's profile.
    """
    return service.get_me(current_user)


@router.post("/me/unavailable-dates", response_model=UserRead)
def add_unavailable_date(
    payload: UnavailableDate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Mark a day as unavailable (delivery staff only).
    """
    return service.add_unavailable_date(session, current_user, payload.day.isoformat())


@router.delete("/me/unavailable-dates/{day}", response_model=UserRead)
def remove_unavailable_date(
    day: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Clear an unavailable day (YYYY-MM-DD).
    """
    return service.remove_unavailable_date(session, current_user, day)


# -------- Management endpoints --------


@router.get(
    "/delivery",
    response_model=list[UserRead],
    dependencies=[Depends(require_management)],
)
def list_delivery_users(session: Session = Depends(get_session)):
    """
    Active delivery users, for the assignment picker.
    """
    return service.list_delivery_users(session)


@router.get(
    "",
    response_model=list[UserRead],
    dependencies=[Depends(require_admin)],
)
def list_users(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
):
    """
    List all users (admin only).
    """
    return service.list_users(session, skip, limit)


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_user(
    payload: UserCreate,
    session: Session = Depends(get_session),
):
    """
    Register a staff profile (admin only).
    """
    return service.create_user(session, payload)


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def get_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Get a specific user by id (admin only).
    """
    return service.get_user(session, user_id)


@router.patch(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def update_user(
    user_id: uuid.UUID,
    payload: UserUpdate,
    session: Session = Depends(get_session),
):
    """
    Update name, role, assigned cities or active flag (admin only).
    """
    return service.update_user(session, user_id, payload)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def deactivate_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Deactivate a user (admin only). Rows are kept for history.
    """
    service.deactivate_user(session, user_id)
