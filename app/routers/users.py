"""User endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.donor import DonorProfile
from app.models.user import User, UserRole
from app.schemas.user import UserCreate, UserRead
from app.security import Principal, require_role
from app.utils.audit import actor_from_principal, log_audit
from app.utils.errors import error_response

router = APIRouter(prefix="/users", tags=["users"])


def _to_read(user: User) -> UserRead:
    profile = user.donor_profile
    return UserRead(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        donor_profile_id=profile.id if profile is not None else None,
    )


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role({UserRole.admin})),
) -> UserRead:
    """Create a new user; donors get their donor profile in the same transaction."""

    user = User(
        username=payload.username,
        email=payload.email,
        role=payload.role,
        is_active=payload.is_active,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("USER_CREATE_FAILED", "Could not create user."),
        ) from exc

    if user.role == UserRole.donor:
        db.add(DonorProfile(user_id=user.id, mobile_number=payload.mobile_number))
        db.flush()

    log_audit(
        db,
        actor=actor_from_principal(principal),
        action="CREATE_USER",
        entity="User",
        entity_id=user.id,
        data={"username": user.username, "email": user.email, "role": user.role.value},
    )

    db.commit()
    db.refresh(user)
    return _to_read(user)


@router.get(
    "/{user_id}",
    response_model=UserRead,
)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role({UserRole.admin})),
) -> UserRead:
    """Retrieve a user by identifier."""

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_response("USER_NOT_FOUND", "User not found."))

    return _to_read(user)
