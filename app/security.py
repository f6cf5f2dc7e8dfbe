# app/security.py
"""Authentication dependencies: bearer API key -> principal, plus role gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Set

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.donor import DonorProfile
from app.models.user import User, UserRole
from app.utils.apikey import find_valid_key
from app.utils.errors import NotFoundError, error_response
from app.utils.time import utcnow


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as seen by the payment services."""

    id: int
    role: UserRole


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Read the key from ``Authorization: Bearer ...`` or ``X-API-Key``."""
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def require_principal(
    db: Session = Depends(get_db),
    token: str | None = Depends(_extract_key),
) -> Principal:
    """Validate the bearer key and return the principal it belongs to."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_API_KEY", "API key required."),
        )

    key = find_valid_key(db, token)
    user = db.get(User, key.user_id) if key is not None else None
    if key is None or user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Invalid or expired API key"),
        )

    key.last_used_at = utcnow()
    db.commit()
    return Principal(id=user.id, role=user.role)


def require_role(allowed: Set[UserRole]) -> Callable:
    """Only let principals with one of ``allowed`` roles through; admins always pass."""

    if not allowed:
        raise RuntimeError("require_role needs a non-empty set of UserRole")

    def _dep(principal: Principal = Depends(require_principal)) -> Principal:
        if principal.role == UserRole.admin or principal.role in allowed:
            return principal
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response(
                "INSUFFICIENT_ROLE",
                f"Requires one of: {sorted(role.value for role in allowed)}",
            ),
        )

    return _dep


def require_donor(
    principal: Principal = Depends(require_role({UserRole.donor})),
    db: Session = Depends(get_db),
) -> DonorProfile:
    """Resolve the calling donor's profile; the profile id is the ledger's donor id."""

    profile = db.scalars(select(DonorProfile).where(DonorProfile.user_id == principal.id)).first()
    if profile is None:
        raise NotFoundError("Donor profile not found", code="DONOR_NOT_FOUND")
    return profile


__all__ = ["Principal", "require_principal", "require_role", "require_donor"]
