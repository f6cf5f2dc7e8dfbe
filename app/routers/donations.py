"""Donation history endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.donor import DonorProfile
from app.schemas.cause import CauseRead
from app.schemas.donation import DonationRead, PublicDonationRead
from app.security import Principal, require_donor, require_principal
from app.services import donations as donations_service

router = APIRouter(prefix="/donations", tags=["donations"])


@router.get("/mine", response_model=list[DonationRead])
def list_my_donations(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    donor: DonorProfile = Depends(require_donor),
) -> list[DonationRead]:
    """Donations of the calling donor in every state, newest first."""

    rows = donations_service.list_for_donor(db, donor, limit=limit, offset=offset)
    return [DonationRead.model_validate(row) for row in rows]


@router.get("/recommended", response_model=list[CauseRead])
def list_recommended_causes(
    db: Session = Depends(get_db),
    donor: DonorProfile = Depends(require_donor),
) -> list[CauseRead]:
    """Up to five approved causes similar to the ones the donor already supported."""

    causes = donations_service.list_recommended_causes(db, donor)
    return [CauseRead.model_validate(cause) for cause in causes]


@router.get("/by-cause/{cause_id}", response_model=list[PublicDonationRead])
def list_cause_donations(
    cause_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
) -> list[PublicDonationRead]:
    rows = donations_service.list_for_cause(db, cause_id, limit=limit, offset=offset)
    return [PublicDonationRead.from_donation(row) for row in rows]
