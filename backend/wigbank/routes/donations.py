from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..notify import NotificationOutbox
from ..services import donations as donation_service
from .. import models, schemas

router = APIRouter(prefix="/api/donations", tags=["donations"])


@router.post("/", response_model=schemas.DonationOut, status_code=201)
async def create_donation(
    payload: schemas.DonationCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    outbox = NotificationOutbox(db)
    donation = donation_service.donate(
        db, payload.wig_id, payload.request_id, user, payload.note, sink=outbox
    )
    await outbox.flush()
    return donation


@router.get("/", response_model=schemas.Page[schemas.DonationOut])
async def list_donations(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return donation_service.list_donations(db, user, page=page, limit=limit)


@router.get("/request/{request_id}", response_model=list[schemas.DonationOut])
async def request_donations(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return donation_service.list_for_request(db, request_id, user)


@router.get("/institution/{institution_id}", response_model=schemas.Page[schemas.DonationOut])
async def institution_donations(
    institution_id: int,
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return donation_service.list_for_institution(
        db, institution_id, user, page=page, limit=limit
    )


@router.get("/{donation_id}", response_model=schemas.DonationOut)
async def get_donation(
    donation_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return donation_service.get_donation(db, donation_id, user)


@router.put("/{donation_id}", response_model=schemas.DonationOut)
async def update_donation(
    donation_id: int,
    payload: schemas.DonationUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return donation_service.update_note(db, donation_id, user, payload.note)


@router.delete("/{donation_id}")
async def revert_donation(
    donation_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    donation_service.revert(db, donation_id, user)
    return {"message": "Donation reverted"}
