from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..notify import NotificationOutbox
from ..services import analyses as analysis_service
from .. import models, schemas

router = APIRouter(prefix="/api/analyses", tags=["analyses"])


@router.post("/claim/{request_id}", response_model=schemas.AnalysisOut, status_code=201)
async def claim_request(
    request_id: int,
    payload: Optional[schemas.AnalysisClaim] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    notes = payload.notes if payload else None
    return analysis_service.claim(db, request_id, user, notes)


@router.get("/", response_model=schemas.Page[schemas.AnalysisOut])
async def list_analyses(
    status: Optional[int] = Query(None, description="Filter by status id"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return analysis_service.list_for_institution(
        db, user, status=status, page=page, limit=limit
    )


@router.get("/{analysis_id}", response_model=schemas.AnalysisOut)
async def get_analysis(
    analysis_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return analysis_service.get_analysis(db, analysis_id, user)


@router.put("/{analysis_id}", response_model=schemas.AnalysisOut)
async def update_analysis(
    analysis_id: int,
    payload: schemas.AnalysisUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    outbox = NotificationOutbox(db)
    analysis = analysis_service.advance(
        db, analysis_id, user, payload.status, payload.notes, sink=outbox
    )
    await outbox.flush()
    return analysis


@router.delete("/{analysis_id}")
async def withdraw_analysis(
    analysis_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    analysis_service.withdraw(db, analysis_id, user)
    return {"message": "Analysis removed"}
