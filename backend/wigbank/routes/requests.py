import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..notify import NotificationOutbox
from ..services import analyses as analysis_service
from ..services import requests as request_service
from .. import models, schemas

limiter = Limiter(key_func=get_remote_address)
testing = os.getenv("TESTING") == "1"


def rate_limit(limit: str):
    if testing:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)


router = APIRouter(prefix="/api/requests", tags=["requests"])


@router.post("/", response_model=schemas.WigRequestOut, status_code=201)
@rate_limit("10/minute")
async def submit_request(
    request: Request,
    evidence: UploadFile = File(...),
    note: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    data = await evidence.read()
    return request_service.submit(db, user, data, note, evidence.content_type)


@router.post("/base64", response_model=schemas.WigRequestOut, status_code=201)
@rate_limit("10/minute")
async def submit_request_base64(
    request: Request,
    payload: schemas.WigRequestBase64Create,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    data, content_type = request_service.decode_data_uri(payload.evidence)
    return request_service.submit(db, user, data, payload.note, content_type)


@router.get("/", response_model=schemas.Page[schemas.WigRequestOut])
async def list_requests(
    status: Optional[int] = Query(None, description="Filter by status id"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return request_service.list_requests(db, user, status=status, page=page, limit=limit)


@router.get("/user/{user_id}", response_model=schemas.Page[schemas.WigRequestOut])
async def list_user_requests(
    user_id: int,
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return request_service.list_requests_for_user(db, user, user_id, page=page, limit=limit)


@router.get("/{request_id}", response_model=schemas.WigRequestOut)
async def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return request_service.get_request(db, request_id, user)


@router.get("/{request_id}/evidence")
async def get_evidence(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    content, content_type = request_service.get_evidence(db, request_id, user)
    return Response(content=content, media_type=content_type)


@router.put("/{request_id}/note", response_model=schemas.WigRequestOut)
async def update_note(
    request_id: int,
    payload: schemas.NoteUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return request_service.update_note(db, request_id, user, payload.note)


@router.put("/{request_id}/status", response_model=schemas.WigRequestOut)
async def update_status(
    request_id: int,
    payload: schemas.RequestStatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    outbox = NotificationOutbox(db)
    updated = request_service.direct_status_update(
        db, request_id, user, payload.status, payload.note, sink=outbox
    )
    await outbox.flush()
    return updated


@router.post("/{request_id}/cancel", response_model=schemas.WigRequestOut)
async def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    outbox = NotificationOutbox(db)
    cancelled = request_service.cancel(db, request_id, user, sink=outbox)
    await outbox.flush()
    return cancelled


@router.delete("/{request_id}")
async def delete_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    request_service.delete(db, request_id, user)
    return {"message": "Request deleted"}


@router.get("/{request_id}/summary", response_model=schemas.RequestSummaryOut)
async def request_summary(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return analysis_service.summarize(db, request_id, user).as_dict()


@router.get("/{request_id}/analyses", response_model=list[schemas.AnalysisOut])
async def request_analyses(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return analysis_service.list_for_request(db, request_id, user)
