from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..services import wigs as wig_service
from .. import models, schemas

router = APIRouter(prefix="/api/wigs", tags=["wigs"])


@router.post("/", response_model=schemas.WigOut, status_code=201)
async def create_wig(
    payload: schemas.WigCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return wig_service.create_wig(
        db,
        user,
        payload.wig_type,
        payload.color,
        length_cm=payload.length_cm,
        size=payload.size,
    )


@router.get("/", response_model=schemas.Page[schemas.WigOut])
async def list_wigs(
    available: Optional[bool] = Query(None),
    size: Optional[str] = Query(None, description="P, M or G"),
    color: Optional[str] = Query(None),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return wig_service.list_wigs(
        db, user, available=available, size=size, color=color, page=page, limit=limit
    )


@router.get("/{wig_id}", response_model=schemas.WigOut)
async def get_wig(
    wig_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return wig_service.get_wig(db, wig_id, user)


@router.put("/{wig_id}", response_model=schemas.WigOut)
async def update_wig(
    wig_id: int,
    payload: schemas.WigUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return wig_service.update_wig(db, wig_id, user, payload.model_dump(exclude_unset=True))


@router.delete("/{wig_id}")
async def delete_wig(
    wig_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    wig_service.delete_wig(db, wig_id, user)
    return {"message": "Wig deleted"}
