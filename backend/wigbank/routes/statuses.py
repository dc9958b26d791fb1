from fastapi import APIRouter, Depends

from ..auth import get_current_user
from .. import models, schemas, statuses

router = APIRouter(prefix="/api/statuses", tags=["statuses"])


@router.get("/", response_model=list[schemas.StatusOut])
async def list_statuses(user: models.User = Depends(get_current_user)):
    return statuses.all_statuses()
