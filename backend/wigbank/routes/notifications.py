import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import NotFound
from .. import models, schemas, pubsub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/", response_model=list[schemas.NotificationOut])
async def list_notifications(
    is_read: Optional[bool] = Query(None, description="Filter by read status"),
    category: Optional[str] = Query(None, description="Filter by category"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = db.query(models.Notification).filter(models.Notification.user_id == user.id)
    if is_read is not None:
        query = query.filter(models.Notification.is_read == is_read)
    if category:
        query = query.filter(models.Notification.category == category)
    return query.order_by(
        models.Notification.created_at.desc(), models.Notification.id.desc()
    ).all()


@router.post("/{notification_id}/read", response_model=schemas.NotificationOut)
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    notif = (
        db.query(models.Notification)
        .filter_by(id=notification_id, user_id=user.id)
        .first()
    )
    if not notif:
        raise NotFound("Notification not found")
    notif.is_read = True
    db.commit()
    db.refresh(notif)
    payload = jsonable_encoder(schemas.NotificationOut.model_validate(notif))
    try:
        await pubsub.publish_user_event(
            user.id,
            {
                "type": "notification_read",
                "data": payload,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
    except (RedisError, OSError) as exc:
        logger.warning("Could not publish read receipt for notification %s: %s", notif.id, exc)
    return notif
