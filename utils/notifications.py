"""In-app notification delivery backed by the notifications table."""
from __future__ import annotations

from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import NOTIFICATION_TYPES, Notification
from utils.errors import NotFoundError


def send_notification(
    recipient_id: str,
    notification_type: str,
    message: str,
    *,
    sender_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    metadata: Optional[Dict] = None,
) -> Optional[Notification]:
    """Persist a notification without letting delivery problems reach the caller."""
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError("Invalid notification type")
    if not recipient_id or recipient_id == sender_id:
        return None

    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=notification_type,
        message=message[:500],
        entity_id=str(entity_id) if entity_id else None,
        entity_type=entity_type,
        extra_metadata=metadata,
    )
    try:
        db.session.add(notification)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Notification delivery failed", extra={"type": notification_type, "recipient": recipient_id}
        )
        return None
    current_app.logger.info("Notification sent", extra={"type": notification_type, "recipient": recipient_id})
    return notification


def notifications_for_user(user, limit: int = 50) -> List[Notification]:
    return (
        Notification.query.filter(Notification.recipient_id == user.id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )


def mark_as_read(notification_id: str, user) -> Notification:
    notification = Notification.query.filter_by(id=notification_id, recipient_id=user.id).first()
    if not notification:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.session.commit()
    return notification
