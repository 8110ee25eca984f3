"""Staleness checks and single-document upserts for cached analysis rows."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db


def parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def is_stale(last_updated: Optional[datetime], now: Optional[datetime] = None, max_age_hours: Optional[int] = None) -> bool:
    if last_updated is None:
        return True
    if max_age_hours is None:
        max_age_hours = int(current_app.config.get("ANALYSIS_STALE_HOURS", 24))
    now = now or datetime.utcnow()
    return now - last_updated > timedelta(hours=max_age_hours)


def upsert_document(model, key_field: str, key_value: str, values: Dict):
    """Write ``values`` onto the single row identified by ``key_field``, creating it if needed.

    The unique constraint on ``key_field`` decides races between concurrent generators: the loser
    reloads the winner's row and overwrites it, so the last writer wins.
    """

    def _apply():
        record = model.query.filter_by(**{key_field: key_value}).first()
        if record is None:
            record = model(**{key_field: key_value})
            db.session.add(record)
        for field, value in values.items():
            setattr(record, field, value)
        db.session.commit()
        return record

    try:
        return _apply()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(
            "Concurrent analysis insert detected; retrying as update",
            extra={"model": model.__tablename__, "key": key_value},
        )
        return _apply()
