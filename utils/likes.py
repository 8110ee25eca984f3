"""Like/dislike voting; a user sits in at most one of the two sets per project."""
from __future__ import annotations

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from extensions import db
from models import Project
from utils.errors import ConcurrentModification, NotFoundError

VOTE_ACTIONS = ("like", "dislike", "unlike", "undislike")


def _without(values, user_id: str) -> list:
    return [value for value in values or [] if value != user_id]


def _with(values, user_id: str) -> list:
    values = list(values or [])
    if user_id not in values:
        values.append(user_id)
    return values


def apply_vote(project_id: str, user_id: str, action: str) -> Project:
    if action not in VOTE_ACTIONS:
        raise ValueError(f"Unsupported vote action: {action}")
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")

    if action == "like":
        project.dislikes = _without(project.dislikes, user_id)
        project.likes = _with(project.likes, user_id)
    elif action == "dislike":
        project.likes = _without(project.likes, user_id)
        project.dislikes = _with(project.dislikes, user_id)
    elif action == "unlike":
        project.likes = _without(project.likes, user_id)
    else:
        project.dislikes = _without(project.dislikes, user_id)

    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentModification("Project") from exc
    current_app.logger.info("Project vote recorded", extra={"project_id": project.id, "action": action})
    return project
