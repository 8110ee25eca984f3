"""Project creation and metadata maintenance by the owning government."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from extensions import db
from models import Project, User
from utils.errors import ConcurrentModification, ForbiddenError, NotFoundError, ValidationError


def _parse_amount(value, field: str) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(amount):
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} must be at least 0")
    return amount


def _parse_location(value) -> Dict:
    if value in (None, ""):
        return {}
    if not isinstance(value, dict):
        raise ValidationError("location must be an object with lat, lng and place")
    location: Dict = {}
    for key in ("lat", "lng"):
        if value.get(key) is not None:
            try:
                location[key] = float(value[key])
            except (TypeError, ValueError):
                raise ValidationError(f"location.{key} must be a number")
    if value.get("place"):
        location["place"] = str(value["place"]).strip()
    return location


def _contractor_or_400(contractor_id) -> User:
    contractor = db.session.get(User, contractor_id) if contractor_id else None
    if not contractor or contractor.role != "CONTRACTOR":
        raise ValidationError("contractor must reference an existing contractor")
    return contractor


def create_project(government, payload: Dict) -> Project:
    title = (payload.get("title") or "").strip()
    if not title:
        raise ValidationError("Project title is required")
    contractor = _contractor_or_400(payload.get("contractor"))

    project = Project(
        title=title,
        description=(payload.get("description") or "").strip() or None,
        banner_url=payload.get("bannerUrl") or "",
        pdf_url=payload.get("pdfUrl") or "",
        location=_parse_location(payload.get("location")),
        budget=_parse_amount(payload.get("budget", 0), "budget"),
        expenditure=0,
        contractor_id=contractor.id,
        government_id=government.id,
    )
    db.session.add(project)
    db.session.commit()
    current_app.logger.info("Project created", extra={"project_id": project.id, "government_id": government.id})
    return project


def get_project(project_id: str) -> Project:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    return project


def list_projects(government_id: Optional[str] = None, contractor_id: Optional[str] = None) -> List[Project]:
    query = Project.query
    if government_id:
        query = query.filter(Project.government_id == government_id)
    if contractor_id:
        query = query.filter(Project.contractor_id == contractor_id)
    return query.order_by(Project.created_at.desc()).all()


def update_project(project_id: str, user, payload: Dict) -> Project:
    project = get_project(project_id)
    if not (user.is_admin or user.id == project.government_id):
        raise ForbiddenError("Only the owning government can edit this project")

    if "title" in payload:
        title = (payload.get("title") or "").strip()
        if not title:
            raise ValidationError("Project title is required")
        project.title = title
    if "description" in payload:
        project.description = (payload.get("description") or "").strip() or None
    if "bannerUrl" in payload:
        project.banner_url = payload.get("bannerUrl") or ""
    if "pdfUrl" in payload:
        project.pdf_url = payload.get("pdfUrl") or ""
    if "location" in payload:
        project.location = _parse_location(payload.get("location"))
    if "budget" in payload:
        budget = _parse_amount(payload.get("budget"), "budget")
        if budget < float(project.expenditure or 0):
            raise ValidationError("budget cannot be lower than the current expenditure")
        project.budget = budget
    if "contractor" in payload:
        project.contractor_id = _contractor_or_400(payload.get("contractor")).id
    if "completed" in payload:
        completed = bool(payload.get("completed"))
        if completed and project.completed_at is None:
            project.completed_at = datetime.utcnow()
        elif not completed:
            project.completed_at = None

    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentModification("Project") from exc
    return project


def delete_project(project_id: str, user) -> None:
    project = get_project(project_id)
    if not user.is_admin:
        raise ForbiddenError("Only administrators can delete projects")
    db.session.delete(project)
    db.session.commit()
    current_app.logger.warning("Project deleted", extra={"project_id": project_id, "user_id": user.id})
