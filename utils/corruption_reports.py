"""Corruption report intake with AI triage and stakeholder-side status handling."""
from __future__ import annotations

from typing import List, Optional

from flask import current_app
from sqlalchemy import or_

from extensions import db
from models import REPORT_ATTACHMENT_TYPES, REPORT_STATUSES, CorruptionReport, Project
from utils.errors import ForbiddenError, NotFoundError, ValidationError
from utils.notifications import send_notification
from utils.text_classifier import TextClassifier, get_text_classifier

INVALID_REPORT_REASON = "AI detected this report as potentially invalid or irrelevant"


def create_report(
    project_id: str,
    description: str,
    *,
    reporter=None,
    file_url: str = "",
    file_type: str = "none",
    classifier: Optional[TextClassifier] = None,
) -> CorruptionReport:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    description = (description or "").strip() if isinstance(description, str) else ""
    if not description:
        raise ValidationError("Report description is required")
    if file_type not in REPORT_ATTACHMENT_TYPES:
        raise ValidationError("Unsupported attachment type")

    analysis = (classifier or get_text_classifier()).analyze_corruption_report(description, file_type != "none")
    is_valid = analysis.get("isValidReport", True) is not False
    reporter_id = getattr(reporter, "id", None) if getattr(reporter, "is_authenticated", False) else None

    report = CorruptionReport(
        project_id=project.id,
        description=description,
        file_url=file_url or "",
        file_type=file_type,
        reporter_id=reporter_id,
        is_anonymous=reporter_id is None,
        ai_analysis=analysis,
        status="pending" if is_valid else "rejected",
        rejection_reason=None if is_valid else INVALID_REPORT_REASON,
    )
    db.session.add(report)
    db.session.commit()
    current_app.logger.info(
        "Corruption report filed",
        extra={"project_id": project.id, "report_id": report.id, "severity": analysis.get("severity")},
    )

    send_notification(
        project.government_id,
        "CORRUPTION_REPORT",
        f"A corruption report was filed on project '{project.title}'",
        sender_id=reporter_id,
        entity_id=report.id,
        entity_type="CorruptionReport",
        metadata={"projectId": project.id, "severity": analysis.get("severity")},
    )
    return report


def reports_for_project(project_id: str, user) -> List[CorruptionReport]:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    if not project.is_stakeholder(user):
        raise ForbiddenError("Unauthorized to view these reports")
    return (
        CorruptionReport.query.filter_by(project_id=project.id)
        .order_by(CorruptionReport.created_at.desc())
        .all()
    )


def reports_for_user_projects(user) -> List[CorruptionReport]:
    project_ids = [
        pid
        for (pid,) in db.session.query(Project.id)
        .filter(or_(Project.contractor_id == user.id, Project.government_id == user.id))
        .all()
    ]
    if not project_ids:
        return []
    return (
        CorruptionReport.query.filter(CorruptionReport.project_id.in_(project_ids))
        .order_by(CorruptionReport.created_at.desc())
        .all()
    )


def update_report_status(report_id: str, user, status: str, rejection_reason: Optional[str] = None) -> CorruptionReport:
    if status not in REPORT_STATUSES:
        raise ValidationError("Invalid report status")
    report = db.session.get(CorruptionReport, report_id)
    if not report:
        raise NotFoundError("Report not found")
    if not report.project.is_stakeholder(user):
        raise ForbiddenError("Unauthorized to update this report")

    previous = report.status
    report.status = status
    if status == "rejected":
        report.rejection_reason = (rejection_reason or "").strip()[:500] or report.rejection_reason
    else:
        report.rejection_reason = None
    db.session.commit()
    current_app.logger.info(
        "Report status changed", extra={"report_id": report.id, "from": previous, "to": status, "user_id": user.id}
    )

    if report.reporter_id:
        send_notification(
            report.reporter_id,
            "REPORT_STATUS",
            f"Your report on '{report.project.title}' is now {status}",
            sender_id=user.id,
            entity_id=report.id,
            entity_type="CorruptionReport",
            metadata={"status": status},
        )
    return report
