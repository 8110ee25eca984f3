"""Per-project analysis: support, progress, financial, contractor, comment and report metrics."""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from flask import current_app

from extensions import db
from models import REPORT_STATUSES, Comment, CorruptionReport, Project, ProjectAnalysis
from utils.analysis_cache import is_stale, parse_timestamp, upsert_document
from utils.comment_insights import comment_tags, sentiment_counts, top_phrases
from utils.errors import ForbiddenError, NotFoundError
from utils.text_classifier import TextClassifier, get_text_classifier

SECONDS_PER_DAY = 86400


def _age_in_days(project: Project, now: datetime) -> float:
    if not project.created_at:
        return 0.0
    return max(0.0, (now - project.created_at).total_seconds() / SECONDS_PER_DAY)


def update_dates(project: Project) -> List[datetime]:
    dates = [parse_timestamp(entry.get("date")) for entry in project.updates or [] if isinstance(entry, dict)]
    return [value for value in dates if value is not None]


def support_metrics(project: Project, comment_sentiment: Dict[str, int]) -> Dict:
    like_count = len(project.likes or [])
    dislike_count = len(project.dislikes or [])
    votes = like_count + dislike_count
    return {
        "likeCount": like_count,
        "dislikeCount": dislike_count,
        "supportRatio": (like_count / votes * 100) if votes else 0,
        "commentSentiment": comment_sentiment,
    }


def progress_metrics(project: Project, now: datetime) -> Dict:
    dates = update_dates(project)
    total_updates = len(project.updates or [])
    last_update = max(dates) if dates else None
    days_since = math.floor((now - last_update).total_seconds() / SECONDS_PER_DAY) if last_update else 0
    age_in_weeks = _age_in_days(project, now) / 7
    frequency = total_updates / age_in_weeks if total_updates and age_in_weeks > 0 else 0
    return {
        "updateFrequency": frequency,
        "lastUpdateDate": last_update.isoformat() if last_update else None,
        "daysSinceLastUpdate": days_since,
        "totalUpdates": total_updates,
    }


def financial_metrics(project: Project, now: datetime) -> Dict:
    budget = float(project.budget or 0)
    expenditure = float(project.expenditure or 0)
    age_in_days = _age_in_days(project, now)
    burn_rate = expenditure / age_in_days if expenditure > 0 and age_in_days > 0 else 0
    projected = None
    if burn_rate > 0 and expenditure < budget:
        projected = (now + timedelta(days=(budget - expenditure) / burn_rate)).isoformat()
    return {
        "expenditureRatio": (expenditure / budget * 100) if budget > 0 else 0,
        "budgetTotal": budget,
        "expenditureTotal": expenditure,
        "projectedCompletion": projected,
        "burnRate": burn_rate,
    }


def average_severity(reports: Sequence[CorruptionReport]) -> float:
    severities = [report.severity for report in reports if report.severity > 0]
    return sum(severities) / len(severities) if severities else 0


def report_status_counts(reports: Sequence[CorruptionReport]) -> Dict[str, int]:
    counts = {status: 0 for status in REPORT_STATUSES}
    for report in reports:
        if report.status in counts:
            counts[report.status] += 1
    return counts


def corruption_metrics(reports: Sequence[CorruptionReport]) -> Dict:
    counts = report_status_counts(reports)
    return {
        "reportCount": len(reports),
        "pendingCount": counts["pending"],
        "investigatingCount": counts["investigating"],
        "resolvedCount": counts["resolved"],
        "rejectedCount": counts["rejected"],
        "averageSeverity": average_severity(reports),
    }


def average_response_time(comments: Sequence[Comment], contractor_id: str) -> float:
    """Mean hours between a comment and the contractor's reply to it."""
    by_id = {comment.id: comment for comment in comments}
    total_hours = 0.0
    answered = 0
    for reply in comments:
        if reply.user_id != contractor_id or not reply.parent_comment_id:
            continue
        parent = by_id.get(reply.parent_comment_id)
        if parent is None or not parent.created_at or not reply.created_at:
            continue
        total_hours += (reply.created_at - parent.created_at).total_seconds() / 3600
        answered += 1
    return total_hours / answered if answered else 0


def contractor_metrics(project: Project, comments: Sequence[Comment]) -> Dict:
    contractor_id = project.contractor_id
    replies = [c for c in comments if c.user_id == contractor_id and c.parent_comment_id]
    public_comments = [c for c in comments if c.user_id != contractor_id]
    return {
        "activityLevel": min(10, len(project.updates or [])),
        "responseRate": (len(replies) / len(public_comments) * 100) if public_comments else 0,
        "averageResponseTime": average_response_time(comments, contractor_id),
    }


def generate_project_analysis(
    project_id: str, classifier: Optional[TextClassifier] = None, now: Optional[datetime] = None
) -> ProjectAnalysis:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")

    classifier = classifier or get_text_classifier()
    batch_size = int(current_app.config.get("AI_BATCH_SIZE", 10))
    now = now or datetime.utcnow()

    comments = Comment.query.filter_by(project_id=project.id).order_by(Comment.created_at.asc()).all()
    reports = CorruptionReport.query.filter_by(project_id=project.id).all()
    texts = [comment.content for comment in comments]

    values = {
        "last_updated": now,
        "support_metrics": support_metrics(project, sentiment_counts(classifier, texts, batch_size)),
        "progress_metrics": progress_metrics(project, now),
        "financial_metrics": financial_metrics(project, now),
        "contractor_metrics": contractor_metrics(project, comments),
        "comment_analysis": {
            "tags": comment_tags(classifier, texts, batch_size),
            "topConcerns": top_phrases(classifier, texts, "concern", batch_size),
            "topPraises": top_phrases(classifier, texts, "praise", batch_size),
        },
        "corruption_report_metrics": corruption_metrics(reports),
    }
    analysis = upsert_document(ProjectAnalysis, "project_id", project.id, values)
    current_app.logger.info(
        "Project analysis generated",
        extra={"project_id": project.id, "comments": len(comments), "reports": len(reports)},
    )
    return analysis


def get_project_analysis(project_id: str, user, now: Optional[datetime] = None) -> ProjectAnalysis:
    """Serve the cached analysis, regenerating it first when absent or stale."""
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    if not project.is_stakeholder(user):
        raise ForbiddenError("Unauthorized access")

    analysis = ProjectAnalysis.query.filter_by(project_id=project.id).first()
    if analysis is None or is_stale(analysis.last_updated, now=now):
        analysis = generate_project_analysis(project.id, now=now)
    return analysis
