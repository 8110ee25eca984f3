"""Government-wide rollups across every owned project, plus the periodic refresh job."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import AggregateAnalysis, Comment, CorruptionReport, Project, ProjectAnalysis, User
from utils.analysis_cache import is_stale, upsert_document
from utils.comment_insights import (
    comment_tags,
    sentiment_counts,
    sentiment_distribution,
    top_phrases,
    top_tags_for,
)
from utils.errors import AppError, NotFoundError
from utils.project_analysis import average_severity, generate_project_analysis, report_status_counts, update_dates
from utils.text_classifier import TextClassifier, get_text_classifier

RANKING_SIZE = 5
RECENT_ACTIVITY_BONUS = 5


def _updated_since(project: Project, cutoff: datetime) -> bool:
    return any(date > cutoff for date in update_dates(project))


def project_counts(projects: Sequence[Project], cutoff: datetime) -> Dict[str, int]:
    active = sum(1 for project in projects if _updated_since(project, cutoff))
    return {
        "total": len(projects),
        "active": active,
        "completed": sum(1 for project in projects if project.completed_at is not None),
        "stalled": len(projects) - active,
    }


def financial_summary(projects: Sequence[Project]) -> Dict:
    total_budget = sum(float(project.budget or 0) for project in projects)
    total_expenditure = sum(float(project.expenditure or 0) for project in projects)
    return {
        "totalBudget": total_budget,
        "totalExpenditure": total_expenditure,
        "averageExpenditureRatio": (total_expenditure / total_budget * 100) if total_budget > 0 else 0,
        "projectsOverBudget": sum(1 for p in projects if float(p.expenditure or 0) > float(p.budget or 0)),
    }


def contractor_rankings(projects: Sequence[Project], cutoff: datetime) -> Dict[str, List[Dict]]:
    """Rank contractors by update volume plus a bonus per recently active project."""
    performance: Dict[str, Dict] = {}
    for project in projects:
        if not project.contractor_id:
            continue
        score = len(project.updates or [])
        if _updated_since(project, cutoff):
            score += RECENT_ACTIVITY_BONUS
        entry = performance.setdefault(
            project.contractor_id, {"contractor": project.contractor_id, "activityScore": 0, "projectCount": 0}
        )
        entry["activityScore"] += score
        entry["projectCount"] += 1

    ranked = sorted(performance.values(), key=lambda item: item["activityScore"], reverse=True)
    least_active = list(reversed(ranked[-RANKING_SIZE:])) if len(ranked) > RANKING_SIZE else []
    return {"mostActive": ranked[:RANKING_SIZE], "leastActive": least_active}


def report_rollup(reports: Sequence[CorruptionReport]) -> Dict:
    counts = report_status_counts(reports)
    per_project: Dict[str, int] = {}
    for report in reports:
        per_project[report.project_id] = per_project.get(report.project_id, 0) + 1
    most_reported = sorted(per_project.items(), key=lambda item: item[1], reverse=True)[:RANKING_SIZE]
    return {
        "totalReports": len(reports),
        "pendingReports": counts["pending"],
        "investigatingReports": counts["investigating"],
        "resolvedReports": counts["resolved"],
        "rejectedReports": counts["rejected"],
        "averageSeverity": average_severity(reports),
        "projectsWithMostReports": [{"project": pid, "reportCount": count} for pid, count in most_reported],
    }


def generate_aggregate_analysis(
    government_id: str, classifier: Optional[TextClassifier] = None, now: Optional[datetime] = None
) -> AggregateAnalysis:
    government = db.session.get(User, government_id)
    if not government or government.role != "GOVERNMENT":
        raise NotFoundError("Government user not found")

    projects = Project.query.filter_by(government_id=government.id).all()
    if not projects:
        raise NotFoundError("No projects found for this government")

    classifier = classifier or get_text_classifier()
    batch_size = int(current_app.config.get("AI_BATCH_SIZE", 10))
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=int(current_app.config.get("ACTIVITY_WINDOW_DAYS", 30)))

    project_ids = [project.id for project in projects]
    comments = Comment.query.filter(Comment.project_id.in_(project_ids)).order_by(Comment.created_at.asc()).all()
    reports = CorruptionReport.query.filter(CorruptionReport.project_id.in_(project_ids)).all()
    texts = [comment.content for comment in comments]

    likes_total = sum(len(project.likes or []) for project in projects)
    dislikes_total = sum(len(project.dislikes or []) for project in projects)
    votes = likes_total + dislikes_total
    tags = comment_tags(classifier, texts, batch_size)

    values = {
        "last_updated": now,
        "project_count": project_counts(projects, cutoff),
        "overall_satisfaction": {
            "likesTotal": likes_total,
            "dislikesTotal": dislikes_total,
            "supportRatio": (likes_total / votes * 100) if votes else 0,
            "commentSentimentDistribution": sentiment_distribution(sentiment_counts(classifier, texts, batch_size)),
        },
        "financial_summary": financial_summary(projects),
        "contractor_performance": contractor_rankings(projects, cutoff),
        "public_sentiment": {
            "topPositiveTags": top_tags_for(tags, "positive"),
            "topNegativeTags": top_tags_for(tags, "negative"),
            "topConcerns": top_phrases(classifier, texts, "concern", batch_size),
            "topPraises": top_phrases(classifier, texts, "praise", batch_size),
        },
        "corruption_reports": report_rollup(reports),
    }
    analysis = upsert_document(AggregateAnalysis, "government_id", government.id, values)
    current_app.logger.info(
        "Aggregate analysis generated",
        extra={"government_id": government.id, "projects": len(projects), "comments": len(comments)},
    )
    return analysis


def _populate_contractors(entries: Sequence[Dict], users: Dict[str, User]) -> List[Dict]:
    populated = []
    for entry in entries or []:
        user = users.get(entry.get("contractor"))
        populated.append({**entry, "contractor": user.public_payload() if user else {"id": entry.get("contractor")}})
    return populated


def serialize_aggregate(analysis: AggregateAnalysis) -> Dict:
    """Aggregate payload with contractor and project references resolved to names."""
    payload = analysis.to_dict()
    performance = payload.get("contractorPerformance") or {}
    contractor_ids = {
        entry.get("contractor")
        for key in ("mostActive", "leastActive")
        for entry in performance.get(key) or []
    }
    users = {user.id: user for user in User.query.filter(User.id.in_(contractor_ids)).all()} if contractor_ids else {}
    payload["contractorPerformance"] = {
        "mostActive": _populate_contractors(performance.get("mostActive"), users),
        "leastActive": _populate_contractors(performance.get("leastActive"), users),
    }

    reports = dict(payload.get("corruptionReports") or {})
    ranked = reports.get("projectsWithMostReports") or []
    project_ids = {entry.get("project") for entry in ranked}
    titles = (
        {p.id: p.title for p in Project.query.filter(Project.id.in_(project_ids)).all()} if project_ids else {}
    )
    reports["projectsWithMostReports"] = [
        {"project": {"id": entry.get("project"), "title": titles.get(entry.get("project"))}, "reportCount": entry.get("reportCount")}
        for entry in ranked
    ]
    payload["corruptionReports"] = reports
    return payload


def get_aggregate_analysis(government_id: str, now: Optional[datetime] = None) -> Dict:
    analysis = AggregateAnalysis.query.filter_by(government_id=government_id).first()
    if analysis is None or is_stale(analysis.last_updated, now=now):
        analysis = generate_aggregate_analysis(government_id, now=now)

    projects = (
        Project.query.filter_by(government_id=government_id).order_by(Project.created_at.desc()).all()
    )
    return {
        "aggregateAnalysis": serialize_aggregate(analysis),
        "projects": [project.summary_payload() for project in projects],
    }


def refresh_stale_analyses(now: Optional[datetime] = None) -> Dict[str, int]:
    """Regenerate every absent or stale analysis document. Intended for a cron-driven CLI run."""
    now = now or datetime.utcnow()
    refreshed = {"projects": 0, "governments": 0, "failed": 0}

    cached_projects = {row.project_id: row.last_updated for row in ProjectAnalysis.query.all()}
    for (project_id,) in db.session.query(Project.id).all():
        if not is_stale(cached_projects.get(project_id), now=now):
            continue
        try:
            generate_project_analysis(project_id, now=now)
            refreshed["projects"] += 1
        except (AppError, SQLAlchemyError):
            db.session.rollback()
            current_app.logger.exception("Project analysis refresh failed", extra={"project_id": project_id})
            refreshed["failed"] += 1

    cached_aggregates = {row.government_id: row.last_updated for row in AggregateAnalysis.query.all()}
    government_ids = [gid for (gid,) in db.session.query(Project.government_id).distinct().all()]
    for government_id in government_ids:
        if not is_stale(cached_aggregates.get(government_id), now=now):
            continue
        try:
            generate_aggregate_analysis(government_id, now=now)
            refreshed["governments"] += 1
        except (AppError, SQLAlchemyError):
            db.session.rollback()
            current_app.logger.exception("Aggregate analysis refresh failed", extra={"government_id": government_id})
            refreshed["failed"] += 1

    current_app.logger.info("Analysis refresh completed", extra=refreshed)
    return refreshed
