"""Blueprint registration and service health endpoints."""
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from .analysis import analysis_bp
from .auth import auth_bp
from .comments import comments_bp
from .files import files_bp
from .notifications import notifications_bp
from .projects import projects_bp
from .reports import reports_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Health check database probe failed")
        database = "unavailable"
    ai = "live" if current_app.extensions["text_classifier"].is_live else "fallback"
    status = 200 if database == "ok" else 503
    return jsonify({"success": database == "ok", "database": database, "textClassifier": ai}), status


__all__ = [
    "main_bp",
    "analysis_bp",
    "auth_bp",
    "comments_bp",
    "files_bp",
    "notifications_bp",
    "projects_bp",
    "reports_bp",
]
