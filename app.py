"""Flask application factory for the civic project accountability API."""
import os
from typing import Optional

import click
from flask import Flask, jsonify, request
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv
from utils.errors import AppError
from utils.logger import init_logging
from utils.security import apply_security_headers
from utils.text_classifier import build_text_classifier
from extensions import db, jwt, migrate, login_manager


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def app_error(error: AppError):
        db.session.rollback()
        log = app.logger.warning if error.status_code < 500 else app.logger.error
        log(
            error.message,
            extra={"path": request.path, "method": request.method, "status": error.status_code},
        )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        app.logger.warning(
            f"{error.code} {error.name}", extra={"path": request.path, "method": request.method}
        )
        return jsonify({"success": False, "message": error.description}), error.code

    @app.errorhandler(SQLAlchemyError)
    def database_error(error):
        db.session.rollback()
        app.logger.exception("Database error", extra={"path": request.path, "method": request.method})
        return jsonify({"success": False, "message": "Internal server error"}), 500

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error", extra={"path": request.path, "method": request.method})
        return jsonify({"success": False, "message": "Internal server error"}), 500


def ensure_default_admin(app: Flask) -> None:
    """Ensure a default admin can log in without registering."""
    from models import User  # Local import to avoid circular dependency

    admin_email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    admin_password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        return

    admin_user = User.query.filter_by(email=admin_email).first()
    if admin_user:
        if admin_user.role != "ADMIN" or not admin_user.is_active:
            admin_user.role = "ADMIN"
            admin_user.is_active = True
            db.session.commit()
        return

    admin_user = User(name="System Administrator", email=admin_email, role="ADMIN", is_active=True)
    admin_user.set_password(admin_password)
    db.session.add(admin_user)
    db.session.commit()


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Resolve configuration
    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    # Optional instance-specific overrides
    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)
    os.makedirs(app.instance_path, exist_ok=True)
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    login_manager.init_app(app)
    login_manager.session_protection = None

    @login_manager.request_loader
    def load_user_from_request(req):
        from models import User  # Local import to avoid circular dependency

        header = req.headers.get("Authorization", "")
        if not header.lower().startswith("bearer "):
            return None
        token = header.split(" ", 1)[1].strip()
        try:
            claims = decode_token(token)
        except (JWTExtendedException, PyJWTError):
            app.logger.info("Rejected bearer token", extra={"path": req.path})
            return None
        user = db.session.get(User, str(claims.get("sub")))
        if not user or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "message": "Authentication required"}), 401

    # AI adapter is chosen once from configuration presence.
    app.extensions["text_classifier"] = build_text_classifier(app.config, app.logger)

    # Blueprints
    from routes import (
        analysis_bp,
        auth_bp,
        comments_bp,
        files_bp,
        main_bp,
        notifications_bp,
        projects_bp,
        reports_bp,
    )
    from utils.aggregate_analysis import refresh_stale_analyses

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(projects_bp)
    app.register_blueprint(comments_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(analysis_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(notifications_bp)

    @app.cli.command("analysis-refresh")
    def analysis_refresh():
        """Regenerate stale project and government analyses (schedule this via cron)."""
        result = refresh_stale_analyses()
        click.echo(
            f"Refreshed {result['projects']} project and {result['governments']} government analyses "
            f"({result['failed']} failed)."
        )

    # Error handlers
    register_error_handlers(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        ensure_default_admin(app)

    return app


# Expose the Flask application for WSGI servers (e.g., gunicorn app:app).
app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    app.run(host="0.0.0.0", port=port, use_reloader=False)
