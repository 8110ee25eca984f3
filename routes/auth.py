"""Registration, bearer-token login, and identity lookup."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token
from flask_login import current_user
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import AuditLog, User
from utils.decorators import auth_required
from utils.errors import AuthError, BusinessRuleViolation, ValidationError
from utils.request_payload import request_payload
from utils.security import password_meets_policy, track_attempt

auth_bp = Blueprint("auth", __name__)

SELF_ASSIGNABLE_ROLES = ("PUBLIC", "CONTRACTOR", "GOVERNMENT")


def log_action(action: str, user: User | None) -> None:
    entry = AuditLog(
        user_id=user.id if user else None,
        action_type=action,
        entity_id=user.id if user else None,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", "unknown"),
    )
    db.session.add(entry)


def issue_token(user: User) -> str:
    return create_access_token(identity=user.id, additional_claims={"role": user.role})


@auth_bp.route("/register", methods=["POST"])
def register():
    payload = request_payload()
    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    role = (payload.get("role") or "PUBLIC").strip().upper()

    if not name or not email or not password:
        raise ValidationError("name, email and password are required")
    if "@" not in email or len(email) > 255:
        raise ValidationError("A valid email address is required")
    if role not in SELF_ASSIGNABLE_ROLES:
        raise ValidationError("Invalid role selected")
    password_ok, reason = password_meets_policy(password)
    if not password_ok:
        raise ValidationError(reason)
    if User.query.filter_by(email=email).first():
        raise BusinessRuleViolation("An account with this email already exists")

    user = User(name=name[:150], email=email, phone=(payload.get("phone") or "").strip() or None, role=role)
    user.set_password(password)
    try:
        db.session.add(user)
        db.session.flush()
        log_action("REGISTER", user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise BusinessRuleViolation("An account with this email already exists")

    current_app.logger.info("User registered", extra={"user_id": user.id, "role": role})
    return jsonify({"success": True, "user": user.to_dict(), "token": issue_token(user)}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request_payload()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        raise ValidationError("email and password are required")
    if not track_attempt(f"login:{request.remote_addr}:{email}", limit=20):
        return jsonify({"success": False, "message": "Too many login attempts. Try again later."}), 429

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        log_action("LOGIN_FAILED", user)
        db.session.commit()
        raise AuthError("Invalid credentials provided")
    if not user.is_active:
        raise AuthError("Your account is inactive. Please contact support.")

    user.last_login_at = datetime.utcnow()
    log_action("LOGIN", user)
    db.session.commit()
    return jsonify({"success": True, "user": user.to_dict(), "token": issue_token(user)})


@auth_bp.route("/me", methods=["GET"])
@auth_required
def me():
    return jsonify({"success": True, "user": current_user.to_dict()})
