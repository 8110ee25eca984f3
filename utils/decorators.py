"""Authorization decorators for role-based access control."""
from functools import wraps

from flask import current_app, request
from flask_login import current_user

from extensions import db
from models import AuditLog
from utils.errors import AuthError, ForbiddenError


def auth_required(view_func):
    @wraps(view_func)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            raise AuthError("Authentication required")
        return view_func(*args, **kwargs)

    return wrapped


def roles_required(*roles):
    allowed = {r.upper() for r in roles}

    def decorator(view_func):
        @wraps(view_func)
        @auth_required
        def wrapped(*args, **kwargs):
            if current_user.role in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Unauthorized role access attempt",
                extra={"user_id": current_user.id, "role": current_user.role, "path": request.path},
            )
            audit = AuditLog(
                user_id=current_user.id,
                action_type="UNAUTHORIZED_ACCESS",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent", "unknown"),
            )
            db.session.add(audit)
            db.session.commit()
            raise ForbiddenError("You do not have permission to perform this action")

        return wrapped

    return decorator
