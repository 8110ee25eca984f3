"""Per-user notification inbox."""
from flask import Blueprint, jsonify
from flask_login import current_user

from utils.decorators import auth_required
from utils.notifications import mark_as_read, notifications_for_user

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


@notifications_bp.route("", methods=["GET"])
@auth_required
def index():
    notifications = notifications_for_user(current_user)
    return jsonify(
        {
            "success": True,
            "notifications": [n.to_dict() for n in notifications],
            "unread": sum(1 for n in notifications if not n.is_read),
        }
    )


@notifications_bp.route("/<string:notification_id>/read", methods=["POST"])
@auth_required
def read(notification_id):
    notification = mark_as_read(notification_id, current_user)
    return jsonify({"success": True, "notification": notification.to_dict()})
