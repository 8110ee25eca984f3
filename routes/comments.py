"""Project discussion threads."""
from flask import Blueprint, jsonify
from flask_login import current_user

from utils.comments import comments_for_project, create_comment, delete_comment, update_comment
from utils.decorators import auth_required, roles_required
from utils.request_payload import request_payload

comments_bp = Blueprint("comments", __name__, url_prefix="/comments")


@comments_bp.route("", methods=["POST"])
@roles_required("PUBLIC", "CONTRACTOR")
def create():
    payload = request_payload()
    comment = create_comment(
        payload.get("project"),
        current_user,
        payload.get("content"),
        parent_comment_id=payload.get("parentComment"),
    )
    return jsonify({"success": True, "message": "Comment added", "comment": comment.to_dict()}), 201


@comments_bp.route("/project/<string:project_id>", methods=["GET"])
def by_project(project_id):
    comments = comments_for_project(project_id)
    return jsonify({"success": True, "comments": [comment.to_dict() for comment in comments]})


@comments_bp.route("/<string:comment_id>", methods=["PUT", "PATCH"])
@auth_required
def edit(comment_id):
    payload = request_payload()
    comment = update_comment(comment_id, current_user, payload.get("content"))
    return jsonify({"success": True, "message": "Comment updated", "comment": comment.to_dict()})


@comments_bp.route("/<string:comment_id>", methods=["DELETE"])
@auth_required
def remove(comment_id):
    delete_comment(comment_id, current_user)
    return jsonify({"success": True, "message": "Comment deleted"})
