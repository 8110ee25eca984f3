"""Projects, their update history, ledger view, and public voting."""
from flask import Blueprint, jsonify, request
from flask_login import current_user

from utils.blob_store import store_upload
from utils.decorators import auth_required, roles_required
from utils.errors import ValidationError
from utils.likes import apply_vote
from utils.projects import create_project, delete_project, get_project, list_projects, update_project
from utils.request_payload import request_payload
from utils.update_reconciliation import apply_project_update, delete_project_update, edit_project_update

projects_bp = Blueprint("projects", __name__, url_prefix="/projects")


def _stored_url(field: str, expected_kind: str) -> str | None:
    file = request.files.get(field)
    if not file or not file.filename:
        return None
    stored = store_upload(file)
    if stored["kind"] != expected_kind:
        raise ValidationError(f"Unsupported file type for {field}")
    return stored["url"]


@projects_bp.route("", methods=["POST"])
@roles_required("GOVERNMENT")
def create():
    payload = request_payload()
    banner_url = _stored_url("banner", "image")
    pdf_url = _stored_url("pdf", "pdf")
    if banner_url:
        payload["bannerUrl"] = banner_url
    if pdf_url:
        payload["pdfUrl"] = pdf_url
    project = create_project(current_user, payload)
    return jsonify({"success": True, "message": "Project created", "project": project.to_dict()}), 201


@projects_bp.route("", methods=["GET"])
def index():
    projects = list_projects(
        government_id=request.args.get("government") or None,
        contractor_id=request.args.get("contractor") or None,
    )
    return jsonify({"success": True, "projects": [project.summary_payload() for project in projects]})


@projects_bp.route("/<string:project_id>", methods=["GET"])
def detail(project_id):
    return jsonify({"success": True, "project": get_project(project_id).to_dict()})


@projects_bp.route("/<string:project_id>", methods=["PATCH"])
@roles_required("GOVERNMENT", "ADMIN")
def edit(project_id):
    payload = request_payload()
    banner_url = _stored_url("banner", "image")
    pdf_url = _stored_url("pdf", "pdf")
    if banner_url:
        payload["bannerUrl"] = banner_url
    if pdf_url:
        payload["pdfUrl"] = pdf_url
    project = update_project(project_id, current_user, payload)
    return jsonify({"success": True, "message": "Project updated", "project": project.to_dict()})


@projects_bp.route("/<string:project_id>", methods=["DELETE"])
@roles_required("ADMIN")
def remove(project_id):
    delete_project(project_id, current_user)
    return jsonify({"success": True, "message": "Project deleted"})


@projects_bp.route("/<string:project_id>/inventory", methods=["GET"])
def inventory(project_id):
    project = get_project(project_id)
    return jsonify(
        {
            "success": True,
            "inventory": list(project.inventory or []),
            "usedItems": list(project.used_items or []),
            "budget": project.budget,
            "expenditure": project.expenditure,
            "remainingBudget": project.remaining_budget,
        }
    )


@projects_bp.route("/<string:project_id>/updates", methods=["POST"])
@auth_required
def post_update(project_id):
    payload = request_payload()
    media = payload.get("media") or []
    if isinstance(media, str):
        media = [media]
    for file in request.files.getlist("mediaFiles"):
        if file and file.filename:
            media = list(media) + [store_upload(file)["url"]]

    record = apply_project_update(
        project_id,
        current_user,
        payload.get("content"),
        media=media,
        purchased_items=payload.get("purchasedItems"),
        utilised_items=payload.get("utilisedItems"),
    )
    project = get_project(project_id)
    return (
        jsonify({"success": True, "message": "Update added", "update": record, "project": project.to_dict()}),
        201,
    )


@projects_bp.route("/<string:project_id>/updates/<string:update_id>", methods=["PATCH"])
@auth_required
def patch_update(project_id, update_id):
    payload = request_payload()
    record = edit_project_update(
        project_id, update_id, current_user, content=payload.get("content"), media=payload.get("media")
    )
    return jsonify({"success": True, "message": "Update edited", "update": record})


@projects_bp.route("/<string:project_id>/updates/<string:update_id>", methods=["DELETE"])
@auth_required
def remove_update(project_id, update_id):
    delete_project_update(project_id, update_id, current_user)
    return jsonify({"success": True, "message": "Update deleted"})


@projects_bp.route("/<string:project_id>/<any(like, dislike, unlike, undislike):action>", methods=["POST"])
@auth_required
def vote(project_id, action):
    project = apply_vote(project_id, current_user.id, action)
    return jsonify(
        {
            "success": True,
            "likes": list(project.likes or []),
            "dislikes": list(project.dislikes or []),
        }
    )
