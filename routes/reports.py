"""Corruption report intake and triage."""
from flask import Blueprint, jsonify, request
from flask_login import current_user

from utils.blob_store import store_upload
from utils.corruption_reports import create_report, reports_for_project, reports_for_user_projects, update_report_status
from utils.decorators import auth_required
from utils.request_payload import request_payload

reports_bp = Blueprint("reports", __name__, url_prefix="/reports")


@reports_bp.route("", methods=["POST"])
def create():
    """Anyone may report; the reporter stays anonymous unless a valid token is sent."""
    payload = request_payload()
    file_url = ""
    file_type = "none"
    file = request.files.get("file")
    if file and file.filename:
        stored = store_upload(file)
        file_url, file_type = stored["url"], stored["kind"]

    report = create_report(
        payload.get("project"),
        payload.get("description"),
        reporter=current_user,
        file_url=file_url,
        file_type=file_type,
    )
    return jsonify({"success": True, "message": "Report submitted", "report": report.to_dict()}), 201


@reports_bp.route("/project/<string:project_id>", methods=["GET"])
@auth_required
def by_project(project_id):
    reports = reports_for_project(project_id, current_user)
    return jsonify({"success": True, "reports": [report.to_dict() for report in reports]})


@reports_bp.route("/mine", methods=["GET"])
@auth_required
def mine():
    reports = reports_for_user_projects(current_user)
    return jsonify({"success": True, "reports": [report.to_dict() for report in reports]})


@reports_bp.route("/<string:report_id>/status", methods=["PATCH"])
@auth_required
def change_status(report_id):
    payload = request_payload()
    report = update_report_status(
        report_id,
        current_user,
        (payload.get("status") or "").strip().lower(),
        rejection_reason=payload.get("rejectionReason"),
    )
    return jsonify({"success": True, "message": "Report status updated", "report": report.to_dict()})
