"""Cached analytics for governments and project stakeholders."""
from flask import Blueprint, jsonify
from flask_login import current_user

from utils.aggregate_analysis import generate_aggregate_analysis, get_aggregate_analysis, serialize_aggregate
from utils.decorators import auth_required, roles_required
from utils.errors import ForbiddenError
from utils.project_analysis import generate_project_analysis, get_project_analysis
from utils.projects import get_project

analysis_bp = Blueprint("analysis", __name__, url_prefix="/analysis")


@analysis_bp.route("/dashboard", methods=["GET"])
@roles_required("GOVERNMENT")
def dashboard():
    result = get_aggregate_analysis(current_user.id)
    return jsonify({"success": True, **result})


@analysis_bp.route("/dashboard/regenerate", methods=["POST"])
@roles_required("GOVERNMENT")
def regenerate_dashboard():
    analysis = generate_aggregate_analysis(current_user.id)
    return jsonify({"success": True, "message": "Analysis regenerated", "aggregateAnalysis": serialize_aggregate(analysis)})


@analysis_bp.route("/project/<string:project_id>", methods=["GET"])
@auth_required
def project_analysis(project_id):
    analysis = get_project_analysis(project_id, current_user)
    return jsonify({"success": True, "analysis": analysis.to_dict()})


@analysis_bp.route("/project/<string:project_id>/regenerate", methods=["POST"])
@auth_required
def regenerate_project_analysis(project_id):
    if not get_project(project_id).is_stakeholder(current_user):
        raise ForbiddenError("Unauthorized access")
    analysis = generate_project_analysis(project_id)
    return jsonify({"success": True, "message": "Analysis regenerated", "analysis": analysis.to_dict()})
