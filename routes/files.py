"""Blob upload and retrieval."""
from flask import Blueprint, jsonify, request, send_file

from utils.blob_store import mime_type_for, resolve_path, store_upload
from utils.decorators import auth_required
from utils.errors import ValidationError

files_bp = Blueprint("files", __name__, url_prefix="/files")


@files_bp.route("/upload", methods=["POST"])
@auth_required
def upload():
    file = request.files.get("file")
    if not file or not file.filename:
        raise ValidationError("No file uploaded")
    stored = store_upload(file)
    return jsonify({"success": True, "url": stored["url"], "fileType": stored["kind"]}), 201


@files_bp.route("/<string:filename>", methods=["GET"])
def get_file(filename):
    path = resolve_path(filename)
    return send_file(path, mimetype=mime_type_for(filename), as_attachment=False, download_name=filename)
