"""Local-disk blob storage for banners, PDFs, update media, and report attachments."""
import hashlib
import io
import os
import uuid
from typing import Dict, Tuple

from flask import current_app, url_for
from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from utils.errors import NotFoundError, ValidationError

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
ALLOWED_DOCUMENT_EXTENSIONS = {"pdf"}
ALLOWED_EXTENSIONS = ALLOWED_IMAGE_EXTENSIONS | ALLOWED_DOCUMENT_EXTENSIONS
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB

_PIL_FORMATS = {"JPEG": {"jpg", "jpeg"}, "PNG": {"png"}, "WEBP": {"webp"}}


class BlobStoreError(ValidationError):
    """Uploaded content was rejected."""


def _fail_if(condition: bool, message: str) -> None:
    if condition:
        raise BlobStoreError(message)


def mime_type_for(name: str) -> str:
    mapping = {
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "png": "image/png",
        "webp": "image/webp",
        "pdf": "application/pdf",
    }
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    return mapping.get(ext, "application/octet-stream")


def attachment_kind(extension: str) -> str:
    if extension in ALLOWED_IMAGE_EXTENSIONS:
        return "image"
    if extension in ALLOWED_DOCUMENT_EXTENSIONS:
        return "pdf"
    return "none"


def compute_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def _verify_image(content: bytes, extension: str) -> None:
    try:
        with Image.open(io.BytesIO(content)) as img:
            detected = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise BlobStoreError("Image validation failed") from exc
    _fail_if(extension not in _PIL_FORMATS.get(detected or "", set()), "Invalid image data")


def validate_upload(file: FileStorage, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> Tuple[bytes, str]:
    _fail_if(not file, "No file provided")
    filename = secure_filename(file.filename or "")
    _fail_if(not filename or "." not in filename, "Unsupported file name")
    ext = filename.rsplit(".", 1)[1].lower()
    _fail_if(ext not in ALLOWED_EXTENSIONS, "File type not allowed")

    content = file.read()
    _fail_if(len(content) == 0, "Empty file")
    _fail_if(len(content) > max_bytes, "File exceeds size limits")

    if ext in ALLOWED_IMAGE_EXTENSIONS:
        _verify_image(content, ext)
    else:
        _fail_if(not content.startswith(b"%PDF-"), "Invalid PDF data")

    file.stream.seek(0)
    return content, ext


def save_bytes(content: bytes, upload_dir: str, extension: str) -> str:
    os.makedirs(upload_dir, exist_ok=True)
    safe_name = secure_filename(f"{uuid.uuid4().hex}.{extension}")
    with open(os.path.join(upload_dir, safe_name), "wb") as f:
        f.write(content)
    return safe_name


def store_upload(file: FileStorage) -> Dict:
    """Validate and persist one upload, returning its retrieval URL and metadata."""
    max_bytes = int(current_app.config.get("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES))
    content, ext = validate_upload(file, max_bytes=max_bytes)
    stored_name = save_bytes(content, current_app.config["UPLOAD_FOLDER"], ext)
    current_app.logger.info("File stored", extra={"file_name": stored_name, "size": len(content)})
    return {
        "url": url_for("files.get_file", filename=stored_name),
        "file_name": stored_name,
        "extension": ext,
        "kind": attachment_kind(ext),
        "mime_type": mime_type_for(stored_name),
        "hash": compute_hash(content),
        "size": len(content),
    }


def resolve_path(filename: str) -> str:
    safe_name = secure_filename(filename or "")
    _fail_if(not safe_name or safe_name != filename, "Invalid file name")
    path = os.path.join(current_app.config["UPLOAD_FOLDER"], safe_name)
    if not os.path.isfile(path):
        raise NotFoundError("File not found")
    return path
