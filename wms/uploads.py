"""
File upload storage: "store a file, return a path".

Files land in UPLOAD_FOLDER/<category>/<unique prefix>_<secure name> and are
referenced from documents by their public path /uploads/<category>/<name>.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Dict

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_CATEGORIES = ("images", "documents", "bills", "inspections")
PUBLIC_PREFIX = "/uploads/"


def _upload_root() -> str:
    root = os.path.abspath(current_app.config["UPLOAD_FOLDER"])
    os.makedirs(root, exist_ok=True)
    return root


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def store_upload(file: FileStorage | None, category: str) -> Dict[str, str]:
    """Save an uploaded file and return {"path", "name", "category"}."""
    if file is None or not file.filename:
        raise ValidationError("No file uploaded.")
    if category not in UPLOAD_CATEGORIES:
        raise ValidationError("Unknown upload category.", details={"allowed": list(UPLOAD_CATEGORIES)})

    original_name = file.filename
    safe_name = secure_filename(original_name)
    allowed = current_app.config.get("ALLOWED_UPLOAD_EXTENSIONS", set())
    if not safe_name or _extension(safe_name) not in allowed:
        raise ValidationError("File type not allowed.", details={"allowed": sorted(allowed)})

    stored_name = f"{uuid.uuid4().hex[:12]}_{safe_name}"
    folder = os.path.join(_upload_root(), category)
    os.makedirs(folder, exist_ok=True)
    file.save(os.path.join(folder, stored_name))

    logger.info("Stored upload %s/%s", category, stored_name)
    return {
        "path": f"{PUBLIC_PREFIX}{category}/{stored_name}",
        "name": original_name,
        "category": category,
    }


def resolve_upload(path: str) -> str:
    """Map a public /uploads/... path to a file inside the upload folder."""
    if not path or not path.startswith(PUBLIC_PREFIX):
        raise ValidationError("Invalid upload path.")
    root = _upload_root()
    relative = path[len(PUBLIC_PREFIX):]
    full_path = os.path.abspath(os.path.join(root, relative))
    if os.path.commonpath([root, full_path]) != root or full_path == root:
        raise ValidationError("Invalid upload path.")
    return full_path


def delete_upload(path: str) -> None:
    full_path = resolve_upload(path)
    if not os.path.isfile(full_path):
        raise NotFoundError("File not found.", details={"path": path})
    os.remove(full_path)
    logger.info("Deleted upload %s", path)
