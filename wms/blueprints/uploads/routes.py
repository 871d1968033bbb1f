"""
wms/blueprints/uploads/routes.py

File upload routes.

- POST /api/upload         multipart: file + category -> {"path", "name", "category"}
- POST /api/upload/delete  {"path"} -> removes a stored file
- GET  /uploads/<path>     serves stored files to logged-in users
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request, send_from_directory
from flask_login import current_user, login_required

from ... import uploads
from .. import json_payload

logger = logging.getLogger(__name__)

uploads_bp = Blueprint("uploads", __name__)


@uploads_bp.route("/api/upload", methods=["POST"])
@login_required
def upload_file():
    category = (request.form.get("category") or "documents").strip()
    stored = uploads.store_upload(request.files.get("file"), category)
    logger.info("Upload %s by user %s", stored["path"], current_user.id)
    return jsonify({"message": "File uploaded.", **stored}), 201


@uploads_bp.route("/api/upload/delete", methods=["POST"])
@login_required
def delete_file():
    path = str(json_payload().get("path") or "")
    uploads.delete_upload(path)
    return jsonify({"message": "File deleted."})


@uploads_bp.route("/uploads/<path:filename>")
@login_required
def serve_file(filename: str):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)
