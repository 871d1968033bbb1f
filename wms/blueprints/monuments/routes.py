"""
wms/blueprints/monuments/routes.py

Monument routes.

- Every logged-in user may read monuments (they are shown on project pages).
- Only admin / super admin create and edit.
- Edits are diffed and recorded in the monument's editHistory by the
  repository; the AuditLog additionally keeps before/after snapshots.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ... import repository
from ...audit import log_action
from ...extensions import db
from ...models import ADMIN_ROLES
from ...security import roles_required
from .. import json_payload

monuments_bp = Blueprint("monuments", __name__, url_prefix="/api/monuments")


@monuments_bp.route("", methods=["GET"])
@login_required
def list_monuments():
    return jsonify(repository.list_monuments())


@monuments_bp.route("/<monument_id>", methods=["GET"])
@login_required
def get_monument(monument_id: str):
    return jsonify(repository.get_monument(monument_id))


@monuments_bp.route("", methods=["POST"])
@login_required
@roles_required(*ADMIN_ROLES)
def create_monument():
    monument = repository.create_monument(json_payload(), current_user)

    log_action("monument", monument["id"], "CREATE", before=None, after=monument)
    db.session.commit()

    return jsonify({"message": "Monument created.", "monument": monument}), 201


@monuments_bp.route("/<monument_id>", methods=["PUT"])
@login_required
@roles_required(*ADMIN_ROLES)
def update_monument(monument_id: str):
    payload = json_payload()
    before = repository.get_monument(monument_id)
    monument = repository.update_monument(monument_id, payload, current_user)

    log_action("monument", monument_id, "UPDATE", before=before, after=monument)
    db.session.commit()

    return jsonify({"message": "Monument updated.", "monument": monument})
