"""
wms/blueprints/projects/routes.py

Project and milestone routes.

Includes:
- Project list (filtered by visibility), detail, create, edit
- Milestone editor save (replace the whole milestone set)
- Milestone lifecycle actions: start, submit for inspection, record
  inspection, forward to admin, approve, record bill, add proof of work

IMPORTANT:
- Visibility is checked here (project_access_required).
- Lifecycle role gates and preconditions are enforced by wms.milestones;
  routes only translate HTTP to engine calls.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import milestones, repository
from ...audit import log_action
from ...extensions import db
from ...models import ADMIN_ROLES
from ...security import can_view_project, project_access_required, roles_required
from .. import json_payload

projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


def _load_project(project_id: str, **_: object) -> dict:
    """Loader for decorator factories."""
    return repository.get_project(project_id)


def _milestone_response(message: str, milestone: dict):
    return jsonify({"message": message, "milestone": milestone})


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------

@projects_bp.route("", methods=["GET"])
@login_required
def list_projects():
    """Projects visible to the current user."""
    projects = [p for p in repository.list_projects() if can_view_project(p)]
    monument_id = (request.args.get("monumentId") or "").strip()
    if monument_id:
        projects = [p for p in projects if p.get("monumentId") == monument_id]
    return jsonify(projects)


@projects_bp.route("/<project_id>", methods=["GET"])
@login_required
@project_access_required(_load_project)
def get_project(project_id: str):
    return jsonify(repository.get_project(project_id))


@projects_bp.route("", methods=["POST"])
@login_required
@roles_required(*ADMIN_ROLES)
def create_project():
    project = repository.create_project(json_payload(), current_user)

    log_action("project", project["id"], "CREATE", before=None, after=project)
    db.session.commit()

    return jsonify({"message": "Project created.", "project": project}), 201


@projects_bp.route("/<project_id>", methods=["PUT"])
@login_required
@roles_required(*ADMIN_ROLES)
def update_project(project_id: str):
    payload = json_payload()
    before = repository.get_project(project_id)
    project = repository.update_project(project_id, payload, current_user)

    log_action("project", project_id, "UPDATE", before=before, after=project)
    db.session.commit()

    return jsonify({"message": "Project updated.", "project": project})


# ---------------------------------------------------------------------
# Milestone editor
# ---------------------------------------------------------------------

@projects_bp.route("/<project_id>/milestones", methods=["POST"])
@login_required
@project_access_required(_load_project)
def replace_milestones(project_id: str):
    """Body: {"milestones": [...]} or the bare list."""
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        payload = payload.get("milestones")
    project = milestones.replace_milestone_set(project_id, payload, current_user)
    return jsonify({"message": "Milestones saved.", "project": project})


@projects_bp.route("/<project_id>/milestones/<milestone_id>", methods=["GET"])
@login_required
@project_access_required(_load_project)
def get_milestone(project_id: str, milestone_id: str):
    return jsonify(milestones.get_milestone(project_id, milestone_id))


# ---------------------------------------------------------------------
# Milestone lifecycle
# ---------------------------------------------------------------------

@projects_bp.route("/<project_id>/milestones/<milestone_id>/start", methods=["POST"])
@login_required
@project_access_required(_load_project)
def start_milestone(project_id: str, milestone_id: str):
    milestone = milestones.start_milestone(project_id, milestone_id, current_user)
    return _milestone_response("Milestone started.", milestone)


@projects_bp.route("/<project_id>/milestones/<milestone_id>/submit-inspection", methods=["POST"])
@login_required
@project_access_required(_load_project)
def submit_inspection(project_id: str, milestone_id: str):
    milestone = milestones.submit_for_inspection(project_id, milestone_id, current_user)
    return _milestone_response("Milestone submitted for inspection.", milestone)


@projects_bp.route("/<project_id>/milestones/<milestone_id>/add-inspection", methods=["POST"])
@login_required
@project_access_required(_load_project)
def add_inspection(project_id: str, milestone_id: str):
    milestone = milestones.record_inspection(project_id, milestone_id, json_payload(), current_user)
    return _milestone_response("Inspection recorded.", milestone)


@projects_bp.route("/<project_id>/milestones/<milestone_id>/forward-inspection", methods=["POST"])
@login_required
@project_access_required(_load_project)
def forward_inspection(project_id: str, milestone_id: str):
    milestone = milestones.forward_to_admin(project_id, milestone_id, current_user)
    return _milestone_response("Inspection forwarded to admin.", milestone)


@projects_bp.route("/<project_id>/milestones/<milestone_id>/approve-inspection", methods=["POST"])
@login_required
@project_access_required(_load_project)
def approve_inspection(project_id: str, milestone_id: str):
    milestone = milestones.approve_milestone(project_id, milestone_id, current_user)
    return _milestone_response("Milestone approved and completed.", milestone)


@projects_bp.route("/<project_id>/milestones/<milestone_id>/add-bill", methods=["POST"])
@login_required
@project_access_required(_load_project)
def add_bill(project_id: str, milestone_id: str):
    milestone = milestones.record_bill(project_id, milestone_id, json_payload(), current_user)
    return _milestone_response("Bill recorded.", milestone)


@projects_bp.route("/<project_id>/milestones/<milestone_id>/proof", methods=["POST"])
@login_required
@project_access_required(_load_project)
def add_proof(project_id: str, milestone_id: str):
    """Body: {"proofOfWork": {...}} or the proof object itself."""
    payload = json_payload()
    proof = payload.get("proofOfWork", payload)
    milestone = milestones.append_proof_of_work(project_id, milestone_id, proof, current_user)
    return _milestone_response("Proof of work added.", milestone)
