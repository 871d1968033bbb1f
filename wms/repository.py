"""
wms/repository.py

Monument and project records held in whole JSON documents.

Each mutating call is one read -> mutate -> write unit through store.mutate.
Milestones are embedded in their project; their lifecycle lives in
wms.milestones, but lookups shared by both modules are here.

Edits are diffed over a per-entity whitelist and recorded as one batch
entry at the front of the entity's editHistory.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import store
from .audit import track_changes
from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import MonumentCondition, ProjectStatus, Role, User, enum_values
from .utils import (
    clean_list,
    clean_timeline,
    new_id,
    optional_text,
    parse_amount,
    require_text,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

MONUMENTS = "monuments"
PROJECTS = "projects"

MONUMENT_TRACKED_FIELDS = ("name", "description", "location", "condition", "geofenceRadius", "photos")
PROJECT_TRACKED_FIELDS = (
    "name",
    "description",
    "budget",
    "timeline",
    "status",
    "contractorId",
    "contractorName",
    "workers",
    "documents",
)

DEFAULT_GEOFENCE_RADIUS = 100


# ---------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------
def _find(items: List[Dict[str, Any]], entity_id: Any, label: str) -> Dict[str, Any]:
    for item in items or []:
        if item.get("id") == entity_id:
            return item
    raise NotFoundError(f"{label} not found.", details={"id": entity_id})


def find_project(document: Dict[str, Any], project_id: str) -> Dict[str, Any]:
    return _find(document.get(PROJECTS), project_id, "Project")


def find_milestone(project: Dict[str, Any], milestone_id: str) -> Dict[str, Any]:
    return _find(project.get("milestones"), milestone_id, "Milestone")


def find_monument(document: Dict[str, Any], monument_id: str) -> Dict[str, Any]:
    return _find(document.get(MONUMENTS), monument_id, "Monument")


def _actor_name(actor: Any) -> str:
    return getattr(actor, "name", None) or "Unknown"


# ---------------------------------------------------------------------
# Monuments
# ---------------------------------------------------------------------
def list_monuments() -> List[Dict[str, Any]]:
    document, _ = store.read_document(MONUMENTS)
    return document[MONUMENTS]


def get_monument(monument_id: str) -> Dict[str, Any]:
    document, _ = store.read_document(MONUMENTS)
    return find_monument(document, monument_id)


def _clean_location(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError("location must be an object.")
    location = dict(value)
    for key in ("latitude", "longitude"):
        raw = location.get(key)
        if raw in (None, ""):
            location[key] = None
            continue
        try:
            location[key] = float(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"location.{key} must be a number.")
    if location["latitude"] is not None and not -90 <= location["latitude"] <= 90:
        raise ValidationError("location.latitude must be between -90 and 90.")
    if location["longitude"] is not None and not -180 <= location["longitude"] <= 180:
        raise ValidationError("location.longitude must be between -180 and 180.")
    return location


def _clean_monument_payload(payload: Any, *, partial: bool) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid monument data.")

    cleaned: Dict[str, Any] = {}
    if not partial or "name" in payload:
        cleaned["name"] = require_text(payload, "name", label="Monument name")
    if not partial or "description" in payload:
        cleaned["description"] = optional_text(payload, "description")
    if not partial or "location" in payload:
        cleaned["location"] = _clean_location(payload.get("location"))
    if not partial or "condition" in payload:
        condition = payload.get("condition") or MonumentCondition.GOOD.value
        if condition not in enum_values(MonumentCondition):
            raise ValidationError(
                "Unknown monument condition.",
                details={"allowed": enum_values(MonumentCondition)},
            )
        cleaned["condition"] = condition
    if not partial or "geofenceRadius" in payload:
        radius = parse_amount(payload.get("geofenceRadius"), field="geofenceRadius", default=DEFAULT_GEOFENCE_RADIUS)
        if radius <= 0:
            raise ValidationError("geofenceRadius must be greater than zero.")
        cleaned["geofenceRadius"] = radius
    if not partial or "photos" in payload:
        cleaned["photos"] = clean_list(payload.get("photos"), field="photos")
    return cleaned


def create_monument(payload: Any, actor: Any) -> Dict[str, Any]:
    cleaned = _clean_monument_payload(payload, partial=False)
    now = utcnow_iso()
    monument = {
        "id": new_id("monument"),
        **cleaned,
        "createdAt": now,
        "updatedAt": now,
        "createdBy": _actor_name(actor),
        "editHistory": [],
    }

    def add(document):
        document[MONUMENTS].append(monument)
        return monument

    created = store.mutate(MONUMENTS, add)
    logger.info("Monument %s created by %s", created["id"], _actor_name(actor))
    return created


def update_monument(monument_id: str, payload: Any, actor: Any) -> Dict[str, Any]:
    cleaned = _clean_monument_payload(payload, partial=True)

    def apply(document):
        monument = find_monument(document, monument_id)
        before = {field: monument.get(field) for field in MONUMENT_TRACKED_FIELDS}
        monument.update(cleaned)
        if track_changes(monument, before, MONUMENT_TRACKED_FIELDS, _actor_name(actor)):
            monument["updatedAt"] = utcnow_iso()
        return monument

    return store.mutate(MONUMENTS, apply)


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------
def list_projects() -> List[Dict[str, Any]]:
    document, _ = store.read_document(PROJECTS)
    return document[PROJECTS]


def get_project(project_id: str) -> Dict[str, Any]:
    document, _ = store.read_document(PROJECTS)
    return find_project(document, project_id)


def _resolve_contractor(contractor_id: Any) -> Optional[User]:
    if contractor_id in (None, ""):
        return None
    try:
        user = db.session.get(User, int(contractor_id))
    except (TypeError, ValueError):
        user = None
    if user is None or not user.has_role(Role.CONTRACTOR):
        raise ValidationError("contractorId must reference a contractor.", details={"contractorId": contractor_id})
    return user


def _resolve_workers(value: Any) -> List[Dict[str, Any]]:
    workers = []
    seen = set()
    for item in clean_list(value, field="workers"):
        worker_id = item.get("id") if isinstance(item, dict) else item
        try:
            user = db.session.get(User, int(worker_id))
        except (TypeError, ValueError):
            user = None
        if user is None or not user.has_role(Role.WORKER):
            raise ValidationError("workers must reference worker users.", details={"id": worker_id})
        if user.id in seen:
            continue
        seen.add(user.id)
        workers.append({"id": user.id, "name": user.name})
    return workers


def _clean_documents(value: Any) -> List[Dict[str, Any]]:
    """Attached files as {name, path}; path is what the upload endpoint returned."""
    documents = []
    for item in clean_list(value, field="documents"):
        if not isinstance(item, dict) or not item.get("path"):
            raise ValidationError("documents must be objects with a path.", details={"document": item})
        documents.append({"name": str(item.get("name") or "").strip(), "path": str(item["path"])})
    return documents


def _clean_project_payload(payload: Any, *, partial: bool) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid project data.")

    cleaned: Dict[str, Any] = {}
    if not partial or "name" in payload:
        cleaned["name"] = require_text(payload, "name", label="Project name")
    if not partial or "description" in payload:
        cleaned["description"] = optional_text(payload, "description")
    if not partial or "budget" in payload:
        cleaned["budget"] = parse_amount(payload.get("budget"), field="budget")
    if not partial or "timeline" in payload:
        cleaned["timeline"] = clean_timeline(payload.get("timeline"))
    if not partial or "status" in payload:
        status = payload.get("status") or ProjectStatus.SCHEDULED.value
        if status not in enum_values(ProjectStatus):
            raise ValidationError("Unknown project status.", details={"allowed": enum_values(ProjectStatus)})
        cleaned["status"] = status
    if not partial or "contractorId" in payload:
        contractor = _resolve_contractor(payload.get("contractorId"))
        cleaned["contractorId"] = contractor.id if contractor else None
        cleaned["contractorName"] = contractor.name if contractor else None
    if not partial or "workers" in payload:
        cleaned["workers"] = _resolve_workers(payload.get("workers"))
    if not partial or "documents" in payload:
        cleaned["documents"] = _clean_documents(payload.get("documents"))
    return cleaned


def create_project(payload: Any, actor: Any) -> Dict[str, Any]:
    cleaned = _clean_project_payload(payload, partial=False)
    monument_id = payload.get("monumentId")
    if not monument_id:
        raise ValidationError("monumentId is required.")
    try:
        get_monument(monument_id)
    except NotFoundError:
        raise ValidationError("monumentId does not reference a monument.", details={"monumentId": monument_id})

    now = utcnow_iso()
    project = {
        "id": new_id("project"),
        "monumentId": monument_id,
        **cleaned,
        "milestones": [],
        "createdAt": now,
        "updatedAt": now,
        "createdBy": _actor_name(actor),
        "editHistory": [],
    }

    def add(document):
        document[PROJECTS].append(project)
        return project

    created = store.mutate(PROJECTS, add)
    logger.info("Project %s created by %s", created["id"], _actor_name(actor))
    return created


def update_project(project_id: str, payload: Any, actor: Any) -> Dict[str, Any]:
    """Edit project fields. Milestones are managed by milestones.replace_milestone_set."""
    cleaned = _clean_project_payload(payload, partial=True)

    def apply(document):
        project = find_project(document, project_id)
        before = {field: project.get(field) for field in PROJECT_TRACKED_FIELDS}
        project.update(cleaned)
        if track_changes(project, before, PROJECT_TRACKED_FIELDS, _actor_name(actor)):
            project["updatedAt"] = utcnow_iso()
        return project

    return store.mutate(PROJECTS, apply)
