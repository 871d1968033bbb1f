"""
wms/milestones.py

Milestone lifecycle engine.

    pending --start--> active --approve--> completed
                         |
                         +-- submit_for_review: submitted     (worker / contractor)
                         +-- quality_manager_review: [...]    (quality manager, append-only)
                         +-- admin_review: submitted          (quality manager forwards)
                                           -> approved         (admin approves = completed)

completed is terminal; only the financial officer's bill is recorded after it.

Every operation:
- checks the actor's role itself (ForbiddenError), callers are not trusted
- resolves project and milestone ids (NotFoundError)
- checks the lifecycle precondition (InvalidTransitionError)
- mutates the projects document through store.mutate (one read/modify/write unit)
- prepends a history entry describing the transition

The actor is any object with .name and .role (normally the logged-in User).
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import store
from .audit import diff_fields, make_history_entry, prepend_history
from .errors import ForbiddenError, InvalidTransitionError, ValidationError
from .models import ADMIN_ROLES, MilestoneStatus, ReviewMarker, Role
from .repository import PROJECTS, find_milestone, find_project, get_project
from .utils import (
    clean_list,
    clean_timeline,
    new_id,
    optional_text,
    parse_amount,
    parse_timestamp,
    require_text,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

# Fields the milestone editor may change; diffed on every bulk save.
EDITABLE_FIELDS = ("name", "description", "budget", "timeline", "clearanceChecklist", "document")

PHOTO_CATEGORIES = ("before", "during", "after")

PLACEHOLDER_ID_PREFIX = "new_"


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _actor_name(actor: Any) -> str:
    return getattr(actor, "name", None) or "Unknown"


def _actor_role(actor: Any) -> Optional[Role]:
    role = getattr(actor, "role", None)
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def _require_role(actor: Any, allowed: Iterable[Role], action: str) -> None:
    role = _actor_role(actor)
    if role not in allowed:
        raise ForbiddenError(
            f"Your role is not allowed to {action}.",
            details={"role": getattr(role, "value", None), "allowed": sorted(r.value for r in allowed)},
        )


def _status(milestone: Dict[str, Any]) -> MilestoneStatus:
    raw = milestone.get("status") or MilestoneStatus.PENDING.value
    try:
        return MilestoneStatus(raw)
    except ValueError:
        raise InvalidTransitionError(
            "Milestone has an unrecognised status.",
            details={"status": raw},
        )


def _require_not_completed(milestone: Dict[str, Any]) -> None:
    if _status(milestone) is MilestoneStatus.COMPLETED:
        raise InvalidTransitionError("Milestone is already completed.")


def _record(milestone: Dict[str, Any], actor: Any, changes: List[Dict[str, Any]]) -> None:
    prepend_history(milestone, make_history_entry(_actor_name(actor), changes))


def _apply(project_id: str, milestone_id: str, fn: Callable[[Dict[str, Any], Dict[str, Any]], None]) -> Dict[str, Any]:
    """Run fn(project, milestone) inside one document mutation and return the milestone."""

    def unit(document):
        project = find_project(document, project_id)
        milestone = find_milestone(project, milestone_id)
        fn(project, milestone)
        return milestone

    return store.mutate(PROJECTS, unit)


def _log(event: str, project_id: str, milestone_id: str, actor: Any) -> None:
    logger.info(
        "%s: project=%s milestone=%s by %s",
        event,
        project_id,
        milestone_id,
        _actor_name(actor),
        extra={"project_id": project_id, "milestone_id": milestone_id, "actor": _actor_name(actor)},
    )


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
def get_milestone(project_id: str, milestone_id: str) -> Dict[str, Any]:
    """Milestone with its parent's name and monument id attached."""
    project = get_project(project_id)
    milestone = find_milestone(project, milestone_id)
    return {
        **milestone,
        "projectId": project["id"],
        "projectName": project.get("name"),
        "monumentId": project.get("monumentId"),
    }


# ---------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------
def start_milestone(project_id: str, milestone_id: str, actor: Any) -> Dict[str, Any]:
    """pending -> active (contractor)."""
    _require_role(actor, {Role.CONTRACTOR}, "start milestones")

    def start(project, milestone):
        status = _status(milestone)
        if status is not MilestoneStatus.PENDING:
            raise InvalidTransitionError(
                "Milestone has already been started or is completed.",
                details={"status": status.value},
            )
        milestone["status"] = MilestoneStatus.ACTIVE.value
        milestone["actualStartDate"] = utcnow_iso()
        _record(
            milestone,
            actor,
            [{"field": "status", "oldValue": MilestoneStatus.PENDING.value, "newValue": MilestoneStatus.ACTIVE.value}],
        )

    milestone = _apply(project_id, milestone_id, start)
    _log("Milestone started", project_id, milestone_id, actor)
    return milestone


def submit_for_inspection(project_id: str, milestone_id: str, actor: Any) -> Dict[str, Any]:
    """
    Mark an active milestone as submitted for inspection (worker / contractor).

    Idempotent: when already submitted the milestone is returned unchanged and
    no history entry is added.
    """
    _require_role(actor, {Role.WORKER, Role.CONTRACTOR}, "submit milestones for inspection")

    def submit(project, milestone):
        status = _status(milestone)
        if status is not MilestoneStatus.ACTIVE:
            raise InvalidTransitionError(
                "Only active milestones can be submitted for inspection.",
                details={"status": status.value},
            )
        if milestone.get("submit_for_review") == ReviewMarker.SUBMITTED.value:
            return
        milestone["submit_for_review"] = ReviewMarker.SUBMITTED.value
        _record(
            milestone,
            actor,
            [{"field": "Inspection", "oldValue": "Not Submitted", "newValue": "Submitted for Inspection"}],
        )

    milestone = _apply(project_id, milestone_id, submit)
    _log("Milestone submitted for inspection", project_id, milestone_id, actor)
    return milestone


def _clean_inspection(payload: Any, actor: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid inspection data.")
    visit_date = require_text(payload, "visitDate", label="Visit date")
    if parse_timestamp(visit_date) is None:
        raise ValidationError("visitDate is not a valid date.")
    return {
        **payload,
        "visitDate": visit_date,
        "feedback": optional_text(payload, "feedback"),
        "documents": clean_list(payload.get("documents"), field="documents"),
        "submittedBy": payload.get("submittedBy") or _actor_name(actor),
    }


def record_inspection(project_id: str, milestone_id: str, payload: Any, actor: Any) -> Dict[str, Any]:
    """
    Append a quality-manager inspection record.

    The quality_manager_review list is itself the append-only log of visits;
    inspectionVisitDate always reflects the latest record.
    """
    _require_role(actor, {Role.QUALITY_MANAGER}, "record inspections")
    cleaned = _clean_inspection(payload, actor)

    def add(project, milestone):
        _require_not_completed(milestone)
        record = {"id": new_id("insp"), "submittedAt": utcnow_iso(), **cleaned}
        milestone["quality_manager_review"] = [*(milestone.get("quality_manager_review") or []), record]
        milestone["inspectionVisitDate"] = cleaned["visitDate"]

    milestone = _apply(project_id, milestone_id, add)
    _log("Inspection recorded", project_id, milestone_id, actor)
    return milestone


def forward_to_admin(project_id: str, milestone_id: str, actor: Any) -> Dict[str, Any]:
    """Quality manager forwards an inspected milestone for admin approval."""
    _require_role(actor, {Role.QUALITY_MANAGER}, "forward inspections")

    def forward(project, milestone):
        _require_not_completed(milestone)
        if not milestone.get("quality_manager_review"):
            raise InvalidTransitionError("Record at least one inspection before forwarding.")
        if milestone.get("admin_review"):
            raise InvalidTransitionError(
                "Inspection has already been forwarded to admin.",
                details={"admin_review": milestone.get("admin_review")},
            )
        milestone["admin_review"] = ReviewMarker.SUBMITTED.value
        _record(
            milestone,
            actor,
            [{"field": "Inspection", "oldValue": "In Review", "newValue": "Forwarded to Admin"}],
        )

    milestone = _apply(project_id, milestone_id, forward)
    _log("Inspection forwarded to admin", project_id, milestone_id, actor)
    return milestone


def approve_milestone(project_id: str, milestone_id: str, actor: Any) -> Dict[str, Any]:
    """active + forwarded inspection -> completed (admin / super admin)."""
    _require_role(actor, ADMIN_ROLES, "approve milestones")

    def approve(project, milestone):
        status = _status(milestone)
        if status is not MilestoneStatus.ACTIVE:
            raise InvalidTransitionError(
                "Only active milestones can be approved.",
                details={"status": status.value},
            )
        if milestone.get("admin_review") != ReviewMarker.SUBMITTED.value:
            raise InvalidTransitionError("Milestone inspection has not been forwarded for approval.")
        now = utcnow_iso()
        milestone["admin_review"] = ReviewMarker.APPROVED.value
        milestone["status"] = MilestoneStatus.COMPLETED.value
        milestone["completedAt"] = now
        _record(
            milestone,
            actor,
            [
                {"field": "status", "oldValue": MilestoneStatus.ACTIVE.value, "newValue": MilestoneStatus.COMPLETED.value},
                {"field": "Inspection", "oldValue": "Forwarded to Admin", "newValue": "Approved"},
            ],
        )

    milestone = _apply(project_id, milestone_id, approve)
    _log("Milestone approved", project_id, milestone_id, actor)
    return milestone


def _clean_bill(payload: Any, actor: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid bill data.")
    bill_details = payload.get("billDetails")
    if bill_details is not None and not isinstance(bill_details, dict):
        raise ValidationError("billDetails must be an object.")
    cleaned = {
        **payload,
        "billDetails": dict(bill_details or {}),
        "documents": clean_list(payload.get("documents"), field="documents"),
        "submittedBy": payload.get("submittedBy") or _actor_name(actor),
    }
    if "amount" in cleaned["billDetails"]:
        cleaned["billDetails"]["amount"] = parse_amount(cleaned["billDetails"]["amount"], field="billDetails.amount")
    return cleaned


def record_bill(project_id: str, milestone_id: str, payload: Any, actor: Any) -> Dict[str, Any]:
    """
    Set the milestone's financial record (financial officer, completed milestones).

    The record is overwritten wholesale; the history entry keeps the fact that
    an earlier bill was replaced.
    """
    _require_role(actor, {Role.FINANCIAL_OFFICER}, "record bills")
    cleaned = _clean_bill(payload, actor)

    def bill(project, milestone):
        if _status(milestone) is not MilestoneStatus.COMPLETED:
            raise InvalidTransitionError("Bills can only be recorded for completed milestones.")
        previous = "Submitted" if milestone.get("financial_record") else "Not Submitted"
        milestone["financial_record"] = {**cleaned, "submittedAt": utcnow_iso()}
        _record(milestone, actor, [{"field": "Bill", "oldValue": previous, "newValue": "Bill Recorded"}])

    milestone = _apply(project_id, milestone_id, bill)
    _log("Bill recorded", project_id, milestone_id, actor)
    return milestone


def _clean_proof(payload: Any) -> Dict[str, Any]:
    if not payload or not isinstance(payload, dict):
        raise ValidationError("Invalid proof of work data.")
    photos = payload.get("photos") or {}
    if not isinstance(photos, dict):
        raise ValidationError("photos must be an object with before, during and after lists.")
    return {
        "photos": {
            category: clean_list(photos.get(category), field=f"photos.{category}")
            for category in PHOTO_CATEGORIES
        },
        "documents": clean_list(payload.get("documents"), field="documents"),
        "submittedBy": payload.get("submittedBy"),
    }


def append_proof_of_work(project_id: str, milestone_id: str, payload: Any, actor: Any) -> Dict[str, Any]:
    """Concatenate photos/documents onto the milestone's proof bundle (worker / contractor)."""
    _require_role(actor, {Role.WORKER, Role.CONTRACTOR}, "add proof of work")
    cleaned = _clean_proof(payload)

    def append(project, milestone):
        _require_not_completed(milestone)
        proof = milestone.get("proofOfWork") or {}
        existing_photos = proof.get("photos") or {}
        milestone["proofOfWork"] = {
            **proof,
            "photos": {
                category: [*(existing_photos.get(category) or []), *cleaned["photos"][category]]
                for category in PHOTO_CATEGORIES
            },
            "documents": [*(proof.get("documents") or []), *cleaned["documents"]],
        }
        prepend_history(
            milestone,
            make_history_entry(
                cleaned["submittedBy"] or _actor_name(actor),
                [{"field": "Proof of Work", "oldValue": "N/A", "newValue": "New proofs were added."}],
            ),
        )

    milestone = _apply(project_id, milestone_id, append)
    _log("Proof of work added", project_id, milestone_id, actor)
    return milestone


# ---------------------------------------------------------------------
# Bulk milestone editor
# ---------------------------------------------------------------------
def _is_placeholder(milestone_id: Any) -> bool:
    return not milestone_id or (isinstance(milestone_id, str) and milestone_id.startswith(PLACEHOLDER_ID_PREFIX))


def _clean_checklist(value: Any, label: str) -> List[Dict[str, Any]]:
    items = []
    for item in clean_list(value, field=f"{label}: clearanceChecklist"):
        if not isinstance(item, dict) or not isinstance(item.get("text"), str) or not item["text"].strip():
            raise ValidationError(f"{label}: every checklist item needs text.")
        items.append(
            {
                **item,
                "id": item.get("id") or new_id("item"),
                "text": item["text"].strip(),
                "completed": bool(item.get("completed", False)),
            }
        )
    return items


def _clean_editable(item: Any, index: int) -> Dict[str, Any]:
    label = f"Milestone #{index + 1}"
    if not isinstance(item, dict):
        raise ValidationError(f"{label}: invalid milestone data.")

    cleaned: Dict[str, Any] = {"id": item.get("id")}
    cleaned["name"] = require_text(item, "name", label=f"{label}: name")
    if "description" in item:
        cleaned["description"] = optional_text(item, "description")
    if "budget" in item:
        cleaned["budget"] = parse_amount(item.get("budget"), field=f"{label}: budget")
    if "timeline" in item:
        cleaned["timeline"] = clean_timeline(item.get("timeline"), field=f"{label}: timeline")
    if "clearanceChecklist" in item:
        cleaned["clearanceChecklist"] = _clean_checklist(item.get("clearanceChecklist"), label)
    if "document" in item:
        document = item.get("document")
        if document is not None and not isinstance(document, dict):
            raise ValidationError(f"{label}: document must be an object with name and path.")
        cleaned["document"] = document
    return cleaned


def _new_milestone(cleaned: Dict[str, Any], now: str) -> Dict[str, Any]:
    return {
        "id": new_id("milestone"),
        "name": cleaned["name"],
        "description": cleaned.get("description", ""),
        "budget": cleaned.get("budget", 0),
        "timeline": cleaned.get("timeline", {"start": "", "end": ""}),
        "clearanceChecklist": cleaned.get("clearanceChecklist", []),
        "document": cleaned.get("document"),
        "status": MilestoneStatus.PENDING.value,
        "createdAt": now,
        "editHistory": [],
    }


def replace_milestone_set(project_id: str, milestones: Any, actor: Any) -> Dict[str, Any]:
    """
    Save the milestone editor: replace the project's whole milestone list.

    - new or placeholder ids get a fresh id and start pending
    - existing milestones keep their workflow state; editable fields are taken
      from the payload and one batch history entry records what changed
    - stored milestones missing from the payload are removed; the removal is
      recorded on the project's history, completed milestones cannot be removed
    """
    _require_role(actor, ADMIN_ROLES, "manage milestones")
    if not isinstance(milestones, list):
        raise ValidationError("Invalid milestones data provided.")
    incoming = [_clean_editable(item, index) for index, item in enumerate(milestones)]
    editor = _actor_name(actor)

    def replace(document):
        project = find_project(document, project_id)
        stored = {m.get("id"): m for m in project.get("milestones") or []}
        now = utcnow_iso()
        kept_ids = set()
        result = []

        for cleaned in incoming:
            milestone_id = cleaned["id"]
            existing = None if _is_placeholder(milestone_id) else stored.get(milestone_id)
            if existing is None or milestone_id in kept_ids:
                result.append(_new_milestone(cleaned, now))
                continue

            kept_ids.add(milestone_id)
            before = {field: copy.deepcopy(existing.get(field)) for field in EDITABLE_FIELDS}
            updated = {**existing, **{f: cleaned[f] for f in EDITABLE_FIELDS if f in cleaned}}
            changes = diff_fields(before, updated, EDITABLE_FIELDS)
            if changes:
                if _status(existing) is MilestoneStatus.COMPLETED:
                    raise ValidationError(
                        f"Milestone '{existing.get('name')}' is completed and cannot be edited.",
                        details={"milestoneId": milestone_id},
                    )
                prepend_history(updated, make_history_entry(editor, changes, edited_at=now))
                updated["updatedAt"] = now
            result.append(updated)

        removed = [m for mid, m in stored.items() if mid not in kept_ids]
        for milestone in removed:
            if _status(milestone) is MilestoneStatus.COMPLETED:
                raise ValidationError(
                    f"Milestone '{milestone.get('name')}' is completed and cannot be removed.",
                    details={"milestoneId": milestone.get("id")},
                )
        if removed:
            prepend_history(
                project,
                make_history_entry(
                    editor,
                    [{"field": "milestones", "oldValue": [m.get("name") for m in removed], "newValue": "Removed"}],
                    edited_at=now,
                ),
            )

        project["milestones"] = result
        project["updatedAt"] = now
        return project

    project = store.mutate(PROJECTS, replace)
    logger.info(
        "Milestones replaced on project %s by %s (%s milestones)",
        project_id,
        editor,
        len(project.get("milestones") or []),
        extra={"project_id": project_id, "actor": editor},
    )
    return project
