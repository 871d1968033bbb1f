"""
wms/audit.py

Change tracking for the portal.

Two layers:
1) Embedded edit history (monuments, projects, milestones):
   - diff_fields() computes field-level changes over a whitelist
   - make_history_entry() / prepend_history() materialize them as
     append-only entries, newest first, inside the entity's editHistory.
2) Relational AuditLog rows (users, monument/project creation and edits):
   - WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots and IP.

IMPORTANT:
- History entries are never mutated or reordered once written.
- log_action() only ADDS an AuditLog to the current session. The caller
  controls the commit.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, Iterable, List, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog
from .utils import new_id, utcnow_iso

NOT_SET = "Not set"


# ---------------------------------------------------------------------
# Field-level diffs
# ---------------------------------------------------------------------
def _normalize(value: Any) -> Any:
    return NOT_SET if value is None else value


def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality over JSON-like values.

    Dict key order is irrelevant, list order matters, and booleans never
    compare equal to numbers (True != 1), matching JSON semantics.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (dict, list, tuple)) or isinstance(b, (dict, list, tuple)):
        return False
    return a == b


def diff_fields(
    old: Optional[Dict[str, Any]],
    new: Optional[Dict[str, Any]],
    field_names: Iterable[str],
) -> List[Dict[str, Any]]:
    """
    Return [{field, oldValue, newValue}] for every whitelisted field whose
    value differs between old and new, in the order of field_names.

    Absent and None are both reported as "Not set". Pure: inputs are not
    modified and returned values are copies.
    """
    old = old or {}
    new = new or {}
    changes: List[Dict[str, Any]] = []
    for field in field_names:
        old_value = _normalize(old.get(field))
        new_value = _normalize(new.get(field))
        if not deep_equal(old_value, new_value):
            changes.append(
                {
                    "field": field,
                    "oldValue": copy.deepcopy(old_value),
                    "newValue": copy.deepcopy(new_value),
                }
            )
    return changes


def make_history_entry(
    edited_by: Optional[str],
    changes: List[Dict[str, Any]],
    *,
    edited_at: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": new_id("edit"),
        "editedAt": edited_at or utcnow_iso(),
        "editedBy": edited_by or "Unknown",
        "changes": copy.deepcopy(changes),
    }


def prepend_history(entity: Dict[str, Any], entry: Dict[str, Any]) -> Dict[str, Any]:
    """Put entry at the front of entity["editHistory"]; existing entries keep their order."""
    entity["editHistory"] = [entry, *(entity.get("editHistory") or [])]
    return entry


def track_changes(
    entity: Dict[str, Any],
    before: Dict[str, Any],
    field_names: Iterable[str],
    edited_by: Optional[str],
) -> Optional[Dict[str, Any]]:
    """Diff before/after for field_names and prepend one batch entry if anything changed."""
    changes = diff_fields(before, entity, field_names)
    if not changes:
        return None
    return prepend_history(entity, make_history_entry(edited_by, changes))


# ---------------------------------------------------------------------
# Relational audit log
# ---------------------------------------------------------------------
def _safe_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """Snapshot a SQLAlchemy model instance's scalar columns as strings."""
    return {
        column.name: _safe_str(getattr(instance, column.name))
        for column in instance.__table__.columns
    }


def log_action(
    entity_type: str,
    entity_id: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    actor: Any = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    actor defaults to the logged-in user when called inside a request.

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy,
      configure ProxyFix to capture the real client IP.
    """
    if entity_id is None:
        raise ValueError("log_action requires an entity id.")

    if actor is None and has_request_context() and current_user.is_authenticated:
        actor = current_user

    entry = AuditLog(
        user_id=getattr(actor, "id", None),
        username_snapshot=getattr(actor, "name", None),
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False, default=str) if before else None,
        after_data=json.dumps(after, ensure_ascii=False, default=str) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
