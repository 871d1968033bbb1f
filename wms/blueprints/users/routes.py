"""
User Management

Rules enforced:
- Admin / super admin: list, view, create and edit every user.
- Only a super admin may create or promote to super admin.
- Contractor: list, view, create and edit only the workers it created
  (created_by_id). Contractors can create workers only.
- Mobile numbers are unique and must match ^[6-9]\\d{9}$.
- Users are never hard-deleted; deactivate instead (is_active).
- UI never trusted: we validate server-side.

Audit:
- CREATE / UPDATE logged
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ...audit import log_action, serialize_model
from ...errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ...extensions import db
from ...models import ADMIN_ROLES, Role, User, enum_values
from ...security import roles_required
from ...utils import is_valid_mobile
from .. import json_payload

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

PROFILE_FIELDS = {
    "name": "name",
    "email": "email",
    "companyName": "company_name",
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _load_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.", details={"id": user_id})
    return user


def _ensure_can_manage(user: User) -> None:
    """Contractors may only touch their own workers."""
    if current_user.is_admin:
        return
    if user.has_role(Role.WORKER) and user.created_by_id == current_user.id:
        return
    raise ForbiddenError("You can only manage workers you registered.")


def _clean_role(value: object) -> str:
    role = str(value or "").strip()
    if role not in enum_values(Role):
        raise ValidationError("Unknown role.", details={"allowed": enum_values(Role)})
    if current_user.has_role(Role.CONTRACTOR) and role != Role.WORKER.value:
        raise ForbiddenError("Contractors can only register workers.")
    if role == Role.SUPER_ADMIN.value and not current_user.has_role(Role.SUPER_ADMIN):
        raise ForbiddenError("Only a super admin can grant the super admin role.")
    return role


def _clean_mobile(value: object, *, exclude_user_id: int | None = None) -> str:
    mobile = str(value or "").strip()
    if not is_valid_mobile(mobile):
        raise ValidationError("Enter a valid 10-digit mobile number.")
    existing = User.query.filter_by(mobile=mobile).first()
    if existing is not None and existing.id != exclude_user_id:
        raise ConflictError("A user with this mobile number already exists.", details={"mobile": mobile})
    return mobile


def _apply_profile(user: User, payload: dict) -> None:
    for key, attr in PROFILE_FIELDS.items():
        if key not in payload:
            continue
        value = payload.get(key)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be text.")
        value = (value or "").strip() or None
        if attr == "name" and not value:
            raise ValidationError("Name is required.")
        setattr(user, attr, value)


# ---------------------------------------------------------------------
# LIST / VIEW
# ---------------------------------------------------------------------

@users_bp.route("", methods=["GET"])
@login_required
@roles_required(*ADMIN_ROLES, Role.CONTRACTOR)
def list_users():
    """Admins: all users. Contractors: the workers they registered."""
    query = User.query
    if not current_user.is_admin:
        query = query.filter_by(role=Role.WORKER.value, created_by_id=current_user.id)
    users = query.order_by(User.name.asc()).all()
    return jsonify([u.to_dict() for u in users])


@users_bp.route("/<int:user_id>", methods=["GET"])
@login_required
def get_user(user_id: int):
    user = _load_user(user_id)
    if user.id != current_user.id:
        if not current_user.has_role(*ADMIN_ROLES, Role.CONTRACTOR):
            raise ForbiddenError("You do not have access to this user.")
        _ensure_can_manage(user)
    return jsonify(user.to_dict())


# ---------------------------------------------------------------------
# CREATE USER
# ---------------------------------------------------------------------

@users_bp.route("", methods=["POST"])
@login_required
@roles_required(*ADMIN_ROLES, Role.CONTRACTOR)
def create_user():
    """
    Create a new portal user.

    Required:
    - name
    - mobile (unique)
    - role
    """
    payload = json_payload()
    role = _clean_role(payload.get("role"))
    mobile = _clean_mobile(payload.get("mobile"))

    user = User(mobile=mobile, role=role, is_active=True)
    _apply_profile(user, {"name": payload.get("name"), **{k: payload.get(k) for k in ("email", "companyName") if k in payload}})
    if current_user.has_role(Role.CONTRACTOR):
        user.created_by_id = current_user.id

    db.session.add(user)
    db.session.flush()

    log_action("user", user.id, "CREATE", before=None, after=serialize_model(user))
    db.session.commit()

    logger.info("User %s (%s) created by %s", user.id, user.role, current_user.id)
    return jsonify({"message": "User created.", "user": user.to_dict()}), 201


# ---------------------------------------------------------------------
# EDIT USER
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>", methods=["PUT"])
@login_required
@roles_required(*ADMIN_ROLES, Role.CONTRACTOR)
def update_user(user_id: int):
    """
    Edit an existing user.

    Can change:
    - name / email / companyName
    - mobile (still unique)
    - isActive
    - role (admins only)
    """
    user = _load_user(user_id)
    _ensure_can_manage(user)
    if user.has_role(Role.SUPER_ADMIN) and not current_user.has_role(Role.SUPER_ADMIN):
        raise ForbiddenError("Only a super admin can edit a super admin.")

    payload = json_payload()
    before_snapshot = serialize_model(user)

    _apply_profile(user, payload)
    if "mobile" in payload:
        user.mobile = _clean_mobile(payload.get("mobile"), exclude_user_id=user.id)
    if "isActive" in payload:
        if user.id == current_user.id and not payload.get("isActive"):
            raise ValidationError("You cannot deactivate your own account.")
        user.is_active = bool(payload.get("isActive"))
    if "role" in payload and payload.get("role") != user.role:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can change roles.")
        user.role = _clean_role(payload.get("role"))

    log_action("user", user.id, "UPDATE", before=before_snapshot, after=serialize_model(user))
    db.session.commit()

    return jsonify({"message": "User updated.", "user": user.to_dict()})
