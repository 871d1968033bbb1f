"""
wms/blueprints/dashboard/routes.py

Dashboard statistics.

- /api/stats       admin dashboard (admins, quality managers, financial officers)
- /api/contractor  contractor dashboard (?contractorId=, defaults to self)
- /api/worker      worker dashboard (?workerId=, defaults to self)

Contractors may open the worker dashboard of their own workers; admins may
open any dashboard.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import reporting
from ...errors import ForbiddenError, NotFoundError, ValidationError
from ...extensions import db
from ...models import ADMIN_ROLES, Role, User
from ...security import roles_required

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api")


def _parse_optional_int(value: str | None) -> int | None:
    """Parse an optional int from a query string. Empty -> None."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError("Id must be a number.", details={"value": value})


def _load_role_user(raw_id: str | None, role: Role) -> User:
    """Resolve ?<role>Id=, defaulting to the current user."""
    user_id = _parse_optional_int((raw_id or "").strip())
    if user_id is None:
        user_id = current_user.id
    user = db.session.get(User, user_id)
    if user is None or not user.has_role(role):
        raise NotFoundError(f"{role.label} not found.", details={"id": user_id})
    return user


@dashboard_bp.route("/stats")
@login_required
@roles_required(*ADMIN_ROLES, Role.QUALITY_MANAGER, Role.FINANCIAL_OFFICER)
def stats():
    return jsonify(reporting.dashboard_stats())


@dashboard_bp.route("/contractor")
@login_required
@roles_required(*ADMIN_ROLES, Role.CONTRACTOR)
def contractor_dashboard():
    contractor = _load_role_user(request.args.get("contractorId"), Role.CONTRACTOR)
    if not current_user.is_admin and contractor.id != current_user.id:
        raise ForbiddenError("You can only view your own dashboard.")
    return jsonify(reporting.contractor_stats(contractor))


@dashboard_bp.route("/worker")
@login_required
@roles_required(*ADMIN_ROLES, Role.CONTRACTOR, Role.WORKER)
def worker_dashboard():
    worker = _load_role_user(request.args.get("workerId"), Role.WORKER)
    if current_user.has_role(Role.WORKER) and worker.id != current_user.id:
        raise ForbiddenError("You can only view your own dashboard.")
    if current_user.has_role(Role.CONTRACTOR) and worker.created_by_id != current_user.id:
        raise ForbiddenError("You can only view dashboards of your own workers.")
    return jsonify(reporting.worker_stats(worker))
