"""
wms/security.py

Access control helpers for the restoration portal API.

Key rules:
- UI is never trusted; every permission check is server-side.
- Admin / super admin: full access.
- Quality managers and financial officers: read every project, act only
  through the lifecycle operations their role is allowed (enforced in
  wms.milestones).
- Contractors: only projects assigned to them.
- Workers: only projects they are assigned to.

This module also provides a global safety net:
- deactivated_session_guard() rejects requests from users deactivated after
  they logged in. Wire it via app.before_request in the app factory.

IMPORTANT:
- Decorators preserve wrapped function metadata (functools.wraps) to avoid
  Flask endpoint collisions.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict, Optional, Tuple

from flask import jsonify, request
from flask_login import current_user, logout_user

from .models import ADMIN_ROLES, Role

# Roles that may see every project
PROJECT_WIDE_ROLES = ADMIN_ROLES | {Role.QUALITY_MANAGER, Role.FINANCIAL_OFFICER}


def _forbidden(message: str = "You do not have permission to perform this action.") -> Tuple[Any, int]:
    """Consistent JSON 403."""
    return jsonify({"message": message, "code": "forbidden"}), 403


def has_role(*roles: Role) -> bool:
    """Return True if current user is authenticated and holds one of roles."""
    if not current_user.is_authenticated:
        return False
    return current_user.has_role(*roles)


def is_admin() -> bool:
    return has_role(*ADMIN_ROLES)


def deactivated_session_guard() -> Optional[Tuple[Any, int]]:
    """
    Global guard: a user deactivated while logged in loses the session.

    Login itself already refuses inactive users; this covers sessions that
    were opened before the deactivation.
    """
    if not current_user.is_authenticated:
        return None
    if current_user.is_active:
        return None
    if (request.endpoint or "") == "static":
        return None
    logout_user()
    return jsonify({"message": "Your account has been deactivated.", "code": "inactive"}), 401


def roles_required(*roles: Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator: current user must hold one of roles."""
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not has_role(*roles):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def can_view_project(project: Dict[str, Any], user: Any = None) -> bool:
    """Project visibility for user (defaults to the current user)."""
    user = user if user is not None else current_user
    if not getattr(user, "is_authenticated", False):
        return False

    if user.has_role(*PROJECT_WIDE_ROLES):
        return True

    if user.has_role(Role.CONTRACTOR):
        return str(project.get("contractorId")) == str(user.id)

    if user.has_role(Role.WORKER):
        return any(
            isinstance(w, dict) and str(w.get("id")) == str(user.id)
            for w in project.get("workers") or []
        )

    return False


def project_access_required(get_project_func: Callable[..., Dict[str, Any]]) -> Callable[..., Any]:
    """
    Decorator factory: VIEW permission for a project.

    The loader receives the route kwargs and must raise NotFoundError for an
    unknown id.

    Usage:
        @project_access_required(lambda project_id, **_: repository.get_project(project_id))
        def view(project_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            project = get_project_func(**kwargs)
            if not can_view_project(project):
                return _forbidden("You do not have access to this project.")
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
