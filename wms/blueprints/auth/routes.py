"""
Authentication Routes

Provides:
- /auth/login        (mobile + OTP)
- /auth/logout
- /auth/me           (current user + role navigation)
- /auth/csrf-token   (token for X-CSRFToken header)
- /auth/seed-admin   (first system bootstrap)

Rules:
- Only active users may log in.
- The OTP is the configured demo OTP; there is no SMS gateway.
- seed-admin works exactly once: as soon as any user exists it is blocked.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ... import visible_navigation
from ...audit import log_action, serialize_model
from ...errors import ForbiddenError, ValidationError
from ...extensions import db
from ...models import Role, User
from ...utils import is_valid_mobile
from .. import json_payload

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _session_payload(user: User) -> dict:
    return {
        "user": user.to_dict(),
        "navigation": visible_navigation(user),
    }


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate a user by mobile number and OTP.

    Logic:
    - Mobile must belong to a known, active user
    - OTP must match the configured demo OTP
    """
    payload = json_payload()
    mobile = str(payload.get("mobile") or "").strip()
    otp = str(payload.get("otp") or "").strip()

    if not is_valid_mobile(mobile):
        raise ValidationError("Enter a valid 10-digit mobile number.")

    user = User.query.filter_by(mobile=mobile).first()
    if user is None or otp != current_app.config["DEMO_OTP"]:
        logger.info("Failed login for mobile %s", mobile)
        return jsonify({"message": "Invalid mobile number or OTP.", "code": "invalid_credentials"}), 401

    if not user.is_active:
        raise ForbiddenError("This account is inactive.")

    user.last_login = datetime.utcnow()
    db.session.commit()

    login_user(user)
    logger.info("User %s logged in", user.id, extra={"user_id": user.id, "role": user.role})
    return jsonify({"message": "Logged in.", **_session_payload(user)})


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"message": "Logged out."})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(_session_payload(current_user))


@auth_bp.route("/csrf-token")
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST super admin of the system.

    Safety Rules:
    - If ANY user already exists -> block
    """
    if User.query.count() > 0:
        raise ForbiddenError("A user already exists.")

    payload = json_payload()
    name = str(payload.get("name") or "").strip()
    mobile = str(payload.get("mobile") or "").strip()

    if not name:
        raise ValidationError("Name is required.")
    if not is_valid_mobile(mobile):
        raise ValidationError("Enter a valid 10-digit mobile number.")

    user = User(
        name=name,
        mobile=mobile,
        email=(payload.get("email") or None),
        role=Role.SUPER_ADMIN.value,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    log_action("user", user.id, "CREATE", before=None, after=serialize_model(user), actor=user)
    db.session.commit()

    logger.info("Super admin %s bootstrapped", user.id)
    return jsonify({"message": "Super admin created. Log in with your mobile number.", "user": user.to_dict()}), 201
