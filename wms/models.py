"""
Heritage Restoration Portal – Domain Models

Relational tables:
- User      (login identity + role; workers reference the contractor that created them)
- Document  (whole JSON document per logical name: "monuments", "projects")
- AuditLog  (server-side CREATE/UPDATE snapshots)

Monuments and projects (with their embedded milestones) live inside Document
bodies and are plain dicts. Their closed value sets are the enums below;
unknown values are rejected at the API boundary.
"""

from __future__ import annotations

import enum
from datetime import datetime

from flask_login import UserMixin

from .extensions import db


# ---------------------------------------------------------------------
# Closed value sets
# ---------------------------------------------------------------------
class Role(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    QUALITY_MANAGER = "quality_manager"
    FINANCIAL_OFFICER = "financial_officer"
    CONTRACTOR = "contractor"
    WORKER = "worker"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


class ProjectStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class ReviewMarker(str, enum.Enum):
    """Values of the submit_for_review / admin_review flags (absent = not set)."""

    SUBMITTED = "submitted"
    APPROVED = "approved"


class MonumentCondition(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """Portal login user (mobile + OTP)."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(150), nullable=False)
    mobile = db.Column(db.String(15), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(30), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Workers: the contractor that registered them
    created_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = db.Column(db.DateTime, nullable=True)

    created_by = db.relationship(
        "User",
        remote_side=[id],
        backref=db.backref("created_users", lazy=True),
    )

    @property
    def role_enum(self) -> Role | None:
        try:
            return Role(self.role)
        except ValueError:
            return None

    def has_role(self, *roles: Role) -> bool:
        return self.role_enum in roles

    @property
    def is_admin(self) -> bool:
        return self.role_enum in ADMIN_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mobile": self.mobile,
            "email": self.email,
            "companyName": self.company_name,
            "role": self.role,
            "isActive": bool(self.is_active),
            "createdBy": self.created_by_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "lastLogin": _iso(self.last_login),
        }

    def __repr__(self):
        return f"<User {self.name} ({self.role})>"


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


# ---------------------------------------------------------------------
# Whole-document store
# ---------------------------------------------------------------------
class Document(db.Model):
    """
    One JSON document per logical name.

    version is bumped on every successful write; writers compare-and-swap on it
    so a write based on a stale read is rejected instead of clobbering.
    """

    __tablename__ = "documents"

    name = db.Column(db.String(50), primary_key=True)
    body = db.Column(db.JSON, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Document {self.name} v{self.version}>"


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Server-side audit trail (who changed which entity, before/after)."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.String(64), nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
