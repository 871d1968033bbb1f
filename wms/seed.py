"""
wms/seed.py

Seed demo users and a sample monument / project.

Rules:
- Safe to run multiple times (idempotent).
- Users are matched by mobile number; existing users are left as they are.
- The sample monument and project are only created when no monument /
  project exists yet, so real data is never touched.

NOTE:
- Every seeded user logs in with the configured demo OTP.
"""

from __future__ import annotations

from .extensions import db
from .milestones import replace_milestone_set
from .models import Role, User
from .repository import create_monument, create_project, list_monuments, list_projects


DEMO_USERS = [
    # name, mobile, role, company
    ("Super Admin", "9000000001", Role.SUPER_ADMIN, None),
    ("Portal Admin", "9000000002", Role.ADMIN, None),
    ("Quality Manager", "9000000003", Role.QUALITY_MANAGER, None),
    ("Financial Officer", "9000000004", Role.FINANCIAL_OFFICER, None),
    ("Heritage Builders", "9000000005", Role.CONTRACTOR, "Heritage Builders Pvt Ltd"),
]

DEMO_WORKER = ("Site Worker", "9000000006")

DEMO_MONUMENT = {
    "name": "Old Fort Gateway",
    "description": "Sandstone gateway with carved lintels, partially collapsed east wall.",
    "location": {"address": "Fort Road", "latitude": 26.9124, "longitude": 75.7873},
    "condition": "poor",
    "geofenceRadius": 150,
    "photos": [],
}

DEMO_MILESTONES = [
    {
        "id": "new_1",
        "name": "Structural survey",
        "description": "Document cracks and load paths before intervention.",
        "budget": 150000,
        "clearanceChecklist": [{"text": "Survey drawings approved", "completed": False}],
    },
    {
        "id": "new_2",
        "name": "East wall consolidation",
        "description": "Lime mortar grouting and stone replacement.",
        "budget": 450000,
    },
]


def _ensure_user(name: str, mobile: str, role: Role, company: str | None = None, created_by: User | None = None) -> User:
    user = User.query.filter_by(mobile=mobile).first()
    if user:
        return user
    user = User(
        name=name,
        mobile=mobile,
        role=role.value,
        company_name=company,
        is_active=True,
        created_by_id=created_by.id if created_by else None,
    )
    db.session.add(user)
    db.session.flush()
    return user


def seed_demo_data() -> dict:
    """
    Create demo users, then the sample monument / project / milestones.

    Returns a small summary of what exists afterwards.
    """
    users = {role: _ensure_user(name, mobile, role, company) for name, mobile, role, company in DEMO_USERS}
    contractor = users[Role.CONTRACTOR]
    worker = _ensure_user(DEMO_WORKER[0], DEMO_WORKER[1], Role.WORKER, created_by=contractor)
    db.session.commit()

    admin = users[Role.SUPER_ADMIN]

    if not list_monuments():
        create_monument(DEMO_MONUMENT, admin)

    if not list_projects():
        monument = list_monuments()[0]
        project = create_project(
            {
                "name": "Gateway Restoration Phase I",
                "description": "Stabilise and restore the gateway.",
                "monumentId": monument["id"],
                "budget": 1000000,
                "timeline": {"start": "2025-01-01", "end": "2025-12-31"},
                "status": "active",
                "contractorId": contractor.id,
                "workers": [{"id": worker.id}],
            },
            admin,
        )
        replace_milestone_set(project["id"], DEMO_MILESTONES, admin)

    return {
        "users": User.query.count(),
        "monuments": len(list_monuments()),
        "projects": len(list_projects()),
    }
