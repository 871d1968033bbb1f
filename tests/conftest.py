from __future__ import annotations

import itertools
from types import SimpleNamespace

import pytest

from config import TestConfig
from wms import create_app
from wms import milestones, repository
from wms.extensions import db
from wms.models import Role, User

_mobiles = itertools.count(1)


def _next_mobile() -> str:
    return f"9{next(_mobiles):09d}"


def _build_app(config_class, upload_folder):
    app = create_app(config_class)
    app.config["UPLOAD_FOLDER"] = str(upload_folder)
    return app


@pytest.fixture
def app(tmp_path):
    app = _build_app(TestConfig, tmp_path / "uploads")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database, usable from several threads."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'wms-test.db'}"

    app = _build_app(FileConfig, tmp_path / "uploads")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def factory(role: Role, name: str | None = None, *, created_by: User | None = None, is_active: bool = True) -> User:
        user = User(
            name=name or role.label,
            mobile=_next_mobile(),
            role=role.value,
            is_active=is_active,
            created_by_id=created_by.id if created_by else None,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return factory


@pytest.fixture
def login(client, app):
    def do_login(user: User):
        client.post("/auth/logout")
        response = client.post("/auth/login", json={"mobile": user.mobile, "otp": app.config["DEMO_OTP"]})
        assert response.status_code == 200, response.get_json()
        return response

    return do_login


def actor(role: Role, name: str | None = None) -> SimpleNamespace:
    """Lightweight stand-in for a logged-in user (engine only reads name and role)."""
    return SimpleNamespace(name=name or role.label, role=role.value)


@pytest.fixture
def make_actor():
    return actor


@pytest.fixture
def admin_actor():
    return actor(Role.ADMIN, "Asha Admin")


@pytest.fixture
def seeded_project(admin_actor):
    """Builder for a monument, a project and two pending milestones (needs an active app)."""

    def build(**project_fields):
        monument = repository.create_monument(
            {"name": "Step Well", "location": {"latitude": 23.0, "longitude": 72.5}, "condition": "fair"},
            admin_actor,
        )
        payload = {
            "name": "Step Well Restoration",
            "monumentId": monument["id"],
            "budget": 100000,
            "timeline": {"start": "2025-01-01", "end": "2025-12-31"},
            "status": "active",
        }
        payload.update(project_fields)
        project = repository.create_project(payload, admin_actor)
        return milestones.replace_milestone_set(
            project["id"],
            [
                {"id": "new_1", "name": "Survey", "budget": 30000},
                {"id": "new_2", "name": "Desilting", "budget": 20000},
            ],
            admin_actor,
        )

    return build
