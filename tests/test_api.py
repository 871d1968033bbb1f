import io

import pytest

from config import TestConfig
from wms import create_app
from wms.extensions import db
from wms.models import AuditLog, Role, User


# ---------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------
def test_api_requires_login(client):
    response = client.get("/api/projects")

    assert response.status_code == 401
    assert response.get_json()["code"] == "unauthorized"


def test_login_with_wrong_otp_fails(client, make_user):
    user = make_user(Role.ADMIN)

    response = client.post("/auth/login", json={"mobile": user.mobile, "otp": "000000"})

    assert response.status_code == 401


def test_login_rejects_malformed_mobile(client):
    response = client.post("/auth/login", json={"mobile": "12345", "otp": "123456"})

    assert response.status_code == 400
    assert response.get_json()["code"] == "validation_error"


def test_inactive_user_cannot_log_in(client, make_user):
    user = make_user(Role.WORKER, is_active=False)

    response = client.post("/auth/login", json={"mobile": user.mobile, "otp": "123456"})

    assert response.status_code == 403


def test_login_returns_role_navigation(client, make_user, login):
    user = make_user(Role.CONTRACTOR)

    body = login(user).get_json()

    assert body["user"]["id"] == user.id
    assert [item["name"] for item in body["navigation"]] == ["Dashboard", "Users", "Projects"]
    assert db.session.get(User, user.id).last_login is not None


def test_me_and_logout(client, make_user, login):
    user = make_user(Role.WORKER)
    login(user)

    assert client.get("/auth/me").get_json()["user"]["role"] == "worker"
    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_seed_admin_only_once(client):
    first = client.post("/auth/seed-admin", json={"name": "Root", "mobile": "9876543210"})
    second = client.post("/auth/seed-admin", json={"name": "Again", "mobile": "9876543211"})

    assert first.status_code == 201
    assert first.get_json()["user"]["role"] == "super_admin"
    assert second.status_code == 403


def test_csrf_token_route(client):
    assert client.get("/auth/csrf-token").get_json()["csrfToken"]


def test_csrf_is_enforced_when_enabled(tmp_path):
    class CSRFConfig(TestConfig):
        WTF_CSRF_ENABLED = True

    app = create_app(CSRFConfig)
    app.config["UPLOAD_FOLDER"] = str(tmp_path)

    response = app.test_client().post("/auth/login", json={"mobile": "9876543210", "otp": "123456"})

    assert response.status_code == 400
    assert response.get_json()["code"] == "csrf_error"


# ---------------------------------------------------------------------
# users
# ---------------------------------------------------------------------
def test_contractor_registers_workers_only(client, make_user, login):
    contractor = make_user(Role.CONTRACTOR)
    login(contractor)

    created = client.post("/api/users", json={"name": "Manoj", "mobile": "9123456780", "role": "worker"})
    refused = client.post("/api/users", json={"name": "Boss", "mobile": "9123456781", "role": "admin"})

    assert created.status_code == 201
    assert created.get_json()["user"]["createdBy"] == contractor.id
    assert refused.status_code == 403
    assert [u["name"] for u in client.get("/api/users").get_json()] == ["Manoj"]


def test_duplicate_mobile_is_a_conflict(client, make_user, login):
    admin = make_user(Role.ADMIN)
    login(admin)

    response = client.post("/api/users", json={"name": "Dup", "mobile": admin.mobile, "role": "worker"})

    assert response.status_code == 409


def test_only_super_admin_creates_super_admin(client, make_user, login):
    login(make_user(Role.ADMIN))

    response = client.post("/api/users", json={"name": "Root", "mobile": "9000011111", "role": "super_admin"})

    assert response.status_code == 403


def test_user_update_is_audited(client, make_user, login):
    admin = make_user(Role.ADMIN)
    worker = make_user(Role.WORKER)
    login(admin)

    response = client.put(f"/api/users/{worker.id}", json={"isActive": False, "email": "w@example.com"})

    assert response.status_code == 200
    assert response.get_json()["user"]["isActive"] is False
    assert AuditLog.query.filter_by(entity_type="user", entity_id=str(worker.id), action="UPDATE").count() == 1


def test_deactivated_user_loses_session(client, app, make_user, login):
    worker = make_user(Role.WORKER)
    login(worker)

    worker.is_active = False
    db.session.commit()

    assert client.get("/auth/me").status_code == 401


# ---------------------------------------------------------------------
# monuments / projects / milestone lifecycle
# ---------------------------------------------------------------------
@pytest.fixture
def team(make_user):
    contractor = make_user(Role.CONTRACTOR, "Kiran")
    return {
        "admin": make_user(Role.ADMIN, "Asha"),
        "contractor": contractor,
        "worker": make_user(Role.WORKER, "Manoj", created_by=contractor),
        "qm": make_user(Role.QUALITY_MANAGER, "Qadir"),
        "finance": make_user(Role.FINANCIAL_OFFICER, "Fatima"),
        "outsider": make_user(Role.CONTRACTOR, "Other Co"),
    }


@pytest.fixture
def api_project(client, login, team):
    login(team["admin"])
    monument = client.post(
        "/api/monuments",
        json={"name": "Stepwell", "location": {"latitude": 23.0, "longitude": 72.5}, "condition": "fair"},
    ).get_json()["monument"]
    project = client.post(
        "/api/projects",
        json={
            "name": "Stepwell Restoration",
            "monumentId": monument["id"],
            "budget": 100000,
            "timeline": {"start": "2025-01-01", "end": "2025-12-31"},
            "status": "active",
            "contractorId": team["contractor"].id,
            "workers": [{"id": team["worker"].id}],
        },
    ).get_json()["project"]
    saved = client.post(
        f"/api/projects/{project['id']}/milestones",
        json={"milestones": [{"id": "new_1", "name": "Survey", "budget": 30000}]},
    ).get_json()["project"]
    return saved


def test_project_creation_requires_known_monument(client, login, team):
    login(team["admin"])

    response = client.post("/api/projects", json={"name": "X", "monumentId": "monument_nope"})

    assert response.status_code == 400


def test_monument_edit_records_history(client, login, team):
    login(team["admin"])
    monument = client.post(
        "/api/monuments", json={"name": "Fort", "location": {}, "condition": "good"}
    ).get_json()["monument"]

    updated = client.put(f"/api/monuments/{monument['id']}", json={"condition": "poor"}).get_json()["monument"]

    assert updated["editHistory"][0]["changes"] == [{"field": "condition", "oldValue": "good", "newValue": "poor"}]


def test_project_visibility(client, login, team, api_project):
    path = f"/api/projects/{api_project['id']}"

    login(team["outsider"])
    assert client.get(path).status_code == 403
    assert client.get("/api/projects").get_json() == []

    login(team["worker"])
    assert client.get(path).status_code == 200

    login(team["finance"])
    assert client.get(path).status_code == 200


def test_milestone_editor_checks_project_visibility(client, login, team, api_project):
    login(team["outsider"])

    response = client.post(
        f"/api/projects/{api_project['id']}/milestones", json={"milestones": [{"id": "new_1", "name": "Rogue"}]}
    )

    assert response.status_code == 403
    assert response.get_json()["message"] == "You do not have access to this project."


def test_lifecycle_through_the_api(client, login, team, api_project):
    base = f"/api/projects/{api_project['id']}/milestones/{api_project['milestones'][0]['id']}"

    login(team["worker"])
    assert client.post(f"{base}/start").status_code == 403

    login(team["contractor"])
    started = client.post(f"{base}/start")
    assert started.get_json()["milestone"]["status"] == "active"
    assert client.post(f"{base}/start").get_json()["code"] == "invalid_transition"

    login(team["worker"])
    assert client.post(f"{base}/submit-inspection").status_code == 200
    proof = client.post(f"{base}/proof", json={"proofOfWork": {"photos": {"during": ["/uploads/images/x.jpg"]}}})
    assert proof.get_json()["milestone"]["proofOfWork"]["photos"]["during"] == ["/uploads/images/x.jpg"]

    login(team["qm"])
    assert client.post(f"{base}/add-inspection", json={"visitDate": "2025-03-01", "feedback": "Good"}).status_code == 200
    assert client.post(f"{base}/forward-inspection").status_code == 200

    login(team["admin"])
    approved = client.post(f"{base}/approve-inspection").get_json()["milestone"]
    assert approved["status"] == "completed"

    login(team["finance"])
    billed = client.post(f"{base}/add-bill", json={"billDetails": {"amount": 30000}}).get_json()["milestone"]
    assert billed["financial_record"]["submittedBy"] == "Fatima"

    detail = client.get(base).get_json()
    assert detail["projectName"] == "Stepwell Restoration"

    login(team["admin"])
    stats = client.get("/api/stats").get_json()
    assert stats["totalSpent"] == 30000
    assert stats["completedMilestones"] == 1


def test_unknown_milestone_is_404(client, login, team, api_project):
    login(team["contractor"])

    response = client.post(f"/api/projects/{api_project['id']}/milestones/milestone_nope/start")

    assert response.status_code == 404
    assert response.get_json()["code"] == "not_found"


# ---------------------------------------------------------------------
# dashboards
# ---------------------------------------------------------------------
def test_dashboard_access(client, login, team, api_project):
    login(team["contractor"])
    assert client.get("/api/stats").status_code == 403
    assert client.get("/api/contractor").get_json()["totalProjects"] == 1
    assert client.get(f"/api/worker?workerId={team['worker'].id}").status_code == 200
    assert client.get(f"/api/contractor?contractorId={team['outsider'].id}").status_code == 403

    login(team["worker"])
    assert client.get("/api/worker").get_json()["totalProjects"] == 1


# ---------------------------------------------------------------------
# uploads
# ---------------------------------------------------------------------
def test_upload_and_delete(client, login, team):
    login(team["worker"])

    response = client.post(
        "/api/upload",
        data={"category": "images", "file": (io.BytesIO(b"jpeg"), "site photo.jpg")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 201
    path = response.get_json()["path"]
    assert path.startswith("/uploads/images/")
    assert path.endswith("site_photo.jpg")

    assert client.get(path).data == b"jpeg"
    assert client.post("/api/upload/delete", json={"path": path}).status_code == 200
    assert client.post("/api/upload/delete", json={"path": path}).status_code == 404


def test_upload_rejects_bad_input(client, login, team):
    login(team["worker"])

    bad_type = client.post(
        "/api/upload",
        data={"category": "images", "file": (io.BytesIO(b"x"), "script.exe")},
        content_type="multipart/form-data",
    )
    traversal = client.post("/api/upload/delete", json={"path": "/uploads/../config.py"})

    assert bad_type.status_code == 400
    assert traversal.status_code == 400
