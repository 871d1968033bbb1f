from wms import repository
from wms.models import User
from wms.seed import seed_demo_data


def test_seed_is_idempotent(app):
    first = seed_demo_data()
    second = seed_demo_data()

    assert first == second == {"users": 6, "monuments": 1, "projects": 1}
    project = repository.list_projects()[0]
    assert [m["name"] for m in project["milestones"]] == ["Structural survey", "East wall consolidation"]
    assert project["contractorName"] == "Heritage Builders"


def test_seeded_worker_belongs_to_contractor(app):
    seed_demo_data()

    worker = User.query.filter_by(role="worker").one()

    assert worker.created_by.role == "contractor"


def test_cli_commands(app):
    runner = app.test_cli_runner()

    assert "Database tables created." in runner.invoke(args=["init-db"]).output
    result = runner.invoke(args=["seed-demo"])

    assert result.exit_code == 0
    assert "Demo data seeded" in result.output
