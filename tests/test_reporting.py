from datetime import datetime, timedelta, timezone

from wms import reporting, store
from wms.errors import PersistenceError
from wms.models import Role

NOW = datetime(2025, 6, 15, tzinfo=timezone.utc)


def _project(**fields):
    project = {
        "id": "project_1",
        "name": "Temple Tank",
        "monumentId": "monument_1",
        "budget": 100000,
        "status": "active",
        "timeline": {"start": "2025-01-01", "end": "2025-12-31"},
        "milestones": [],
        "editHistory": [],
    }
    project.update(fields)
    return project


def _entry(at, by="Ravi"):
    return {"id": f"edit_{at}", "editedAt": at, "editedBy": by, "changes": []}


# ---------------------------------------------------------------------
# per-project figures
# ---------------------------------------------------------------------
def test_spent_budget_counts_completed_milestones_only():
    project = _project(
        milestones=[
            {"id": "m1", "status": "completed", "budget": 30000},
            {"id": "m2", "status": "active", "budget": 20000},
        ]
    )

    summary = reporting.project_summary(project, NOW)

    assert summary["spentBudget"] == 30000
    assert summary["remainingBudget"] == 70000
    assert summary["budgetUtilization"] == 30
    assert summary["progressPercentage"] == 50
    assert summary["completedMilestones"] == 1
    assert summary["activeMilestones"] == 1


def test_malformed_budgets_count_as_zero():
    project = _project(budget="lots", milestones=[{"status": "completed", "budget": None}])

    summary = reporting.project_summary(project, NOW)

    assert summary["spentBudget"] == 0
    assert summary["remainingBudget"] == 0
    assert summary["budgetUtilization"] == 0


def test_overdue_active_project():
    project = _project(timeline={"start": "2025-01-01", "end": "2025-06-10"})

    assert reporting.timeline_alert(project, NOW) == {"type": "overdue", "days": 5}


def test_partial_days_round_up():
    project = _project(timeline={"start": "2025-01-01", "end": "2025-06-14T23:00:00Z"})

    assert reporting.timeline_alert(project, NOW) == {"type": "overdue", "days": 1}


def test_upcoming_scheduled_project():
    project = _project(status="scheduled", timeline={"start": "2025-06-18", "end": "2025-09-01"})

    assert reporting.timeline_alert(project, NOW) == {"type": "upcoming", "days": 3}


def test_active_milestone_makes_project_active():
    project = _project(
        status="on_hold",
        timeline={"start": "2025-01-01", "end": "2025-06-01"},
        milestones=[{"id": "m1", "status": "active", "budget": 0}],
    )

    assert reporting.is_project_active(project)
    assert reporting.timeline_alert(project, NOW)["type"] == "overdue"


def test_no_alert_without_dates_or_when_on_track():
    assert reporting.timeline_alert(_project(timeline={"start": "", "end": ""}), NOW) is None
    assert reporting.timeline_alert(_project(), NOW) is None


# ---------------------------------------------------------------------
# activity feed
# ---------------------------------------------------------------------
def test_activity_is_newest_first_across_entities():
    project = _project(
        editHistory=[_entry("2025-06-12T10:00:00.000Z")],
        milestones=[
            {"id": "m1", "name": "Survey", "status": "active", "editHistory": [_entry("2025-06-14T10:00:00.000Z")]},
            {"id": "m2", "name": "Desilting", "status": "pending", "editHistory": [_entry("2025-06-13T10:00:00.000Z")]},
        ],
    )

    feed = reporting.collect_activity([project], limit=10)

    assert [item["date"] for item in feed] == [
        "2025-06-14T10:00:00.000Z",
        "2025-06-13T10:00:00.000Z",
        "2025-06-12T10:00:00.000Z",
    ]
    assert feed[0]["type"] == "Milestone Update"
    assert feed[0]["link"] == "/WMS/projects/project_1/milestones/m1"
    assert feed[2]["type"] == "Project Update"


def test_activity_is_capped_and_filtered():
    history = [_entry(f"2025-06-{day:02d}T00:00:00.000Z", by="Ravi" if day % 2 else "Sita") for day in range(1, 11)]
    project = _project(milestones=[{"id": "m1", "name": "Survey", "editHistory": history}])

    assert len(reporting.collect_activity([project], limit=7)) == 7

    only_sita = reporting.collect_activity([project], 15, lambda entry, p, m: entry["editedBy"] == "Sita")
    assert len(only_sita) == 5
    assert only_sita[0]["date"] == "2025-06-10T00:00:00.000Z"


# ---------------------------------------------------------------------
# dashboards
# ---------------------------------------------------------------------
def _save_projects(projects):
    store.write_document("projects", {"projects": projects}, 0)


def test_dashboard_caps_upcoming_and_orders_alerts(app):
    upcoming = [
        _project(id=f"project_up{i}", status="scheduled", timeline={"start": (NOW + timedelta(days=i)).isoformat(), "end": ""})
        for i in (7, 3, 1, 6, 2, 5, 4)
    ]
    overdue = [
        _project(id=f"project_late{i}", timeline={"start": "2025-01-01", "end": (NOW - timedelta(days=i)).isoformat()})
        for i in (2, 9, 4)
    ]
    _save_projects(upcoming + overdue)

    stats = reporting.dashboard_stats(now=NOW)

    assert [p["timelineAlert"]["days"] for p in stats["upcomingProjects"]] == [1, 2, 3, 4, 5]
    assert [p["timelineAlert"]["days"] for p in stats["overdueProjects"]] == [9, 4, 2]
    assert stats["totalProjects"] == 10
    assert stats["totalBudget"] == 1000000


def test_dashboard_budget_totals(app, make_user):
    make_user(Role.ADMIN)
    _save_projects(
        [
            _project(
                milestones=[
                    {"id": "m1", "status": "completed", "budget": 30000},
                    {"id": "m2", "status": "pending", "budget": 20000},
                ]
            )
        ]
    )

    stats = reporting.dashboard_stats(now=NOW)

    assert stats["totalSpent"] == 30000
    assert stats["totalRemaining"] == 70000
    assert stats["totalMilestones"] == 2
    assert stats["pendingMilestones"] == 1
    assert stats["totalUsers"] == 1
    assert stats["usersByRole"]["admin"] == 1


def test_dashboard_degrades_when_store_fails(app, monkeypatch):
    def broken(name):
        raise PersistenceError(f"Could not read {name}.")

    monkeypatch.setattr(store, "read_document", broken)

    stats = reporting.dashboard_stats(now=NOW)

    assert stats["totalProjects"] == 0
    assert stats["totalMonuments"] == 0
    assert stats["totalBudget"] == 0
    assert stats["recentActivity"] == []


def test_contractor_stats_cover_own_projects_and_team(app, make_user):
    contractor = make_user(Role.CONTRACTOR, "Kiran")
    worker = make_user(Role.WORKER, "Manoj", created_by=contractor)
    make_user(Role.WORKER, "Other Worker")
    _save_projects(
        [
            _project(
                id="project_mine",
                contractorId=contractor.id,
                status="completed",
                milestones=[
                    {
                        "id": "m1",
                        "name": "Survey",
                        "status": "completed",
                        "budget": 40000,
                        "editHistory": [_entry("2025-06-10T00:00:00.000Z", "Manoj"), _entry("2025-06-09T00:00:00.000Z", "Stranger")],
                    }
                ],
            ),
            _project(id="project_theirs", contractorId=9999),
        ]
    )

    stats = reporting.contractor_stats(contractor, now=NOW)

    assert stats["totalProjects"] == 1
    assert stats["totalWorkers"] == 1
    assert stats["contractorWorkers"][0]["id"] == worker.id
    assert stats["totalEarnings"] == 40000
    assert stats["completionRate"] == 100
    assert [a["user"] for a in stats["recentActivity"]] == ["Manoj"]


def test_worker_stats_cover_assigned_projects(app, make_user):
    contractor = make_user(Role.CONTRACTOR, "Kiran")
    worker = make_user(Role.WORKER, "Manoj", created_by=contractor)
    _save_projects(
        [
            _project(
                id="project_assigned",
                workers=[{"id": worker.id, "name": "Manoj"}],
                milestones=[
                    {"id": "m1", "name": "Survey", "status": "active", "editHistory": [_entry("2025-06-10T00:00:00.000Z", "Manoj")]},
                    {"id": "m2", "name": "Desilting", "status": "pending", "editHistory": []},
                ],
            ),
            _project(id="project_other", workers=[]),
        ]
    )

    stats = reporting.worker_stats(worker, now=NOW)

    assert stats["totalProjects"] == 1
    assert stats["activeMilestones"] == 1
    assert stats["pendingMilestones"] == 1
    assert stats["workerInfo"]["contractor"]["name"] == "Kiran"
    assert len(stats["recentActivity"]) == 1
