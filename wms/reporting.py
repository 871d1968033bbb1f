"""
wms/reporting.py

Dashboard statistics derived from the full entity set.

Nothing is cached: every call reads the monuments/projects documents and the
users table and recomputes budgets, timeline alerts and activity feeds.
Read failures degrade to zeros / empty lists so a dashboard still renders.

Per project:
    spentBudget     = sum(milestone.budget for completed milestones)
    remainingBudget = project.budget - spentBudget
    isActive        = project.status == active or any milestone active
    timelineAlert   = upcoming (scheduled, starts in the future)
                      | overdue (active, end date passed)
                      | None
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from . import store
from .errors import PersistenceError
from .extensions import db
from .models import MilestoneStatus, ProjectStatus, Role, User
from .repository import MONUMENTS, PROJECTS
from .utils import amount_or_zero, as_utc, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

ActivityFilter = Callable[[Dict[str, Any], Dict[str, Any], Optional[Dict[str, Any]]], bool]


# ---------------------------------------------------------------------
# Per-project figures
# ---------------------------------------------------------------------
def _milestones(project: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [m for m in project.get("milestones") or [] if isinstance(m, dict)]


def spent_budget(project: Dict[str, Any]) -> int | float:
    return sum(
        amount_or_zero(m.get("budget"))
        for m in _milestones(project)
        if m.get("status") == MilestoneStatus.COMPLETED.value
    )


def is_project_active(project: Dict[str, Any]) -> bool:
    if project.get("status") == ProjectStatus.ACTIVE.value:
        return True
    return any(m.get("status") == MilestoneStatus.ACTIVE.value for m in _milestones(project))


def _ceil_days(seconds: float) -> int:
    return math.ceil(seconds / SECONDS_PER_DAY)


def timeline_alert(
    project: Dict[str, Any],
    now: datetime,
    is_active: Optional[bool] = None,
) -> Optional[Dict[str, Any]]:
    """
    upcoming: scheduled project whose start is still ahead, days until start.
    overdue:  active project whose end has passed, days past the end.
    """
    now = as_utc(now)
    if is_active is None:
        is_active = is_project_active(project)
    timeline = project.get("timeline") or {}
    start = parse_timestamp(timeline.get("start"))
    end = parse_timestamp(timeline.get("end"))

    if project.get("status") == ProjectStatus.SCHEDULED.value and start and start > now:
        return {"type": "upcoming", "days": _ceil_days((start - now).total_seconds())}
    if is_active and end and end < now:
        return {"type": "overdue", "days": _ceil_days((now - end).total_seconds())}
    return None


def _milestone_counts(milestones: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    counts = {"totalMilestones": 0, "pendingMilestones": 0, "activeMilestones": 0, "completedMilestones": 0}
    for milestone in milestones:
        counts["totalMilestones"] += 1
        status = milestone.get("status")
        if status == MilestoneStatus.COMPLETED.value:
            counts["completedMilestones"] += 1
        elif status == MilestoneStatus.ACTIVE.value:
            counts["activeMilestones"] += 1
        else:
            counts["pendingMilestones"] += 1
    return counts


def _evidence_counts(milestones: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    photos = documents = 0
    for milestone in milestones:
        proof = milestone.get("proofOfWork") or {}
        for items in (proof.get("photos") or {}).values():
            photos += len(items or [])
        documents += len(proof.get("documents") or [])
        if milestone.get("document"):
            documents += 1
    return {"totalPhotos": photos, "totalDocuments": documents}


def project_summary(
    project: Dict[str, Any],
    now: datetime,
    monuments_by_id: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Project fields plus derived budget, progress, evidence and alert figures."""
    milestones = _milestones(project)
    budget = amount_or_zero(project.get("budget"))
    spent = spent_budget(project)
    active = is_project_active(project)
    counts = _milestone_counts(milestones)

    summary = {
        **project,
        "budget": budget,
        "spentBudget": spent,
        "remainingBudget": budget - spent,
        "budgetUtilization": round(spent / budget * 100) if budget > 0 else 0,
        "isActive": active,
        "timelineAlert": timeline_alert(project, now, active),
        "progressPercentage": (
            round(counts["completedMilestones"] / counts["totalMilestones"] * 100)
            if counts["totalMilestones"]
            else 0
        ),
        **counts,
        **_evidence_counts(milestones),
    }
    if monuments_by_id is not None:
        monument = monuments_by_id.get(project.get("monumentId")) or {}
        summary["monumentName"] = monument.get("name", "Unknown Monument")
    return summary


# ---------------------------------------------------------------------
# Activity feed
# ---------------------------------------------------------------------
def _activity_sort_key(item: Dict[str, Any]) -> datetime:
    return parse_timestamp(item.get("date")) or _OLDEST


def collect_activity(
    projects: Iterable[Dict[str, Any]],
    limit: int,
    predicate: Optional[ActivityFilter] = None,
) -> List[Dict[str, Any]]:
    """
    Merge every project and milestone history entry into one feed,
    newest first, capped to limit.

    predicate(entry, project, milestone_or_None) filters entries.
    """
    feed: List[Dict[str, Any]] = []
    for project in projects:
        project_id = project.get("id")
        project_name = project.get("name")

        for entry in project.get("editHistory") or []:
            if predicate and not predicate(entry, project, None):
                continue
            feed.append(
                {
                    "type": "Project Update",
                    "text": f"{entry.get('editedBy')} updated project: {project_name}",
                    "date": entry.get("editedAt"),
                    "user": entry.get("editedBy"),
                    "link": f"/WMS/projects/{project_id}",
                    "projectId": project_id,
                    "milestoneId": None,
                    "changes": entry.get("changes") or [],
                }
            )

        for milestone in _milestones(project):
            milestone_id = milestone.get("id")
            for entry in milestone.get("editHistory") or []:
                if predicate and not predicate(entry, project, milestone):
                    continue
                feed.append(
                    {
                        "type": "Milestone Update",
                        "text": f"{entry.get('editedBy')} updated milestone: {milestone.get('name')} in {project_name}",
                        "date": entry.get("editedAt"),
                        "user": entry.get("editedBy"),
                        "link": f"/WMS/projects/{project_id}/milestones/{milestone_id}",
                        "projectId": project_id,
                        "milestoneId": milestone_id,
                        "changes": entry.get("changes") or [],
                        "importance": "high" if milestone.get("status") == MilestoneStatus.COMPLETED.value else "medium",
                    }
                )

    feed.sort(key=_activity_sort_key, reverse=True)
    return feed[:limit]


# ---------------------------------------------------------------------
# Degrading reads
# ---------------------------------------------------------------------
def _safe_items(name: str) -> List[Dict[str, Any]]:
    try:
        document, _ = store.read_document(name)
    except PersistenceError:
        logger.warning("Dashboard could not read %s; using empty list", name, extra={"document": name})
        return []
    return [item for item in document.get(name) or [] if isinstance(item, dict)]


def _safe_users(**filters: Any) -> List[User]:
    try:
        return User.query.filter_by(**filters).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Dashboard could not read users; using empty list")
        return []


def _config_limit(key: str, default: int) -> int:
    return int(current_app.config.get(key, default))


def _sum(values: Iterable[int | float]) -> int | float:
    return sum(values, 0)


# ---------------------------------------------------------------------
# Dashboards
# ---------------------------------------------------------------------
def dashboard_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Admin dashboard: headline counts, budget donut, alerts and recent activity."""
    now = as_utc(now) if now else utcnow()
    projects = _safe_items(PROJECTS)
    monuments = _safe_items(MONUMENTS)
    users = _safe_users()
    monuments_by_id = {m.get("id"): m for m in monuments}

    summaries = [project_summary(p, now, monuments_by_id) for p in projects]
    all_milestones = [m for p in projects for m in _milestones(p)]

    upcoming = sorted(
        (s for s in summaries if (s["timelineAlert"] or {}).get("type") == "upcoming"),
        key=lambda s: s["timelineAlert"]["days"],
    )[: _config_limit("UPCOMING_ALERT_LIMIT", 5)]
    overdue = sorted(
        (s for s in summaries if (s["timelineAlert"] or {}).get("type") == "overdue"),
        key=lambda s: s["timelineAlert"]["days"],
        reverse=True,
    )

    total_budget = _sum(s["budget"] for s in summaries)
    total_spent = _sum(s["spentBudget"] for s in summaries)

    monument_analytics = []
    for monument in monuments:
        related = [s for s in summaries if s.get("monumentId") == monument.get("id")]
        monument_analytics.append(
            {
                "id": monument.get("id"),
                "name": monument.get("name"),
                "condition": monument.get("condition"),
                "totalProjects": len(related),
                "activeProjects": sum(1 for s in related if s["isActive"]),
                "totalBudget": _sum(s["budget"] for s in related),
                "spentBudget": _sum(s["spentBudget"] for s in related),
            }
        )

    role_counts: Dict[str, int] = {role.value: 0 for role in Role}
    for user in users:
        role_counts[user.role] = role_counts.get(user.role, 0) + 1

    return {
        "totalUsers": len(users),
        "usersByRole": role_counts,
        "totalMonuments": len(monuments),
        "totalProjects": len(projects),
        "activeProjectsCount": sum(1 for s in summaries if s["isActive"]),
        **_milestone_counts(all_milestones),
        "totalBudget": total_budget,
        "totalSpent": total_spent,
        "totalRemaining": total_budget - total_spent,
        "upcomingProjects": upcoming,
        "overdueProjects": overdue,
        "recentActivity": collect_activity(projects, _config_limit("RECENT_ACTIVITY_LIMIT", 7)),
        "detailedProjectsList": summaries,
        "monumentAnalytics": monument_analytics,
        "userAnalytics": [u.to_dict() for u in users],
        "generatedAt": now.isoformat(),
    }


def _same_id(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def contractor_stats(contractor: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Contractor dashboard: own projects, own workers, earnings and team activity."""
    now = as_utc(now) if now else utcnow()
    projects = [p for p in _safe_items(PROJECTS) if _same_id(p.get("contractorId"), contractor.id)]
    monuments_by_id = {m.get("id"): m for m in _safe_items(MONUMENTS)}
    workers = _safe_users(role=Role.WORKER.value, created_by_id=contractor.id)
    worker_names = {w.name for w in workers}

    summaries = [project_summary(p, now, monuments_by_id) for p in projects]
    completed = sum(1 for s in summaries if s.get("status") == ProjectStatus.COMPLETED.value)

    def by_team(entry, project, milestone):
        return milestone is not None and (
            entry.get("editedBy") == contractor.name or entry.get("editedBy") in worker_names
        )

    return {
        "totalProjects": len(summaries),
        "activeProjects": sum(
            1 for s in summaries
            if s.get("status") in (ProjectStatus.ACTIVE.value, ProjectStatus.SCHEDULED.value)
        ),
        "completedProjects": completed,
        "totalWorkers": len(workers),
        "totalEarnings": _sum(s["spentBudget"] for s in summaries),
        "completionRate": round(completed / len(summaries) * 100) if summaries else 0,
        "overdueProjects": [s for s in summaries if (s["timelineAlert"] or {}).get("type") == "overdue"],
        "contractorProjects": summaries,
        "contractorInfo": contractor.to_dict(),
        "contractorWorkers": [w.to_dict() for w in workers],
        "recentActivity": collect_activity(projects, _config_limit("WORKER_ACTIVITY_LIMIT", 15), by_team),
    }


def worker_stats(worker: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Worker dashboard: assigned projects, their milestones and the worker's own activity."""
    now = as_utc(now) if now else utcnow()
    projects = [
        p for p in _safe_items(PROJECTS)
        if any(_same_id((w or {}).get("id"), worker.id) for w in p.get("workers") or [] if isinstance(w, dict))
    ]
    monuments_by_id = {m.get("id"): m for m in _safe_items(MONUMENTS)}
    summaries = [project_summary(p, now, monuments_by_id) for p in projects]

    def by_worker(entry, project, milestone):
        return milestone is not None and entry.get("editedBy") == worker.name

    contractor = worker.created_by
    return {
        "totalProjects": len(summaries),
        "activeProjects": sum(1 for s in summaries if s.get("status") == ProjectStatus.ACTIVE.value),
        "completedProjects": sum(1 for s in summaries if s.get("status") == ProjectStatus.COMPLETED.value),
        **_milestone_counts(m for p in projects for m in _milestones(p)),
        "workerProjects": summaries,
        "workerInfo": {
            **worker.to_dict(),
            "contractor": contractor.to_dict() if contractor is not None else None,
        },
        "recentActivity": collect_activity(projects, _config_limit("WORKER_ACTIVITY_LIMIT", 15), by_worker),
    }
