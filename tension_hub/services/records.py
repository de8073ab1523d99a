"""
Read-boundary normalization.

Rows leave the record store through these converters and nothing past this
point looks at the legacy columns again:

    - ``status`` / ``is_completed``  → one canonical ``ActionStatus``
    - ``child_chart_id`` / ``sub_chart_id`` → one ``child_chart_id``
    - naive timestamps (SQLite) → UTC-aware
    - assignee strings → trimmed, empty → None

The records are frozen dataclasses so the analytics code can share them
freely within one computation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from tension_hub.models.chart import CLOSED_ACTION_STATUSES, LEGACY_STATUS_ALIASES, ActionStatus
from tension_hub.utils.helpers import ensure_utc

UNTITLED = "(untitled)"


def normalize_status(status: str | None, is_completed: bool | None = None) -> ActionStatus:
    """Reconcile the stored status and the legacy completion flag.

    Absent status: ``is_completed`` true → done, otherwise not-started.
    Unknown values fall back to not-started; this never raises.
    """
    if status is None or (isinstance(status, str) and not status.strip()):
        return ActionStatus.DONE if is_completed else ActionStatus.NOT_STARTED
    if isinstance(status, ActionStatus):
        return status
    key = str(status).strip().lower().replace("-", "_")
    if key in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[key]
    try:
        return ActionStatus(key)
    except ValueError:
        return ActionStatus.NOT_STARTED


def normalize_assignee(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class ChartRecord:
    id: str
    title: str
    workspace_id: str | None = None
    status: str = "active"
    due_date: datetime | None = None
    parent_action_id: str | None = None
    archived_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "workspace_id": self.workspace_id,
            "status": self.status,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "parent_action_id": self.parent_action_id,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class ActionRecord:
    id: str
    title: str
    chart_id: str
    status: ActionStatus = ActionStatus.NOT_STARTED
    tension_id: str | None = None
    due_date: datetime | None = None
    assignee: str | None = None
    child_chart_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_ACTION_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        return self.due_date is not None and not self.is_closed and self.due_date < now


@dataclass(frozen=True)
class ProfileRecord:
    id: str
    email: str
    name: str | None = None

    @property
    def display_name(self) -> str:
        return (self.name or self.email).strip() or self.email


@dataclass(frozen=True)
class Person:
    """Resolved assignee identity. ``id`` is None when no profile matched."""

    id: str | None
    name: str
    email: str | None = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


# ── Model → record converters ────────────────────────────────────────────────


def chart_record(chart) -> ChartRecord:
    return ChartRecord(
        id=chart.id,
        title=chart.title or UNTITLED,
        workspace_id=chart.workspace_id,
        status=chart.status or "active",
        due_date=ensure_utc(chart.due_date),
        parent_action_id=chart.parent_action_id,
        archived_at=ensure_utc(chart.archived_at),
        created_at=ensure_utc(chart.created_at),
        updated_at=ensure_utc(chart.updated_at),
    )


def action_record(action) -> ActionRecord:
    return ActionRecord(
        id=action.id,
        title=action.title or UNTITLED,
        chart_id=action.chart_id,
        status=normalize_status(action.status, action.is_completed),
        tension_id=action.tension_id,
        due_date=ensure_utc(action.due_date),
        assignee=normalize_assignee(action.assignee),
        child_chart_id=action.child_chart_id or action.sub_chart_id,
        created_at=ensure_utc(action.created_at),
        updated_at=ensure_utc(action.updated_at),
    )


def profile_record(profile) -> ProfileRecord:
    return ProfileRecord(id=profile.id, email=profile.email, name=profile.name)


def person_for(email: str | None, profiles_by_email: dict[str, ProfileRecord]) -> Person | None:
    """Resolve an assignee email against profiles (case-exact, trimmed)."""
    email = normalize_assignee(email)
    if email is None:
        return None
    profile = profiles_by_email.get(email)
    if profile is None:
        return None
    return Person(id=profile.id, name=profile.display_name, email=profile.email)
