"""
Tension Hub
Structural-tension chart models.

Models:
    - Chart:             one structural-tension plan (root, or telescoped from an Action)
    - Vision:            desired-state statement inside a chart
    - Reality:           current-state statement inside a chart
    - Tension:           named gap-to-close grouping Actions inside a chart
    - Action:            executable step; may be telescoped into a child Chart
    - ActionDependency:  blocker → blocked edge between Actions (workspace-wide)

Architecture:
    Chart ──1:N──▶ Tension ──1:N──▶ Action
    Chart ──1:N──▶ Action          (tension_id NULL = attached directly to the chart)
    Action ──0:1──▶ Chart          (child_chart_id, the telescoping edge)
    Chart ──0:1──▶ Action          (parent_action_id, back-reference kept through archive)
    Action ──N:M──▶ Action         (via ActionDependency)

The Action → Chart and Chart → Action pointers are plain indexed columns
rather than foreign keys: either side may legitimately be stale (archived
subtrees, legacy rows) and the hierarchy services keep them consistent.

Lifecycle states:
    Chart:   active → completed  (archived_at is orthogonal)
    Action:  not_started → in_progress → done | on_hold | cancelled
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from tension_hub.models import db
from tension_hub.models.archive import ArchivableMixin


# ── Constants ────────────────────────────────────────────────────────────────


class ActionStatus(str, Enum):
    """Canonical action status kinds."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


# Values written by older clients, mapped onto the canonical kinds.
LEGACY_STATUS_ALIASES = {
    "todo": ActionStatus.NOT_STARTED,
    "pending": ActionStatus.ON_HOLD,
    "canceled": ActionStatus.CANCELLED,
}

CLOSED_ACTION_STATUSES = frozenset({ActionStatus.DONE, ActionStatus.CANCELLED})

CHART_STATUSES = {"active", "completed"}


def _uuid() -> str:
    return str(uuid.uuid4())


def _now():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Chart
# ═════════════════════════════════════════════════════════════════════════════


class Chart(ArchivableMixin, db.Model):
    """
    A structural-tension plan.
    Root charts have no parent_action_id; telescoped charts point back at the
    Action whose child_chart_id references them.
    """

    __tablename__ = "charts"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(db.String(36), nullable=True, index=True)
    title = db.Column(db.String(300), nullable=False, default="Untitled chart")
    description = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="active",
        comment="active | completed",
    )
    parent_action_id = db.Column(
        db.String(36), nullable=True, index=True,
        comment="Action that telescoped this chart (NULL for root charts)",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    tensions = db.relationship(
        "Tension", backref="chart", lazy="dynamic",
        cascade="all", passive_deletes=True,
    )
    actions = db.relationship(
        "Action", backref="chart", lazy="dynamic",
        cascade="all", passive_deletes=True,
        foreign_keys="Action.chart_id",
    )
    visions = db.relationship(
        "Vision", backref="chart", lazy="dynamic",
        cascade="all", passive_deletes=True,
    )
    realities = db.relationship(
        "Reality", backref="chart", lazy="dynamic",
        cascade="all", passive_deletes=True,
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('active','completed')",
            name="ck_chart_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "description": self.description,
            "due_date": _iso(self.due_date),
            "status": self.status,
            "parent_action_id": self.parent_action_id,
            "archived_at": _iso(self.archived_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Chart {self.id}: {self.title}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Vision / Reality
# ═════════════════════════════════════════════════════════════════════════════


class Vision(db.Model):
    """Desired-state statement inside a chart."""

    __tablename__ = "visions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    chart_id = db.Column(
        db.String(36), db.ForeignKey("charts.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    content = db.Column(db.Text, nullable=False, default="")
    assignee = db.Column(db.String(255), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "chart_id": self.chart_id,
            "content": self.content,
            "assignee": self.assignee,
            "due_date": _iso(self.due_date),
            "created_at": _iso(self.created_at),
        }


class Reality(db.Model):
    """Current-state statement inside a chart."""

    __tablename__ = "realities"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    chart_id = db.Column(
        db.String(36), db.ForeignKey("charts.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    content = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "chart_id": self.chart_id,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. Tension
# ═════════════════════════════════════════════════════════════════════════════


class Tension(db.Model):
    """Named gap-to-close grouping Actions inside a chart."""

    __tablename__ = "tensions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    chart_id = db.Column(
        db.String(36), db.ForeignKey("charts.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False, default="")
    area = db.Column(db.String(100), nullable=True, comment="Optional area tag")
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    actions = db.relationship(
        "Action", backref="tension", lazy="dynamic",
        cascade="all", passive_deletes=True,
        foreign_keys="Action.tension_id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "chart_id": self.chart_id,
            "title": self.title,
            "area": self.area,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 4. Action
# ═════════════════════════════════════════════════════════════════════════════


class Action(db.Model):
    """
    Executable step inside a chart.
    ``status`` may hold legacy values or be NULL; readers go through
    ``services.records.normalize_status`` instead of trusting it directly.
    """

    __tablename__ = "actions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    chart_id = db.Column(
        db.String(36), db.ForeignKey("charts.id", ondelete="CASCADE"),
        nullable=False, index=True,
        comment="Owning chart (set even when the action sits under a tension)",
    )
    tension_id = db.Column(
        db.String(36), db.ForeignKey("tensions.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    title = db.Column(db.String(300), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(30), nullable=True,
        comment="not_started | in_progress | done | on_hold | cancelled (legacy values tolerated)",
    )
    is_completed = db.Column(db.Boolean, nullable=True, default=False, comment="Legacy completion flag")
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    assignee = db.Column(db.String(255), nullable=True, comment="Assignee email")

    # Telescoping
    child_chart_id = db.Column(db.String(36), nullable=True, index=True)
    sub_chart_id = db.Column(db.String(36), nullable=True, index=True, comment="Legacy child chart pointer")
    has_sub_chart = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    blocks = db.relationship(
        "ActionDependency", lazy="dynamic",
        foreign_keys="ActionDependency.blocker_action_id",
        cascade="all", passive_deletes=True,
    )
    blocked_by = db.relationship(
        "ActionDependency", lazy="dynamic",
        foreign_keys="ActionDependency.blocked_action_id",
        cascade="all", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "chart_id": self.chart_id,
            "tension_id": self.tension_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "is_completed": bool(self.is_completed),
            "due_date": _iso(self.due_date),
            "assignee": self.assignee,
            "child_chart_id": self.child_chart_id,
            "has_sub_chart": bool(self.has_sub_chart),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Action {self.id}: {self.title}>"


# ═════════════════════════════════════════════════════════════════════════════
# 5. ActionDependency
# ═════════════════════════════════════════════════════════════════════════════


class ActionDependency(db.Model):
    """
    Blocker → blocked edge. The blocker must finish before the blocked action
    can proceed. Edges may cross charts; duplicates and cycles are not
    prevented here, the analytics layer walks the graph defensively.
    """

    __tablename__ = "action_dependencies"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    blocker_action_id = db.Column(
        db.String(36), db.ForeignKey("actions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    blocked_action_id = db.Column(
        db.String(36), db.ForeignKey("actions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "blocker_action_id": self.blocker_action_id,
            "blocked_action_id": self.blocked_action_id,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ActionDependency {self.blocker_action_id} → {self.blocked_action_id}>"
