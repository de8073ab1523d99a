"""
Chart Hierarchy Mutator — cascading state changes across a chart subtree.

Operations (each covers the target chart plus every descendant):
    - archive_chart:  stamp archived_at, sever the forward edges into the subtree
    - restore_chart:  clear archived_at, re-link each chart to its parent action
    - delete_chart:   sever every pointer into the subtree, then delete
                      (``DeleteMode.SEVER``: target only, subtree orphaned;
                       ``DeleteMode.CASCADE``: the whole subtree)

Plus the chart lifecycle operations that create or relink hierarchy edges:
    - create_chart, telescope_action
    - update_chart_status (syncs the parent action), update_action_status

Every cascade runs in one transaction. Any store failure rolls the whole
subtree back and surfaces as CascadeError; a half-archived subtree is never
committed.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from tension_hub.core.exceptions import (
    CascadeError,
    InconsistentStructureError,
    StoreUnavailableError,
    ValidationError,
)
from tension_hub.models.chart import (
    CHART_STATUSES,
    LEGACY_STATUS_ALIASES,
    Action,
    ActionStatus,
    Chart,
    Vision,
)
from tension_hub.services.hierarchy_resolver import descendants
from tension_hub.services.record_store import RecordStore
from tension_hub.services.records import action_record, chart_record, normalize_status
from tension_hub.utils.helpers import get_setting, parse_datetime

logger = logging.getLogger(__name__)

_ACCEPTED_STATUS_KEYS = {s.value for s in ActionStatus} | set(LEGACY_STATUS_ALIASES)


class DeleteMode(str, Enum):
    """What happens to the subtree below a deleted chart."""

    SEVER = "sever"
    CASCADE = "cascade"


def _resolve_delete_mode(mode) -> DeleteMode:
    raw = mode if mode is not None else get_setting("CHART_DELETE_MODE", DeleteMode.SEVER.value)
    try:
        return DeleteMode(raw)
    except ValueError:
        raise ValidationError(
            f"Unknown delete mode {raw!r}",
            details={"mode": raw, "allowed": [m.value for m in DeleteMode]},
        ) from None


@contextmanager
def _cascade(store: RecordStore, operation: str, chart_id: str):
    try:
        with store.transaction():
            yield
    except (StoreUnavailableError, SQLAlchemyError) as exc:
        logger.error(
            "%s cascade rolled back for chart id=%s: %s", operation, chart_id, exc,
            extra={"chart_id": chart_id, "operation": operation},
        )
        raise CascadeError(operation, chart_id, cause=exc) from exc


def _sever_pointers(store: RecordStore, chart_ids: list[str]) -> list[str]:
    """Null every action pointer (current and legacy) into ``chart_ids``."""
    severed = {}
    for column in ("child_chart_id", "sub_chart_id"):
        for action in store.find_many_by_ids(Action, chart_ids, field=column):
            fields = {column: None}
            if column == "child_chart_id" or action.child_chart_id is None:
                fields["has_sub_chart"] = False
            store.update(Action, action.id, **fields)
            severed[action.id] = True
    return list(severed)


# ── Archive / Restore ────────────────────────────────────────────────────────


def archive_chart(store: RecordStore, chart_id: str, *, now: datetime | None = None) -> dict:
    """
    Archive a chart and its descendants.

    The charts keep their ``parent_action_id`` so restore_chart can re-link
    them. Charts already archived keep their original timestamp.

    Returns:
        dict with keys: chart_id, archived (ids), severed_actions (ids)
    """
    store.get(Chart, chart_id)
    now = now or datetime.now(timezone.utc)
    with _cascade(store, "archive", chart_id):
        affected = [chart_id] + sorted(descendants(store, chart_id))
        for chart in store.find_many_by_ids(Chart, affected):
            if chart.archived_at is None:
                chart.archive(now)
        severed = _sever_pointers(store, affected)

    logger.info(
        "Archived chart id=%s (%d charts, %d actions severed)",
        chart_id, len(affected), len(severed),
        extra={"chart_id": chart_id, "operation": "archive", "affected_count": len(affected)},
    )
    return {"chart_id": chart_id, "archived": affected, "severed_actions": severed}


def restore_chart(store: RecordStore, chart_id: str) -> dict:
    """
    Restore an archived chart and its descendants.

    Forward edges were cleared by the archive, so the subtree is found
    through ``parent_action_id`` back-references. Each chart is re-linked
    to its own parent action. A chart comes back as a root, with its
    ``parent_action_id`` cleared, when that action no longer exists or
    has since been telescoped into another chart that still exists.
    """
    store.get(Chart, chart_id)
    relinked, missing, conflicting = [], [], []
    with _cascade(store, "restore", chart_id):
        affected = [chart_id] + sorted(descendants(store, chart_id, include_detached=True))
        for chart in store.find_many_by_ids(Chart, affected):
            chart.unarchive()
            if not chart.parent_action_id:
                continue
            parent = store.find_by_id(Action, chart.parent_action_id)
            if parent is None:
                logger.warning(
                    "Restore: chart id=%s references missing parent action id=%s",
                    chart.id, chart.parent_action_id, extra={"chart_id": chart.id},
                )
                missing.append(chart.id)
                store.update(Chart, chart.id, parent_action_id=None)
                continue
            current = action_record(parent).child_chart_id
            if current not in (None, chart.id) and store.find_by_id(Chart, current) is not None:
                logger.warning(
                    "Restore: parent action id=%s of chart id=%s now links chart id=%s",
                    parent.id, chart.id, current, extra={"chart_id": chart.id},
                )
                conflicting.append(parent.id)
                store.update(Chart, chart.id, parent_action_id=None)
                continue
            store.update(Action, parent.id, child_chart_id=chart.id, has_sub_chart=True)
            relinked.append(parent.id)

    logger.info(
        "Restored chart id=%s (%d charts, %d actions relinked)",
        chart_id, len(affected), len(relinked),
        extra={"chart_id": chart_id, "operation": "restore", "affected_count": len(affected)},
    )
    return {
        "chart_id": chart_id,
        "restored": affected,
        "relinked_actions": relinked,
        "missing_parent_actions": missing,
        "conflicting_parent_actions": conflicting,
    }


def list_archived_charts(store: RecordStore, workspace_id: str | None = None) -> list[dict]:
    """Archived root charts (no parent action), most recently archived first."""
    filters = {"archived_at__is_null": False, "parent_action_id__is_null": True}
    if workspace_id is not None:
        filters["workspace_id"] = workspace_id
    return [
        chart_record(c).to_dict()
        for c in store.find_many(Chart, order_by="-archived_at", **filters)
    ]


# ── Delete ───────────────────────────────────────────────────────────────────


def delete_chart(store: RecordStore, chart_id: str, *, mode=None) -> dict:
    """
    Delete a chart after severing every action pointer into its subtree.

    SEVER deletes the target only. Pointers inside the surviving subtree are
    severed too, so every descendant loses its ``parent_action_id`` and
    becomes a root reachable by id. CASCADE deletes the whole subtree.
    """
    mode = _resolve_delete_mode(mode)
    store.get(Chart, chart_id)
    with _cascade(store, "delete", chart_id):
        subtree = sorted(descendants(store, chart_id, include_detached=True))
        affected = [chart_id] + subtree
        severed = _sever_pointers(store, affected)

        orphaned = []
        if mode is DeleteMode.CASCADE:
            deleted = affected
        else:
            deleted = [chart_id]
            # Every pointer into the subtree is gone, so no back-reference may survive either.
            for chart in store.find_many_by_ids(Chart, subtree):
                if chart.parent_action_id:
                    store.update(Chart, chart.id, parent_action_id=None)
                    orphaned.append(chart.id)

        for cid in reversed(deleted):
            store.delete(Chart, cid)

    logger.info(
        "Deleted chart id=%s mode=%s (%d deleted, %d actions severed)",
        chart_id, mode.value, len(deleted), len(severed),
        extra={"chart_id": chart_id, "operation": "delete", "affected_count": len(deleted)},
    )
    return {
        "chart_id": chart_id,
        "mode": mode.value,
        "deleted": deleted,
        "orphaned": orphaned,
        "severed_actions": severed,
    }


# ── Create / Telescope ───────────────────────────────────────────────────────


def create_chart(store: RecordStore, data: dict) -> Chart:
    """Create a root chart."""
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    try:
        due_date = parse_datetime(data.get("due_date"))
    except ValueError as exc:
        raise ValidationError(f"Invalid due_date: {exc}", details={"due_date": "invalid"}) from exc

    with store.transaction():
        chart = store.insert(
            Chart,
            workspace_id=data.get("workspace_id"),
            title=title,
            description=data.get("description"),
            due_date=due_date,
        )
    logger.info("Chart created id=%s", chart.id, extra={"chart_id": chart.id})
    return chart


def telescope_action(store: RecordStore, action_id: str) -> tuple[Chart, bool]:
    """
    Turn an action into a link to a new child chart.

    Idempotent: an action that already has a live child chart returns it.
    The child inherits the action's title, due date and the parent chart's
    workspace, and is seeded with a Vision from the action.

    Returns:
        (child_chart, created)

    Raises:
        InconsistentStructureError: the existing child chart claims a
            different parent action.
    """
    action = store.get(Action, action_id)
    existing = action_record(action).child_chart_id
    if existing:
        child = store.find_by_id(Chart, existing)
        if child is not None:
            if child.parent_action_id not in (None, action.id):
                raise InconsistentStructureError(
                    f"Chart id={child.id} is linked from action id={action.id} "
                    f"but belongs to action id={child.parent_action_id}",
                    chart_id=child.id,
                )
            return child, False
        logger.warning(
            "Action id=%s points at missing chart id=%s; telescoping again",
            action_id, existing, extra={"action_id": action_id},
        )

    parent = store.get(Chart, action.chart_id)
    with store.transaction():
        child = store.insert(
            Chart,
            workspace_id=parent.workspace_id,
            title=action.title or "Untitled chart",
            due_date=action.due_date,
            parent_action_id=action.id,
        )
        store.insert(
            Vision,
            chart_id=child.id,
            content=action.title or "",
            assignee=action.assignee,
            due_date=action.due_date,
        )
        store.update(Action, action.id, child_chart_id=child.id, sub_chart_id=None, has_sub_chart=True)

    logger.info(
        "Action id=%s telescoped into chart id=%s", action_id, child.id,
        extra={"action_id": action_id, "chart_id": child.id},
    )
    return child, True


# ── Status sync ──────────────────────────────────────────────────────────────


def update_action_status(store: RecordStore, action_id: str, status) -> Action:
    """Write the canonical status and keep the legacy completion flag in sync."""
    if status is None or not str(status).strip():
        raise ValidationError("status is required", details={"status": "required"})
    key = str(status).strip().lower().replace("-", "_")
    if key not in _ACCEPTED_STATUS_KEYS:
        raise ValidationError(
            f"Unknown action status {status!r}",
            details={"allowed": [s.value for s in ActionStatus]},
        )
    canonical = normalize_status(key)
    store.get(Action, action_id)
    with store.transaction():
        action = store.update(
            Action, action_id,
            status=canonical.value,
            is_completed=canonical is ActionStatus.DONE,
        )
    logger.info(
        "Action id=%s status=%s", action_id, canonical.value, extra={"action_id": action_id},
    )
    return action


def update_chart_status(store: RecordStore, chart_id: str, status: str) -> dict:
    """
    Set a chart active/completed and mirror it onto the parent action.

    completed → parent action done; active → parent action back to
    in_progress. A missing parent action is logged, the chart still updates.
    """
    if status not in CHART_STATUSES:
        raise ValidationError(
            f"Invalid chart status {status!r}",
            details={"allowed": sorted(CHART_STATUSES)},
        )
    chart = store.get(Chart, chart_id)
    parent_action = None
    with store.transaction():
        chart = store.update(Chart, chart_id, status=status)
        if chart.parent_action_id:
            if store.find_by_id(Action, chart.parent_action_id) is None:
                logger.warning(
                    "Chart id=%s references missing parent action id=%s",
                    chart_id, chart.parent_action_id, extra={"chart_id": chart_id},
                )
            else:
                done = status == "completed"
                parent_action = store.update(
                    Action, chart.parent_action_id,
                    status=(ActionStatus.DONE if done else ActionStatus.IN_PROGRESS).value,
                    is_completed=done,
                )

    logger.info("Chart id=%s status=%s", chart_id, status, extra={"chart_id": chart_id})
    return {
        "chart": chart.to_dict(),
        "parent_action": parent_action.to_dict() if parent_action else None,
    }
