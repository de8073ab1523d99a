"""
Recommendation Ranker.

Bucket-then-truncate, not a weighted score:

    priority 1  critical_blocker      overdue action blocking ≥ 1 action
    priority 2  deadline_approaching  open action due in 0..DEADLINE_RECOMMEND_DAYS days
    priority 3  stale_chart           chart untouched for ≥ STALE_RECOMMEND_DAYS days

Candidates are emitted in input order per kind, stable-sorted by priority
and cut to RECOMMENDATION_LIMIT. A lower-priority kind only shows up when
the higher ones leave room.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

CRITICAL_BLOCKER_PRIORITY = 1
DEADLINE_PRIORITY = 2
STALE_PRIORITY = 3


class RecommendationKind(str, Enum):
    CRITICAL_BLOCKER = "critical_blocker"
    DEADLINE_APPROACHING = "deadline_approaching"
    STALE_CHART = "stale_chart"


@dataclass(frozen=True)
class Recommendation:
    kind: RecommendationKind
    priority: int
    title: str
    description: str
    chart_id: str
    action_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "chart_id": self.chart_id,
            "action_id": self.action_id,
        }


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def rank(
    impacts,
    deadlines,
    stale,
    *,
    deadline_days: int = 3,
    stale_days: int = 14,
    limit: int = 5,
) -> list[Recommendation]:
    """Merge delay impacts, upcoming deadlines and stale charts into one list."""
    candidates = []

    for impact in impacts:
        blocked = len(impact.blocked_actions)
        if blocked < 1:
            continue
        people = len(impact.affected_people)
        candidates.append(Recommendation(
            kind=RecommendationKind.CRITICAL_BLOCKER,
            priority=CRITICAL_BLOCKER_PRIORITY,
            title=impact.action.title,
            description=(
                f"Blocking {_plural(blocked, 'action')}, "
                f"affecting {'1 person' if people == 1 else f'{people} people'}"
            ),
            chart_id=impact.action.chart_id,
            action_id=impact.action.id,
        ))

    for deadline in deadlines:
        if deadline.is_overdue or not 0 <= deadline.days_until_due <= deadline_days:
            continue
        candidates.append(Recommendation(
            kind=RecommendationKind.DEADLINE_APPROACHING,
            priority=DEADLINE_PRIORITY,
            title=deadline.title,
            description=(
                "Due today" if deadline.days_until_due == 0
                else f"Due in {_plural(deadline.days_until_due, 'day')}"
            ),
            chart_id=deadline.chart_id,
            action_id=deadline.id,
        ))

    for chart in stale:
        if chart.days_since_update < stale_days:
            continue
        candidates.append(Recommendation(
            kind=RecommendationKind.STALE_CHART,
            priority=STALE_PRIORITY,
            title=chart.title,
            description=f"No updates for {_plural(chart.days_since_update, 'day')}",
            chart_id=chart.id,
        ))

    candidates.sort(key=lambda r: r.priority)
    return candidates[:limit]
