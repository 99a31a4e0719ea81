"""
Hierarchy assembly: flat joined rows → Month/Week/Activity/Task/KPI/Evidence tree.

The store answers one left-joined query whose rows repeat every ancestor
column.  KPIs and evidence requirements are both joined on the task, so a task
with N KPIs and M evidence items comes back as N×M rows; the assembler
deduplicates each leaf list independently by (task id, leaf id).  A NULL id at
any level means "no child at this level" and never creates a node.

Usage:
    from thesis_tracker.services.hierarchy import load_structure, ordered_weeks

    tree = load_structure()          # fresh read, never cached
    for position, week in enumerate(ordered_weeks(tree), start=1):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import select

from thesis_tracker.models import db
from thesis_tracker.models.schedule import (
    Activity,
    EvidenceRequirement,
    Kpi,
    Month,
    Task,
    Week,
)

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Tree nodes
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class KpiNode:
    id: int
    task_id: int
    metric_name: str
    data_type: str
    target_value: str | None = None
    unit: str | None = None
    current_value: str | None = None
    is_required: bool = False
    min_value: float | None = None
    max_value: float | None = None


@dataclass
class EvidenceNode:
    id: int
    task_id: int
    name: str
    value: str | None = None
    is_required: bool = False
    expected_file_type: str | None = None
    requirements_description: str | None = None


@dataclass
class TaskNode:
    id: int
    activity_id: int
    description: str
    completed: bool = False
    is_critical: bool = False
    estimated_hours: float | None = None
    sort_order: int = 0
    kpis: list[KpiNode] = field(default_factory=list)
    evidence: list[EvidenceNode] = field(default_factory=list)


@dataclass
class ActivityNode:
    id: int
    week_id: int
    description: str
    category: str
    is_critical: bool = False
    closing_criterion: str | None = None
    sort_order: int = 0
    tasks: list[TaskNode] = field(default_factory=list)


@dataclass
class WeekNode:
    id: int
    month_id: int
    number: int
    title: str
    closed: bool = False
    activities: list[ActivityNode] = field(default_factory=list)

    def iter_tasks(self):
        for activity in self.activities:
            yield from activity.tasks


@dataclass
class MonthNode:
    id: int
    number: int
    name: str
    description: str | None = None
    weeks: list[WeekNode] = field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════════════
# Assembler
# ═════════════════════════════════════════════════════════════════════════════


def _flag(value: Any) -> bool:
    # SQLite hands booleans back as 0/1
    return bool(value) if value is not None else False


def assemble_hierarchy(rows: Iterable[Mapping[str, Any]]) -> list[MonthNode]:
    """Nest flat joined rows into an ordered list of month trees.

    Row keys follow the labels produced by :func:`fetch_flat_rows`
    (``month_id``, ``week_id``, ``activity_id``, ``task_id``, ``kpi_id``,
    ``evidence_id`` plus the per-level attribute columns).  Missing keys read
    as NULL.  Children keep first-seen order.
    """
    months: list[MonthNode] = []
    month_index: dict[int, MonthNode] = {}
    week_index: dict[tuple[int, int], WeekNode] = {}
    activity_index: dict[tuple[int, int], ActivityNode] = {}
    task_index: dict[tuple[int, int], TaskNode] = {}
    seen_kpis: set[tuple[int, int]] = set()
    seen_evidence: set[tuple[int, int]] = set()

    for row in rows:
        month_id = row.get("month_id")
        if month_id is None:
            continue

        month = month_index.get(month_id)
        if month is None:
            month = MonthNode(
                id=month_id,
                number=row.get("month_number"),
                name=row.get("month_name"),
                description=row.get("month_description"),
            )
            month_index[month_id] = month
            months.append(month)

        week_id = row.get("week_id")
        if week_id is None:
            continue
        week = week_index.get((month_id, week_id))
        if week is None:
            week = WeekNode(
                id=week_id,
                month_id=month_id,
                number=row.get("week_number"),
                title=row.get("week_title"),
                closed=_flag(row.get("week_closed")),
            )
            week_index[(month_id, week_id)] = week
            month.weeks.append(week)

        activity_id = row.get("activity_id")
        if activity_id is None:
            continue
        activity = activity_index.get((week_id, activity_id))
        if activity is None:
            activity = ActivityNode(
                id=activity_id,
                week_id=week_id,
                description=row.get("activity_description"),
                category=row.get("activity_category"),
                is_critical=_flag(row.get("activity_is_critical")),
                closing_criterion=row.get("activity_closing_criterion"),
                sort_order=row.get("activity_sort_order") or 0,
            )
            activity_index[(week_id, activity_id)] = activity
            week.activities.append(activity)

        task_id = row.get("task_id")
        if task_id is None:
            continue
        task = task_index.get((activity_id, task_id))
        if task is None:
            task = TaskNode(
                id=task_id,
                activity_id=activity_id,
                description=row.get("task_description"),
                completed=_flag(row.get("task_completed")),
                is_critical=_flag(row.get("task_is_critical")),
                estimated_hours=row.get("task_estimated_hours"),
                sort_order=row.get("task_sort_order") or 0,
            )
            task_index[(activity_id, task_id)] = task
            activity.tasks.append(task)

        # Leaf fan-out: KPI and evidence lists are deduplicated independently.
        kpi_id = row.get("kpi_id")
        if kpi_id is not None and (task_id, kpi_id) not in seen_kpis:
            seen_kpis.add((task_id, kpi_id))
            task.kpis.append(KpiNode(
                id=kpi_id,
                task_id=task_id,
                metric_name=row.get("kpi_metric_name"),
                data_type=row.get("kpi_data_type"),
                target_value=row.get("kpi_target_value"),
                unit=row.get("kpi_unit"),
                current_value=row.get("kpi_current_value"),
                is_required=_flag(row.get("kpi_is_required")),
                min_value=row.get("kpi_min_value"),
                max_value=row.get("kpi_max_value"),
            ))

        evidence_id = row.get("evidence_id")
        if evidence_id is not None and (task_id, evidence_id) not in seen_evidence:
            seen_evidence.add((task_id, evidence_id))
            task.evidence.append(EvidenceNode(
                id=evidence_id,
                task_id=task_id,
                name=row.get("evidence_name"),
                value=row.get("evidence_value"),
                is_required=_flag(row.get("evidence_is_required")),
                expected_file_type=row.get("evidence_expected_file_type"),
                requirements_description=row.get("evidence_requirements_description"),
            ))

    return months


# ═════════════════════════════════════════════════════════════════════════════
# Store access
# ═════════════════════════════════════════════════════════════════════════════


def _structure_query():
    return (
        select(
            Month.id.label("month_id"),
            Month.number.label("month_number"),
            Month.name.label("month_name"),
            Month.description.label("month_description"),
            Week.id.label("week_id"),
            Week.number.label("week_number"),
            Week.title.label("week_title"),
            Week.closed.label("week_closed"),
            Activity.id.label("activity_id"),
            Activity.description.label("activity_description"),
            Activity.category.label("activity_category"),
            Activity.is_critical.label("activity_is_critical"),
            Activity.closing_criterion.label("activity_closing_criterion"),
            Activity.sort_order.label("activity_sort_order"),
            Task.id.label("task_id"),
            Task.description.label("task_description"),
            Task.completed.label("task_completed"),
            Task.is_critical.label("task_is_critical"),
            Task.estimated_hours.label("task_estimated_hours"),
            Task.sort_order.label("task_sort_order"),
            Kpi.id.label("kpi_id"),
            Kpi.metric_name.label("kpi_metric_name"),
            Kpi.data_type.label("kpi_data_type"),
            Kpi.target_value.label("kpi_target_value"),
            Kpi.unit.label("kpi_unit"),
            Kpi.current_value.label("kpi_current_value"),
            Kpi.is_required.label("kpi_is_required"),
            Kpi.min_value.label("kpi_min_value"),
            Kpi.max_value.label("kpi_max_value"),
            EvidenceRequirement.id.label("evidence_id"),
            EvidenceRequirement.name.label("evidence_name"),
            EvidenceRequirement.value.label("evidence_value"),
            EvidenceRequirement.is_required.label("evidence_is_required"),
            EvidenceRequirement.expected_file_type.label("evidence_expected_file_type"),
            EvidenceRequirement.requirements_description.label("evidence_requirements_description"),
        )
        .select_from(Month)
        .outerjoin(Week, Week.month_id == Month.id)
        .outerjoin(Activity, Activity.week_id == Week.id)
        .outerjoin(Task, Task.activity_id == Activity.id)
        .outerjoin(Kpi, Kpi.task_id == Task.id)
        .outerjoin(EvidenceRequirement, EvidenceRequirement.task_id == Task.id)
        .order_by(
            Month.number,
            Week.id,
            Activity.sort_order, Activity.id,
            Task.sort_order, Task.id,
            Kpi.id,
            EvidenceRequirement.id,
        )
    )


def fetch_flat_rows() -> list[dict]:
    """Run the single left-joined structure query and return plain dict rows."""
    result = db.session.execute(_structure_query()).mappings().all()
    return [dict(row) for row in result]


def load_structure() -> list[MonthNode]:
    """Fetch and assemble the full tree.  Always reads from the store."""
    rows = fetch_flat_rows()
    tree = assemble_hierarchy(rows)
    logger.debug("Structure loaded: %d rows → %d months", len(rows), len(tree))
    return tree


# ═════════════════════════════════════════════════════════════════════════════
# Tree helpers
# ═════════════════════════════════════════════════════════════════════════════


def ordered_weeks(tree: list[MonthNode]) -> list[WeekNode]:
    """All weeks in ordinal order: month number, then week number, then id."""
    pairs = [(month, week) for month in tree for week in month.weeks]
    pairs.sort(key=lambda mw: (mw[0].number, mw[1].number, mw[1].id))
    return [week for _, week in pairs]


def find_week(tree: list[MonthNode], week_id: int) -> tuple[int, WeekNode | None, WeekNode | None]:
    """Locate a week by id.

    Returns ``(position, week, previous_week)`` where ``position`` is the
    1-based ordinal position (0 when not found) and ``previous_week`` is the
    week immediately before it, or None for the first week.
    """
    weeks = ordered_weeks(tree)
    for idx, week in enumerate(weeks):
        if week.id == week_id:
            previous = weeks[idx - 1] if idx > 0 else None
            return idx + 1, week, previous
    return 0, None, None


def structure_to_dicts(tree: list[MonthNode]) -> list[dict]:
    """Serialise the tree for the API, annotating each week with ``is_locked``
    (open while the week before it is still open) and ``position``."""
    locks: dict[int, tuple[int, bool]] = {}
    previous = None
    for position, week in enumerate(ordered_weeks(tree), start=1):
        locked = not week.closed and previous is not None and not previous.closed
        locks[week.id] = (position, locked)
        previous = week

    out = []
    for month in tree:
        data = asdict(month)
        for week_data in data["weeks"]:
            position, locked = locks[week_data["id"]]
            week_data["position"] = position
            week_data["is_locked"] = locked
        out.append(data)
    return out
