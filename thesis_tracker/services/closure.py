"""
Week closure service.

A week moves from open to closed only through :func:`attempt_close`.  Four
gates are checked in order and the first failure is raised:

  1. Sequential : the week before it (by ordinal position) is closed
  2. Critical   : every critical task is completed
  3. KPI        : every required KPI on a critical task has a value
  4. Evidence   : every required evidence item on a critical task has a value

A task is critical when its activity is critical or the task itself is.
Weeks without critical tasks only need gate 1.  Closing is terminal:
a closed week cannot be closed again and there is no reopen.

Usage:
    from thesis_tracker.services.closure import check_closure_readiness, attempt_close

    readiness = check_closure_readiness(week_id)
    if readiness["ready"]:
        attempt_close(week_id, actor="jdoe")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from thesis_tracker.core.exceptions import (
    ClosureError,
    CriticalTasksPendingError,
    MissingEvidenceError,
    MissingKpiValuesError,
    NotFoundError,
    PriorWeekOpenError,
    WeekAlreadyClosedError,
)
from thesis_tracker.models import db
from thesis_tracker.models.audit import write_audit
from thesis_tracker.models.schedule import Week
from thesis_tracker.services.audit_service import resolve_actor
from thesis_tracker.services.hierarchy import TaskNode, WeekNode, find_week, load_structure

logger = logging.getLogger(__name__)


def _blank(value) -> bool:
    return value is None or not str(value).strip()


def critical_tasks(week: WeekNode) -> list[TaskNode]:
    return [
        task
        for activity in week.activities
        for task in activity.tasks
        if activity.is_critical or task.is_critical
    ]


def evaluate_gates(week: WeekNode, previous: WeekNode | None, position: int) -> list[ClosureError]:
    """Evaluate all four gates without side effects, in gate order.

    *position* is the week's 1-based ordinal position in the plan.
    """
    failures: list[ClosureError] = []

    if previous is not None and not previous.closed:
        failures.append(PriorWeekOpenError(position - 1, previous.number, previous.id))

    critical = critical_tasks(week)

    pending = [t.description for t in critical if not t.completed]
    if pending:
        failures.append(CriticalTasksPendingError(pending))

    missing_kpis = [
        k.metric_name
        for t in critical
        for k in t.kpis
        if k.is_required and _blank(k.current_value)
    ]
    if missing_kpis:
        failures.append(MissingKpiValuesError(missing_kpis))

    missing_evidence = [
        e.name
        for t in critical
        for e in t.evidence
        if e.is_required and _blank(e.value)
    ]
    if missing_evidence:
        failures.append(MissingEvidenceError(missing_evidence))

    return failures


def _locate(week_id: int) -> tuple[int, WeekNode, WeekNode | None]:
    position, node, previous = find_week(load_structure(), week_id)
    if node is None:
        raise NotFoundError(resource="Week", resource_id=week_id)
    return position, node, previous


def check_closure_readiness(week_id: int) -> dict:
    """
    Report every blocking gate for a week without changing anything.

    Returns:
        {
            "ready": bool,
            "week_id": int,
            "closed": bool,
            "position": int,
            "blockers": [{"gate", "message", ...details}],
            "stats": {"critical_tasks", "completed_critical_tasks"},
        }
    """
    position, node, previous = _locate(week_id)
    failures = [] if node.closed else evaluate_gates(node, previous, position)
    critical = critical_tasks(node)

    return {
        "ready": not node.closed and not failures,
        "week_id": node.id,
        "closed": node.closed,
        "position": position,
        "blockers": [{"message": str(f), **f.details} for f in failures],
        "stats": {
            "critical_tasks": len(critical),
            "completed_critical_tasks": sum(1 for t in critical if t.completed),
        },
    }


def attempt_close(week_id: int, actor: str | None = None) -> dict:
    """
    Close a week if every gate passes.

    Raises:
        NotFoundError: unknown week.
        WeekAlreadyClosedError: the week is already closed (no side effect).
        ClosureError: the first failing gate (no side effect).

    Returns:
        The closed week as a dict.
    """
    week = db.session.get(Week, week_id)
    if week is None:
        raise NotFoundError(resource="Week", resource_id=week_id)
    if week.closed:
        raise WeekAlreadyClosedError(week.id, week.number)

    position, node, previous = _locate(week_id)
    failures = evaluate_gates(node, previous, position)
    if failures:
        first = failures[0]
        logger.info("Week close rejected: week=%s gate=%s", week_id, first.gate)
        raise first

    week.closed = True
    week.closed_at = datetime.now(timezone.utc)
    db.session.flush()
    write_audit(
        entity_type="week",
        entity_id=week.id,
        action="UPDATE",
        actor=resolve_actor(actor),
        diff={"closed": {"old": False, "new": True}},
    )
    db.session.commit()
    logger.info("Week closed: id=%s number=%s", week.id, week.number)
    return week.to_dict()
