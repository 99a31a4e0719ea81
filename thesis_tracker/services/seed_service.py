"""
Demo plan seeding.

Builds a 6-month / 24-week thesis plan: every week gets one critical
technical activity (task + required KPI + required evidence) and one
non-critical documentation activity.  Goes through the regular entity
service so every row is audited like any other create.

Usage:
    flask --app wsgi seed-demo
"""

import logging

from sqlalchemy import func, select

from thesis_tracker.models import db
from thesis_tracker.models.schedule import Month
from thesis_tracker.services.entity_service import create_entity

logger = logging.getLogger(__name__)

SEED_ACTOR = "system"

DEMO_MONTHS = [
    ("Foundations", "Problem statement, scope and supervisor alignment"),
    ("Literature Review", "State of the art and related work"),
    ("Data & Environment", "Datasets, tooling and experiment setup"),
    ("Implementation", "Core technical contribution"),
    ("Evaluation", "Experiments, metrics and analysis"),
    ("Writing & Defense", "Manuscript, review rounds and defense"),
]

WEEKS_PER_MONTH = 4


def seed_demo_plan() -> dict:
    """Create the demo plan when no months exist yet.

    Returns counts of created rows; all zeros when the store was not empty.
    """
    existing = db.session.execute(select(func.count(Month.id))).scalar_one()
    counts = {"months": 0, "weeks": 0, "activities": 0, "tasks": 0, "kpis": 0, "evidence": 0}
    if existing:
        logger.info("Seed skipped: %d month(s) already present", existing)
        return counts

    week_no = 0
    for month_no, (name, description) in enumerate(DEMO_MONTHS, start=1):
        month = create_entity("months", {
            "number": month_no, "name": name, "description": description,
        }, actor=SEED_ACTOR)
        counts["months"] += 1

        for _ in range(WEEKS_PER_MONTH):
            week_no += 1
            week = create_entity("weeks", {
                "month_id": month["id"], "number": week_no,
                "title": f"Week {week_no}: Technical execution",
            }, actor=SEED_ACTOR)
            counts["weeks"] += 1

            critical = create_entity("activities", {
                "week_id": week["id"], "description": f"Critical technical activity W{week_no}",
                "category": "Code", "is_critical": True, "sort_order": 1,
            }, actor=SEED_ACTOR)
            docs = create_entity("activities", {
                "week_id": week["id"], "description": f"Progress documentation W{week_no}",
                "category": "Writing", "is_critical": False, "sort_order": 2,
            }, actor=SEED_ACTOR)
            counts["activities"] += 2

            task = create_entity("tasks", {
                "activity_id": critical["id"], "description": f"Run experiment batch W{week_no}",
            }, actor=SEED_ACTOR)
            create_entity("kpis", {
                "task_id": task["id"], "metric_name": "RMSE / Accuracy",
                "data_type": "numeric", "target_value": "0.9", "is_required": True,
            }, actor=SEED_ACTOR)
            create_entity("evidence", {
                "task_id": task["id"], "name": "Results notebook (path or link)",
                "is_required": True,
            }, actor=SEED_ACTOR)

            doc_task = create_entity("tasks", {
                "activity_id": docs["id"], "description": f"Write progress notes W{week_no}",
            }, actor=SEED_ACTOR)
            create_entity("kpis", {
                "task_id": doc_task["id"], "metric_name": "Pages",
                "data_type": "numeric", "target_value": "3", "is_required": False,
            }, actor=SEED_ACTOR)
            counts["tasks"] += 2
            counts["kpis"] += 2
            counts["evidence"] += 1

    logger.info("Demo plan seeded: %s", counts)
    return counts
