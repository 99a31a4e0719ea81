"""
Thesis Progress Tracker
Schedule domain models.

Models:
    - Month: top-level period of the thesis plan
    - Week: closable unit of work inside a month
    - Activity: piece of work planned for a week (research, code, writing…)
    - Task: checklist item under an activity
    - Kpi: measurable indicator attached to a task
    - EvidenceRequirement: proof a task must produce (link, file path, note)

Parents own their children; deleting a parent cascades down the tree.
"""

from datetime import datetime, timezone

from thesis_tracker.models import db


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_CATEGORIES = ("Research", "Code", "Writing", "Configuration", "Evaluation")

KPI_DATA_TYPES = ("numeric", "boolean", "percentage", "text")


# ── Month ────────────────────────────────────────────────────────────────────


class Month(db.Model):
    __tablename__ = "months"

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False, unique=True, comment="1-based month ordinal")
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    weeks = db.relationship(
        "Week", backref="month", lazy="select",
        cascade="all, delete-orphan",
        order_by="Week.number",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "number": self.number,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Month {self.number}: {self.name}>"


# ── Week ─────────────────────────────────────────────────────────────────────


class Week(db.Model):
    """
    A closable week.  ``closed`` only ever moves False → True and only
    through the closure service; it is not writable via generic update.
    """

    __tablename__ = "weeks"
    __table_args__ = (
        db.UniqueConstraint("month_id", "number", name="uq_weeks_month_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    month_id = db.Column(
        db.Integer, db.ForeignKey("months.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    number = db.Column(db.Integer, nullable=False, comment="week ordinal")
    title = db.Column(db.String(200), nullable=False)
    closed = db.Column(db.Boolean, nullable=False, default=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    activities = db.relationship(
        "Activity", backref="week", lazy="select",
        cascade="all, delete-orphan",
        order_by=lambda: [Activity.sort_order, Activity.id],
    )

    def to_dict(self):
        return {
            "id": self.id,
            "month_id": self.month_id,
            "number": self.number,
            "title": self.title,
            "closed": self.closed,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Week {self.number}: {self.title} closed={self.closed}>"


# ── Activity ─────────────────────────────────────────────────────────────────


class Activity(db.Model):
    __tablename__ = "activities"

    id = db.Column(db.Integer, primary_key=True)
    week_id = db.Column(
        db.Integer, db.ForeignKey("weeks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    description = db.Column(db.String(500), nullable=False)
    category = db.Column(
        db.String(30), nullable=False, default="Research",
        comment="Research | Code | Writing | Configuration | Evaluation",
    )
    closing_criterion = db.Column(db.Text, nullable=True)
    is_critical = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    tasks = db.relationship(
        "Task", backref="activity", lazy="select",
        cascade="all, delete-orphan",
        order_by=lambda: [Task.sort_order, Task.id],
    )

    def to_dict(self):
        return {
            "id": self.id,
            "week_id": self.week_id,
            "description": self.description,
            "category": self.category,
            "closing_criterion": self.closing_criterion,
            "is_critical": self.is_critical,
            "sort_order": self.sort_order,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ── Task ─────────────────────────────────────────────────────────────────────


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    description = db.Column(db.String(500), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    is_critical = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="critical on its own, independent of the owning activity",
    )
    estimated_hours = db.Column(db.Float, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    kpis = db.relationship(
        "Kpi", backref="task", lazy="select",
        cascade="all, delete-orphan",
        order_by="Kpi.id",
    )
    evidence = db.relationship(
        "EvidenceRequirement", backref="task", lazy="select",
        cascade="all, delete-orphan",
        order_by="EvidenceRequirement.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "description": self.description,
            "completed": self.completed,
            "is_critical": self.is_critical,
            "estimated_hours": self.estimated_hours,
            "sort_order": self.sort_order,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ── KPI ──────────────────────────────────────────────────────────────────────


class Kpi(db.Model):
    __tablename__ = "kpis"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    metric_name = db.Column(db.String(200), nullable=False)
    data_type = db.Column(
        db.String(20), nullable=False, default="numeric",
        comment="numeric | boolean | percentage | text",
    )
    target_value = db.Column(db.String(200), nullable=False, default="")
    unit = db.Column(db.String(50), nullable=True)
    current_value = db.Column(db.String(200), nullable=True)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    min_value = db.Column(db.Float, nullable=True)
    max_value = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "metric_name": self.metric_name,
            "data_type": self.data_type,
            "target_value": self.target_value,
            "unit": self.unit,
            "current_value": self.current_value,
            "is_required": self.is_required,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ── Evidence requirement ─────────────────────────────────────────────────────


class EvidenceRequirement(db.Model):
    __tablename__ = "evidence_requirements"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    expected_file_type = db.Column(db.String(50), nullable=True)
    requirements_description = db.Column(db.Text, nullable=True)
    value = db.Column(db.Text, nullable=True, comment="recorded link / path / note")
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "name": self.name,
            "expected_file_type": self.expected_file_type,
            "requirements_description": self.requirements_description,
            "value": self.value,
            "is_required": self.is_required,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
