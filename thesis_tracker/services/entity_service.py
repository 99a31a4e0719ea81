"""
Generic create/update/delete (ABM) for the six schedule entity kinds.

Rules:
  - Dispatch is over the closed :class:`EntityKind` set; each kind has a typed
    field schema.  Unknown fields are rejected, never passed to the model.
  - ``Week.closed`` is in no schema: closure goes through
    :mod:`thesis_tracker.services.closure` only.
  - Parent foreign keys are set on create and cannot change afterwards.
  - Anything under a closed week is frozen (create, update and delete).
  - Every successful mutation appends exactly one audit row in the same
    transaction; delete requires a reason.
  - db.session.commit() happens only in this file.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import select

from thesis_tracker.core.exceptions import (
    ClosedHistoryError,
    NotFoundError,
    ReasonRequiredError,
    ValidationError,
    WeekFrozenError,
)
from thesis_tracker.models import db
from thesis_tracker.models.audit import write_audit
from thesis_tracker.models.schedule import (
    ACTIVITY_CATEGORIES,
    KPI_DATA_TYPES,
    Activity,
    EvidenceRequirement,
    Kpi,
    Month,
    Task,
    Week,
)
from thesis_tracker.services.audit_service import resolve_actor

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Schemas
# ═════════════════════════════════════════════════════════════════════════════


class EntityKind(str, Enum):
    MONTH = "months"
    WEEK = "weeks"
    ACTIVITY = "activities"
    TASK = "tasks"
    KPI = "kpis"
    EVIDENCE = "evidence"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: type
    required: bool = False
    nullable: bool = False
    max_length: int | None = None
    choices: tuple[str, ...] | None = None
    updatable: bool = True


@dataclass(frozen=True)
class EntitySchema:
    kind: EntityKind
    model: type
    label: str
    audit_type: str
    fields: tuple[FieldSpec, ...]
    parent_field: str | None = None
    parent_model: type | None = None

    def field(self, name: str) -> FieldSpec | None:
        return next((f for f in self.fields if f.name == name), None)


SCHEMAS: dict[EntityKind, EntitySchema] = {
    EntityKind.MONTH: EntitySchema(
        kind=EntityKind.MONTH, model=Month, label="Month", audit_type="month",
        fields=(
            FieldSpec("number", int, required=True),
            FieldSpec("name", str, required=True, max_length=120),
            FieldSpec("description", str, nullable=True),
        ),
    ),
    EntityKind.WEEK: EntitySchema(
        kind=EntityKind.WEEK, model=Week, label="Week", audit_type="week",
        parent_field="month_id", parent_model=Month,
        fields=(
            FieldSpec("month_id", int, required=True, updatable=False),
            FieldSpec("number", int, required=True),
            FieldSpec("title", str, required=True, max_length=200),
        ),
    ),
    EntityKind.ACTIVITY: EntitySchema(
        kind=EntityKind.ACTIVITY, model=Activity, label="Activity", audit_type="activity",
        parent_field="week_id", parent_model=Week,
        fields=(
            FieldSpec("week_id", int, required=True, updatable=False),
            FieldSpec("description", str, required=True, max_length=500),
            FieldSpec("category", str, choices=ACTIVITY_CATEGORIES),
            FieldSpec("closing_criterion", str, nullable=True),
            FieldSpec("is_critical", bool),
            FieldSpec("sort_order", int),
        ),
    ),
    EntityKind.TASK: EntitySchema(
        kind=EntityKind.TASK, model=Task, label="Task", audit_type="task",
        parent_field="activity_id", parent_model=Activity,
        fields=(
            FieldSpec("activity_id", int, required=True, updatable=False),
            FieldSpec("description", str, required=True, max_length=500),
            FieldSpec("completed", bool),
            FieldSpec("is_critical", bool),
            FieldSpec("estimated_hours", float, nullable=True),
            FieldSpec("sort_order", int),
        ),
    ),
    EntityKind.KPI: EntitySchema(
        kind=EntityKind.KPI, model=Kpi, label="KPI", audit_type="kpi",
        parent_field="task_id", parent_model=Task,
        fields=(
            FieldSpec("task_id", int, required=True, updatable=False),
            FieldSpec("metric_name", str, required=True, max_length=200),
            FieldSpec("data_type", str, choices=KPI_DATA_TYPES),
            FieldSpec("target_value", str, max_length=200),
            FieldSpec("unit", str, nullable=True, max_length=50),
            FieldSpec("current_value", str, nullable=True, max_length=200),
            FieldSpec("is_required", bool),
            FieldSpec("min_value", float, nullable=True),
            FieldSpec("max_value", float, nullable=True),
        ),
    ),
    EntityKind.EVIDENCE: EntitySchema(
        kind=EntityKind.EVIDENCE, model=EvidenceRequirement, label="Evidence requirement",
        audit_type="evidence",
        parent_field="task_id", parent_model=Task,
        fields=(
            FieldSpec("task_id", int, required=True, updatable=False),
            FieldSpec("name", str, required=True, max_length=200),
            FieldSpec("expected_file_type", str, nullable=True, max_length=50),
            FieldSpec("requirements_description", str, nullable=True),
            FieldSpec("value", str, nullable=True),
            FieldSpec("is_required", bool),
        ),
    ),
}


def resolve_kind(name: str) -> EntitySchema:
    """Map a URL segment to its schema, or raise NotFoundError."""
    try:
        return SCHEMAS[EntityKind(name)]
    except ValueError:
        raise NotFoundError(resource="Entity kind", resource_id=name) from None


# ═════════════════════════════════════════════════════════════════════════════
# Field validation
# ═════════════════════════════════════════════════════════════════════════════

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def _finite(value: Any) -> float:
    """Parse *value* as a finite float; nan and +/-inf are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError("must be a number")
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except ValueError:
        raise ValueError("must be a number") from None
    if not math.isfinite(number):
        raise ValueError("must be a finite number")
    return number


def _coerce(spec: FieldSpec, value: Any) -> Any:
    """Convert one raw JSON value to the field's type or raise ValueError."""
    if value is None:
        if spec.nullable:
            return None
        raise ValueError("may not be null")

    if spec.type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
        raise ValueError("must be a boolean")

    if spec.type is int:
        if isinstance(value, bool):
            raise ValueError("must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValueError("must be an integer")

    if spec.type is float:
        return _finite(value)

    if not isinstance(value, str):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        else:
            raise ValueError("must be a string")
    if spec.required and not value.strip():
        raise ValueError("may not be blank")
    if spec.max_length and len(value) > spec.max_length:
        raise ValueError(f"must be <= {spec.max_length} chars")
    if spec.choices and value not in spec.choices:
        raise ValueError(f"must be one of {list(spec.choices)}")
    return value


def _validate(schema: EntitySchema, data: dict, *, creating: bool) -> dict:
    clean: dict[str, Any] = {}
    errors: dict[str, str] = {}

    for name, raw in data.items():
        spec = schema.field(name)
        if spec is None:
            if name == "closed" and schema.kind is EntityKind.WEEK:
                errors[name] = "weeks are closed via POST /api/v1/weeks/<id>/close"
            else:
                errors[name] = "unknown field"
            continue
        if not creating and not spec.updatable:
            errors[name] = "cannot be changed after creation"
            continue
        try:
            clean[name] = _coerce(spec, raw)
        except ValueError as exc:
            errors[name] = str(exc)

    if creating:
        for spec in schema.fields:
            if spec.required and spec.name not in data:
                errors.setdefault(spec.name, "required")

    if errors:
        raise ValidationError(f"Invalid {schema.label} fields", details=errors)
    return clean


def _check_kpi_value(kpi: Kpi) -> None:
    """Type-check ``current_value`` against ``data_type`` and the min/max range."""
    errors: dict[str, str] = {}
    if kpi.min_value is not None and kpi.max_value is not None and kpi.min_value > kpi.max_value:
        errors["min_value"] = "must be <= max_value"

    value = kpi.current_value
    if value is not None and str(value).strip():
        text = str(value).strip()
        data_type = kpi.data_type or "numeric"
        if data_type in ("numeric", "percentage"):
            try:
                number = _finite(text.rstrip("%") if data_type == "percentage" else text)
            except ValueError:
                errors["current_value"] = f"must be a finite number for data_type={data_type}"
            else:
                if data_type == "percentage" and not 0 <= number <= 100:
                    errors["current_value"] = "percentage must be between 0 and 100"
                elif kpi.min_value is not None and number < kpi.min_value:
                    errors["current_value"] = f"must be >= {kpi.min_value}"
                elif kpi.max_value is not None and number > kpi.max_value:
                    errors["current_value"] = f"must be <= {kpi.max_value}"
        elif data_type == "boolean" and text.lower() not in _TRUE | _FALSE:
            errors["current_value"] = "must be true/false for data_type=boolean"

    if errors:
        raise ValidationError("Invalid KPI value", details=errors)


# ═════════════════════════════════════════════════════════════════════════════
# Freeze checks
# ═════════════════════════════════════════════════════════════════════════════


def _week_of(obj) -> Week | None:
    if isinstance(obj, Week):
        return obj
    if isinstance(obj, Activity):
        return obj.week
    if isinstance(obj, Task):
        return obj.activity.week
    if isinstance(obj, (Kpi, EvidenceRequirement)):
        return obj.task.activity.week
    return None


def _assert_not_frozen(obj, entity_type: str, *, deleting: bool = False) -> None:
    # A month is only frozen against removal; new weeks can still be added.
    if isinstance(obj, Month):
        if not deleting:
            return
        closed = next((w for w in obj.weeks if w.closed), None)
        if closed is not None:
            raise WeekFrozenError(closed.id, closed.number, entity_type)
        return
    week = _week_of(obj)
    if week is not None and week.closed:
        raise WeekFrozenError(week.id, week.number, entity_type)


def _last_closed_week() -> tuple[int, int, int] | None:
    """(month number, week number, week id) of the latest closed week."""
    return db.session.execute(
        select(Month.number, Week.number, Week.id)
        .join(Month, Week.month_id == Month.id)
        .where(Week.closed.is_(True))
        .order_by(Month.number.desc(), Week.number.desc(), Week.id.desc())
        .limit(1)
    ).first()


def _assert_after_closed_weeks(month_number: int, week_number: int) -> None:
    """Reject a week position that would sort before the last closed week."""
    last = _last_closed_week()
    if last is not None and (month_number, week_number) < (last[0], last[1]):
        raise ClosedHistoryError(
            f"Week {week_number} of month {month_number} would come before "
            f"closed week {last[1]} of month {last[0]}",
            last_closed_week_id=last[2],
            month_number=month_number,
            week_number=week_number,
        )


def _assert_month_renumber_allowed(month: Month, new_number: int) -> None:
    if new_number == month.number or not month.weeks:
        return
    closed = next((w for w in month.weeks if w.closed), None)
    if closed is not None:
        raise ClosedHistoryError(
            f"Month {month.number} owns closed week {closed.number}; its number can no longer change",
            last_closed_week_id=closed.id,
            month_number=month.number,
        )
    _assert_after_closed_weeks(new_number, min(w.number for w in month.weeks))


# ═════════════════════════════════════════════════════════════════════════════
# Public service functions
# ═════════════════════════════════════════════════════════════════════════════


def _snapshot(obj) -> dict:
    data = obj.to_dict()
    for key in ("id", "created_at", "updated_at"):
        data.pop(key, None)
    return data


def _get(schema: EntitySchema, entity_id: int):
    obj = db.session.get(schema.model, entity_id)
    if obj is None:
        raise NotFoundError(resource=schema.label, resource_id=entity_id)
    return obj


def get_entity(kind: str, entity_id: int) -> dict:
    schema = resolve_kind(kind)
    return _get(schema, entity_id).to_dict()


def create_entity(kind: str, data: dict, actor: str | None = None) -> dict:
    """Insert one entity under its parent and audit the CREATE.

    Raises:
        NotFoundError: unknown kind or missing parent.
        ValidationError: schema violation.
        WeekFrozenError: the parent sits in a closed week.
        ClosedHistoryError: a new week would sort before the last closed week.
    """
    schema = resolve_kind(kind)
    clean = _validate(schema, data, creating=True)

    if schema.parent_field:
        parent = db.session.get(schema.parent_model, clean[schema.parent_field])
        if parent is None:
            raise NotFoundError(
                resource=SCHEMAS_BY_MODEL[schema.parent_model].label,
                resource_id=clean[schema.parent_field],
            )
        _assert_not_frozen(parent, schema.audit_type)
        if isinstance(parent, Month):
            _assert_after_closed_weeks(parent.number, clean["number"])

    obj = schema.model(**clean)
    if isinstance(obj, Kpi):
        _check_kpi_value(obj)
    db.session.add(obj)
    db.session.flush()

    write_audit(
        entity_type=schema.audit_type,
        entity_id=obj.id,
        action="CREATE",
        actor=resolve_actor(actor),
        diff={k: {"old": None, "new": v} for k, v in _snapshot(obj).items()},
    )
    db.session.commit()
    logger.info("%s created: id=%s", schema.label, obj.id)
    return obj.to_dict()


def update_entity(kind: str, entity_id: int, data: dict, actor: str | None = None) -> dict:
    """Apply a partial update and audit the changed fields.

    An update that changes nothing writes no audit row.
    """
    schema = resolve_kind(kind)
    obj = _get(schema, entity_id)
    clean = _validate(schema, data, creating=False)
    _assert_not_frozen(obj, schema.audit_type)
    if "number" in clean:
        if isinstance(obj, Month):
            _assert_month_renumber_allowed(obj, clean["number"])
        elif isinstance(obj, Week) and clean["number"] != obj.number:
            _assert_after_closed_weeks(obj.month.number, clean["number"])

    before = _snapshot(obj)
    for name, value in clean.items():
        setattr(obj, name, value)
    if isinstance(obj, Kpi):
        try:
            _check_kpi_value(obj)
        except ValidationError:
            db.session.rollback()
            raise
    db.session.flush()

    after = _snapshot(obj)
    diff = {
        k: {"old": before.get(k), "new": after.get(k)}
        for k in clean
        if before.get(k) != after.get(k)
    }
    if not diff:
        db.session.commit()
        logger.debug("%s update was a no-op: id=%s", schema.label, obj.id)
        return obj.to_dict()

    write_audit(
        entity_type=schema.audit_type,
        entity_id=obj.id,
        action="UPDATE",
        actor=resolve_actor(actor),
        diff=diff,
    )
    db.session.commit()
    logger.info("%s updated: id=%s fields=%s", schema.label, obj.id, sorted(diff))
    return obj.to_dict()


def delete_entity(kind: str, entity_id: int, reason: str | None, actor: str | None = None) -> dict:
    """Delete an entity (children cascade) and audit the DELETE with its reason.

    Raises:
        ReasonRequiredError: *reason* missing or blank; nothing is deleted.
    """
    schema = resolve_kind(kind)
    obj = _get(schema, entity_id)
    if reason is None or not str(reason).strip():
        raise ReasonRequiredError(schema.audit_type, entity_id)
    _assert_not_frozen(obj, schema.audit_type, deleting=True)

    before = _snapshot(obj)
    db.session.delete(obj)
    db.session.flush()

    write_audit(
        entity_type=schema.audit_type,
        entity_id=entity_id,
        action="DELETE",
        actor=resolve_actor(actor),
        reason=str(reason).strip(),
        diff={k: {"old": v, "new": None} for k, v in before.items()},
    )
    db.session.commit()
    logger.info("%s deleted: id=%s", schema.label, entity_id)
    return {"deleted": True, "entity_type": schema.audit_type, "id": entity_id}


SCHEMAS_BY_MODEL: dict[type, EntitySchema] = {s.model: s for s in SCHEMAS.values()}
