"""
Tracker-wide exception hierarchy.

Services raise these; the application factory registers one handler per type
so every blueprint answers with the same status codes and error envelope.

Usage:
    from thesis_tracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Week", resource_id=7)
    raise ValidationError("description is required", details={"description": "required"})
"""

from thesis_tracker.utils.errors import E


class NotFoundError(Exception):
    """Raised when a requested entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Week", "KPI").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    code = E.VALIDATION_INVALID

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ReasonRequiredError(ValidationError):
    """Raised when a delete arrives without a human-readable reason."""

    code = E.VALIDATION_REQUIRED

    def __init__(self, entity_type: str, entity_id: int) -> None:
        super().__init__(
            f"A reason is required to delete {entity_type} id={entity_id}",
            details={"reason": "required"},
        )


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class StateConflictError(Exception):
    """Raised when the target entity is in a state that forbids the operation."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class WeekAlreadyClosedError(StateConflictError):
    def __init__(self, week_id: int, week_number: int) -> None:
        self.week_id = week_id
        super().__init__(
            f"Week {week_number} is already closed",
            details={"week_id": week_id, "week_number": week_number},
        )


class WeekFrozenError(StateConflictError):
    """Raised on any mutation that would touch a closed week's subtree."""

    def __init__(self, week_id: int, week_number: int, entity_type: str) -> None:
        self.week_id = week_id
        super().__init__(
            f"Week {week_number} is closed; {entity_type} under it can no longer change",
            details={"week_id": week_id, "week_number": week_number, "entity_type": entity_type},
        )


# ── Closure gates ────────────────────────────────────────────────────────────


class ClosureError(ValidationError):
    """Base for the four week-closure gates.

    ``gate`` is the machine-readable gate name reported in API responses.
    """

    code = E.GOVERNANCE_BLOCK
    gate = "closure"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message, details={"gate": self.gate, **(details or {})})


class PriorWeekOpenError(ClosureError):
    """``previous_week_position`` is the plan-wide ordinal; ``previous_week_number``
    is the number within its month."""

    gate = "prior_week_open"

    def __init__(self, previous_week_position: int, previous_week_number: int, previous_week_id: int) -> None:
        self.previous_week_position = previous_week_position
        self.previous_week_number = previous_week_number
        self.previous_week_id = previous_week_id
        message = f"Week {previous_week_position} must be closed first"
        if previous_week_number != previous_week_position:
            message += f" (week {previous_week_number} of its month)"
        super().__init__(
            message,
            details={
                "previous_week_position": previous_week_position,
                "previous_week_number": previous_week_number,
                "previous_week_id": previous_week_id,
            },
        )


class CriticalTasksPendingError(ClosureError):
    gate = "critical_tasks_pending"

    def __init__(self, descriptions: list[str]) -> None:
        self.descriptions = descriptions
        super().__init__(
            f"{len(descriptions)} critical task(s) not completed",
            details={"tasks": descriptions},
        )


class MissingKpiValuesError(ClosureError):
    gate = "missing_kpi_values"

    def __init__(self, metric_names: list[str]) -> None:
        self.metric_names = metric_names
        super().__init__(
            f"{len(metric_names)} required KPI(s) on critical tasks have no value",
            details={"kpis": metric_names},
        )


class MissingEvidenceError(ClosureError):
    gate = "missing_evidence"

    def __init__(self, evidence_names: list[str]) -> None:
        self.evidence_names = evidence_names
        super().__init__(
            f"{len(evidence_names)} required evidence item(s) on critical tasks are missing",
            details={"evidence": evidence_names},
        )


class ClosedHistoryError(StateConflictError):
    """Raised when a change would move open weeks in front of a closed one.

    Closed weeks form a prefix of the plan; renumbering a month that owns a
    closed week, or placing a week before the last closed week, would let
    an open week precede closed history.
    """

    def __init__(self, message: str, last_closed_week_id: int, **details) -> None:
        self.last_closed_week_id = last_closed_week_id
        super().__init__(message, details={"last_closed_week_id": last_closed_week_id, **details})
