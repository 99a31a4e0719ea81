"""Generic create / update / delete, freeze rules and the audit trail."""

import pytest

from thesis_tracker.core.exceptions import (
    ClosedHistoryError,
    NotFoundError,
    ReasonRequiredError,
    ValidationError,
    WeekFrozenError,
)
from thesis_tracker.models import db
from thesis_tracker.models.audit import AuditLog, write_audit
from thesis_tracker.models.schedule import Activity, Kpi, Task, Week
from thesis_tracker.services.closure import attempt_close
from thesis_tracker.services.entity_service import (
    create_entity,
    delete_entity,
    get_entity,
    update_entity,
)


def _audit_count(**filters):
    return AuditLog.query.filter_by(**filters).count()


# ═════════════════════════════════════════════════════════════════
# 1. Create
# ═════════════════════════════════════════════════════════════════
class TestCreate:
    def test_create_month_is_audited(self):
        month = create_entity("months", {"number": 1, "name": "Foundations"}, actor="jdoe")
        log = AuditLog.query.filter_by(entity_type="month", entity_id=month["id"]).one()
        assert log.action == "CREATE"
        assert log.actor == "jdoe"
        assert log.diff["name"] == {"old": None, "new": "Foundations"}

    def test_unknown_field_rejected(self, month):
        with pytest.raises(ValidationError) as exc_info:
            create_entity("weeks", {"month_id": month["id"], "number": 1, "title": "W1", "colour": "red"})
        assert exc_info.value.details == {"colour": "unknown field"}

    def test_missing_required_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            create_entity("months", {"description": "no number, no name"})
        assert exc_info.value.details == {"number": "required", "name": "required"}

    def test_invalid_category(self, add_week):
        w = add_week(1)
        with pytest.raises(ValidationError) as exc_info:
            create_entity("activities", {"week_id": w["week"]["id"], "description": "X", "category": "Gardening"})
        assert "category" in exc_info.value.details

    def test_missing_parent(self):
        with pytest.raises(NotFoundError) as exc_info:
            create_entity("weeks", {"month_id": 999, "number": 1, "title": "Orphan"})
        assert str(exc_info.value) == "Month id=999 not found"

    def test_unknown_kind(self):
        with pytest.raises(NotFoundError):
            create_entity("chapters", {"name": "Intro"})

    def test_closed_cannot_be_set_on_create(self, month):
        with pytest.raises(ValidationError) as exc_info:
            create_entity("weeks", {"month_id": month["id"], "number": 1, "title": "W1", "closed": True})
        assert "closed" in exc_info.value.details

    def test_boolean_coercion(self, add_week):
        w = add_week(1)
        task = create_entity("tasks", {"activity_id": w["activity"]["id"], "description": "T", "completed": "yes"})
        assert task["completed"] is True


# ═════════════════════════════════════════════════════════════════
# 2. Update
# ═════════════════════════════════════════════════════════════════
class TestUpdate:
    def test_update_records_changed_fields_only(self, add_week):
        w = add_week(1)
        update_entity("tasks", w["task"]["id"], {"completed": True, "description": "Run batch W1"})
        log = AuditLog.query.filter_by(entity_type="task", action="UPDATE").one()
        assert log.diff == {"completed": {"old": False, "new": True}}

    def test_closed_is_not_updatable(self, add_week):
        """Generic update can never close a week."""
        w = add_week(1)
        with pytest.raises(ValidationError) as exc_info:
            update_entity("weeks", w["week"]["id"], {"closed": True})
        assert "close" in exc_info.value.details["closed"]
        assert db.session.get(Week, w["week"]["id"]).closed is False

    def test_parent_is_not_updatable(self, add_week):
        w1 = add_week(1)
        w2 = add_week(2)
        with pytest.raises(ValidationError) as exc_info:
            update_entity("activities", w1["activity"]["id"], {"week_id": w2["week"]["id"]})
        assert exc_info.value.details == {"week_id": "cannot be changed after creation"}

    def test_update_unknown_entity(self):
        with pytest.raises(NotFoundError):
            update_entity("tasks", 404, {"completed": True})

    def test_noop_update_writes_no_audit(self, add_week):
        """Resubmitting stored values changes nothing and audits nothing."""
        w = add_week(1)
        before = AuditLog.query.count()
        task = update_entity("tasks", w["task"]["id"], {"completed": False, "description": "Run batch W1"})
        assert task["completed"] is False
        assert AuditLog.query.count() == before
        assert _audit_count(action="UPDATE") == 0


# ═════════════════════════════════════════════════════════════════
# 3. KPI value checks
# ═════════════════════════════════════════════════════════════════
class TestKpiValues:
    def _kpi(self, add_week, **fields):
        w = add_week(1)
        return create_entity("kpis", {"task_id": w["task"]["id"], "metric_name": "RMSE", **fields})

    def test_numeric_value_must_parse(self, add_week):
        kpi = self._kpi(add_week)
        with pytest.raises(ValidationError) as exc_info:
            update_entity("kpis", kpi["id"], {"current_value": "about 0.4"})
        assert "current_value" in exc_info.value.details
        assert db.session.get(Kpi, kpi["id"]).current_value is None

    def test_numeric_value_accepts_numbers(self, add_week):
        kpi = self._kpi(add_week)
        updated = update_entity("kpis", kpi["id"], {"current_value": 0.42})
        assert updated["current_value"] == "0.42"

    def test_range_checked(self, add_week):
        kpi = self._kpi(add_week, min_value=0, max_value=1)
        with pytest.raises(ValidationError):
            update_entity("kpis", kpi["id"], {"current_value": "1.5"})
        assert update_entity("kpis", kpi["id"], {"current_value": "0.9"})["current_value"] == "0.9"

    def test_min_above_max_rejected(self, add_week):
        with pytest.raises(ValidationError) as exc_info:
            self._kpi(add_week, min_value=5, max_value=1)
        assert "min_value" in exc_info.value.details

    def test_percentage(self, add_week):
        kpi = self._kpi(add_week, data_type="percentage")
        assert update_entity("kpis", kpi["id"], {"current_value": "87%"})["current_value"] == "87%"
        with pytest.raises(ValidationError):
            update_entity("kpis", kpi["id"], {"current_value": "120"})

    def test_boolean(self, add_week):
        kpi = self._kpi(add_week, data_type="boolean")
        with pytest.raises(ValidationError):
            update_entity("kpis", kpi["id"], {"current_value": "maybe"})
        assert update_entity("kpis", kpi["id"], {"current_value": "true"})["current_value"] == "true"

    def test_text_accepts_anything(self, add_week):
        kpi = self._kpi(add_week, data_type="text")
        assert update_entity("kpis", kpi["id"], {"current_value": "looks good"})["current_value"] == "looks good"

    def test_invalid_data_type(self, add_week):
        with pytest.raises(ValidationError):
            self._kpi(add_week, data_type="colour")

    @pytest.mark.parametrize("raw", ["nan", "NaN", "inf", "-inf", "Infinity"])
    def test_non_finite_value_rejected(self, add_week, raw):
        """nan would slip past every range comparison and satisfy the KPI gate."""
        kpi = self._kpi(add_week, min_value=0, max_value=1)
        with pytest.raises(ValidationError) as exc_info:
            update_entity("kpis", kpi["id"], {"current_value": raw})
        assert "finite" in exc_info.value.details["current_value"]
        assert db.session.get(Kpi, kpi["id"]).current_value is None

    def test_non_finite_percentage_rejected(self, add_week):
        kpi = self._kpi(add_week, data_type="percentage")
        with pytest.raises(ValidationError):
            update_entity("kpis", kpi["id"], {"current_value": "nan%"})

    @pytest.mark.parametrize("field", ["min_value", "max_value"])
    def test_non_finite_bounds_rejected(self, add_week, field):
        with pytest.raises(ValidationError) as exc_info:
            self._kpi(add_week, **{field: "nan"})
        assert exc_info.value.details == {field: "must be a finite number"}


# ═════════════════════════════════════════════════════════════════
# 4. Delete
# ═════════════════════════════════════════════════════════════════
class TestDelete:
    def test_delete_without_reason_fails(self, add_week):
        """No reason: rejected, nothing deleted, nothing audited."""
        w = add_week(1)
        before = AuditLog.query.count()
        for reason in (None, "", "   "):
            with pytest.raises(ReasonRequiredError):
                delete_entity("tasks", w["task"]["id"], reason)
        assert db.session.get(Task, w["task"]["id"]) is not None
        assert AuditLog.query.count() == before

    def test_delete_with_reason_writes_one_audit(self, add_week):
        w = add_week(1)
        before = _audit_count(action="DELETE")
        result = delete_entity("tasks", w["task"]["id"], "duplicate entry", actor="jdoe")
        assert result == {"deleted": True, "entity_type": "task", "id": w["task"]["id"]}
        assert _audit_count(action="DELETE") == before + 1

        log = AuditLog.query.filter_by(action="DELETE").one()
        assert log.entity_type == "task"
        assert log.entity_id == w["task"]["id"]
        assert log.reason == "duplicate entry"
        assert log.actor == "jdoe"
        assert log.diff["description"] == {"old": "Run batch W1", "new": None}

    def test_delete_cascades_children(self, add_week):
        w = add_week(1)
        create_entity("kpis", {"task_id": w["task"]["id"], "metric_name": "RMSE"})
        delete_entity("weeks", w["week"]["id"], "replanned")
        assert db.session.get(Week, w["week"]["id"]) is None
        assert Activity.query.count() == 0
        assert Task.query.count() == 0
        assert Kpi.query.count() == 0
        # Only the root of the deleted subtree is audited
        assert _audit_count(action="DELETE") == 1

    def test_delete_unknown(self):
        with pytest.raises(NotFoundError):
            delete_entity("months", 999, "gone")


# ═════════════════════════════════════════════════════════════════
# 5. Closed weeks are frozen
# ═════════════════════════════════════════════════════════════════
class TestFrozenWeek:
    def test_subtree_rejects_mutation(self, add_week):
        w = add_week(1)
        attempt_close(w["week"]["id"])

        with pytest.raises(WeekFrozenError):
            update_entity("tasks", w["task"]["id"], {"completed": True})
        with pytest.raises(WeekFrozenError):
            create_entity("activities", {"week_id": w["week"]["id"], "description": "Late addition"})
        with pytest.raises(WeekFrozenError):
            delete_entity("activities", w["activity"]["id"], "cleanup")
        with pytest.raises(WeekFrozenError):
            update_entity("weeks", w["week"]["id"], {"title": "Renamed"})
        with pytest.raises(WeekFrozenError):
            delete_entity("weeks", w["week"]["id"], "cleanup")

    def test_month_with_closed_week_cannot_be_deleted(self, month, add_week):
        w = add_week(1)
        attempt_close(w["week"]["id"])
        with pytest.raises(WeekFrozenError):
            delete_entity("months", month["id"], "cleanup")

    def test_month_with_closed_week_still_accepts_new_weeks(self, month, add_week):
        w = add_week(1)
        attempt_close(w["week"]["id"])
        w2 = add_week(2)
        assert w2["week"]["month_id"] == month["id"]

    def test_open_week_of_same_month_is_editable(self, add_week):
        w1 = add_week(1)
        w2 = add_week(2)
        attempt_close(w1["week"]["id"])
        assert update_entity("tasks", w2["task"]["id"], {"completed": True})["completed"] is True

    def test_month_owning_closed_week_cannot_be_renumbered(self, month, add_week):
        """Renumbering would move closed history behind open weeks."""
        w = add_week(1)
        attempt_close(w["week"]["id"])
        month2 = create_entity("months", {"number": 2, "name": "Next"})
        add_week(1, month_id=month2["id"])

        with pytest.raises(ClosedHistoryError):
            update_entity("months", month["id"], {"number": 3})
        assert db.session.get(Week, w["week"]["id"]).month.number == 1
        # Other fields stay editable
        assert update_entity("months", month["id"], {"name": "Renamed"})["name"] == "Renamed"

    def test_open_month_cannot_move_before_closed_weeks(self, add_week):
        w = add_week(1)
        attempt_close(w["week"]["id"])
        month2 = create_entity("months", {"number": 2, "name": "Next"})
        add_week(1, month_id=month2["id"])

        with pytest.raises(ClosedHistoryError):
            update_entity("months", month2["id"], {"number": 0})
        assert update_entity("months", month2["id"], {"number": 5})["number"] == 5

    def test_week_cannot_be_created_before_closed_week(self, month, add_week):
        add_week(1)
        month2 = create_entity("months", {"number": 2, "name": "Next"})
        w21 = add_week(1, month_id=month2["id"])
        for week in Week.query.order_by(Week.id).all():
            attempt_close(week.id)
        before = Week.query.count()

        with pytest.raises(ClosedHistoryError) as exc_info:
            create_entity("weeks", {"month_id": month["id"], "number": 2, "title": "Late"})
        assert exc_info.value.details["last_closed_week_id"] == w21["week"]["id"]
        assert Week.query.count() == before

    def test_open_week_cannot_be_renumbered_before_closed_week(self, add_week):
        w1 = add_week(1)
        w3 = add_week(3)
        attempt_close(w1["week"]["id"])

        with pytest.raises(ClosedHistoryError):
            update_entity("weeks", w3["week"]["id"], {"number": 0})
        assert update_entity("weeks", w3["week"]["id"], {"number": 2})["number"] == 2


# ═════════════════════════════════════════════════════════════════
# 6. Audit log
# ═════════════════════════════════════════════════════════════════
class TestAuditLog:
    def test_rows_cannot_be_updated(self):
        log = write_audit(entity_type="month", entity_id=1, action="CREATE", actor="admin")
        db.session.commit()
        log.actor = "mallory"
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()

    def test_rows_cannot_be_deleted(self):
        log = write_audit(entity_type="month", entity_id=1, action="CREATE", actor="admin")
        db.session.commit()
        db.session.delete(log)
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()

    def test_write_audit_validates(self):
        with pytest.raises(ValueError):
            write_audit(entity_type="chapter", entity_id=1, action="CREATE", actor="admin")
        with pytest.raises(ValueError):
            write_audit(entity_type="month", entity_id=1, action="ARCHIVE", actor="admin")


# ═════════════════════════════════════════════════════════════════
# 7. HTTP layer
# ═════════════════════════════════════════════════════════════════
class TestAbmAPI:
    def test_create_and_get(self, client):
        r = client.post("/api/v1/abm/months", json={"number": 1, "name": "Foundations", "actor": "jdoe"})
        assert r.status_code == 201
        month_id = r.get_json()["id"]

        r = client.get(f"/api/v1/abm/months/{month_id}")
        assert r.status_code == 200
        assert r.get_json()["name"] == "Foundations"
        assert get_entity("months", month_id)["number"] == 1

    def test_validation_envelope(self, client):
        r = client.post("/api/v1/abm/months", json={"name": "No number"})
        assert r.status_code == 400
        data = r.get_json()
        assert data["code"] == "ERR_VALIDATION_INVALID"
        assert data["details"] == {"number": "required"}

    def test_non_object_body(self, client):
        r = client.post("/api/v1/abm/months", json=[1, 2])
        assert r.status_code == 400

    def test_unknown_kind(self, client):
        r = client.post("/api/v1/abm/chapters", json={"name": "Intro"})
        assert r.status_code == 404
        assert r.get_json()["code"] == "ERR_NOT_FOUND"

    def test_empty_update(self, client, month):
        r = client.put(f"/api/v1/abm/months/{month['id']}", json={})
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_update_closed_rejected(self, client, add_week):
        w = add_week(1)
        r = client.put(f"/api/v1/abm/weeks/{w['week']['id']}", json={"closed": True})
        assert r.status_code == 400
        assert "closed" in r.get_json()["details"]

    def test_duplicate_month_number(self, client, month):
        r = client.post("/api/v1/abm/months", json={"number": 1, "name": "Again"})
        assert r.status_code == 409
        assert r.get_json()["code"] == "ERR_DATABASE"

    def test_delete_requires_reason(self, client, month):
        r = client.delete(f"/api/v1/abm/months/{month['id']}")
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_delete_with_reason_query(self, client, month):
        r = client.delete(f"/api/v1/abm/months/{month['id']}?reason=duplicate&actor=jdoe")
        assert r.status_code == 200
        assert r.get_json()["deleted"] is True

        logs = client.get("/api/v1/audit?action=DELETE").get_json()
        assert logs["total"] == 1
        assert logs["audit_logs"][0]["reason"] == "duplicate"
        assert logs["audit_logs"][0]["actor"] == "jdoe"

    def test_delete_with_reason_body(self, client, month):
        r = client.delete(f"/api/v1/abm/months/{month['id']}", json={"reason": "mistake"})
        assert r.status_code == 200

    def test_renumber_closed_history_is_conflict(self, client, month, add_week):
        w = add_week(1)
        attempt_close(w["week"]["id"])
        r = client.put(f"/api/v1/abm/months/{month['id']}", json={"number": 9})
        assert r.status_code == 409
        assert r.get_json()["code"] == "ERR_CONFLICT_STATE"
        assert r.get_json()["details"]["last_closed_week_id"] == w["week"]["id"]

    def test_frozen_week_is_conflict(self, client, add_week):
        w = add_week(1)
        attempt_close(w["week"]["id"])
        r = client.put(f"/api/v1/abm/tasks/{w['task']['id']}", json={"completed": False})
        assert r.status_code == 409
        assert r.get_json()["code"] == "ERR_CONFLICT_STATE"


class TestAuditAPI:
    def test_list_and_filter(self, client, add_week):
        w = add_week(1)
        update_entity("tasks", w["task"]["id"], {"completed": True}, actor="jdoe")

        data = client.get("/api/v1/audit").get_json()
        assert data["total"] == 5  # month, week, activity, task creates + one update
        assert data["audit_logs"][0]["action"] == "UPDATE"

        data = client.get("/api/v1/audit?entity_type=task&action=update").get_json()
        assert data["total"] == 1
        assert data["audit_logs"][0]["actor"] == "jdoe"

        data = client.get(f"/api/v1/audit?entity_type=week&entity_id={w['week']['id']}").get_json()
        assert data["total"] == 1
        assert data["audit_logs"][0]["action"] == "CREATE"

    def test_pagination(self, client, add_week):
        add_week(1)
        data = client.get("/api/v1/audit?per_page=2&page=2").get_json()
        assert data["page"] == 2
        assert data["per_page"] == 2
        assert data["pages"] == 2
        assert len(data["audit_logs"]) == 2

    def test_get_single(self, client, month):
        log = AuditLog.query.first()
        r = client.get(f"/api/v1/audit/{log.id}")
        assert r.status_code == 200
        assert r.get_json()["entity_type"] == "month"

    def test_get_missing(self, client):
        r = client.get("/api/v1/audit/999")
        assert r.status_code == 404
