# backend/tests/test_alerts.py
import uuid
from datetime import date, timedelta

import pytest

from models.alert import Alert, AlertSeverity, AlertType
from schemas.filters import AlertFilter, MovementFilter, build_filter
from services.alerts import AlertService
from services.events import ALERT_RESOLVED
from utils.errors import AlreadyResolved, NotFound, PartiallyInvalid, ValidationFailed


def _reload(database, alert_id):
    db = database.session()
    try:
        return db.get(Alert, alert_id)
    finally:
        db.close()


def _resolved_count(database):
    db = database.session()
    try:
        return db.query(Alert).filter(Alert.is_resolved.is_(True)).count()
    finally:
        db.close()


# ==========================
# RESOLVE
# ==========================
def test_resolve_marks_alert(database, alert_service, make_alert, user, events):
    alert = make_alert()

    resolved = alert_service.resolve(alert.id, user.id)

    assert resolved.is_resolved is True
    assert resolved.resolved_by == user.id
    assert resolved.resolved_at is not None
    assert resolved.resolver.email == user.email

    stored = _reload(database, alert.id)
    assert stored.is_resolved is True
    assert (ALERT_RESOLVED, {"alert_id": str(alert.id), "resolved_by": str(user.id)}) in events.received


def test_resolve_twice_fails_without_mutation(database, alert_service, make_alert, user):
    alert = make_alert()
    alert_service.resolve(alert.id, user.id)
    first = _reload(database, alert.id).resolved_at

    with pytest.raises(AlreadyResolved):
        alert_service.resolve(alert.id, user.id)

    assert _reload(database, alert.id).resolved_at == first


def test_resolve_unknown_alert(alert_service, user):
    with pytest.raises(NotFound):
        alert_service.resolve(uuid.uuid4(), user.id)


# ==========================
# BULK RESOLVE
# ==========================
def test_bulk_resolve_all_valid(database, alert_service, make_alert, user):
    ids = [make_alert().id for _ in range(5)]

    assert alert_service.bulk_resolve(ids, user.id) == 5
    assert _resolved_count(database) == 5


def test_bulk_resolve_collapses_duplicates(alert_service, make_alert, user):
    a, b = make_alert(), make_alert()
    assert alert_service.bulk_resolve([a.id, b.id, a.id], user.id) == 2


def test_bulk_resolve_with_unknown_id_rejects_batch(database, alert_service, make_alert, user):
    ids = [make_alert().id for _ in range(5)]
    missing = uuid.uuid4()

    with pytest.raises(PartiallyInvalid) as exc:
        alert_service.bulk_resolve(ids + [missing], user.id)

    assert exc.value.invalid_ids == [str(missing)]
    assert _resolved_count(database) == 0


def test_bulk_resolve_with_resolved_member_rejects_batch(database, alert_service, make_alert, user):
    done = make_alert()
    alert_service.resolve(done.id, user.id)
    pending = [make_alert().id for _ in range(3)]

    with pytest.raises(PartiallyInvalid) as exc:
        alert_service.bulk_resolve(pending + [done.id], user.id)

    assert exc.value.invalid_ids == [str(done.id)]
    assert _resolved_count(database) == 1


def test_bulk_resolve_requires_ids(alert_service, user):
    with pytest.raises(ValidationFailed):
        alert_service.bulk_resolve([], user.id)


# ==========================
# QUERIES
# ==========================
def test_unresolved_orders_by_severity(database, alert_service, make_alert, user):
    low = make_alert(severity=AlertSeverity.LOW)
    critical = make_alert(severity=AlertSeverity.CRITICAL)
    medium = make_alert(severity=AlertSeverity.MEDIUM)
    closed = make_alert(severity=AlertSeverity.HIGH)
    alert_service.resolve(closed.id, user.id)

    db = database.session()
    try:
        ids = [a.id for a in AlertService.unresolved(db)]
    finally:
        db.close()

    assert ids == [critical.id, medium.id, low.id]


def test_stats(database, alert_service, make_alert, user):
    make_alert(severity=AlertSeverity.HIGH)
    make_alert(severity=AlertSeverity.HIGH, alert_type=AlertType.OVERSTOCK)
    resolved = make_alert(severity=AlertSeverity.LOW)
    alert_service.resolve(resolved.id, user.id)

    db = database.session()
    try:
        stats = AlertService.stats(db)
    finally:
        db.close()

    assert stats["total"] == 3
    assert stats["unresolved"] == 2
    assert stats["by_severity"] == {"high": 2}
    assert stats["by_type"] == {"low_stock": 1, "overstock": 1}
    assert stats["recent"] == 3


def test_list_alerts_with_filter(database, make_alert, warehouse):
    make_alert(severity=AlertSeverity.HIGH)
    make_alert(severity=AlertSeverity.LOW)

    db = database.session()
    try:
        filters = build_filter(AlertFilter, severity="high", warehouse_id=str(warehouse.id))
        items, total = AlertService.list_alerts(db, filters)
        other, other_total = AlertService.list_alerts(db, build_filter(AlertFilter, warehouse_id=uuid.uuid4()))
    finally:
        db.close()

    assert total == 1
    assert items[0].severity == AlertSeverity.HIGH
    assert other_total == 0


# ==========================
# FILTER VALIDATION
# ==========================
def test_filter_rejects_unknown_field():
    with pytest.raises(ValidationFailed):
        build_filter(AlertFilter, colour="red")


def test_filter_rejects_bad_values():
    with pytest.raises(ValidationFailed) as exc:
        build_filter(AlertFilter, severity="apocalyptic")
    assert exc.value.data["field"] == "severity"


def test_filter_rejects_inverted_date_range():
    today = date.today()
    with pytest.raises(ValidationFailed):
        build_filter(MovementFilter, date_from=today, date_to=today - timedelta(days=1))


def test_filter_ignores_unset_values():
    f = build_filter(AlertFilter, severity=None, is_resolved=False)
    assert f.severity is None
    assert f.is_resolved is False
