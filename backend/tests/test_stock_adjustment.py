# backend/tests/test_stock_adjustment.py
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import IntegrityError

from database import Database, KeyedLock
from models.alert import Alert, AlertSeverity, AlertType
from models.inventory import InventoryItem
from models.stock import MovementType, StockMovement
from models.warehouse import Warehouse
from services.events import ALERT_CREATED, INVENTORY_UPDATED
from services.inventory import StockAdjustmentProcessor, compute_new_quantity, evaluate_alerts
from utils.errors import InsufficientStock, NotFound, ValidationFailed

from conftest import count_rows, persist


def _movements(database, inventory_id):
    db = database.session()
    try:
        return (
            db.query(StockMovement)
            .filter(StockMovement.inventory_id == inventory_id)
            .order_by(StockMovement.created_at.asc())
            .all()
        )
    finally:
        db.close()


def _alerts(database, alert_type=None):
    db = database.session()
    try:
        query = db.query(Alert)
        if alert_type is not None:
            query = query.filter(Alert.type == alert_type)
        return query.all()
    finally:
        db.close()


def _snapshot(database):
    db = database.session()
    try:
        quantities = sorted((str(i.id), i.quantity) for i in db.query(InventoryItem).all())
    finally:
        db.close()
    return (
        quantities,
        count_rows(database, StockMovement),
        count_rows(database, Alert),
    )


# ==========================
# MOVEMENT TYPES
# ==========================
def test_incoming_creates_record_and_movement(database, processor, product, warehouse, user):
    item = processor.adjust(product.id, warehouse.id, 5, "incoming",
                            reason="Delivery", location="A-01", acting_user_id=user.id)

    assert item.quantity == 5
    assert item.location_in_warehouse == "A-01"
    assert item.product.sku == product.sku
    assert item.warehouse.name == "Central"

    movements = _movements(database, item.id)
    assert len(movements) == 1
    m = movements[0]
    assert m.movement_type == MovementType.INCOMING
    assert (m.previous_quantity, m.new_quantity, m.quantity_change) == (0, 5, 5)
    assert m.reason == "Delivery"
    assert m.user_id == user.id


def test_incoming_adds_to_existing_quantity(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 20, "incoming", acting_user_id=user.id)
    item = processor.adjust(product.id, warehouse.id, 7, MovementType.INCOMING, acting_user_id=user.id)

    assert item.quantity == 27
    movements = _movements(database, item.id)
    assert len(movements) == 2
    assert (movements[-1].previous_quantity, movements[-1].new_quantity, movements[-1].quantity_change) == (20, 27, 7)
    assert count_rows(database, InventoryItem) == 1


def test_outgoing_subtracts(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 30, "incoming", acting_user_id=user.id)
    item = processor.adjust(product.id, warehouse.id, 12, "outgoing", acting_user_id=user.id)

    assert item.quantity == 18
    last = _movements(database, item.id)[-1]
    assert (last.previous_quantity, last.new_quantity, last.quantity_change) == (30, 18, 12)


def test_outgoing_to_exactly_zero_is_allowed(processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 4, "incoming", acting_user_id=user.id)
    item = processor.adjust(product.id, warehouse.id, 4, "outgoing", acting_user_id=user.id)
    assert item.quantity == 0


def test_adjustment_sets_absolute_level(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 50, "incoming", acting_user_id=user.id)
    item = processor.adjust(product.id, warehouse.id, 5, "adjustment",
                            reason="Cycle count", acting_user_id=user.id)

    assert item.quantity == 5
    last = _movements(database, item.id)[-1]
    assert last.movement_type == MovementType.ADJUSTMENT
    assert (last.previous_quantity, last.new_quantity) == (50, 5)
    # magnitude of the requested level, not of the difference
    assert last.quantity_change == 5


def test_location_is_kept_when_not_supplied(processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 5, "incoming", location="B-07", acting_user_id=user.id)
    item = processor.adjust(product.id, warehouse.id, 1, "incoming", acting_user_id=user.id)
    assert item.location_in_warehouse == "B-07"


# ==========================
# REJECTIONS
# ==========================
def test_insufficient_stock_changes_nothing(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 3, "incoming", acting_user_id=user.id)
    before = _snapshot(database)

    with pytest.raises(InsufficientStock) as exc:
        processor.adjust(product.id, warehouse.id, 5, "outgoing", acting_user_id=user.id)

    assert exc.value.available == 3
    assert exc.value.requested == 5
    assert exc.value.code == "INSUFFICIENT_STOCK"
    assert _snapshot(database) == before


def test_outgoing_from_unknown_pair_creates_nothing(database, processor, product, warehouse, user):
    with pytest.raises(InsufficientStock) as exc:
        processor.adjust(product.id, warehouse.id, 1, "outgoing", acting_user_id=user.id)

    assert exc.value.available == 0
    assert count_rows(database, InventoryItem) == 0
    assert count_rows(database, StockMovement) == 0


@pytest.mark.parametrize("quantity", [-1, 1.5, "3", True, None])
def test_rejects_malformed_quantity(database, processor, product, warehouse, user, quantity):
    with pytest.raises(ValidationFailed):
        processor.adjust(product.id, warehouse.id, quantity, "incoming", acting_user_id=user.id)
    assert count_rows(database, StockMovement) == 0


def test_rejects_unknown_movement_type(processor, product, warehouse, user):
    with pytest.raises(ValidationFailed) as exc:
        processor.adjust(product.id, warehouse.id, 1, "sideways", acting_user_id=user.id)
    assert exc.value.data["field"] == "movement_type"


def test_requires_acting_user(processor, product, warehouse):
    with pytest.raises(ValidationFailed):
        processor.adjust(product.id, warehouse.id, 1, "incoming")


def test_rejects_malformed_ids(processor, warehouse, user):
    with pytest.raises(ValidationFailed):
        processor.adjust("not-a-uuid", warehouse.id, 1, "incoming", acting_user_id=user.id)


def test_unknown_product_or_warehouse(database, processor, product, warehouse, user):
    import uuid

    with pytest.raises(NotFound):
        processor.adjust(uuid.uuid4(), warehouse.id, 1, "incoming", acting_user_id=user.id)
    with pytest.raises(NotFound):
        processor.adjust(product.id, uuid.uuid4(), 1, "incoming", acting_user_id=user.id)
    assert count_rows(database, InventoryItem) == 0


def test_inactive_warehouse_is_rejected(database, processor, product, user):
    closed = persist(database, Warehouse(name="Closed", is_active=False))
    with pytest.raises(NotFound):
        processor.adjust(product.id, closed.id, 1, "incoming", acting_user_id=user.id)


# ==========================
# ALERTS
# ==========================
def test_low_stock_fires_once_on_the_crossing(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 20, "incoming", acting_user_id=user.id)
    processor.adjust(product.id, warehouse.id, 12, "outgoing", acting_user_id=user.id)  # 20 -> 8
    processor.adjust(product.id, warehouse.id, 3, "outgoing", acting_user_id=user.id)   # 8 -> 5

    low = _alerts(database, AlertType.LOW_STOCK)
    assert len(low) == 1
    assert low[0].severity == AlertSeverity.MEDIUM
    assert low[0].message == "Low stock alert for Pallet Wrap. Current: 8, Reorder point: 10"
    assert low[0].warehouse_id == warehouse.id
    assert low[0].is_resolved is False


def test_low_stock_high_severity_at_half_reorder_point(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 20, "incoming", acting_user_id=user.id)
    processor.adjust(product.id, warehouse.id, 15, "outgoing", acting_user_id=user.id)  # 20 -> 5

    low = _alerts(database, AlertType.LOW_STOCK)
    assert [a.severity for a in low] == [AlertSeverity.HIGH]


def test_low_stock_fires_again_after_recovering(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 20, "incoming", acting_user_id=user.id)
    processor.adjust(product.id, warehouse.id, 8, "adjustment", acting_user_id=user.id)
    processor.adjust(product.id, warehouse.id, 30, "adjustment", acting_user_id=user.id)
    processor.adjust(product.id, warehouse.id, 9, "adjustment", acting_user_id=user.id)

    assert len(_alerts(database, AlertType.LOW_STOCK)) == 2


def test_overstock_fires_on_every_adjustment_above_threshold(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 80, "incoming", acting_user_id=user.id)
    processor.adjust(product.id, warehouse.id, 10, "incoming", acting_user_id=user.id)

    over = _alerts(database, AlertType.OVERSTOCK)
    assert len(over) == 2
    assert all(a.severity == AlertSeverity.MEDIUM for a in over)
    assert sorted(a.message for a in over) == [
        "Overstock alert for Pallet Wrap. Current: 80, Optimal: 50",
        "Overstock alert for Pallet Wrap. Current: 90, Optimal: 50",
    ]


def test_overstock_threshold_is_exclusive(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 75, "incoming", acting_user_id=user.id)
    assert _alerts(database, AlertType.OVERSTOCK) == []


def test_evaluate_alerts_boundaries(make_product):
    product = make_product(reorder_point=10, optimal_stock=50)

    assert evaluate_alerts(product, 11, 10)[0][:2] == (AlertType.LOW_STOCK, AlertSeverity.MEDIUM)
    assert evaluate_alerts(product, 10, 9) == []
    assert evaluate_alerts(product, 11, 5)[0][1] == AlertSeverity.HIGH
    assert evaluate_alerts(product, 11, 6)[0][1] == AlertSeverity.MEDIUM
    assert evaluate_alerts(product, 0, 76)[0][0] == AlertType.OVERSTOCK


def test_odd_reorder_point_uses_true_division(make_product):
    product = make_product(reorder_point=5)
    # 2 <= 2.5 is high, 3 is not
    assert evaluate_alerts(product, 6, 2)[0][1] == AlertSeverity.HIGH
    assert evaluate_alerts(product, 6, 3)[0][1] == AlertSeverity.MEDIUM


def test_compute_new_quantity():
    assert compute_new_quantity(4, 3, MovementType.INCOMING) == 7
    assert compute_new_quantity(4, 3, MovementType.OUTGOING) == 1
    assert compute_new_quantity(4, 30, MovementType.ADJUSTMENT) == 30
    with pytest.raises(InsufficientStock):
        compute_new_quantity(2, 3, MovementType.OUTGOING)


# ==========================
# EVENTS
# ==========================
def test_publishes_inventory_and_alert_events(events, processor, product, warehouse, user):
    item = processor.adjust(product.id, warehouse.id, 80, "incoming", acting_user_id=user.id)

    names = [name for name, _ in events.received]
    assert names == [INVENTORY_UPDATED, ALERT_CREATED]
    payload = events.received[0][1]
    assert payload["inventory_id"] == str(item.id)
    assert payload["quantity"] == 80
    assert events.received[1][1]["type"] == "overstock"


def test_failing_subscriber_does_not_break_adjustment(events, processor, product, warehouse, user):
    def broken(event, payload):
        raise RuntimeError("socket closed")

    events.subscribe(broken)
    item = processor.adjust(product.id, warehouse.id, 1, "incoming", acting_user_id=user.id)
    assert item.quantity == 1


def test_no_events_on_rejection(events, processor, product, warehouse, user):
    with pytest.raises(InsufficientStock):
        processor.adjust(product.id, warehouse.id, 1, "outgoing", acting_user_id=user.id)
    assert events.received == []


# ==========================
# CONCURRENCY
# ==========================
def test_concurrent_adjustments_on_one_pair_lose_no_updates(database, processor, product, warehouse, user):
    processor.adjust(product.id, warehouse.id, 100, "incoming", acting_user_id=user.id)

    calls = [("incoming", n) for n in range(1, 11)] + [("outgoing", n) for n in range(1, 11)]

    def run(call):
        movement_type, quantity = call
        return processor.adjust(product.id, warehouse.id, quantity, movement_type, acting_user_id=user.id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(run, calls))

    db = database.session()
    try:
        item = db.query(InventoryItem).one()
    finally:
        db.close()
    assert item.quantity == 100 + sum(range(1, 11)) - sum(range(1, 11))

    # Every movement starts where some earlier one ended: a single chain from 0
    movements = _movements(database, item.id)
    assert len(movements) == len(calls) + 1
    previous = Counter(m.previous_quantity for m in movements)
    reached = Counter([0] + [m.new_quantity for m in movements])
    reached[item.quantity] -= 1
    assert previous == +reached


def test_concurrent_first_inserts_share_one_row(database, processor, product, warehouse, user):
    def run(_):
        return processor.adjust(product.id, warehouse.id, 2, "incoming", acting_user_id=user.id)

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(run, range(6)))

    db = database.session()
    try:
        items = db.query(InventoryItem).all()
    finally:
        db.close()
    assert len(items) == 1
    assert items[0].quantity == 12


def _commit_from_other_process(database, product, warehouse, user, quantity):
    # Separate handle: its own engine and its own process-local locks
    other = Database(database.url).open()
    try:
        StockAdjustmentProcessor(other).adjust(
            product.id, warehouse.id, quantity, "incoming", acting_user_id=user.id
        )
    finally:
        other.close()


def test_lost_first_insert_is_retried_on_the_winning_row(monkeypatch, database, processor, product, warehouse, user):
    original = processor._lock_item
    calls = []

    def lock_item(db, product_id, warehouse_id):
        calls.append(product_id)
        if len(calls) == 1:
            # Another writer inserts the row after this session looked for it
            _commit_from_other_process(database, product, warehouse, user, 3)
            return None
        return original(db, product_id, warehouse_id)

    monkeypatch.setattr(processor, "_lock_item", lock_item)

    item = processor.adjust(product.id, warehouse.id, 5, "incoming", acting_user_id=user.id)

    assert len(calls) == 2
    assert item.quantity == 8
    assert count_rows(database, InventoryItem) == 1
    movements = _movements(database, item.id)
    assert [(m.previous_quantity, m.new_quantity) for m in movements] == [(0, 3), (3, 8)]
    assert len(database.locks) == 0


def test_insert_race_gives_up_after_the_last_attempt(monkeypatch, events, database, processor, product, warehouse, user):
    raced = []

    def lock_item(db, product_id, warehouse_id):
        if not raced:
            _commit_from_other_process(database, product, warehouse, user, 3)
            raced.append(True)
        return None

    monkeypatch.setattr(processor, "_lock_item", lock_item)

    with pytest.raises(IntegrityError):
        processor.adjust(product.id, warehouse.id, 5, "incoming", acting_user_id=user.id)

    db = database.session()
    try:
        item = db.query(InventoryItem).one()
    finally:
        db.close()
    assert item.quantity == 3
    assert count_rows(database, StockMovement) == 1
    assert events.received == []
    assert len(database.locks) == 0


# ==========================
# KEYED LOCK
# ==========================
def test_keyed_lock_forgets_released_keys():
    locks = KeyedLock()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
        assert len(locks) == 1
    assert len(locks) == 0


def test_keyed_lock_is_released_when_the_body_raises():
    locks = KeyedLock()
    with pytest.raises(RuntimeError):
        with locks.hold("a"):
            raise RuntimeError("boom")
    assert len(locks) == 0
    with locks.hold("a"):
        assert len(locks) == 1


def test_keyed_lock_serializes_holders_of_one_key():
    locks = KeyedLock()
    active = []
    overlaps = []

    def run(_):
        with locks.hold("pair"):
            active.append(1)
            overlaps.append(len(active))
            active.pop()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(run, range(200)))

    assert set(overlaps) == {1}
    assert len(locks) == 0


def test_adjustments_leave_no_lock_entries_behind(database, processor, make_product, warehouse, user):
    for n in range(5):
        p = make_product(sku=f"SKU-{n}", name=f"Item {n}")
        processor.adjust(p.id, warehouse.id, 1, "incoming", acting_user_id=user.id)
    with pytest.raises(InsufficientStock):
        processor.adjust(p.id, warehouse.id, 99, "outgoing", acting_user_id=user.id)
    assert len(database.locks) == 0
