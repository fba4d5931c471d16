# backend/tests/conftest.py
"""
Shared fixtures.

Every test gets its own file-backed SQLite database under tmp_path, so
sessions opened from different threads see the same data.
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app
from models.alert import Alert, AlertSeverity, AlertType
from models.product import Product
from models.users import User, UserRole
from models.warehouse import Warehouse
from services.alerts import AlertService
from services.events import EventBus
from services.inventory import StockAdjustmentProcessor
from utils.hashing import get_password_hash
from utils.tokenJWT import create_access_token

PASSWORD = "secret123"


def persist(database: Database, obj):
    db = database.session()
    try:
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj
    finally:
        db.close()


def count_rows(database: Database, model) -> int:
    db = database.session()
    try:
        return db.query(model).count()
    finally:
        db.close()


# ==========================
# SERVICE LEVEL
# ==========================
@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'inventory.db'}").open()
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def user(database):
    return persist(database, User(
        email="manager@example.com",
        password_hash=get_password_hash(PASSWORD),
        full_name="Stock Manager",
        role=UserRole.MANAGER,
    ))


@pytest.fixture
def make_product(database):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "sku": f"SKU-{counter['n']:04d}",
            "name": f"Product {counter['n']}",
            "unit_price": 9.99,
            "reorder_point": 10,
            "optimal_stock": 50,
        }
        data.update(overrides)
        return persist(database, Product(**data))

    return _make


@pytest.fixture
def product(make_product):
    return make_product(name="Pallet Wrap")


@pytest.fixture
def warehouse(database):
    return persist(database, Warehouse(name="Central", location="Gdansk", capacity=1000))


@pytest.fixture
def events():
    bus = EventBus()
    received = []
    bus.subscribe(lambda event, payload: received.append((event, payload)))
    bus.received = received
    return bus


@pytest.fixture
def processor(database, events):
    return StockAdjustmentProcessor(database, events)


@pytest.fixture
def alert_service(database, events):
    return AlertService(database, events)


@pytest.fixture
def make_alert(database, processor, product, warehouse, user):
    """Creates unresolved alerts attached to one inventory row."""
    item = processor.adjust(product.id, warehouse.id, 5, "incoming", acting_user_id=user.id)

    def _make(severity=AlertSeverity.MEDIUM, alert_type=AlertType.LOW_STOCK, **overrides):
        data = {
            "type": alert_type,
            "severity": severity,
            "message": f"{alert_type.value} alert",
            "inventory_id": item.id,
            "warehouse_id": warehouse.id,
            "is_resolved": False,
            "created_at": datetime.now(timezone.utc),
        }
        data.update(overrides)
        return persist(database, Alert(**data))

    return _make


# ==========================
# HTTP LEVEL
# ==========================
@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'api.db'}",
        SECRET_KEY="test-secret",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def api_database(client) -> Database:
    return client.app.state.database


@pytest.fixture
def auth(client, api_database, settings):
    """Headers per role: auth["ADMIN"], auth["MANAGER"], auth["VIEWER"]."""
    headers = {}
    for role in UserRole:
        account = persist(api_database, User(
            email=f"{role.value.lower()}@example.com",
            password_hash=get_password_hash(PASSWORD),
            full_name=role.value.title(),
            role=role,
        ))
        token = create_access_token({"sub": str(account.id)}, settings=settings)
        headers[role.value] = {"Authorization": f"Bearer {token}"}
    return headers
