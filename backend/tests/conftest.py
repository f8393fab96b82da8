"""
Pytest fixtures for shopledger backend tests.

Provides an in-memory database, a test client, and small factories for
purchases and sales built through the real service layer.
"""

import pytest
from shopledger import create_app
from shopledger.extensions import db
from shopledger.models.auth import ROLE_TECHNICIAN
from shopledger.schemas import CreatePurchaseInput, CreateSaleInput
from shopledger.services import purchase_service, sale_service
from shopledger.services.user_service import create_user


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def technician(db_session):
    """Active technician repairs can be assigned to."""
    user = create_user(username="tech1", full_name="Tech One", role=ROLE_TECHNICIAN)
    db_session.commit()
    return user


def phone_line(imei, price="100.00", **overrides):
    """One purchase line payload."""
    line = {
        "imei": imei,
        "brand": "Apple",
        "model": "iPhone 12",
        "condition": "GOOD",
        "purchase_price": price,
    }
    line.update(overrides)
    return line


def purchase_payload(items, **overrides):
    payload = {
        "payment_method": "CASH",
        "payment_type": "PAID_NOW",
        "items": items,
    }
    payload.update(overrides)
    return payload


def sale_payload(items, **overrides):
    payload = {
        "payment_method": "CASH",
        "payment_type": "PAID_NOW",
        "items": items,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
def make_purchase(db_session):
    """Factory: make_purchase([phone_line(...)], payment_type=..., ...) -> Purchase."""
    def _make(items, **overrides):
        data = CreatePurchaseInput.from_payload(purchase_payload(items, **overrides))
        return purchase_service.create_purchase(data)
    return _make


@pytest.fixture(scope='function')
def make_sale(db_session):
    """Factory: make_sale([{"item_id": 1, "sale_price": "200.00"}], ...) -> Sale."""
    def _make(items, **overrides):
        data = CreateSaleInput.from_payload(sale_payload(items, **overrides))
        return sale_service.create_sale(data)
    return _make


@pytest.fixture(scope='function')
def stocked_item(make_purchase):
    """One IN_STOCK phone bought for 100.00, fully paid."""
    purchase = make_purchase([phone_line("350000000000001")])
    return purchase.purchase_items[0].item
