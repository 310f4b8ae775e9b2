"""
Pytest fixtures for stock ledger tests.

Provides the application on in-memory SQLite, a per-test clean database,
and the Steel/Copper/Sanch catalog used across the service tests.
"""

from decimal import Decimal

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import bom_service, stock_service


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
def admin(db_session):
    """Admin who issues raw material."""
    return stock_service.create_user("Admin", "admin@test.local", is_admin=True)


@pytest.fixture(scope='function')
def worker(db_session):
    """User U1 who holds raw material and sends finished goods."""
    return stock_service.create_user("Worker One", "u1@test.local")


@pytest.fixture(scope='function')
def other_worker(db_session):
    return stock_service.create_user("Worker Two", "u2@test.local")


@pytest.fixture(scope='function')
def steel(db_session):
    """Raw material Steel with 100 kg central stock."""
    return stock_service.create_raw_material("Steel", unit="kg", quantity=Decimal("100"))


@pytest.fixture(scope='function')
def copper(db_session):
    """Raw material Copper with 50 kg central stock."""
    return stock_service.create_raw_material("Copper", unit="kg", quantity=Decimal("50"))


@pytest.fixture(scope='function')
def sanch(db_session, steel, copper):
    """Product Sanch: 2 Steel + 1 Copper per unit, no finished stock."""
    product = stock_service.create_product("Sanch", price=Decimal("250.00"))
    bom_service.define_structure(product.id, [
        {"raw_material_id": steel.id, "quantity_required": 2},
        {"raw_material_id": copper.id, "quantity_required": 1},
    ])
    return product


def quantity_of(model, row_id) -> Decimal:
    """Committed balance of a row, bypassing the identity map."""
    db.session.expire_all()
    return Decimal(db.session.get(model, row_id).quantity)


def user_balance(user_id: int, material_id: int) -> Decimal:
    """A user's balance of a material (0 when no row exists)."""
    from stockledger.models import UserInventory

    db.session.expire_all()
    row = (
        db.session.query(UserInventory)
        .filter_by(user_id=user_id, raw_material_id=material_id)
        .first()
    )
    return Decimal(row.quantity) if row else Decimal("0")
