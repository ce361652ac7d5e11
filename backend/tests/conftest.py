"""
Pytest fixtures for the rider stock and shift engine tests.

Provides test database setup, stock/transaction factories, identity headers
and the test client.
"""

import uuid

import pytest

from riderops import create_app
from riderops.config import TestConfig
from riderops.extensions import db
from riderops.models import SalesTransaction
from riderops.services import stock_service
from riderops.time_utils import utcnow

BRANCH_ID = 1
BRANCH_USER_ID = 900


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    class _Config(TestConfig):
        PHOTO_STORAGE_DIR = str(tmp_path_factory.mktemp("photos"))

    app = create_app(_Config)

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
def send(db_session):
    """Create a 'sent' movement for a rider; returns the movement."""
    def _send(rider_id: int, product_id: int, quantity: int, branch_id: int = BRANCH_ID):
        movements = stock_service.send_stock(
            branch_id=branch_id,
            rider_id=rider_id,
            items=[{"product_id": product_id, "quantity": quantity}],
            created_by_user_id=BRANCH_USER_ID,
        )
        return movements[0]
    return _send


@pytest.fixture(scope='function')
def stocked(send):
    """Send and confirm stock so the rider holds it; returns the balance."""
    def _stocked(rider_id: int, product_id: int, quantity: int):
        movement = send(rider_id, product_id, quantity)
        return stock_service.confirm_receive(movement.id).balance
    return _stocked


@pytest.fixture(scope='function')
def sale(db_session):
    """Insert a sales transaction directly into the transactions store."""
    def _sale(rider_id: int, amount: int, method: str = "cash", **kwargs):
        tx = SalesTransaction(
            transaction_number=kwargs.pop("transaction_number", None) or f"T-{uuid.uuid4().hex[:12]}",
            rider_id=rider_id,
            branch_id=BRANCH_ID,
            final_amount=amount,
            payment_method=method,
            status=kwargs.pop("status", "completed"),
            is_voided=kwargs.pop("is_voided", False),
            transaction_date=kwargs.pop("transaction_date", None) or utcnow(),
        )
        db_session.add(tx)
        db_session.commit()
        return tx
    return _sale


def rider_headers(rider_id: int, branch_id: int = BRANCH_ID) -> dict:
    """Identity headers of a rider as set by the gateway."""
    return {
        'X-Actor-Id': str(rider_id),
        'X-Actor-Role': 'rider',
        'X-Branch-Id': str(branch_id),
    }


def branch_headers(user_id: int = BRANCH_USER_ID, branch_id: int = BRANCH_ID) -> dict:
    """Identity headers of branch staff."""
    return {
        'X-Actor-Id': str(user_id),
        'X-Actor-Role': 'branch',
        'X-Branch-Id': str(branch_id),
    }
