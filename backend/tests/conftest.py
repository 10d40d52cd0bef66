"""
Pytest fixtures for PackTrack backend tests.

Provides test database setup, workspace fixtures, stocked products, and a
test client with workspace headers.
"""

import pytest

from packtrack import create_app
from packtrack.extensions import db
from packtrack.models import Workspace
from packtrack.services import order_service, products_service
from packtrack.services.context import OperationContext


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'VIDEO_STORAGE_ROOT': str(tmp_path_factory.mktemp('videos')),
        'PHOTO_STORAGE_ROOT': str(tmp_path_factory.mktemp('photos')),
        'RETRY_ATTEMPTS': 2,
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
def video_root(app, tmp_path, monkeypatch):
    """Point evidence storage at a per-test directory."""
    monkeypatch.setitem(app.config, 'VIDEO_STORAGE_ROOT', str(tmp_path / 'videos'))
    return tmp_path / 'videos'


@pytest.fixture(scope='function')
def photo_root(app, tmp_path, monkeypatch):
    """Point seal photo storage at a per-test directory."""
    monkeypatch.setitem(app.config, 'PHOTO_STORAGE_ROOT', str(tmp_path / 'photos'))
    return tmp_path / 'photos'


@pytest.fixture(scope='function')
def workspace_a(db_session):
    """Workspace A (first tenant)."""
    workspace = Workspace(name="Workspace A - Main Warehouse", code="MAIN", is_active=True)
    db_session.add(workspace)
    db_session.commit()
    return workspace


@pytest.fixture(scope='function')
def workspace_b(db_session):
    """Workspace B (second tenant)."""
    workspace = Workspace(name="Workspace B - Outlet", code="OUTLET", is_active=True)
    db_session.add(workspace)
    db_session.commit()
    return workspace


@pytest.fixture(scope='function')
def ctx(workspace_a):
    """Operator 7 acting in workspace A."""
    return OperationContext(workspace_id=workspace_a.id, actor_id=7)


@pytest.fixture(scope='function')
def ctx_b(workspace_b):
    return OperationContext(workspace_id=workspace_b.id, actor_id=8)


@pytest.fixture(scope='function')
def make_product(ctx):
    """Factory: product stocked through an opening reconciliation movement."""
    counter = {"n": 0}

    def _make(quantity=10, *, sku=None, name=None, low_stock_threshold=5):
        counter["n"] += 1
        return products_service.create_product(
            ctx,
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price_cents=1000,
            low_stock_threshold=low_stock_threshold,
            opening_quantity=quantity,
        )

    return _make


@pytest.fixture(scope='function')
def make_order(ctx):
    """Factory: order in status NEW with (product, quantity) lines."""
    counter = {"n": 0}

    def _make(*lines, order_number=None):
        counter["n"] += 1
        return order_service.create_order(
            ctx,
            order_number=order_number or f"ORD-{1000 + counter['n']}",
            items=[
                {"product_id": product.id, "quantity": quantity, "price_cents": 1000}
                for product, quantity in lines
            ],
            customer_name="Test Customer",
        )

    return _make


@pytest.fixture(scope='function')
def headers(workspace_a):
    """Request headers for workspace A, operator 7."""
    return {"X-Workspace-Id": str(workspace_a.id), "X-Actor-Id": "7"}
