"""
Pytest fixtures for StockBill backend tests.

Provides the app on an in-memory database, per-test table wipe, two
branches, identities for each role and a product factory.
"""

import pytest

from stockbill import create_app
from stockbill.extensions import db
from stockbill.models import Branch, Product
from stockbill.permissions import DEFAULT_ROLE_PERMISSIONS, Identity
from stockbill.services import session_service
from stockbill.services.document_service import INVOICE_DOCUMENT_TYPE, ensure_sequence

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'JWT_SECRET': 'test-secret',
    'RETRY_BACKOFF_BASE': 0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(test_config=TEST_CONFIG)

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
def branch_a(db_session):
    branch = Branch(id="branch-a", name="Branch A", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session):
    branch = Branch(id="branch-b", name="Branch B", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def invoice_sequence(db_session):
    ensure_sequence(INVOICE_DOCUMENT_TYPE)


def make_identity(role: str, branch: str | None, user_id: str = "1", permissions=None) -> Identity:
    if permissions is None:
        permissions = DEFAULT_ROLE_PERMISSIONS.get(role, [])
    return Identity.build(
        user_id=user_id,
        email=f"{role}{user_id}@stockbill.test",
        role=role,
        permissions=permissions,
        branch=branch,
    )


@pytest.fixture
def admin_identity(branch_a):
    return make_identity("admin", branch_a.id, user_id="100")


@pytest.fixture
def manager_identity(branch_a):
    return make_identity("manager", branch_a.id, user_id="200")


@pytest.fixture
def user_identity(branch_a):
    """Counter user in branch A: products.read/create, billing.create, reports.read."""
    return make_identity("user", branch_a.id, user_id="300")


@pytest.fixture
def user_b_identity(branch_b):
    return make_identity("user", branch_b.id, user_id="400")


@pytest.fixture
def make_product(db_session):
    """Factory: insert a product directly with the given opening stock."""
    counter = {"n": 0}

    def _make(branch, *, stock=10, price_cents=1000, sku=None, name=None, category="General", **extra):
        counter["n"] += 1
        product = Product(
            branch_id=branch.id if isinstance(branch, Branch) else branch,
            sku=sku or f"SKU{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            category=category,
            price_cents=price_cents,
            stock=stock,
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


def auth_headers(identity: Identity) -> dict:
    """Helper to create Authorization headers for an identity."""
    return {'Authorization': f'Bearer {session_service.issue_token(identity)}'}


@pytest.fixture
def admin_headers(admin_identity):
    return auth_headers(admin_identity)


@pytest.fixture
def manager_headers(manager_identity):
    return auth_headers(manager_identity)


@pytest.fixture
def user_headers(user_identity):
    return auth_headers(user_identity)


@pytest.fixture
def user_b_headers(user_b_identity):
    return auth_headers(user_b_identity)


@pytest.fixture
def identity_for(db_session):
    """Factory for ad-hoc identities (custom grants, no branch, ...)."""
    return make_identity
