"""
Pytest fixtures for back-office backend tests.

Provides test database setup, tenant fixtures (two Main Users and a
sub-user), catalog fixtures per tenant, and test client helpers.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import User, Product, Client, Provider
from backoffice.services.auth_service import hash_password
from backoffice.services.tenant_service import TenantContext


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAIL_BACKEND': 'log',
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


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


def make_user(db_session, username, email, password_hash, parent=None, company_name=None):
    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
        parent_user_id=parent.id if parent else None,
        company_name=company_name,
        is_active=True,
        context={},
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def main_a(db_session, password_hash):
    """Main User A (first tenant)."""
    return make_user(db_session, "owner_a", "owner_a@acme.com", password_hash, company_name="Acme Corp")


@pytest.fixture(scope='function')
def main_b(db_session, password_hash):
    """Main User B (second tenant)."""
    return make_user(db_session, "owner_b", "owner_b@beta.com", password_hash, company_name="Beta Inc")


@pytest.fixture(scope='function')
def sub_a(db_session, main_a, password_hash):
    """Sub-user of tenant A."""
    return make_user(db_session, "clerk_a", "clerk_a@acme.com", password_hash, parent=main_a,
                     company_name=main_a.company_name)


@pytest.fixture(scope='function')
def ctx_a(main_a):
    return TenantContext(main_user_id=main_a.id, actor_user_id=main_a.id)


@pytest.fixture(scope='function')
def ctx_b(main_b):
    return TenantContext(main_user_id=main_b.id, actor_user_id=main_b.id)


@pytest.fixture(scope='function')
def ctx_sub_a(main_a, sub_a):
    return TenantContext(main_user_id=main_a.id, actor_user_id=sub_a.id)


def make_product(db_session, owner, sku, name, stock=0, sale_price=1500, purchase_price=1000, category=None):
    product = Product(
        owner_user_id=owner.id,
        sku=sku,
        name=name,
        current_stock=stock,
        sale_price_cents=sale_price,
        purchase_price_cents=purchase_price,
        category=category,
        context={},
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, main_a):
    """Product of tenant A with 10 units on hand."""
    return make_product(db_session, main_a, "PROD-A-001", "Product A", stock=10, category="Hardware")


@pytest.fixture(scope='function')
def product_b(db_session, main_b):
    """Product of tenant B with 10 units on hand."""
    return make_product(db_session, main_b, "PROD-B-001", "Product B", stock=10)


@pytest.fixture(scope='function')
def client_a(db_session, main_a):
    party = Client(owner_user_id=main_a.id, name="Client A", nit="1234567", context={})
    db_session.add(party)
    db_session.commit()
    return party


@pytest.fixture(scope='function')
def client_b(db_session, main_b):
    party = Client(owner_user_id=main_b.id, name="Client B", nit="7654321", context={})
    db_session.add(party)
    db_session.commit()
    return party


@pytest.fixture(scope='function')
def provider_a(db_session, main_a):
    party = Provider(owner_user_id=main_a.id, name="Provider A", nit="P-100", context={})
    db_session.add(party)
    db_session.commit()
    return party


@pytest.fixture(scope='function')
def provider_b(db_session, main_b):
    party = Provider(owner_user_id=main_b.id, name="Provider B", nit="P-200", context={})
    db_session.add(party)
    db_session.commit()
    return party


def sale_payload(client_id, *lines, **extra):
    """lines: (product_id, quantity, unit_price_cents) tuples."""
    payload = {
        "client_id": client_id,
        "items": [
            {"product_id": pid, "quantity": qty, "unit_price_cents": price}
            for pid, qty, price in lines
        ],
    }
    payload.update(extra)
    return payload


def purchase_payload(provider_id, *lines, **extra):
    payload = {
        "provider_id": provider_id,
        "items": [
            {"product_id": pid, "quantity": qty, "unit_price_cents": price}
            for pid, qty, price in lines
        ],
    }
    payload.update(extra)
    return payload


def stock_of(product_id: int) -> int:
    """Re-read stock straight from the database."""
    db.session.expire_all()
    return db.session.get(Product, product_id).current_stock


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
