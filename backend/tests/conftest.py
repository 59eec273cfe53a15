"""
Pytest fixtures for CoinSeal backend tests.

Provides an in-memory database, a per-test clean db_session, a test client,
and a small provisioned hierarchy built through the real services:

    superadmin (1,000,000 minted coins)
      admin (10,000 allocated)
        company "Acme Logistics" (100 allocated to its representative)
          operator, guard, driver
        company "Globex Freight" (no coins)
          other_operator, other_guard
"""

import pytest

from coinseal import create_app
from coinseal.actor import Actor
from coinseal.extensions import db
from coinseal.roles import Role, Subrole
from coinseal.services import identity_service, ledger_service

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'ATOMIC_RETRY_BACKOFF': 0,
        'SYSTEM_ACCOUNT_EMAIL': '',
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


def actor_for(account, **network) -> Actor:
    """Helper to build the explicit actor a service call takes."""
    return Actor.from_account(account, **network)


def make_account(creator, role, email, *, subrole=None, company_id=None, name=None):
    """Helper to provision an account through the creation matrix."""
    data = {
        "name": name or email.split("@")[0].replace(".", " ").title(),
        "email": email,
        "password": PASSWORD,
        "role": role,
    }
    if subrole:
        data["subrole"] = subrole
    if company_id is not None:
        data["company_id"] = company_id
    return identity_service.create_account(actor_for(creator), data)


@pytest.fixture(scope='function')
def superadmin(db_session):
    """Root SuperAdmin funded with the standard initial top-up."""
    account = identity_service.bootstrap_superadmin("Root", "root@coinseal.test", PASSWORD)
    ledger_service.top_up(1_000_000, note="Initial system funding")
    return account


@pytest.fixture(scope='function')
def admin(superadmin):
    account = make_account(superadmin, Role.ADMIN, "admin@coinseal.test")
    ledger_service.allocate_coins(actor_for(superadmin), account.id, 10_000)
    return account


@pytest.fixture(scope='function')
def company(admin):
    """Representative account of Acme Logistics, holding 100 coins."""
    account = make_account(admin, Role.COMPANY, "ops@acme.test", name="Acme Logistics")
    ledger_service.allocate_coins(actor_for(admin), account.id, 100)
    return account


@pytest.fixture(scope='function')
def operator(admin, company):
    return make_account(admin, Role.EMPLOYEE, "operator@acme.test", subrole=Subrole.OPERATOR, company_id=company.company_id)


@pytest.fixture(scope='function')
def guard(admin, company):
    return make_account(admin, Role.EMPLOYEE, "guard@acme.test", subrole=Subrole.GUARD, company_id=company.company_id)


@pytest.fixture(scope='function')
def driver(admin, company):
    return make_account(admin, Role.EMPLOYEE, "driver@acme.test", subrole=Subrole.DRIVER, company_id=company.company_id)


@pytest.fixture(scope='function')
def other_company(admin):
    """Representative account of Globex Freight, with no coins."""
    return make_account(admin, Role.COMPANY, "ops@globex.test", name="Globex Freight")


@pytest.fixture(scope='function')
def other_operator(admin, other_company):
    return make_account(
        admin, Role.EMPLOYEE, "operator@globex.test", subrole=Subrole.OPERATOR, company_id=other_company.company_id
    )


@pytest.fixture(scope='function')
def other_guard(admin, other_company):
    return make_account(
        admin, Role.EMPLOYEE, "guard@globex.test", subrole=Subrole.GUARD, company_id=other_company.company_id
    )


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for an account."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
