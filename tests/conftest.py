"""
Pytest configuration and shared fixtures
"""
import email_validator
import pytest

from ampere import create_app
from ampere.extensions import db as _db
from ampere.models import ADMIN, FINANCE, PROJECT_MANAGER, SALES, SUPERADMIN, VENDOR, Client, User, Vendor

PASSWORD = "secret123"

# Fixtures use the reserved .test domain; email-validator accepts it only in test mode
email_validator.TEST_ENVIRONMENT = True


@pytest.fixture
def app():
    """Application on an in-memory database"""
    app = create_app("config.TestingConfig")
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    """Anonymous test client"""
    return app.test_client()


def _make_user(name, role, active=True):
    user = User(
        name=name,
        email=f"{name}@ampere.test",
        first_name=name.capitalize(),
        last_name="Tester",
        role=role,
        is_active=active,
    )
    user.set_password(PASSWORD)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture
def users(app):
    """One active user per role, keyed by role"""
    return {
        role: _make_user(role.lower(), role)
        for role in (SUPERADMIN, ADMIN, PROJECT_MANAGER, FINANCE, SALES, VENDOR)
    }


@pytest.fixture
def make_user(app):
    return _make_user


@pytest.fixture
def login_as(app, users):
    """Factory: a test client signed in (Flask-Login session) as the given role or user"""
    def _login(who):
        user = users[who] if isinstance(who, str) else who
        test_client = app.test_client()
        response = test_client.post("/api/auth/login", json={"username": user.name, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        return test_client

    return _login


@pytest.fixture
def sample_client(app, users):
    """An active client with a number"""
    client = Client(name="Marina Towers Pte Ltd", client_number="AE-C-001", email="ops@marina.test")
    _db.session.add(client)
    _db.session.commit()
    return client


@pytest.fixture
def sample_vendor(app, users):
    """An active vendor with a number"""
    vendor = Vendor(name="Volt Supplies", vendor_number="AE-V-001")
    _db.session.add(vendor)
    _db.session.commit()
    return vendor
