"""
Pytest fixtures for region access backend tests.

Provides test database setup, role fixtures, and test client.
"""

import pytest
from app import create_app
from app.extensions import db
from app.models import User
from app.permissions import RoleName
from app.services import region_service
from app.services.auth_service import create_user


DEFAULT_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
def regions(db_session):
    """Seed the region catalog."""
    region_service.seed_regions()
    return region_service.list_regions()


def _make_user(username: str, role: str) -> User:
    return create_user(
        username=username,
        email=f"{username}@example.com",
        password=DEFAULT_PASSWORD,
        role=role,
    )


@pytest.fixture(scope='function')
def admin_user(regions):
    return _make_user("admin", RoleName.ADMIN)


@pytest.fixture(scope='function')
def manager_user(regions):
    return _make_user("manager", RoleName.MANAGER)


@pytest.fixture(scope='function')
def technician_user(regions):
    """Field technician: the usual subject of region grants."""
    return _make_user("asha", RoleName.TECHNICIAN)


@pytest.fixture(scope='function')
def other_user(regions):
    return _make_user("ravi", RoleName.USER)


@pytest.fixture(scope='function')
def seed(admin_user, manager_user, technician_user, other_user):
    """Regions plus one user per role."""
    return {
        "admin": admin_user,
        "manager": manager_user,
        "technician": technician_user,
        "user": other_user,
    }


def get_auth_token(client, username: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.get_json().get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, seed):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def manager_headers(client, seed):
    return auth_headers(get_auth_token(client, "manager"))


@pytest.fixture(scope='function')
def technician_headers(client, seed):
    return auth_headers(get_auth_token(client, "asha"))


@pytest.fixture(scope='function')
def user_headers(client, seed):
    return auth_headers(get_auth_token(client, "ravi"))
