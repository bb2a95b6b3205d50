"""
Pytest fixtures for inventory audit backend tests.

Provides test database setup, roles/users, reference data factories and
test client helpers.
"""

from decimal import Decimal

import pytest

from inventory_audit import create_app
from inventory_audit.extensions import db
from inventory_audit.models import Item, Room
from inventory_audit.services import auth_service, permission_service, user_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
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
def setup_roles(db_session):
    """Setup default roles and permissions."""
    permission_service.initialize_permissions()
    permission_service.create_default_roles()
    db_session.commit()


def _user_with_role(name: str, mobile: str, role_name: str, **kwargs):
    role = user_service.get_role_by_name(role_name)
    return user_service.create_user(name=name, mobile=mobile, role_id=role.id, **kwargs)


@pytest.fixture(scope='function')
def admin_user(db_session, setup_roles):
    return _user_with_role("Alice Admin", "01700000001", "ADMIN")


@pytest.fixture(scope='function')
def auditor_user(db_session, setup_roles):
    return _user_with_role("Bob Auditor", "01700000002", "AUDITOR")


@pytest.fixture(scope='function')
def viewer_user(db_session, setup_roles):
    return _user_with_role("Vera Viewer", "01700000003", "VIEWER")


@pytest.fixture(scope='function')
def make_room(db_session):
    """Factory: make_room("Lab 1") -> Room."""
    def _make(name: str, **kwargs) -> Room:
        room = Room(name=name, **kwargs)
        db_session.add(room)
        db_session.commit()
        return room
    return _make


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: make_item("Chair", unit_price="10") -> Item."""
    def _make(name: str, unit_price=None, **kwargs) -> Item:
        item = Item(
            name=name,
            unit_price=Decimal(str(unit_price)) if unit_price is not None else None,
            **kwargs,
        )
        db_session.add(item)
        db_session.commit()
        return item
    return _make


def auth_headers(user) -> dict:
    """Authorization headers carrying a fresh bearer token for `user`."""
    return {'Authorization': f'Bearer {auth_service.issue_token(user)}'}
