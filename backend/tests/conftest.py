"""
Pytest fixtures for the caisse backend tests.

Provides test database setup, location fixtures, and test client.
"""

import pytest
from caisse import create_app
from caisse.extensions import db
from caisse.services import location_service, session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CAISSE_VARIANCE_TOLERANCE_CENTS': 1000,
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
def location(db_session):
    """Active boutique with no session."""
    return location_service.create_location(code="BTQ-01", name="Boutique Plateau", city="Dakar")


@pytest.fixture(scope='function')
def other_location(db_session):
    return location_service.create_location(code="BTQ-02", name="Boutique Medina", city="Dakar")


@pytest.fixture(scope='function')
def open_session(location):
    """Session opened on `location` with a 50000 float."""
    return session_service.open_session(location.id, 50000, "Float from safe", opened_by="awa")
