"""
Pytest configuration and fixtures for SkillArena tests.
"""
import os
import sys
from datetime import timedelta
import pytest
from flask import g

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from skillarena.app import create_app
from skillarena.models import db, utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    @app.before_request
    def reset_login_cache():
        # Requests share the fixture's app context, so g outlives a request
        g.pop('_login_user', None)

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
    """Fresh app context and session with every table emptied."""
    with app.app_context():
        db.session.remove()

        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture
def identity(app, db_session):
    return app.identity


@pytest.fixture
def relationships(app, db_session):
    return app.relationships


@pytest.fixture
def roster(app, db_session):
    return app.roster


@pytest.fixture
def listings(app, db_session):
    return app.listings


@pytest.fixture
def alice(identity):
    return identity.sign_up("Alice", "alice@example.com", "secret123")


@pytest.fixture
def bob(identity):
    return identity.sign_up("bob", "bob@example.com", "secret123")


@pytest.fixture
def carol(identity):
    return identity.sign_up("carol", "carol@example.com", "secret123")


@pytest.fixture
def future_date():
    return utcnow() + timedelta(days=7)


@pytest.fixture
def sample_tournament(roster, alice, future_date):
    """An open tournament with room for two players."""
    return roster.create_tournament(
        creator_id=alice.id,
        name="Friday Night Cup",
        game="Rocket League",
        max_participants=2,
        scheduled_at=future_date,
        prize="500 points"
    )


@pytest.fixture
def mock_redis(mocker):
    """Mock redis client."""
    return mocker.MagicMock()


@pytest.fixture
def login_as(client):
    """Log the test client in as the given user."""
    def _login(user, password: str = "secret123"):
        response = client.post('/api/v1/auth/login', json={'email': user.email, 'password': password})
        assert response.status_code == 200
        return response
    return _login
