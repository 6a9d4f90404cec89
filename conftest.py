"""
Shared fixtures for the sign-up sheet tests.
Uses an in-memory SQLite database; environment is set before app is imported.
"""
import os
import sys

# Add the app directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# Set testing environment before importing app
os.environ['TESTING'] = 'True'
os.environ['SECRET_KEY'] = 'test-secret-key'
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['WTF_CSRF_ENABLED'] = 'False'

import pytest

from app import app as flask_app, db, store, User, resolve_actor


@pytest.fixture
def app():
    flask_app.config['TESTING'] = True
    flask_app.config['WTF_CSRF_ENABLED'] = False
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(email=None, name=None, password="password123", admin=False, anonymous=False):
        user = User(email=email, name=name, is_anonymous=anonymous)
        if not anonymous:
            user.set_password(password)
        db.session.add(user)
        db.session.commit()
        if admin:
            store.add_admin(email, "test-setup")
        return user
    return _make_user


@pytest.fixture
def actor_for(app):
    """Resolve a user to an Actor the way a request would, admin lookup included."""
    return resolve_actor


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
    return _login
