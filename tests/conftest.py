import os
import sys
import pytest

# Ensure the project root (containing the `crossplay` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from crossplay import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    MIN_PLAYERS = 2
    MAX_PLAYERS = 8
    ROOM_CODE_LENGTH = 6
    START_COUNTDOWN_SEC = 0
    RECONNECT_GRACE_SEC = 60
    COMPLETION_RETRY_ATTEMPTS = 2
    SOLO_SESSION_LIMIT = 3


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        from crossplay.models import Puzzle
        from crossplay.services.puzzles import sample_puzzle
        db.create_all()
        db.session.add(Puzzle.from_dict(dict(sample_puzzle(), id='sample')))
        db.session.commit()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app, client):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=client,
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def synchronizer(flask_app):
    return flask_app.extensions['crossplay.sync']


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()
