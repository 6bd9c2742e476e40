import os
import sys
import pytest

# Ensure the backend root (containing the `conquest` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from conquest import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = 'http://localhost:5173'
    CONQUEST_TIMEOUT_SEC = 60
    MAPBOX_ACCESS_TOKEN = ''
    MAP_MATCHING_TIMEOUT_SEC = 1
    MAP_MATCHING_PROFILE = 'walking'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import conquest.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def make_user(flask_app):
    from conquest.models import User

    def _make(username, color='#7B2CBF', display_name=None):
        user = User(username=username, display_name=display_name or username.title(), color=color)
        user.set_password('password')
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def alice(make_user):
    return make_user('alice', '#7B2CBF')


@pytest.fixture()
def bob(make_user):
    return make_user('bob', '#E63946')


def login(client, username, password='password', color='#7B2CBF'):
    client.post('/users/add', json={'username': username, 'password': password, 'color': color})
    res = client.post('/login', json={'username': username, 'password': password})
    assert res.status_code == 200
    return res.get_json()['user']
