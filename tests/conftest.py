import pytest

from app import create_app, socketio
from setup_db import init_db


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SECRET_KEY': 'test-secret',
        'BCRYPT_ROUNDS': 4,
        'SEED_ROOMS': [],
    })
    init_db(app)
    yield app


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_client(app):
    """Independent HTTP clients, one per simulated browser."""
    return app.test_client


@pytest.fixture
def make_socket(app):
    sockets = []

    def _connect(http_client):
        sock = socketio.test_client(app, flask_test_client=http_client)
        sockets.append(sock)
        return sock

    yield _connect

    for sock in sockets:
        if sock.is_connected():
            sock.disconnect()


def register_and_login(http_client, username, password='secret', email=None):
    body = {'username': username, 'password': password}
    if email is not None:
        body['email'] = email
    resp = http_client.post('/auth/register', json=body)
    assert resp.status_code == 201, resp.get_json()
    resp = http_client.post('/auth/login', json={'username': username, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


def received(sock, name):
    # The socketio test client stores 'message'/'json' payloads unwrapped
    return [
        event['args'] if event['name'] in ('message', 'json') else event['args'][0]
        for event in sock.get_received() if event['name'] == name
    ]


class FakeBroadcaster:
    def __init__(self):
        self.published = []
        self.subscriptions = {}

    def publish(self, topic, payload):
        self.published.append((topic, payload))

    def subscribe(self, sid, topic):
        self.subscriptions.setdefault(sid, set()).add(topic)

    def unsubscribe(self, sid, topic):
        self.subscriptions.get(sid, set()).discard(topic)
