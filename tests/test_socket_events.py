import repository
from errors import PersistenceFailure
from models import Message
from conftest import register_and_login, received


def _room(http_client, name='general'):
    return http_client.post('/rooms', json={'name': name}).get_json()['id']


def test_anonymous_send_is_rejected(app, client, make_socket):
    room_id = _room(client)
    sock = make_socket(client)

    sock.emit('sendMessage', {'roomId': room_id, 'content': 'hi'})

    errors = received(sock, 'error')
    assert errors == [{'error': 'unauthorized', 'message': 'User not logged in or session expired'}]
    assert sock.is_connected()
    with app.app_context():
        assert Message.query.count() == 0


def test_join_then_send_reaches_sender(client, make_socket):
    register_and_login(client, 'alice')
    room_id = _room(client)
    sock = make_socket(client)

    sock.emit('addUser', {'roomId': room_id, 'messageType': 'JOIN'})
    joins = received(sock, 'message')
    assert len(joins) == 1
    assert joins[0]['messageType'] == 'JOIN'
    assert joins[0]['content'] == 'alice joined the room'

    sock.emit('sendMessage', {'roomId': room_id, 'content': 'hi', 'messageType': 'CHAT'})
    messages = received(sock, 'message')
    assert len(messages) == 1
    assert messages[0]['content'] == 'hi'
    assert messages[0]['messageType'] == 'CHAT'
    assert messages[0]['senderName'] == 'alice'


def test_broadcast_stays_within_room(make_client, make_socket):
    alice_http, bob_http = make_client(), make_client()
    register_and_login(alice_http, 'alice')
    register_and_login(bob_http, 'bob')
    general = _room(alice_http, 'general')
    random_room = _room(alice_http, 'random')
    alice = make_socket(alice_http)
    bob = make_socket(bob_http)
    alice.emit('addUser', {'roomId': general})
    bob.emit('addUser', {'roomId': random_room})
    alice.get_received()
    bob.get_received()

    alice.emit('sendMessage', {'roomId': general, 'content': 'only general'})

    assert [m['content'] for m in received(alice, 'message')] == ['only general']
    assert received(bob, 'message') == []


def test_subscriber_receives_without_joining(make_client, make_socket):
    alice_http, bob_http = make_client(), make_client()
    register_and_login(alice_http, 'alice')
    register_and_login(bob_http, 'bob')
    room_id = _room(alice_http)
    alice = make_socket(alice_http)
    bob = make_socket(bob_http)
    alice.emit('addUser', {'roomId': room_id})
    bob.emit('subscribe', {'roomId': room_id})
    bob.get_received()

    alice.emit('sendMessage', {'roomId': room_id, 'content': 'hello bob'})

    assert [m['content'] for m in received(bob, 'message')] == ['hello bob']


def test_leave_stops_delivery(make_client, make_socket):
    alice_http, bob_http = make_client(), make_client()
    register_and_login(alice_http, 'alice')
    register_and_login(bob_http, 'bob')
    room_id = _room(alice_http)
    alice = make_socket(alice_http)
    bob = make_socket(bob_http)
    alice.emit('addUser', {'roomId': room_id})
    bob.emit('addUser', {'roomId': room_id})
    alice.get_received()
    bob.get_received()

    bob.emit('leaveUser', {'roomId': room_id})
    leaves = received(alice, 'message')
    assert [m['messageType'] for m in leaves] == ['LEAVE']

    alice.emit('sendMessage', {'roomId': room_id, 'content': 'still here?'})
    assert received(bob, 'message') == []


def test_unknown_room_and_bad_payload(client, make_socket):
    register_and_login(client, 'alice')
    sock = make_socket(client)

    sock.emit('sendMessage', {'roomId': 999, 'content': 'hi'})
    sock.emit('sendMessage', {'content': 'no room'})
    sock.emit('addUser', 'not-an-object')

    kinds = [e['error'] for e in received(sock, 'error')]
    assert kinds == ['not_found', 'validation_error', 'validation_error']
    assert sock.is_connected()


def test_persistence_failure_is_generic_and_not_broadcast(client, make_socket, monkeypatch):
    register_and_login(client, 'alice')
    room_id = _room(client)
    sock = make_socket(client)
    sock.emit('addUser', {'roomId': room_id})
    sock.get_received()

    def boom(obj):
        raise PersistenceFailure()

    monkeypatch.setattr(repository.messages, 'save', boom)
    sock.emit('sendMessage', {'roomId': room_id, 'content': 'lost'})

    events = sock.get_received()
    assert [e['name'] for e in events] == ['error']
    assert events[0]['args'][0] == {'error': 'persistence_failure', 'message': 'Failed to process request'}


def test_unexpected_error_keeps_connection(client, make_socket, monkeypatch):
    register_and_login(client, 'alice')
    room_id = _room(client)
    sock = make_socket(client)

    def explode(obj):
        raise RuntimeError('disk on fire')

    monkeypatch.setattr(repository.messages, 'save', explode)
    sock.emit('sendMessage', {'roomId': room_id, 'content': 'hi'})

    errors = received(sock, 'error')
    assert errors == [{'error': 'internal_error', 'message': 'Failed to process message'}]
    assert sock.is_connected()
