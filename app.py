import os
import logging
from flask import Flask, request, session, jsonify
from flask_socketio import SocketIO, emit, join_room, leave_room
from dotenv import load_dotenv

import auth
import rooms
from connections import ConnectionRegistry
from errors import ChatError, ValidationError
from models import db
from relay import MessageRelay

# Load environment variables
load_dotenv()

logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO'))
logger = logging.getLogger(__name__)

socketio = SocketIO()

# Live socket connections: {sid: ConnectionContext}
connections = ConnectionRegistry()


class SocketIOBroadcaster:
    """Room topics mapped onto Socket.IO rooms."""

    def publish(self, topic, payload):
        socketio.emit('message', payload, to=topic)

    def subscribe(self, sid, topic):
        join_room(topic, sid=sid)

    def unsubscribe(self, sid, topic):
        leave_room(topic, sid=sid)


relay = MessageRelay(SocketIOBroadcaster())


def create_app(test_config=None):
    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///chat.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev')
    app.config['BCRYPT_ROUNDS'] = int(os.getenv('BCRYPT_ROUNDS', '12'))
    app.config['MESSAGE_MAX_LENGTH'] = 1000
    app.config['IMAGE_MAX_SIZE'] = (800, 800)
    app.config['CORS_ALLOWED_ORIGINS'] = os.getenv('CORS_ALLOWED_ORIGINS', '*')
    app.config['SEED_ROOMS'] = ['General', 'Tech Talk', 'Random']
    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ALLOWED_ORIGINS'])

    app.register_blueprint(auth.bp)
    app.register_blueprint(rooms.bp)

    @app.errorhandler(ChatError)
    def handle_chat_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    return app


def _room_id(data):
    try:
        return int(data['roomId'])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("roomId is required")


def _relay(operation, data):
    """Run one relay operation; failures go back to the sender only."""
    ctx = connections.get(request.sid)
    try:
        if not isinstance(data, dict):
            raise ValidationError("Payload must be an object")
        return operation(data, _room_id(data), ctx)
    except ChatError as e:
        logger.warning("Rejected %s from %s: %s", request.event['message'], ctx.username, e.message)
        emit('error', e.to_dict())
    except Exception:
        logger.exception("Error handling %s from %s", request.event['message'], ctx.username)
        emit('error', {'error': 'internal_error', 'message': 'Failed to process message'})


@socketio.on('connect')
def handle_connect():
    ctx = connections.open(request.sid, session.get('username'))
    if ctx.username:
        logger.info("User %s connected", ctx.username)
    else:
        logger.info("Anonymous connection %s", request.sid)


@socketio.on('disconnect')
def handle_disconnect(*args):
    ctx = connections.close(request.sid)
    if ctx is not None and ctx.username:
        logger.info("User %s disconnected", ctx.username)


@socketio.on('sendMessage')
def handle_send_message(data):
    _relay(relay.send_message, data)


@socketio.on('addUser')
def handle_add_user(data):
    _relay(relay.add_user, data)


@socketio.on('leaveUser')
def handle_leave_user(data):
    _relay(relay.leave_user, data)


@socketio.on('subscribe')
def handle_subscribe(data):
    _relay(lambda _data, room_id, ctx: relay.subscribe(room_id, ctx), data)


if __name__ == '__main__':
    from setup_db import init_db

    app = create_app()
    init_db(app)
    socketio.run(app, debug=True, allow_unsafe_werkzeug=True)
