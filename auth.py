import logging
from datetime import datetime

import bcrypt
from flask import Blueprint, current_app, request, session, jsonify

from errors import (
    ConstraintViolation, EmailTaken, InvalidCredentials, UsernameTaken, ValidationError,
)
from models import User
from repository import users

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/auth')


def hash_password(password):
    rounds = current_app.config.get('BCRYPT_ROUNDS', 12)
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def check_password(password, password_hash):
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def register(username, password, email=None):
    for field, value in (('username', username), ('password', password), ('email', email)):
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{field} must be a string")

    username = (username or '').strip()
    email = (email or '').strip() or None
    if not username:
        raise ValidationError("Username is required")
    if not password:
        raise ValidationError("Password is required")

    if users.first_by(username=username):
        raise UsernameTaken()
    if email is not None and users.first_by(email=email):
        raise EmailTaken()

    user = User(username=username, email=email, password_hash=hash_password(password))
    try:
        users.save(user)
    except ConstraintViolation:
        # Lost a race with a concurrent registration
        if users.first_by(username=username):
            raise UsernameTaken()
        raise EmailTaken()

    logger.info("Registered user %s", username)
    return user


def authenticate(username, password):
    if not isinstance(username, str) or not isinstance(password, str):
        raise InvalidCredentials()

    user = users.first_by(username=username.strip())
    if user is None or not password or not check_password(password, user.password_hash):
        raise InvalidCredentials()

    user.is_online = True
    user.last_activity = datetime.now()
    users.save(user)
    return user


def current_username():
    """Username of the logged-in HTTP session, if any."""
    return session.get('username') or None


@bp.route('/register', methods=['POST'])
def register_route():
    data = request.get_json(silent=True) or {}
    user = register(data.get('username'), data.get('password'), data.get('email'))
    return jsonify(user.to_dict()), 201


@bp.route('/login', methods=['POST'])
def login_route():
    data = request.get_json(silent=True) or {}
    user = authenticate(data.get('username'), data.get('password'))
    session['username'] = user.username
    session['user_id'] = user.id
    logger.info("User %s logged in", user.username)
    return jsonify({'username': user.username})


@bp.route('/logout', methods=['POST'])
def logout_route():
    username = current_username()
    if username:
        user = users.first_by(username=username)
        if user is not None:
            user.is_online = False
            user.last_activity = datetime.now()
            users.save(user)
        logger.info("User %s logged out", username)
    session.clear()
    return jsonify({'message': 'Logged out'})


@bp.route('/current-user')
def current_user_route():
    username = current_username()
    if username is None:
        return '', 204
    return jsonify({'username': username})
