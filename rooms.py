import logging
from datetime import datetime

from flask import Blueprint, request, session, jsonify

from errors import ConstraintViolation, NotFound, RoomFull, ValidationError
from history import get_room_history
from models import Room, RoomMember
from repository import rooms, memberships

logger = logging.getLogger(__name__)

bp = Blueprint('rooms', __name__, url_prefix='/rooms')


def create_room(name, description=None, is_private=False, max_members=None, creator_user_id=None):
    if name is not None and not isinstance(name, str):
        raise ValidationError("Room name must be a string")
    if description is not None and not isinstance(description, str):
        raise ValidationError("Room description must be a string")
    if is_private is not None and not isinstance(is_private, bool):
        raise ValidationError("isPrivate must be true or false")
    if isinstance(max_members, bool):
        raise ValidationError("maxMembers must be an integer")

    name = (name or '').strip()
    if not name:
        raise ValidationError("Room name is required")
    if len(name) > 100:
        raise ValidationError("Room name must be at most 100 characters")
    if description is not None and len(description) > 1000:
        raise ValidationError("Room description must be at most 1000 characters")
    if max_members is not None:
        try:
            max_members = int(max_members)
        except (TypeError, ValueError):
            raise ValidationError("maxMembers must be an integer")
        if max_members < 1:
            raise ValidationError("maxMembers must be positive")

    room = Room(
        name=name,
        description=description,
        is_private=bool(is_private),
        max_members=max_members,
        created_by=creator_user_id,
    )
    rooms.save(room)
    logger.info("Created room %s (%s)", room.id, room.name)
    return room


def get_room(room_id):
    room = rooms.get(room_id)
    if room is None:
        raise NotFound('Room', room_id)
    return room


def join(user, room):
    """Add ``user`` to ``room`` as a member.

    Repeated joins return the existing membership unchanged.
    """
    existing = memberships.get((user.id, room.id))
    if existing is not None:
        return existing

    if room.max_members and memberships.count_by(room_id=room.id) >= room.max_members:
        raise RoomFull()

    member = RoomMember(user_id=user.id, room_id=room.id, role='member', joined_at=datetime.now())
    try:
        memberships.save(member)
    except ConstraintViolation:
        # Concurrent join of the same pair
        existing = memberships.get((user.id, room.id))
        if existing is None:
            raise
        return existing

    # Concurrent joins can both pass the pre-check; recount after inserting.
    # Racing joiners that overshoot are all backed out, so the limit holds.
    if room.max_members and memberships.count_by(room_id=room.id) > room.max_members:
        memberships.delete(member)
        raise RoomFull()
    return member


def list_members(room_id):
    get_room(room_id)
    return memberships.find_by(room_id=room_id)


@bp.route('', methods=['POST'])
def create_room_route():
    data = request.get_json(silent=True) or {}
    room = create_room(
        data.get('name'),
        description=data.get('description'),
        is_private=data.get('isPrivate', False),
        max_members=data.get('maxMembers'),
        creator_user_id=session.get('user_id'),
    )
    return jsonify(room.to_dict()), 201


@bp.route('', methods=['GET'])
def list_rooms_route():
    return jsonify([room.to_dict() for room in rooms.all()])


@bp.route('/private/<flag>')
def list_rooms_by_privacy_route(flag):
    flag = flag.lower()
    if flag not in ('true', 'false'):
        raise ValidationError("Privacy flag must be true or false")
    return jsonify([room.to_dict() for room in rooms.find_by(is_private=(flag == 'true'))])


@bp.route('/<int:room_id>')
def get_room_route(room_id):
    return jsonify(get_room(room_id).to_dict())


@bp.route('/<int:room_id>/members')
def list_members_route(room_id):
    return jsonify([member.to_dict() for member in list_members(room_id)])


@bp.route('/<int:room_id>/messages')
def room_messages_route(room_id):
    return jsonify(get_room_history(room_id))
