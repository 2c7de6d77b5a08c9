"""
Real-time message relay.

Each operation handles one inbound event from one connection: resolve the
connection's user and the target room, persist the resulting message, then
publish it to everyone subscribed to the room's topic. Users and rooms are
looked up again on every call; nothing is cached between events.
"""

import logging
from datetime import datetime

from flask import current_app

from connections import ConnectionContext, current_user
from errors import NotFound, Unauthorized, ValidationError
from media import is_image_data_uri, thumbnail_data_uri
from models import Message, CLIENT_SENDABLE, CLIENT_TO_STORED
from repository import users, rooms, messages, memberships
from rooms import join

logger = logging.getLogger(__name__)

JOIN_TAG = 'JOIN'
LEAVE_TAG = 'LEAVE'


def topic_for(room_id):
    return f"/topic/chat/{room_id}/public"


def to_stored_type(client_tag):
    """Map an inbound client tag to the stored vocabulary. Missing means CHAT."""
    if client_tag is None:
        client_tag = 'CHAT'
    if client_tag not in CLIENT_SENDABLE:
        raise ValidationError(f"Unsupported message type: {client_tag}")
    return CLIENT_TO_STORED[client_tag]


class MessageRelay:
    """Relay operations bound to a broadcast transport.

    ``broadcaster`` needs ``publish(topic, payload)``,
    ``subscribe(sid, topic)`` and ``unsubscribe(sid, topic)``.
    """

    def __init__(self, broadcaster):
        self.broadcaster = broadcaster

    @property
    def max_length(self):
        return current_app.config.get('MESSAGE_MAX_LENGTH', 1000)

    @property
    def image_max_size(self):
        return current_app.config.get('IMAGE_MAX_SIZE', (800, 800))

    def _resolve(self, room_id, ctx):
        username = current_user(ctx)
        if not username:
            raise Unauthorized()
        room = rooms.get(room_id)
        if room is None:
            raise NotFound('Room', room_id)
        user = users.first_by(username=username)
        if user is None:
            raise NotFound('User', username)
        return user, room

    def _build_message(self, raw):
        stored_type = to_stored_type(raw.get('messageType'))
        content = raw.get('content')
        file_url = raw.get('fileUrl') or None
        if content is not None and not isinstance(content, str):
            raise ValidationError("Message content must be a string")
        content = content or ''

        if stored_type == 'text' and not content.strip():
            raise ValidationError("Message content is required")
        if len(content) > self.max_length:
            raise ValidationError(f"Message content must be at most {self.max_length} characters")
        if stored_type in ('image', 'file') and not file_url:
            raise ValidationError("fileUrl is required for image and file messages")
        if stored_type == 'image' and is_image_data_uri(file_url):
            file_url = thumbnail_data_uri(file_url, self.image_max_size)

        return Message(content=content, message_type=stored_type, file_url=file_url)

    def _persist(self, message, user, room):
        message.sender_id = user.id
        message.room_id = room.id
        message.created_at = datetime.now()
        # Durability point: nothing is published if this raises
        return messages.save(message)

    def _publish(self, message, user, room, client_tag=None):
        payload = message.to_client(sender_name=user.username, client_tag=client_tag)
        self.broadcaster.publish(topic_for(room.id), payload)
        return payload

    def send_message(self, raw, room_id, ctx: ConnectionContext):
        user, room = self._resolve(room_id, ctx)
        message = self._persist(self._build_message(raw or {}), user, room)
        logger.info("User %s sent message %s to room %s", user.username, message.id, room.id)
        return self._publish(message, user, room)

    def add_user(self, raw, room_id, ctx: ConnectionContext):
        user, room = self._resolve(room_id, ctx)
        join(user, room)
        message = self._persist(
            Message(content=f"{user.username} joined the room", message_type='system'), user, room)

        previous = ctx.current_room_id
        if previous is not None and previous != room.id:
            self.broadcaster.unsubscribe(ctx.sid, topic_for(previous))
        ctx.current_room_id = room.id
        self.broadcaster.subscribe(ctx.sid, topic_for(room.id))

        logger.info("User %s joined room %s", user.username, room.id)
        return self._publish(message, user, room, client_tag=JOIN_TAG)

    def leave_user(self, raw, room_id, ctx: ConnectionContext):
        user, room = self._resolve(room_id, ctx)
        if ctx.current_room_id != room.id and memberships.get((user.id, room.id)) is None:
            # Never entered this room: nothing to announce
            self.broadcaster.unsubscribe(ctx.sid, topic_for(room.id))
            return None

        message = self._persist(
            Message(content=f"{user.username} left the room", message_type='system'), user, room)

        if ctx.current_room_id == room.id:
            ctx.current_room_id = None
        self.broadcaster.unsubscribe(ctx.sid, topic_for(room.id))

        logger.info("User %s left room %s", user.username, room.id)
        return self._publish(message, user, room, client_tag=LEAVE_TAG)

    def subscribe(self, room_id, ctx: ConnectionContext):
        if not current_user(ctx):
            raise Unauthorized()
        if rooms.get(room_id) is None:
            raise NotFound('Room', room_id)
        self.broadcaster.subscribe(ctx.sid, topic_for(room_id))
