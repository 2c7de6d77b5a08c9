from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Client-facing message tags <-> stored message types.
CLIENT_TO_STORED = {
    'CHAT': 'text',
    'IMAGE': 'image',
    'FILE': 'file',
    'SYSTEM': 'system',
    'JOIN': 'system',
    'LEAVE': 'system',
}
STORED_TO_CLIENT = {
    'text': 'CHAT',
    'image': 'IMAGE',
    'file': 'FILE',
    'system': 'SYSTEM',
}
# Tags a client may put on an inbound message; the rest are server-generated.
CLIENT_SENDABLE = ('CHAT', 'IMAGE', 'FILE')


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    password_hash = db.Column(db.String(128), nullable=False)
    avatar_url = db.Column(db.String(255))
    is_online = db.Column(db.Boolean, default=False)
    last_activity = db.Column(db.DateTime, default=datetime.now)
    created_at = db.Column(db.DateTime, default=datetime.now)

    messages = db.relationship('Message', backref='sender', lazy=True)
    room_memberships = db.relationship('RoomMember', backref='user', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'avatarUrl': self.avatar_url,
            'isOnline': bool(self.is_online),
            'createdAt': _iso(self.created_at),
        }


class Room(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000))
    is_private = db.Column(db.Boolean, default=False)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    max_members = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.now)

    messages = db.relationship('Message', backref='room', lazy=True)
    members = db.relationship('RoomMember', backref='room', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'isPrivate': bool(self.is_private),
            'createdBy': self.created_by,
            'maxMembers': self.max_members,
            'createdAt': _iso(self.created_at),
        }


class RoomMember(db.Model):
    # Composite key: one membership per (user, room)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), primary_key=True)
    role = db.Column(db.String(10), nullable=False, default='member')  # owner | admin | member
    nickname = db.Column(db.String(80))
    joined_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            'userId': self.user_id,
            'roomId': self.room_id,
            'role': self.role,
            'nickname': self.nickname,
            'joinedAt': _iso(self.joined_at),
        }


class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.String(1000), nullable=False, default='')
    message_type = db.Column(db.String(10), nullable=False, default='text')  # text | image | file | system
    file_url = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.now, index=True)

    def to_client(self, sender_name=None, client_tag=None):
        """Render the stored row in the client vocabulary.

        ``client_tag`` overrides the default mapping, e.g. ``JOIN`` for a
        system row produced by a join.
        """
        return {
            'id': self.id,
            'roomId': self.room_id,
            'senderId': self.sender_id,
            'senderName': sender_name,
            'content': self.content,
            'messageType': client_tag or STORED_TO_CLIENT[self.message_type],
            'fileUrl': self.file_url,
            'createdAt': _iso(self.created_at),
        }


def _iso(value):
    return value.isoformat() if value is not None else None
