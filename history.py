from errors import NotFound
from models import User
from repository import rooms, users, find_messages_by_room_ordered_by_time


def get_room_history(room_id):
    """All messages of a room, oldest first, in the client vocabulary.

    Sender names come from the current user rows, so a renamed user shows up
    under the new name. A sender that no longer exists gets ``None``.
    """
    if rooms.get(room_id) is None:
        raise NotFound('Room', room_id)

    stored = find_messages_by_room_ordered_by_time(room_id)
    sender_ids = {m.sender_id for m in stored if m.sender_id is not None}
    names = {}
    if sender_ids:
        names = {u.id: u.username for u in users.filter(User.id.in_(sender_ids))}

    return [m.to_client(sender_name=names.get(m.sender_id)) for m in stored]
