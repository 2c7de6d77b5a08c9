import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import ConstraintViolation, PersistenceFailure
from models import db, User, Room, Message, RoomMember

logger = logging.getLogger(__name__)


@contextmanager
def _guarded(action, model):
    try:
        yield
    except IntegrityError as e:
        db.session.rollback()
        logger.warning("Constraint violation on %s %s: %s", action, model.__name__, e.orig)
        raise ConstraintViolation() from e
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Persistence failure on %s %s", action, model.__name__)
        raise PersistenceFailure() from e


class Repository:
    """Thin CRUD gateway over one model."""

    def __init__(self, model):
        self.model = model

    def save(self, obj):
        with _guarded('save', self.model):
            db.session.add(obj)
            db.session.commit()
        return obj

    def get(self, ident):
        with _guarded('get', self.model):
            return db.session.get(self.model, ident)

    def all(self):
        with _guarded('all', self.model):
            return self.model.query.all()

    def find_by(self, **filters):
        with _guarded('find_by', self.model):
            return self.model.query.filter_by(**filters).all()

    def first_by(self, **filters):
        with _guarded('first_by', self.model):
            return self.model.query.filter_by(**filters).first()

    def count_by(self, **filters):
        with _guarded('count_by', self.model):
            return self.model.query.filter_by(**filters).count()

    def filter(self, *predicates):
        with _guarded('filter', self.model):
            return self.model.query.filter(*predicates).all()

    def delete(self, obj):
        with _guarded('delete', self.model):
            db.session.delete(obj)
            db.session.commit()


users = Repository(User)
rooms = Repository(Room)
memberships = Repository(RoomMember)
messages = Repository(Message)


def find_messages_by_room_ordered_by_time(room_id):
    with _guarded('history', Message):
        return Message.query.filter_by(room_id=room_id)\
            .order_by(Message.created_at.asc(), Message.id.asc())\
            .all()
