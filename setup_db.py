from models import db, Room


def init_db(app):
    """Create tables and the default rooms (idempotent)."""
    with app.app_context():
        db.create_all()

        # Create some initial rooms
        for room_name in app.config.get('SEED_ROOMS', []):
            if not Room.query.filter_by(name=room_name).first():
                new_room = Room(name=room_name)
                db.session.add(new_room)

        db.session.commit()


if __name__ == '__main__':
    from app import create_app

    init_db(create_app())
    print("Database setup complete!")
