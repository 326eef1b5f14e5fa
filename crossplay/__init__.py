from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One synchronizer per app; handlers reach it through get_synchronizer()
    from crossplay.services.sync import RoomSynchronizer
    from crossplay.services.rooms import RoomRegistry
    from crossplay.services.history import completion_recorder
    testing = flask_app.config.get('TESTING', False)
    synchronizer = RoomSynchronizer(
        registry=RoomRegistry(
            max_players=flask_app.config.get('MAX_PLAYERS', 8),
            code_length=flask_app.config.get('ROOM_CODE_LENGTH', 6),
        ),
        min_players=flask_app.config.get('MIN_PLAYERS', 2),
        start_countdown=flask_app.config.get('START_COUNTDOWN_SEC', 3),
        reconnect_grace=flask_app.config.get('RECONNECT_GRACE_SEC', 120),
        spawn=None if testing else socketio.start_background_task,
        sleep=socketio.sleep,
    )
    synchronizer.on_completion(completion_recorder(flask_app))
    flask_app.extensions['crossplay.sync'] = synchronizer
    flask_app.extensions['crossplay.solo'] = {}

    from crossplay.main import main
    flask_app.register_blueprint(main, url_prefix='/api/auth')

    from crossplay.api.puzzles import puzzles
    flask_app.register_blueprint(puzzles, url_prefix='/api/puzzles')

    from crossplay.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from crossplay.api.solo import solo
    flask_app.register_blueprint(solo, url_prefix='/api/solo')

    from crossplay.socketio_events import register_socketio_handlers, broadcast_event
    register_socketio_handlers(testing=testing)
    synchronizer.add_listener(broadcast_event)

    # Flask-Login user loader
    from crossplay.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from crossplay.models import User, Puzzle
        from crossplay.services.puzzles import sample_puzzle
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u, display_name=u)
                user.set_password('password')
                db.session.add(user)

            db.session.add(Puzzle.from_dict(sample_puzzle()))
            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app


def get_synchronizer():
    from flask import current_app
    return current_app.extensions['crossplay.sync']
