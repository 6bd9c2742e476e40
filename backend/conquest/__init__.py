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
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = [o.strip() for o in (flask_app.config.get('CORS_ORIGINS') or '').split(',') if o.strip()]

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from conquest.main import main
    flask_app.register_blueprint(main)

    from conquest.api.territories import territories
    flask_app.register_blueprint(territories, url_prefix='/api/territories')

    from conquest.api.runs import runs
    flask_app.register_blueprint(runs, url_prefix='/api/runs')

    try:
        from conquest.socketio_events import register_socketio_handlers
        register_socketio_handlers(testing=flask_app.config.get('TESTING', False))
    except Exception as exc:
        flask_app.logger.warning(f"SocketIO events not loaded: {exc}")

    from conquest.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return {'error': 'Authentication required'}, 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            seed = [('runner1', '#7B2CBF'), ('runner2', '#E63946'), ('runner3', '#2A9D8F')]
            for username, color in seed:
                user = User(username=username, display_name=username.title(), color=color)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('territories-sweep')
    def territories_sweep_command():
        """Deletes empty, invalid and sub-threshold territories."""
        from conquest.services.territories.cleanup import CleanupEngine
        with flask_app.app_context():
            removed = CleanupEngine().sweep()
            db.session.commit()
            print(f'Removed {removed} territory fragment(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(territories_sweep_command)

    return flask_app
