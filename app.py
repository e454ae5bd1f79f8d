from concurrent.futures import ThreadPoolExecutor
import atexit
import logging
import os

from flask import Flask, render_template
from sqlalchemy import event

from models import db
from data_api import DataAPI, RealtimeHub, DEFAULT_EVENTS_PER_SECOND
from live_sync import LiveMatchSynchronizer
from blueprints.admin import admin_bp
from blueprints.overlay import overlay_bp

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE SET NULL unless foreign keys are switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


def _load_config() -> dict:
    """Process-wide settings, read once from the environment at startup."""
    config = {
        'SECRET_KEY': os.environ.get('SECRET_KEY', 'scoreboard'),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REALTIME_EVENTS_PER_SECOND': int(
            os.environ.get('REALTIME_EVENTS_PER_SECOND', DEFAULT_EVENTS_PER_SECOND)
        ),
        'REALTIME_ASYNC': _env_flag('REALTIME_ASYNC', True),
        'OVERLAY_POLL_INTERVAL_MS': int(os.environ.get('OVERLAY_POLL_INTERVAL_MS', 2000)),
        'OVERLAY_MIN_FETCH_INTERVAL_MS': int(os.environ.get('OVERLAY_MIN_FETCH_INTERVAL_MS', 1000)),
        'OVERLAY_REALTIME_ENABLED': _env_flag('OVERLAY_REALTIME_ENABLED', True),
        'OVERLAY_VIEWER_TIMEOUT_MS': int(os.environ.get('OVERLAY_VIEWER_TIMEOUT_MS', 10000)),
        'LIVE_SYNC_AUTOSTART': _env_flag('LIVE_SYNC_AUTOSTART', True),
    }

    # Database configuration - supports both local SQLite and remote PostgreSQL
    database_url = os.environ.get('DATABASE_URL')
    if database_url:
        # Heroku PostgreSQL URL fix (postgres:// → postgresql://)
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        config['SQLALCHEMY_DATABASE_URI'] = database_url
        config['SQLALCHEMY_ENGINE_OPTIONS'] = {
            'pool_pre_ping': True,
            'pool_recycle': 300,
        }
    else:
        # Fallback to SQLite for local development
        default_sqlite_dir = os.path.join(BASE_DIR, 'instance')
        sqlite_path = os.environ.get('SQLITE_PATH', os.path.join(default_sqlite_dir, 'scoreboard.db'))
        os.makedirs(os.path.dirname(sqlite_path), exist_ok=True)
        config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{sqlite_path}'

    return config


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.update(_load_config())
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    db.init_app(app)
    with app.app_context():
        if db.engine.dialect.name == 'sqlite':
            event.listen(db.engine, 'connect', _enable_sqlite_foreign_keys)
        db.create_all()

    executor = None
    if app.config['REALTIME_ASYNC']:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='realtime')
    hub = RealtimeHub(
        events_per_second=app.config['REALTIME_EVENTS_PER_SECOND'],
        executor=executor,
    )
    data_api = DataAPI(app, hub)
    synchronizer = LiveMatchSynchronizer(
        data_api,
        polling_interval=app.config['OVERLAY_POLL_INTERVAL_MS'] / 1000,
        min_fetch_interval=app.config['OVERLAY_MIN_FETCH_INTERVAL_MS'] / 1000,
        enable_realtime=app.config['OVERLAY_REALTIME_ENABLED'],
        viewer_timeout=app.config['OVERLAY_VIEWER_TIMEOUT_MS'] / 1000,
    )
    app.extensions['data_api'] = data_api
    app.extensions['live_sync'] = synchronizer

    app.register_blueprint(admin_bp)
    app.register_blueprint(overlay_bp)

    @app.route('/')
    def index():
        """Home page linking the admin console and the overlay"""
        return render_template('index.html')

    if app.config['LIVE_SYNC_AUTOSTART']:
        synchronizer.mount()
        atexit.register(synchronizer.unmount)
        atexit.register(hub.shutdown)

    app.logger.info('Scoreboard initialized (database: %s)', app.config['SQLALCHEMY_DATABASE_URI'])
    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5000, use_reloader=False)
