from datetime import date, datetime
from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask_socketio import SocketIO
from flask_wtf.csrf import CSRFProtect
from config import Config

socketio = SocketIO()
csrf = CSRFProtect()


class JSONProvider(DefaultJSONProvider):
    """Serialize timestamps as ISO 8601 instead of HTTP dates."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json = JSONProvider(app)

    from skillbridge.logger import configure_logging, set_uid
    configure_logging(app)

    # Bearer-token API calls carry no cookie, so CSRF applies to cookie sessions only
    app.config['WTF_CSRF_CHECK_DEFAULT'] = False
    csrf.init_app(app)

    # Initialize Firebase and the entity store
    if app.config.get('STORE_BACKEND') == 'firestore':
        from skillbridge.firebase_init import init_firebase
        init_firebase(app.config)
    from skillbridge.store import init_store
    store = init_store(app.config)

    # CORS origins
    allowed_origins = []
    cors_origins = app.config.get('CORS_ALLOWED_ORIGINS', '')
    if cors_origins:
        for origin in cors_origins.split(','):
            origin = origin.strip()
            if origin:
                allowed_origins.append(origin)

    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins if allowed_origins else None,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'eventlet')
    )

    from skillbridge.decorators import bearer_token, clear_current_user, get_current_user, load_current_user

    @app.before_request
    def before_request():
        if app.config.get('WTF_CSRF_ENABLED') and request.method not in ('GET', 'HEAD', 'OPTIONS') and not bearer_token():
            csrf.protect()
        load_current_user()
        set_uid(get_current_user().uid)

    app.teardown_request(clear_current_user)

    from skillbridge.errors import WorkflowError

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(e):
        return jsonify(e.to_dict()), e.status_code

    # Register blueprints
    from skillbridge.routes import main, sessions, proposals, topic_requests
    app.register_blueprint(main.bp)
    app.register_blueprint(sessions.bp)
    app.register_blueprint(proposals.bp)
    app.register_blueprint(topic_requests.bp)

    from skillbridge.cli import register_cli
    register_cli(app)

    from skillbridge import events
    from skillbridge.services.notifier import outcomes
    outcomes.clear()
    outcomes.subscribe(events.make_broadcaster(app))

    if app.config.get('RECONCILE_ON_CHANGE'):
        from skillbridge.services.counters import start_watchers
        app.extensions['skillbridge_watchers'] = start_watchers(store)

    return app
