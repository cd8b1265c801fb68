from flask import Flask, request
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

logger = logging.getLogger(__name__)


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    from .config.settings import env_config
    from .logging_setup import configure_logging, bind_request_id
    from .errors import error_code_for

    app = Flask(__name__)
    app.config.update(env_config())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    configure_logging(app.config.get('LOG_LEVEL', 'INFO'))
    bind_request_id(app)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True, pool_pre_ping=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        SessionLocal.remove()

    jwt.init_app(app)

    # Cache + rate limiter share one lazily connected client
    from .services.cache import init_redis
    init_redis(app)

    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.clients import clients_bp
    from .routes.mechanics import mechanics_bp
    from .routes.quotes import quotes_bp
    from .routes.orders import orders_bp
    from .routes.logs import logs_bp
    from .routes.dashboard import dashboard_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(clients_bp, url_prefix='/api/clients')
    app.register_blueprint(mechanics_bp, url_prefix='/api/mechanics')
    app.register_blueprint(quotes_bp, url_prefix='/api/quotes')
    app.register_blueprint(orders_bp, url_prefix='/api/orders')
    app.register_blueprint(logs_bp, url_prefix='/api/logs')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    def _error_payload(status: int, title: str, detail: str, code: str, extra: Optional[Dict[str, Any]] = None):
        body = {'status': status, 'title': title, 'detail': detail, 'code': code}
        if extra:
            body.update(extra)
        return {'error': body}, status

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # Never leave a half-applied unit of work in the scoped session
        SessionLocal.rollback()
        if isinstance(e, HTTPException):
            code = error_code_for(e)
            log = logger.warning if (e.code or 500) < 500 else logger.error
            log('%s %s -> %s %s: %s', request.method, request.path, e.code, code, e.description)
            extra = getattr(e, 'extra', None)
            body, status = _error_payload(e.code, e.name, e.description, code, extra)
            headers = {}
            if extra and extra.get('retry_after'):
                headers['Retry-After'] = str(extra['retry_after'])
            return body, status, headers
        if isinstance(e, (StaleDataError, IntegrityError)):
            logger.warning('%s %s -> 409 conflict: %s', request.method, request.path, e)
            return _error_payload(409, 'Conflict', 'Record was modified concurrently or violates a uniqueness rule', 'conflict')
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return _error_payload(500, 'Internal Server Error', 'Unexpected error', 'internal')

    @jwt.unauthorized_loader
    def _missing_token(reason):  # type: ignore
        return _error_payload(401, 'Unauthorized', reason, 'unauthorized')

    @jwt.invalid_token_loader
    def _invalid_token(reason):  # type: ignore
        return _error_payload(401, 'Unauthorized', reason, 'unauthorized')

    @jwt.expired_token_loader
    def _expired_token(header, payload):  # type: ignore
        return _error_payload(401, 'Unauthorized', 'Token has expired', 'unauthorized')

    from .openapi import register_openapi_routes
    register_openapi_routes(app)

    return app


def get_db():
    return SessionLocal()
