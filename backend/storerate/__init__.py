from flask import Flask, request
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import traceback

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    from storerate.config.settings import load_settings
    app = Flask(__name__)
    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)
    logging.getLogger('storerate').setLevel(app.config.get('LOG_LEVEL', 'INFO'))

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
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    # Authorization collaborators: immutable registry + per-request lookups + audit log
    from storerate.services.policy import DEFAULT_REGISTRY
    from storerate.services.identity import CredentialVerifier, ActorDirectory
    from storerate.services.ownership import OwnershipResolver
    from storerate.services.audit import AuditLog, AuditSink, EXTENSION_KEY as AUDIT_KEY
    from storerate.services.pipeline import AuthzServices
    from storerate.decorators.auth import EXTENSION_KEY as AUTHZ_KEY

    audit_log = AuditLog(
        AuditSink(sessionmaker(bind=db_engine, expire_on_commit=False)),
        async_mode=bool(app.config.get('AUDIT_ASYNC', True)),
        workers=int(app.config.get('AUDIT_WORKERS', 2)),
    )
    app.extensions['storerate.registry'] = DEFAULT_REGISTRY
    app.extensions[AUDIT_KEY] = audit_log
    app.extensions[AUTHZ_KEY] = AuthzServices(
        registry=DEFAULT_REGISTRY,
        verifier=CredentialVerifier(),
        directory=ActorDirectory(get_db),
        resolver=OwnershipResolver(get_db),
        audit=audit_log,
    )

    from .routes.auth import auth_bp
    from .routes.rbac import rbac_bp
    from .routes.users import users_bp
    from .routes.stores import stores_bp
    from .routes.ratings import ratings_bp
    from .routes.audit import audit_bp
    from .routes.dashboard import dashboard_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(rbac_bp, url_prefix='/api/rbac')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(stores_bp, url_prefix='/api/stores')
    app.register_blueprint(ratings_bp, url_prefix='/api/ratings')
    app.register_blueprint(audit_bp, url_prefix='/api/audit')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')

    @app.before_request
    def log_request():
        app.logger.info('%s %s - IP: %s - UA: %s', request.method, request.path,
                        request.remote_addr, request.headers.get('User-Agent'))

    @app.teardown_appcontext
    def release_session(exc):  # type: ignore
        # fresh session per request so role/ownership changes are always re-read
        remove_session()

    @app.route('/healthz')
    def health():
        return {'success': True, 'status': 'ok'}

    # Unified error handler: every error body is {"success": false, "message": ...}
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {'success': False, 'message': e.description}
            status = e.code or 500
        else:
            app.logger.exception('Unhandled exception')
            payload = {'success': False, 'message': 'Server Error'}
            status = 500
        if app.config.get('EXPOSE_ERROR_DETAIL') and not isinstance(e, HTTPException):
            payload['stack'] = traceback.format_exception(type(e), e, e.__traceback__)
        return payload, status

    return app


def get_db():
    return SessionLocal()


def remove_session():
    if SessionLocal is not None:
        SessionLocal.remove()
