# medsync/__init__.py
import logging
import os

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect, CSRFError
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .errors import MalformedDateKey

db = SQLAlchemy()
login_manager = LoginManager()
csrf = CSRFProtect()
migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE", "memory://"),
    default_limits=[os.getenv("DEFAULT_RATE_LIMIT", "200/hour")],
)

logger = logging.getLogger(__name__)

def _resolve_database_uri(app: Flask) -> str:
    """
    Priority:
      1) DATABASE_URL env (Postgres or custom URI)
      2) SQLITE_DIR env (e.g., persistent disk mount like /var/data), medsync.db inside it
      3) app.instance_path/medsync.db
    """
    db_url = os.getenv("DATABASE_URL")
    if db_url:
        return db_url

    base_dir = os.getenv("SQLITE_DIR", app.instance_path)
    os.makedirs(base_dir, exist_ok=True)
    path = os.path.join(base_dir, "medsync.db")
    return f"sqlite:///{path}?check_same_thread=false"

def _configure_logging(app: Flask) -> None:
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("medsync").setLevel(level)

def _error(code: str, message: str, status: int, **extra):
    return jsonify({"error": code, "message": message, **extra}), status

def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(MalformedDateKey)
    def malformed_date_key(exc):
        return _error("malformed_date_key", str(exc), 400)

    @app.errorhandler(CSRFError)
    def csrf_error(exc):
        return _error("csrf_failed", exc.description, 400)

    @app.errorhandler(SQLAlchemyError)
    def storage_error(exc):
        db.session.rollback()
        logger.exception("storage failure")
        return _error("storage_unavailable", "Could not reach medication storage. Please try again.", 503, retryable=True)

    @app.errorhandler(HTTPException)
    def http_error(exc):
        return _error(exc.name.lower().replace(" ", "_"), exc.description, exc.code)

@login_manager.unauthorized_handler
def unauthorized():
    return _error("unauthorized", "Please sign in.", 401)

def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object("config.Config")
    if test_config:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)


    app.config.setdefault("SECRET_KEY", os.getenv("SECRET_KEY", os.urandom(32)))

    app.config.setdefault("SQLALCHEMY_DATABASE_URI", _resolve_database_uri(app))
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"pool_pre_ping": True})

    _configure_logging(app)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)

    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    from .routes import auth_bp, api_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)

    _register_error_handlers(app)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    logger.debug("medsync app created (tz=%s)", app.config.get("APP_TIMEZONE"))
    return app
