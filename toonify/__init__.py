import os
from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

load_dotenv()


def _config_name():
    name = os.environ.get("FLASK_ENV")
    if name:
        return name
    # A bound PORT means a hosted deploy; never fall back to debug there
    if os.environ.get("RAILWAY_ENVIRONMENT") or os.environ.get("PORT"):
        return "production"
    return "development"


def create_app(config_name=None):
    flask_app = Flask(__name__)

    from toonify.config import config_map

    config_cls = config_map.get(config_name or _config_name(), config_map["development"])
    flask_app.config.from_object(config_cls)

    if hasattr(config_cls, "init_app"):
        config_cls.init_app(flask_app)

    from toonify.extensions import db, migrate, init_redis

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    init_redis(flask_app)

    # Alembic autogenerate needs the model imported
    from toonify.models import ImageJob  # noqa: F401

    from toonify.blueprints.functions import functions_bp
    from toonify.blueprints.images import images_bp

    flask_app.register_blueprint(functions_bp, url_prefix="/functions/v1")
    flask_app.register_blueprint(images_bp)

    # Browser-facing functions accept any origin; auth is the bearer token
    CORS(
        flask_app,
        resources={r"/functions/v1/*": {"origins": "*"}},
        send_wildcard=True,
        allow_headers=flask_app.config["CORS_ALLOW_HEADERS"],
        methods=["POST", "OPTIONS"],
    )

    _register_error_handlers(flask_app)

    from toonify.cli import register_cli

    register_cli(flask_app)

    flask_app.add_url_rule("/health", "health", _health)

    return flask_app


def _register_error_handlers(flask_app):
    from toonify.errors import ToonifyError

    @flask_app.errorhandler(ToonifyError)
    def handle_toonify_error(e):
        if e.status_code >= 500:
            flask_app.logger.error("%s: %s", type(e).__name__, e.message)
        return {"error": e.message}, e.status_code


def _health():
    """Liveness plus the dependencies processing needs."""
    from flask import current_app
    from toonify import extensions as ext

    checks = {"status": "ok"}
    try:
        ext.db.session.execute(ext.db.text("SELECT 1"))
        checks["db"] = "ok"
    except Exception:
        current_app.logger.exception("Health check DB probe failed")
        checks["db"] = "error"
        checks["status"] = "degraded"

    if ext.redis_client is None:
        checks["redis"] = "not configured"
    else:
        try:
            ext.redis_client.ping()
            checks["redis"] = "ok"
        except Exception:
            current_app.logger.exception("Health check Redis probe failed")
            checks["redis"] = "error"
            checks["status"] = "degraded"

    checks["queue"] = "rq" if ext.redis_client is not None else "dispatcher"
    return checks, 200 if checks["status"] == "ok" else 503
