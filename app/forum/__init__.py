import logging
from datetime import timedelta

from flask import Flask, g, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.forum.config import load_config
from app.forum.db import init_db, teardown_db_session
from app.forum.errors import ForumError, Internal
from app.forum.routes import bp as routes_bp
from app.forum.auth import bp as auth_bp, load_current_user
from app.forum.modules.content.routes import bp as content_bp
from app.forum.modules.private_access.routes import bp as private_access_bp
from app.forum.modules.moderation.routes import bp as moderation_bp

_HTTP_KINDS = {
    400: "validation",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "validation",
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=app.config["SESSION_LIFETIME_HOURS"])
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    log_level = app.config.get("LOG_LEVEL") or "INFO"
    app.logger.setLevel(log_level)
    logging.getLogger("app.forum").setLevel(log_level)

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Session, ban and anti-forgery guard runs before any blueprint handler.
    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(content_bp, url_prefix="/api")
    app.register_blueprint(private_access_bp, url_prefix="/api")
    app.register_blueprint(moderation_bp, url_prefix="/api/admin")

    @app.errorhandler(ForumError)
    def _err_forum(e: ForumError):  # type: ignore[no-redef]
        if isinstance(e, Internal):
            app.logger.exception("Internal failure (request_id=%s)", getattr(g, "request_id", None))
            return Internal().to_response(), 500
        if e.status_code == 403:
            app.logger.info(
                "%s: %s path=%s request_id=%s", e.kind, e.message, request.path, getattr(g, "request_id", None)
            )
        return e.to_response(), e.status_code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Details stay in the server log; callers get an opaque message.
        app.logger.exception(
            "Unhandled 500 (request_id=%s): %s",
            getattr(g, "request_id", None),
            getattr(e, "original_exception", e),
        )
        return Internal().to_response(), 500

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return {"error": _HTTP_KINDS.get(e.code or 0, "http_error"), "message": e.description}, e.code

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
