import logging

from flask import Flask, jsonify, request, abort, session

from .config import get_config
from .extensions import db, migrate
from .security.errors import SecurityError


def create_app(config_overrides: dict | None = None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(get_config())

    # ✅ overrides ANTES de db.init_app para que SQLAlchemy use la DB de tests
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(level=logging.INFO)
    app.logger.info("Trustcore - init app")

    db.init_app(app)

    # load models so Alembic detects tables / metadata exists
    from . import models  # noqa: F401

    migrate.init_app(app, db)

    from .security.rate_limit import rate_limiter
    rate_limiter.init_app(app)

    from .blueprints.auth.routes import bp as auth_bp
    from .blueprints.security import bp as security_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(security_bp)

    from .cli import register_cli
    register_cli(app)

    # -----------------------------
    # Error handlers (JSON)
    # -----------------------------
    @app.errorhandler(SecurityError)
    def err_security(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def err_400(e):
        return jsonify(error="bad_request", message=getattr(e, "description", None)), 400

    @app.errorhandler(401)
    def err_401(e):
        return jsonify(error="unauthorized"), 401

    @app.errorhandler(403)
    def err_403(e):
        return jsonify(error="forbidden"), 403

    @app.errorhandler(404)
    def err_404(e):
        return jsonify(error="not_found"), 404

    @app.errorhandler(429)
    def err_429(e):
        return jsonify(error="too_many_requests"), 429

    # -----------------------------
    # Gate (ip block + rate limit) + sesión viva
    # -----------------------------
    @app.before_request
    def enforce_gate_and_session():
        # 1) permitir preflight CORS
        if request.method == "OPTIONS":
            return None

        # 2) permitir estáticos
        if request.endpoint == "static":
            return None

        # 3) gate en TODAS las requests (incluido auth.*, es lo que más se ataca)
        if app.config.get("SECURITY_GATE_ENABLED"):
            from .security.gate import gate_request

            denied = gate_request(request)
            if denied is not None:
                return denied

        # 4) si hay login, la fila de sesión tiene que seguir viva
        user_id = session.get("user_id")
        if not user_id:
            return None

        from .security import sessions
        from .utils import client_ip

        sid = session.get("sid")
        if sessions.get_live_session(sid) is None:
            app.logger.info("SESSION DENY 401: revoked/expired sid | user_id=%s path=%s", user_id, request.path)
            session.clear()
            if request.endpoint and request.endpoint.startswith("auth."):
                return None
            abort(401)

        sessions.touch(sid, ip=client_ip(request), user_agent=request.headers.get("User-Agent"))
        return None

    @app.after_request
    def apply_security_headers(resp):
        for header, value in dict(app.config.get("SECURITY_HEADERS") or ()).items():
            resp.headers.setdefault(header, value)
        if request.is_secure:
            resp.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return resp

    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        from .security.scheduler import init_scheduler
        init_scheduler(app)

    @app.get("/health")
    def health():
        return jsonify(status="ok")

    @app.get("/")
    def index():
        return "Trustcore ✅"

    return app
