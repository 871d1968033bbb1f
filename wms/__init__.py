"""
wms/__init__.py

Flask application factory for the Heritage Monument Restoration Portal.

Requirements:
- JSON API only; the browser client renders pages.
- SQLite for development (users, audit log and the whole-document store),
  any SQLAlchemy database in production.
- UI is never trusted; server-side access control is enforced.

Navigation:
- Dashboard for everyone, then role-specific entries (users, monuments,
  projects). Items are filtered for visibility, BUT all permissions are
  enforced server-side.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from flask_login import current_user
from flask_wtf.csrf import CSRFError

from .errors import WMSError
from .extensions import csrf, db, login_manager, migrate
from .logging_config import configure_logging
from .models import ADMIN_ROLES, Role, User
from .security import deactivated_session_guard

logger = logging.getLogger(__name__)

# Blueprint imports kept inside create_app() where possible to reduce import side effects.


# -------------------------------------------------------------------
# NAVIGATION STRUCTURE (UI visibility only; security enforced in routes)
# -------------------------------------------------------------------

NAV_ITEMS = [
    {"name": "Dashboard", "href": "/WMS/dashboard", "icon": "LayoutDashboard", "roles": None},
    {
        "name": "Users",
        "href": "/WMS/users",
        "icon": "Users",
        "roles": {*ADMIN_ROLES, Role.CONTRACTOR},
    },
    {"name": "Monuments", "href": "/WMS/monuments", "icon": "Building", "roles": set(ADMIN_ROLES)},
    {"name": "Projects", "href": "/WMS/projects", "icon": "FolderOpen", "roles": set(Role)},
]


def visible_navigation(user) -> list[dict]:
    """
    Navigation entries the user may see.

    SECURITY NOTE:
    - This only filters visibility. Routes enforce permissions.
    """
    if user is None or not getattr(user, "is_authenticated", False):
        return []
    role = user.role_enum
    return [
        {key: item[key] for key in ("name", "href", "icon")}
        for item in NAV_ITEMS
        if item["roles"] is None or role in item["roles"]
    ]


def create_app(config_object: object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"message": "Please log in.", "code": "unauthorized"}), 401

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: deactivated users lose their session.
    # ----------------------------------------------------------------------
    @app.before_request
    def _deactivated_guard_hook():
        """
        Reject requests from users deactivated after logging in.

        This is a safety net. Each route must still enforce its own permissions.
        """
        result = deactivated_session_guard()
        if result is not None:
            return result
        return None

    # ----------------------------------------------------------------------
    # Error handlers (JSON everywhere)
    # ----------------------------------------------------------------------
    @app.errorhandler(WMSError)
    def handle_wms_error(error: WMSError):
        db.session.rollback()
        if error.status_code >= 500:
            logger.error("%s: %s", error.code, error.message)
        else:
            logger.info("%s: %s", error.code, error.message, extra={"details": error.details})
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error: CSRFError):
        return jsonify({"message": error.description, "code": "csrf_error"}), 400

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({"message": "Not found.", "code": "not_found"}), 404

    @app.errorhandler(413)
    def handle_too_large(error):
        return jsonify({"message": "File is too large.", "code": "too_large"}), 413

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.dashboard import dashboard_bp
    from .blueprints.monuments import monuments_bp
    from .blueprints.projects import projects_bp
    from .blueprints.uploads import uploads_bp
    from .blueprints.users import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(monuments_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(uploads_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed a super admin, role users and a sample monument/project."""
        from .seed import seed_demo_data

        summary = seed_demo_data()
        click.echo(f"Demo data seeded: {summary}")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """API root: app name and the logged-in user, if any."""
        user = current_user.to_dict() if current_user.is_authenticated else None
        return jsonify({"app": app.config.get("APP_NAME"), "user": user})

    return app
