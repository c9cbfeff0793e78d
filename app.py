from flask import Flask, request, g, jsonify
from config import Config
from routes import health_bp, auth_bp, booking_bp, facility_bp, membership_bp, admin_bp

import services
from models import db
from flask_migrate import Migrate
from sqlalchemy import inspect
from services.errors import BookingError
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from utils.logger import configure_logging, get_logger
from security.csrf import CSRF_EXEMPT_PATHS, require_csrf

logger = get_logger(__name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(facility_bp)
    app.register_blueprint(membership_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Per-facility and per-member admission locks live as long as the app
    services.init_app(app)

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # Seed default roles at startup (safe & idempotent); skipped until the schema exists
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests from cookie-authenticated users
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from models.user import User, Role
from security.password import hash_password

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("password")
    @click.option("--role", "role_name", default="MEMBER", show_default=True,
                  type=click.Choice(["MEMBER", "STAFF", "ADMIN"], case_sensitive=False))
    @click.option("--first-name", default=None)
    @click.option("--last-name", default=None)
    def create_user(email, password, role_name, first_name, last_name):
        """Create an active club user (no self-registration in this service)."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo("Email already registered")
            return

        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            status="active",
        )
        role = Role.query.filter_by(name=role_name.upper()).first()
        if role:
            user.roles.append(role)
        db.session.add(user)
        db.session.commit()

        logger.info("Created user %s with role %s", user.email, role_name.upper())
        click.echo(f"Created {user.email} ({role_name.upper()})")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
