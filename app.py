import logging

from flask import Flask, jsonify
from pydantic import ValidationError

from config import Config
from routes import health_bp, booking_bp, admin_bp

from models import db
from flask_migrate import Migrate
from services.errors import BookingError
from services.notifications import BookingNotifier
from utils.sqlite import configure_sqlite_engine


def create_app(config_overrides=None, collaborators=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)
    with app.app_context():
        configure_sqlite_engine(db.engine)

    # Migrations
    Migrate(app, db)

    # ticket / messaging / invoicing, called after a booking commits
    BookingNotifier(app, collaborators=collaborators)

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        resp = jsonify(exc.to_dict())
        resp.status_code = exc.status_code
        if exc.retryable:
            resp.headers["Retry-After"] = "1"
        return resp

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return jsonify(error="Invalid request", code="invalid_input", details=details), 400

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
from services.lock_manager import cleanup_expired_locks

def register_cli(app):
    @app.cli.command("cleanup-locks")
    def cleanup_locks():
        """Delete expired checkout holds (storage hygiene only)."""
        deleted = cleanup_expired_locks()
        click.echo(f"Removed {deleted} expired lock(s)")

    @app.cli.command("create-db")
    def create_db():
        """Create all tables directly, for local development without migrations."""
        db.create_all()
        click.echo("Tables created")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
