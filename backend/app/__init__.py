"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `flask db upgrade` / Alembic to work without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging (levels from LOG_LEVEL)
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Verify the reference index against the live schema (fail fast)
  5. Register all route blueprints under /api/v1
  6. Register global error handlers (AppError → JSON, Exception → 500)
  7. Register the CLI commands (sweep-orphans, verify-references)
  8. Register a custom JSON provider to serialise Decimal as string
     (averages such as 4.50 keep their two decimal places on the wire)

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import logging.config
import traceback
from decimal import Decimal

import click
from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.
# Rating averages are serialised as strings to preserve their scale.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Registered on the Flask app so that jsonify() and flask.json.dumps()
    automatically produce string averages.

    Example: Decimal("4.50") → "4.50" (not 4.5)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Logging ────────────────────────────────────────────────────────────────

def _configure_logging(level: str) -> None:
    """
    Module loggers (logging.getLogger(__name__)) under backend.* log at
    LOG_LEVEL and propagate to the single stderr handler on the root logger.
    SQLAlchemy stays at WARNING.
    """
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": ["stderr"],
        },
        "loggers": {
            "backend": {
                "level": level,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
            },
        },
    })


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.

    Raises:
        AppError(INTEGRITY_VIOLATION) when VERIFY_REFERENCE_INDEX is on and
        a configured dependent table/column is missing from the database.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from backend.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    # Alembic needs to see these to auto-generate migrations.
    # The imports are intentionally unused by name — side effect is the point.
    with app.app_context():
        from backend.app.models import (  # noqa: F401
            catalog,
            comment,
            follow,
            notification,
            photo,
            post,
            rating,
            report,
            user,
            vote,
        )

    # ── Reference index check ──────────────────────────────────────────────
    # A configured table/column that does not exist would make cascades
    # silently delete nothing. Refuse to start instead.
    if app.config.get("VERIFY_REFERENCE_INDEX"):
        from backend.app.services.reference_index import verify_reference_index
        with app.app_context():
            verify_reference_index(db.engine)

    # ── Blueprints ─────────────────────────────────────────────────────────
    # All routes are prefixed with /api/v1.
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── CLI ────────────────────────────────────────────────────────────────
    _register_cli(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    Blueprint names match the route files in app/routes/.
    entities, ratings and social are registered at /api/v1 because each
    owns paths under several collections (/posts, /reviews, /votes, ...).
    """
    from backend.app.routes.admin import admin_bp
    from backend.app.routes.entities import entities_bp
    from backend.app.routes.notifications import notifications_bp
    from backend.app.routes.ratings import ratings_bp
    from backend.app.routes.social import social_bp

    app.register_blueprint(entities_bp,      url_prefix="/api/v1")
    app.register_blueprint(ratings_bp,       url_prefix="/api/v1")
    app.register_blueprint(social_bp,        url_prefix="/api/v1")
    app.register_blueprint(notifications_bp, url_prefix="/api/v1/notifications")
    app.register_blueprint(admin_bp,         url_prefix="/api/v1/admin")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD / INVALID_SCORE responses (400)
      SQLAlchemyError → store errors that escaped a unit of work (e.g. at
                        commit) are rolled back and translated
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server. INTEGRITY_VIOLATION responses carry
    a generic message only; the detail goes to the log at CRITICAL.
    """
    from backend.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        if error.code == ErrorCode.INTEGRITY_VIOLATION:
            app.logger.critical("Integrity violation: %s", error.message)
            return jsonify({
                "error": {
                    "code": ErrorCode.INTEGRITY_VIOLATION,
                    "message": "The operation could not be completed because of a "
                               "server configuration error.",
                }
            }), 500
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(error: SQLAlchemyError):
        from backend.app.extensions import db
        from backend.app.services.unit_of_work import translate_db_error

        db.session.rollback()
        return handle_app_error(translate_db_error(error))

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Marshmallow raises ValidationError with a messages dict keyed by field name.
        Only the FIRST error is returned: one error per response, not many.

        The error code from the ValidationError message is used directly if it
        matches a known ErrorCode constant; otherwise INVALID_FIELD is used.
        """
        from backend.app.errors import ErrorCode

        # Flatten the nested messages dict to find the first field+message pair.
        messages = error.messages  # e.g. {"score": ["INVALID_SCORE"]}

        field = None
        raw_message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None

                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)

                # If the message is already one of our registered codes, keep it.
                if raw_message in vars(ErrorCode).values():
                    code = raw_message
                elif str(raw_message).startswith("Missing data for required field"):
                    code = ErrorCode.MISSING_FIELD
                else:
                    code = ErrorCode.INVALID_FIELD
                break
        elif isinstance(messages, list):
            raw_message = messages[0] if messages else "Invalid input."
            if raw_message in vars(ErrorCode).values():
                code = raw_message
            elif str(raw_message).startswith("Missing data for required field"):
                code = ErrorCode.MISSING_FIELD

        response_body = {
            "error": {
                "code": code,
                "message": raw_message if raw_message not in vars(ErrorCode).values()
                else _code_to_message(code),
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger (stderr in
        production). Stack traces NEVER leave the server in the response body.
        Werkzeug HTTP errors (unknown route, wrong method) pass through as-is.
        """
        if isinstance(error, HTTPException):
            return error
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself
    (e.g. INVALID_SCORE raised as ValidationError in rating_schema.py).
    """
    _messages = {
        "INVALID_SCORE": "Score must be between 0 and 5 in steps of 0.5.",
    }
    return _messages.get(code, "Invalid input.")


def _register_cli(app: Flask) -> None:
    """
    Operator commands:

        flask --app "backend.app:create_app('production')" sweep-orphans
        flask --app "backend.app:create_app('production')" verify-references
    """

    @app.cli.command("sweep-orphans")
    def sweep_orphans_command():
        """Remove orphaned records until a pass removes nothing."""
        from backend.app.extensions import db
        from backend.app.services.consistency_service import sweep_orphans

        removed = sweep_orphans(db.session)
        if not removed:
            click.echo("No orphans found.")
            return
        for kind, count in removed.items():
            click.echo(f"{kind}: {count}")

    @app.cli.command("verify-references")
    def verify_references_command():
        """Check every reference-index table/column against the database."""
        from backend.app.errors import AppError
        from backend.app.extensions import db
        from backend.app.services.reference_index import verify_reference_index

        try:
            verify_reference_index(db.engine)
        except AppError as error:
            raise click.ClickException(error.message)
        click.echo("Reference index matches the database schema.")
