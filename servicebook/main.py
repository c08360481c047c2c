import logging
import os
import uuid
from datetime import timedelta

import click
from flask import Flask, g, request
from marshmallow import ValidationError as SchemaValidationError

from servicebook.config import CONFIGS
from servicebook.extensions import db, migrate, jwt, ma, cors
from servicebook.logging_setup import TRACE_ID_CTX, setup_logging
from servicebook.utils.exceptions import ServiceError
from servicebook.utils.response_formatter import error_response

logger = logging.getLogger(__name__)


def _build_services(app):
    from servicebook.services.booking_service import BookingService
    from servicebook.services.chat_service import ChatService
    from servicebook.services.notification_service import NotificationService
    from servicebook.services.push import build_push_client
    from servicebook.services.scheduler_service import ReminderScheduler
    from servicebook.services.wallet_service import WalletService

    fee_rate = app.config["PLATFORM_FEE_RATE"]
    push = build_push_client(app.config)
    notifications = NotificationService(db.session, push)
    wallet = WalletService(db.session, fee_rate)
    return {
        "push": push,
        "notifications": notifications,
        "wallet": wallet,
        "bookings": BookingService(
            db.session,
            wallet,
            notifications,
            fee_rate,
            max_number_attempts=app.config["BOOKING_NUMBER_MAX_ATTEMPTS"],
        ),
        "chat": ChatService(db.session, push),
        "scheduler": ReminderScheduler(
            db.session,
            notifications,
            interval_seconds=app.config["REMINDER_INTERVAL_SECONDS"],
            evict_after=timedelta(minutes=app.config["REMINDER_EVICT_AFTER_MINUTES"]),
            app=app,
        ),
    }


def create_app(config_name=None):
    app = Flask(__name__, instance_relative_config=False)
    env = config_name or os.getenv("FLASK_ENV", "development")
    app.config.from_object(CONFIGS.get(env, CONFIGS["development"]))

    if not app.config.get("TESTING"):
        setup_logging(app.config["LOG_LEVEL"], json_format=app.config["LOG_JSON"])

    # initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    ma.init_app(app)
    origins = [o.strip() for o in app.config["CORS_ORIGINS"].split(",")]
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": origins}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization", "X-Trace-Id"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    )

    # models must be imported before create_all / migrations see the metadata
    from servicebook.models import (  # noqa: F401
        booking, emergency_report, message, notification, provider,
        reminder_log, service, shop, user, wallet_transaction,
    )

    app.extensions["servicebook"] = _build_services(app)

    # register blueprints
    from servicebook.routes.booking_routes import bp as booking_bp
    from servicebook.routes.notification_routes import bp as notification_bp
    from servicebook.routes.wallet_routes import bp as wallet_bp

    app.register_blueprint(booking_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(notification_bp)

    _register_request_hooks(app)
    _register_error_handlers(app)
    _register_commands(app)

    if app.config["REMINDER_SCHEDULER_ENABLED"] and not app.config.get("TESTING"):
        app.extensions["servicebook"]["scheduler"].start()

    return app


def _register_request_hooks(app):
    @app.before_request
    def bind_trace_id():
        trace_id = request.headers.get("X-Trace-Id") or uuid.uuid4().hex
        g.trace_id = trace_id
        g.trace_token = TRACE_ID_CTX.set(trace_id)

    @app.after_request
    def echo_trace_id(response):
        trace_id = g.get("trace_id")
        if trace_id:
            response.headers["X-Trace-Id"] = trace_id
        return response

    @app.teardown_request
    def unbind_trace_id(exc):
        token = g.pop("trace_token", None)
        if token is not None:
            TRACE_ID_CTX.reset(token)


def _register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def service_error(e):
        return error_response(e.code, e.message, e.details, status=e.status)

    @app.errorhandler(SchemaValidationError)
    def schema_error(e):
        return error_response("VALIDATION_ERROR", "Invalid input", {"fields": e.messages}, status=422)

    @app.errorhandler(400)
    def bad_request(e):
        return error_response("BAD_REQUEST", str(e), status=400)

    @app.errorhandler(401)
    def unauthorized(e):
        return error_response("UNAUTHORIZED", str(e), status=401)

    @app.errorhandler(404)
    def not_found(e):
        return error_response("NOT_FOUND", "Resource not found", status=404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_response("METHOD_NOT_ALLOWED", "Method not allowed", status=405)

    @app.errorhandler(500)
    def server_error(e):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response("SERVER_ERROR", "Internal server error", status=500)

    @jwt.unauthorized_loader
    def missing_token(reason):
        return error_response("UNAUTHORIZED", reason, status=401)

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return error_response("UNAUTHORIZED", reason, status=401)

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_response("TOKEN_EXPIRED", "Token has expired", status=401)


def _register_commands(app):
    @app.cli.command("run-scheduler")
    @click.option("--once", is_flag=True, help="Run a single scan and exit.")
    def run_scheduler(once):
        """Run the booking reminder scheduler in the foreground."""
        scheduler = app.extensions["servicebook"]["scheduler"]
        if once:
            sent = scheduler.run_once()
            click.echo(f"Sent {sent} reminder(s)")
            return
        try:
            scheduler.run_forever()
        except KeyboardInterrupt:
            click.echo("Scheduler stopped")

    @app.cli.command("check-wallets")
    def check_wallets():
        """Compare every wallet balance with the sum of its ledger rows."""
        from servicebook.services.wallet_service import find_ledger_mismatches

        mismatches = find_ledger_mismatches(db.session)
        for owner_type, owner_id, balance, ledger in mismatches:
            click.echo(f"{owner_type} {owner_id}: balance {balance} != ledger {ledger}")
        click.echo(f"{len(mismatches)} mismatched wallet(s)")
        if mismatches:
            raise SystemExit(1)
