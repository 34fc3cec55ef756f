import os
import logging
from datetime import timedelta
from types import SimpleNamespace

import click
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

from .auth import AuthService
from .clock import SystemClock
from .config import Config
from .db import make_engine, make_session_factory, create_schema
from .errors import LibraryError
from .inventory import BookService
from .ledger import LoanLedger
from .members import MemberService
from .reporting import LoanReports
from .routes import api

logger = logging.getLogger(__name__)


def create_app(overrides=None, clock=None):
    """
    Build the Flask app, its database engine and the library services.

    overrides: mapping applied on top of Config (tests pass an in-memory
    DATABASE URI here). clock: source of "today", SystemClock by default.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(level=app.config["LOG_LEVEL"])

    app.config["JWT_SECRET_KEY"] = app.config["JWT_SECRET"]
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(minutes=app.config["JWT_EXP_MINUTES"])
    JWTManager(app)
    CORS(app)

    # SQLAlchemy setup
    engine = make_engine(
        app.config["SQLALCHEMY_DATABASE_URI"], echo=app.config["SQLALCHEMY_ECHO"]
    )
    create_schema(engine)
    session_factory = make_session_factory(engine)

    clock = clock or SystemClock()
    app.extensions["library"] = SimpleNamespace(
        engine=engine,
        session_factory=session_factory,
        clock=clock,
        books=BookService(session_factory),
        members=MemberService(
            session_factory,
            clock=clock,
            default_max_loan_count=app.config["DEFAULT_MAX_LOAN_COUNT"],
        ),
        ledger=LoanLedger(
            session_factory,
            clock=clock,
            loan_period_days=app.config["LOAN_PERIOD_DAYS"],
            extension_days=app.config["EXTENSION_DAYS"],
            fee_per_day=app.config["OVERDUE_FEE_PER_DAY"],
        ),
        reports=LoanReports(session_factory, clock=clock),
        auth=AuthService(session_factory),
    )

    app.register_blueprint(api)
    _register_error_handlers(app)
    _register_commands(app)

    logger.info("Library service ready on %s", engine.url.render_as_string(hide_password=True))
    return app


def _register_error_handlers(app):
    @app.errorhandler(LibraryError)
    def handle_library_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description, "code": e.name}), e.code


def _register_commands(app):
    @app.cli.command("sweep-overdue")
    def sweep_overdue_command():
        """Mark ACTIVE loans past their due date as OVERDUE."""
        moved = app.extensions["library"].ledger.sweep_overdue()
        click.echo(f"{moved} loans marked overdue")

    @app.cli.command("create-admin")
    @click.option("--username", required=True)
    @click.option("--password", required=True)
    @click.option("--email", required=True)
    def create_admin_command(username, password, email):
        """Create an ADMIN login account."""
        user = app.extensions["library"].auth.create_admin(username, password, email)
        click.echo(f"Created admin {user.username} (id={user.id})")


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    create_app().run(host="0.0.0.0", port=port, debug=True)
