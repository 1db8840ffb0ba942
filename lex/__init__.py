from __future__ import annotations

import logging

import click
from flask import Flask, jsonify

from lex.cases import cases_bp
from lex.core.auth import auth_bp
from lex.core.config import Config
from lex.core.extensions import db, login_manager, migrate
from lex.core.models import Organization, User, seed_demo_data
from lex.core.tenancy import load_tenant_context

logger = logging.getLogger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.before_request(load_tenant_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(cases_bp)

    register_cli(app)
    register_error_handlers(app)
    return app


def configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("lex").setLevel(level)
    app.logger.setLevel(level)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(401)
    def unauthorized(_error):
        return jsonify({"success": False, "error": "No autenticado"}), 401

    @app.errorhandler(403)
    def forbidden(_error):
        return jsonify({"success": False, "error": "Sin permisos"}), 403

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"success": False, "error": "No encontrado"}), 404

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return jsonify({"success": False, "error": "Método no permitido"}), 405


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed a demo firm with one user per role and a sample case."""
        if reset:
            db.drop_all()
            db.create_all()
        if not Organization.query.first():
            seed_demo_data(db.session)
            logger.info("Demo data seeded")
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing organizations found.")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized_json():
    return jsonify({"success": False, "error": "No autenticado"}), 401
