from __future__ import annotations

import logging
from pathlib import Path

import click
from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from astana.cemetery import cemetery_bp
from astana.core.auth import auth_bp
from astana.core.config import Config
from astana.core.errors import LedgerError
from astana.core.extensions import db, login_manager, migrate
from astana.core.i18n import translate
from astana.core.models import Block, User, seed_demo_data

logger = logging.getLogger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(cemetery_bp)

    register_cli(app)
    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def ledger_error(error: LedgerError):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(SQLAlchemyError)
    def database_error(_error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Unhandled database error")
        return jsonify({"error": "internal_error", "message": translate("error.internal")}), 500

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        if error.code is None or error.code < 400:
            return error
        keys = {401: "error.unauthorized", 403: "error.forbidden", 404: "error.not_found"}
        message = translate(keys[error.code]) if error.code in keys else error.description
        return jsonify({"error": error.name.lower().replace(" ", "_"), "message": message}), error.code


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo blocks, graves, heirs and payments."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("export-payments")
    @click.option("--start-year", type=int, default=None, help="First year column (default: oldest payment).")
    @click.option("--end-year", type=int, default=None, help="Last year column (default: newest payment).")
    @click.option("--block-code", type=str, default=None, help="Only export graves in this block.")
    @click.option("--search", type=str, default="", help="Filter by deceased name or grave number.")
    @click.option("--output-dir", type=click.Path(file_okay=False), default=None, help="Target directory.")
    @click.option("--overwrite", is_flag=True, help="Replace an existing file with the same name.")
    def export_payments(
        start_year: int | None,
        end_year: int | None,
        block_code: str | None,
        search: str,
        output_dir: str | None,
        overwrite: bool,
    ) -> None:
        """Write the payment workbook to disk."""
        from astana.cemetery.export import build_payment_workbook, export_filename, export_graves

        block_id = None
        if block_code:
            block = Block.query.filter_by(code=block_code.strip().upper()).first()
            if not block:
                raise click.ClickException(f"Block {block_code} not found.")
            block_id = block.id

        try:
            export = export_graves(search, block_id, start_year, end_year)
            content = build_payment_workbook(export)
        except LedgerError as exc:
            raise click.ClickException(exc.message) from exc

        target_dir = Path(output_dir or app.config.get("EXPORT_DIR", "exports"))
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / export_filename()
        if target.exists() and not overwrite:
            click.echo(f"Export cancelled: {target} already exists (use --overwrite).")
            return
        target.write_bytes(content)
        click.echo(
            f"Exported {len(export.graves)} grave(s), years {export.start_year}-{export.end_year} to {target}"
        )

    @app.cli.command("db-stats")
    def db_stats() -> None:
        """Print row counts per table."""
        from astana.cemetery.services import database_stats

        for name, count in database_stats().items():
            click.echo(f"{name}={count}")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
