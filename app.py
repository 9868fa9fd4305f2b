import logging
import click
from flask import Flask, jsonify
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException

from config import Config
from models import ledger
from models.database import init_app as init_database, init_db, get_db
from models.session_store import DatabaseSessionStore, DatabaseSessionInterface
from models.user import get_user_by_id, create_admin
from models.errors import LedgerError
from utils.market_data import MarketDataClient

from controllers.auth import auth_bp
from controllers.trade import trade_bp
from controllers.admin import admin_bp
from controllers.market import market_bp
from controllers.support import support_bp

logger = logging.getLogger(__name__)


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(config or Config)
    configure_logging(app.config["LOG_LEVEL"])

    # Database + phiên lưu trong DB
    engine = init_database(app)
    app.session_interface = DatabaseSessionInterface(DatabaseSessionStore(engine))

    # Số dư ban đầu đọc theo từng app, kiểm tra ngay khi khởi động
    for key in ("DEMO_STARTING_BALANCE", "LIVE_STARTING_BALANCE"):
        ledger.to_money(app.config[key], key.lower())
    app.extensions["market_data"] = MarketDataClient.from_config(app.config)

    # Cấu hình Login
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        with get_db().connect() as conn:
            return get_user_by_id(conn, user_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "message": "Please log in first"}), 401

    # Đăng ký Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(trade_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(market_bp)
    app.register_blueprint(support_bp)

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"success": False, "message": e.description or e.name}), e.code

    @app.route("/api/health")
    def health():
        return jsonify({"success": True, "status": "ok"})

    register_commands(app)
    return app


def register_commands(app):
    @app.cli.command("init-db")
    def init_db_command():
        """Tạo các bảng nếu chưa có."""
        init_db(get_db())
        click.echo("Database initialized")

    @app.cli.command("create-admin")
    @click.option("--username", required=True)
    @click.option("--email", required=True)
    @click.password_option()
    def create_admin_command(username, email, password):
        """Tạo tài khoản admin."""
        try:
            with get_db().begin() as conn:
                user_id = create_admin(conn, username, email, password, app.config["BCRYPT_ROUNDS"])
        except LedgerError as e:
            raise click.ClickException(e.message)
        click.echo(f"Admin created (id={user_id})")

    @app.cli.command("purge-sessions")
    def purge_sessions_command():
        """Xóa các phiên đã hết hạn."""
        removed = app.session_interface.store.purge_expired()
        click.echo(f"Removed {removed} expired sessions")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        init_db(get_db())
    print(" Server đang khởi động tại http://127.0.0.1:5000")
    app.run(debug=True, port=5000)
