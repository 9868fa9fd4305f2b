import logging
from sqlalchemy import create_engine, event, insert
from sqlalchemy.dialects import mysql, postgresql, sqlite
from flask import current_app

from models.schema import metadata

logger = logging.getLogger(__name__)


def make_engine(database_url, echo=False):
    """
    Tạo engine cho MySQL / PostgreSQL / SQLite.
    Cùng một bộ câu lệnh chạy trên cả ba, chỉ khác URL kết nối.
    """
    engine = create_engine(database_url, echo=echo, pool_pre_ping=True, future=True)

    if engine.dialect.name == "sqlite":
        # SQLite mặc định tắt khóa ngoại
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_app(app):
    engine = make_engine(app.config["DATABASE_URL"])
    app.extensions["db_engine"] = engine
    return engine


def get_db():
    # Engine dùng chung cho cả app; mỗi request tự mở transaction ngắn
    return current_app.extensions["db_engine"]


def init_db(engine):
    try:
        metadata.create_all(engine)
        logger.info("Đã khởi tạo các bảng (%s)", engine.dialect.name)
    except Exception:
        logger.exception("Lỗi khởi tạo database")
        raise


def insert_ignore(conn, table, values):
    """
    INSERT bỏ qua trùng khóa, tùy theo CSDL:
    MySQL dùng INSERT IGNORE, PostgreSQL / SQLite dùng ON CONFLICT DO NOTHING.
    Trả về số dòng thực sự được thêm.
    """
    name = conn.dialect.name
    if name == "mysql":
        stmt = mysql.insert(table).values(**values).prefix_with("IGNORE")
    elif name == "postgresql":
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing()
    elif name == "sqlite":
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing()
    else:
        stmt = insert(table).values(**values)
    return conn.execute(stmt).rowcount
