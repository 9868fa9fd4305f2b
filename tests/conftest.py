import pytest
from sqlalchemy import select

from app import create_app
from config import TestConfig
from models.database import init_db
from models.schema import users
from models.user import create_admin

PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    class Config(TestConfig):
        DATABASE_URL = f"sqlite:///{tmp_path / 'tradedesk.db'}"

    app = create_app(Config)
    init_db(app.extensions["db_engine"])
    yield app
    app.extensions["db_engine"].dispose()


@pytest.fixture
def engine(app):
    return app.extensions["db_engine"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register(client):
    def _register(username="alice", email="alice@example.com", password=PASSWORD, account_type="demo", **extra):
        payload = {
            "firstName": "Alice",
            "lastName": "Nguyen",
            "username": username,
            "email": email,
            "password": password,
            "accountType": account_type,
        }
        payload.update(extra)
        return client.post("/api/register", json=payload)
    return _register


@pytest.fixture
def login(client):
    def _login(email="alice@example.com", password=PASSWORD, c=None):
        return (c or client).post("/api/login", json={"email": email, "password": password})
    return _login


@pytest.fixture
def user_client(client, register, login):
    """Client đã đăng ký + đăng nhập bằng tài khoản demo"""
    assert register().get_json()["success"]
    assert login().get_json()["success"]
    return client


@pytest.fixture
def admin_client(app, engine):
    with engine.begin() as conn:
        create_admin(conn, "admin", "admin@example.com", "adminpass", rounds=4)
    c = app.test_client()
    res = c.post("/api/admin-login", json={"email": "admin@example.com", "password": "adminpass"})
    assert res.get_json()["success"]
    return c


@pytest.fixture
def user_row(engine):
    def _row(email="alice@example.com"):
        with engine.connect() as conn:
            return conn.execute(select(users).where(users.c.email == email)).mappings().first()
    return _row
