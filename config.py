import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


def _bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "tradedesk-dev-secret")

    # mysql+mysqlconnector://..., postgresql+psycopg2://... hoặc sqlite:///...
    DATABASE_URL = os.getenv("DATABASE_URL", "mysql+mysqlconnector://root:@127.0.0.1/tradedesk")

    # Cookie phiên
    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "tradedesk_session")
    SESSION_COOKIE_HTTPONLY = _bool("SESSION_COOKIE_HTTPONLY", True)
    SESSION_COOKIE_SECURE = _bool("SESSION_COOKIE_SECURE", False)
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    PERMANENT_SESSION_LIFETIME = timedelta(hours=int(os.getenv("SESSION_LIFETIME_HOURS", "24")))

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    VERIFICATION_CODE_TTL_HOURS = int(os.getenv("VERIFICATION_CODE_TTL_HOURS", "24"))

    DEMO_STARTING_BALANCE = os.getenv("DEMO_STARTING_BALANCE", "10000")
    LIVE_STARTING_BALANCE = os.getenv("LIVE_STARTING_BALANCE", "0")
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

    # Nguồn dữ liệu thị trường
    MARKET_DATA_TIMEOUT = float(os.getenv("MARKET_DATA_TIMEOUT", "10"))
    MARKET_DATA_RETRIES = int(os.getenv("MARKET_DATA_RETRIES", "3"))
    BINANCE_API_URL = os.getenv("BINANCE_API_URL", "https://api.binance.com/api/v3")
    COINGECKO_API_URL = os.getenv("COINGECKO_API_URL", "https://api.coingecko.com/api/v3")
    FOREX_API_URL = os.getenv("FOREX_API_URL", "https://open.er-api.com/v6/latest")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    DATABASE_URL = "sqlite://"
    BCRYPT_ROUNDS = 4
    MARKET_DATA_RETRIES = 0
    LOG_LEVEL = "DEBUG"
