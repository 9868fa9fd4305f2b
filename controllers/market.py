from flask import Blueprint, current_app, request

from models.errors import LedgerError
from utils.market_data import MarketDataError
from utils.responses import ok, fail

market_bp = Blueprint("market", __name__, url_prefix="/api/market")


def _client():
    return current_app.extensions["market_data"]


# --- 1. NẾN GIÁ CRYPTO ---
@market_bp.route("/crypto/candles/<symbol>")
def crypto_candles(symbol):
    try:
        candles = _client().get_crypto_candles(
            symbol,
            interval=request.args.get("interval", "1h"),
            limit=request.args.get("limit", 100),
        )
    except LedgerError as e:
        return fail(e.message)
    except MarketDataError:
        return fail("Failed to fetch market data", 502)
    return ok(symbol=symbol.upper(), candles=[c.to_dict() for c in candles])


# --- 2. GIÁ CRYPTO ---
@market_bp.route("/crypto/prices")
def crypto_prices():
    ids = request.args.get("ids", "bitcoin,ethereum").split(",")
    try:
        prices = _client().get_crypto_prices(ids, request.args.get("vs", "usd"))
    except LedgerError as e:
        return fail(e.message)
    except MarketDataError:
        return fail("Failed to fetch market data", 502)
    return ok(prices=prices)


# --- 3. TỶ GIÁ NGOẠI TỆ ---
@market_bp.route("/forex/<base>")
def forex_rates(base):
    try:
        data = _client().get_forex_rates(base)
    except LedgerError as e:
        return fail(e.message)
    except MarketDataError:
        return fail("Failed to fetch market data", 502)
    return ok(**data)
