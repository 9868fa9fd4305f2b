from unittest import mock

import pytest
import requests

from models.errors import ValidationError
from utils.market_data import MarketDataClient, MarketDataError, parse_klines

KLINE = [1700000000000, "45000.0", "45500.5", "44800.0", "45200.1", "12.5", 1700003599999, "0", 10]


def make_client(payload=None, error=None):
    session = mock.Mock()
    if error is not None:
        session.get.side_effect = error
    else:
        response = mock.Mock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        session.get.return_value = response
    return MarketDataClient("https://binance.test/api/v3", "https://gecko.test/api/v3",
                            "https://fx.test/v6/latest", timeout=3, session=session)


def test_parse_klines():
    candle = parse_klines([KLINE])[0]
    assert candle.open == 45000.0
    assert candle.close == 45200.1
    assert candle.volume == 12.5
    assert candle.open_time.year == 2023
    assert candle.to_dict()["open_time"].startswith("2023-11-14T22:13:20")


def test_parse_klines_rejects_bad_rows():
    with pytest.raises(MarketDataError):
        parse_klines([["not-a-timestamp"]])


def test_candles_request_parameters():
    client = make_client([KLINE, KLINE])
    candles = client.get_crypto_candles("btcusdt", interval="4h", limit="2")
    assert len(candles) == 2
    client.session.get.assert_called_once_with(
        "https://binance.test/api/v3/klines",
        params={"symbol": "BTCUSDT", "interval": "4h", "limit": 2},
        timeout=3,
    )


@pytest.mark.parametrize("symbol, interval, limit", [
    ("BTC/USDT", "1h", 10),
    ("BTCUSDT", "2h", 10),
    ("BTCUSDT", "1h", 0),
    ("BTCUSDT", "1h", "many"),
])
def test_candles_validation(symbol, interval, limit):
    client = make_client([])
    with pytest.raises(ValidationError):
        client.get_crypto_candles(symbol, interval, limit)
    client.session.get.assert_not_called()


def test_upstream_failure_becomes_market_data_error():
    client = make_client(error=requests.ConnectionError("boom"))
    with pytest.raises(MarketDataError):
        client.get_crypto_prices(["bitcoin"])


def test_forex_rates():
    client = make_client({"result": "success", "base_code": "EUR", "rates": {"USD": 1.08},
                          "time_last_update_utc": "Mon, 01 Jan 2024 00:00:01 +0000"})
    data = client.get_forex_rates("eur")
    assert data["base"] == "EUR"
    assert data["rates"] == {"USD": 1.08}
    client.session.get.assert_called_once_with("https://fx.test/v6/latest/EUR", params=None, timeout=3)


def test_forex_error_payload():
    client = make_client({"result": "error", "error-type": "unsupported-code"})
    with pytest.raises(MarketDataError):
        client.get_forex_rates("XYZ")


def test_candles_endpoint(app, client):
    app.extensions["market_data"] = make_client([KLINE])
    res = client.get("/api/market/crypto/candles/ethusdt?interval=1d&limit=1")
    body = res.get_json()
    assert res.status_code == 200
    assert body["symbol"] == "ETHUSDT"
    assert body["candles"][0]["high"] == 45500.5


def test_prices_endpoint(app, client):
    app.extensions["market_data"] = make_client({"bitcoin": {"usd": 45000, "usd_24h_change": 1.2}})
    body = client.get("/api/market/crypto/prices?ids=bitcoin&vs=usd").get_json()
    assert body["prices"]["bitcoin"]["usd"] == 45000


def test_endpoint_reports_upstream_failure(app, client):
    app.extensions["market_data"] = make_client(error=requests.Timeout("slow"))
    res = client.get("/api/market/forex/USD")
    assert res.status_code == 502
    assert res.get_json() == {"success": False, "message": "Failed to fetch market data"}


def test_endpoint_validation_error(app, client):
    app.extensions["market_data"] = make_client([])
    res = client.get("/api/market/crypto/candles/BTCUSDT?interval=7m")
    assert res.status_code == 200
    assert res.get_json() == {"success": False, "message": "Invalid interval"}
