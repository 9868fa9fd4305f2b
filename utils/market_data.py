import logging
import re
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from models.errors import ValidationError

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "tradedesk/1.0",
    "Accept": "application/json",
}

INTERVALS = ("1m", "5m", "15m", "30m", "1h", "4h", "1d", "1w")
SYMBOL_RE = re.compile(r"^[A-Z0-9]{2,20}$")
CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class MarketDataError(Exception):
    pass


@dataclass
class Candle:
    """Dữ liệu nến giá (OHLCV)"""
    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: datetime

    def to_dict(self):
        data = asdict(self)
        data["open_time"] = self.open_time.isoformat()
        data["close_time"] = self.close_time.isoformat()
        return data


def _ms(value):
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def parse_klines(rows):
    """
    Binance trả về mảng các mảng:
    [open_time, open, high, low, close, volume, close_time, ...]
    """
    candles = []
    for row in rows:
        try:
            candles.append(Candle(
                open_time=_ms(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
                close_time=_ms(row[6]),
            ))
        except (IndexError, TypeError, ValueError) as e:
            raise MarketDataError("Unexpected kline format") from e
    return candles


def make_session(retries=3, backoff_factor=0.5):
    # Tự thử lại khi lỗi kết nối / 429 / 5xx, chờ tăng dần
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(HEADERS)
    return session


class MarketDataClient:
    def __init__(self, binance_url, coingecko_url, forex_url, timeout=10, retries=3, session=None):
        self.binance_url = binance_url.rstrip("/")
        self.coingecko_url = coingecko_url.rstrip("/")
        self.forex_url = forex_url.rstrip("/")
        self.timeout = timeout
        self.session = session or make_session(retries)

    @classmethod
    def from_config(cls, config):
        return cls(
            config["BINANCE_API_URL"],
            config["COINGECKO_API_URL"],
            config["FOREX_API_URL"],
            timeout=config["MARKET_DATA_TIMEOUT"],
            retries=config["MARKET_DATA_RETRIES"],
        )

    def _get_json(self, url, params=None):
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Lỗi lấy dữ liệu thị trường %s: %s", url, e)
            raise MarketDataError("Failed to fetch market data") from e

    def get_crypto_candles(self, symbol, interval="1h", limit=100):
        symbol = (symbol or "").upper()
        if not SYMBOL_RE.match(symbol):
            raise ValidationError("Invalid symbol")
        if interval not in INTERVALS:
            raise ValidationError("Invalid interval")
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise ValidationError("Invalid limit")
        if not 1 <= limit <= 1000:
            raise ValidationError("Invalid limit")

        data = self._get_json(f"{self.binance_url}/klines",
                              {"symbol": symbol, "interval": interval, "limit": limit})
        if not isinstance(data, list):
            raise MarketDataError("Unexpected kline format")
        return parse_klines(data)

    def get_crypto_prices(self, ids, vs_currency="usd"):
        ids = [i.strip().lower() for i in ids if i and i.strip()]
        if not ids:
            raise ValidationError("At least one coin id is required")
        data = self._get_json(f"{self.coingecko_url}/simple/price", {
            "ids": ",".join(ids),
            "vs_currencies": vs_currency.lower(),
            "include_24hr_change": "true",
        })
        if not isinstance(data, dict):
            raise MarketDataError("Unexpected price format")
        return data

    def get_forex_rates(self, base="USD"):
        base = (base or "").upper()
        if not CURRENCY_RE.match(base):
            raise ValidationError("Invalid currency")
        data = self._get_json(f"{self.forex_url}/{base}")
        if not isinstance(data, dict) or data.get("result") != "success" or "rates" not in data:
            logger.warning("Nguồn tỷ giá trả về lỗi cho %s", base)
            raise MarketDataError("Failed to fetch market data")
        return {"base": data.get("base_code", base), "rates": data["rates"],
                "updated": data.get("time_last_update_utc")}
