"""GeckoTerminal pool data retrieval."""
import json
import math
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TypeVar

from loguru import logger

from commentator.config import config

T = TypeVar("T")
_MAX_429_RETRIES = 3
_429_BACKOFF_SEC = (1, 2, 4)

CHANGE_WINDOWS = ("5m", "15m", "30m", "1h", "6h", "24h")


class MarketDataError(Exception):
    """Raised when pool data cannot be fetched or parsed."""


def parse_percent(value: Any) -> float:
    """Parse a percent change such as "1.23%", "-4" or 0.5 into a float.

    Missing, malformed and non-finite values become 0.0.
    """
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip().replace("%", "")
        if not value:
            return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _optional_int(value: Any) -> Optional[int]:
    number = _optional_float(value)
    return int(number) if number is not None else None


@dataclass(frozen=True)
class PoolSnapshot:
    """One poll of a GeckoTerminal pool.

    Attributes:
        name: Pool display name (e.g. "BONK / SOL")
        price: Base token price in USD
        changes: Raw percent-change strings keyed by window ("5m" ... "24h")
    """
    name: str
    price: float
    changes: Dict[str, Optional[str]] = field(default_factory=dict)
    price_change_24h: Optional[str] = None
    volume_24h: Optional[float] = None
    fdv: Optional[float] = None
    reserve_usd: Optional[float] = None
    swap_count_24h: Optional[int] = None
    buyers_24h: Optional[int] = None
    sellers_24h: Optional[int] = None
    sentiment_up_pct: Optional[float] = None
    sentiment_votes: Optional[int] = None
    gt_score: Optional[float] = None

    def change_pct(self, window: str) -> float:
        """Percent change for a window, 0.0 when missing or malformed."""
        return parse_percent(self.changes.get(window))

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "PoolSnapshot":
        """Build a snapshot from a GeckoTerminal ``/pools/{address}`` response."""
        try:
            attributes = payload["data"]["attributes"]
        except (KeyError, TypeError) as e:
            raise MarketDataError(f"Unexpected GeckoTerminal response: missing {e}") from e

        price = _optional_float(attributes.get("price_in_usd"))
        if price is None or price <= 0:
            raise MarketDataError(f"Invalid price in GeckoTerminal response: {attributes.get('price_in_usd')!r}")

        price_changes = attributes.get("price_percent_changes") or {}
        stats_24h = (attributes.get("historical_data") or {}).get("last_24h") or {}
        sentiment = attributes.get("sentiment_votes") or {}

        return cls(
            name=attributes.get("name") or "Unknown pool",
            price=price,
            changes={window: price_changes.get(f"last_{window}") for window in CHANGE_WINDOWS},
            price_change_24h=attributes.get("price_percent_change"),
            volume_24h=_optional_float(attributes.get("from_volume_in_usd")),
            fdv=_optional_float(attributes.get("fully_diluted_valuation")),
            reserve_usd=_optional_float(attributes.get("reserve_in_usd")),
            swap_count_24h=_optional_int(attributes.get("swap_count_24h")),
            buyers_24h=_optional_int(stats_24h.get("buyers_count")),
            sellers_24h=_optional_int(stats_24h.get("sellers_count")),
            sentiment_up_pct=_optional_float(sentiment.get("up_percentage")),
            sentiment_votes=_optional_int(sentiment.get("total")),
            gt_score=_optional_float(attributes.get("gt_score")),
        )


class GeckoTerminalClient:
    """Fetches pool snapshots from the GeckoTerminal public API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        network: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root (defaults to config)
            network: Chain id used in the pool path, e.g. "solana" (defaults to config)
            timeout: Request timeout in seconds (defaults to config)
        """
        self.base_url = (base_url or config.geckoterminal_base_url).rstrip("/")
        self.network = network or config.geckoterminal_network
        self.timeout = timeout or config.request_timeout_seconds

    def pool_url(self, address: str) -> str:
        return f"{self.base_url}/{self.network}/pools/{address}"

    def _retry_on_429(self, fn: Callable[[], T]) -> T:
        """Run fn(); on HTTP 429, sleep and retry with backoff. Re-raise other errors."""
        last_err = None
        for attempt in range(_MAX_429_RETRIES):
            try:
                return fn()
            except urllib.error.HTTPError as e:
                if e.code != 429:
                    raise
                last_err = e
                if attempt < _MAX_429_RETRIES - 1:
                    backoff = _429_BACKOFF_SEC[min(attempt, len(_429_BACKOFF_SEC) - 1)]
                    logger.warning(f"GeckoTerminal 429 rate limit; retrying in {backoff}s (attempt {attempt + 1}/{_MAX_429_RETRIES})")
                    time.sleep(backoff)
        raise last_err

    def _get_json(self, url: str) -> Dict[str, Any]:
        req = urllib.request.Request(
            url,
            headers={
                "Accept": "application/json",
                "User-Agent": "crypto-commentator/1.0",
            },
        )
        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            return json.loads(resp.read().decode())

    def fetch_pool(self, address: str) -> PoolSnapshot:
        """Fetch and parse the current state of a pool.

        Raises:
            ValueError: If address is blank
            MarketDataError: On HTTP failure, API error payload or malformed data
        """
        address = (address or "").strip()
        if not address:
            raise ValueError("Pool address must be provided")

        url = self.pool_url(address)
        logger.debug(f"Fetching pool data: {url}")
        try:
            data = self._retry_on_429(lambda: self._get_json(url))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise MarketDataError(f"Token not found on GeckoTerminal: {address}") from e
            raise MarketDataError(f"GeckoTerminal request failed with HTTP {e.code}") from e
        except urllib.error.URLError as e:
            raise MarketDataError(f"GeckoTerminal request failed: {e.reason}") from e
        except TimeoutError as e:
            raise MarketDataError(f"GeckoTerminal request timed out after {self.timeout}s") from e
        except json.JSONDecodeError as e:
            raise MarketDataError(f"GeckoTerminal returned invalid JSON: {e}") from e

        if isinstance(data, dict) and data.get("errors"):
            first = data["errors"][0] if isinstance(data["errors"], list) else {}
            title = first.get("title") if isinstance(first, dict) else None
            raise MarketDataError(f"Token not found on GeckoTerminal: {title or 'Unknown error'}")

        snapshot = PoolSnapshot.from_api(data)
        logger.info(f"Fetched {snapshot.name}: ${snapshot.price} (5m {snapshot.changes.get('5m')})")
        return snapshot
