"""Tests for GeckoTerminal pool data retrieval."""
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from commentator.market_data import (
    GeckoTerminalClient,
    MarketDataError,
    PoolSnapshot,
    parse_percent,
)


def _pool_payload(**overrides):
    """A trimmed GeckoTerminal /pools/{address} response."""
    attributes = {
        "name": "BONK / SOL",
        "price_in_usd": "0.00002345",
        "price_percent_change": "3.2%",
        "from_volume_in_usd": "1234567.89",
        "fully_diluted_valuation": "1500000000",
        "reserve_in_usd": "2500000.5",
        "swap_count_24h": 4321,
        "gt_score": 87.155,
        "sentiment_votes": {"total": 120, "up_percentage": 75.0},
        "price_percent_changes": {
            "last_5m": "2.5%",
            "last_15m": "-1.1%",
            "last_30m": "0%",
            "last_1h": "4.4%",
            "last_6h": "-8%",
            "last_24h": "3.2%",
        },
        "historical_data": {"last_24h": {"buyers_count": 900, "sellers_count": 850}},
    }
    attributes.update(overrides)
    return {"data": {"attributes": attributes}}


@pytest.fixture
def client():
    return GeckoTerminalClient(base_url="https://example.test/api/p1/", network="solana", timeout=5)


def test_parse_percent():
    assert parse_percent("2.5%") == 2.5
    assert parse_percent("-4") == -4.0
    assert parse_percent(0.5) == 0.5
    assert parse_percent(" 1.25 % ") == 1.25


def test_parse_percent_sanitises_bad_values():
    """Missing, malformed and NaN values become 0."""
    assert parse_percent(None) == 0.0
    assert parse_percent("") == 0.0
    assert parse_percent("%") == 0.0
    assert parse_percent("abc") == 0.0
    assert parse_percent("nan") == 0.0
    assert parse_percent(float("inf")) == 0.0


def test_pool_url(client):
    assert client.pool_url("ABC123") == "https://example.test/api/p1/solana/pools/ABC123"


def test_client_defaults_from_config():
    from commentator.config import config

    c = GeckoTerminalClient()
    assert c.base_url == config.geckoterminal_base_url.rstrip("/")
    assert c.network == config.geckoterminal_network
    assert c.timeout == config.request_timeout_seconds


def test_snapshot_from_api():
    snapshot = PoolSnapshot.from_api(_pool_payload())

    assert snapshot.name == "BONK / SOL"
    assert snapshot.price == pytest.approx(0.00002345)
    assert snapshot.changes["5m"] == "2.5%"
    assert snapshot.changes["6h"] == "-8%"
    assert snapshot.change_pct("15m") == -1.1
    assert snapshot.volume_24h == pytest.approx(1234567.89)
    assert snapshot.swap_count_24h == 4321
    assert snapshot.buyers_24h == 900
    assert snapshot.sellers_24h == 850
    assert snapshot.sentiment_up_pct == 75.0
    assert snapshot.sentiment_votes == 120
    assert snapshot.gt_score == pytest.approx(87.155)


def test_snapshot_tolerates_missing_optional_fields():
    payload = {"data": {"attributes": {"name": "X / SOL", "price_in_usd": "1.5"}}}
    snapshot = PoolSnapshot.from_api(payload)

    assert snapshot.price == 1.5
    assert snapshot.changes["5m"] is None
    assert snapshot.change_pct("5m") == 0.0
    assert snapshot.volume_24h is None
    assert snapshot.buyers_24h is None
    assert snapshot.sentiment_up_pct is None
    assert snapshot.gt_score is None


@pytest.mark.parametrize("price", [None, "", "0", "-1", "nan", "abc"])
def test_snapshot_rejects_invalid_price(price):
    with pytest.raises(MarketDataError, match="Invalid price"):
        PoolSnapshot.from_api(_pool_payload(price_in_usd=price))


def test_snapshot_rejects_malformed_payload():
    with pytest.raises(MarketDataError, match="Unexpected GeckoTerminal response"):
        PoolSnapshot.from_api({"data": None})


def test_fetch_pool(client):
    with patch.object(client, "_get_json", return_value=_pool_payload()) as mock_get:
        snapshot = client.fetch_pool("  ABC123 ")

    mock_get.assert_called_once_with("https://example.test/api/p1/solana/pools/ABC123")
    assert snapshot.name == "BONK / SOL"


def test_fetch_pool_requires_address(client):
    with pytest.raises(ValueError, match="Pool address must be provided"):
        client.fetch_pool("   ")


def test_fetch_pool_api_error_payload(client):
    payload = {"errors": [{"status": "404", "title": "Not Found"}]}
    with patch.object(client, "_get_json", return_value=payload):
        with pytest.raises(MarketDataError, match="Token not found on GeckoTerminal: Not Found"):
            client.fetch_pool("missing")


def test_fetch_pool_http_404(client):
    err = urllib.error.HTTPError("url", 404, "Not Found", {}, None)
    with patch.object(client, "_get_json", side_effect=err):
        with pytest.raises(MarketDataError, match="Token not found"):
            client.fetch_pool("missing")


def test_fetch_pool_http_500(client):
    err = urllib.error.HTTPError("url", 500, "Server Error", {}, None)
    with patch.object(client, "_get_json", side_effect=err):
        with pytest.raises(MarketDataError, match="HTTP 500"):
            client.fetch_pool("abc")


def test_fetch_pool_network_error(client):
    with patch.object(client, "_get_json", side_effect=urllib.error.URLError("connection refused")):
        with pytest.raises(MarketDataError, match="connection refused"):
            client.fetch_pool("abc")


def test_fetch_pool_timeout(client):
    with patch.object(client, "_get_json", side_effect=TimeoutError()):
        with pytest.raises(MarketDataError, match="timed out"):
            client.fetch_pool("abc")


def test_fetch_pool_invalid_json(client):
    with patch.object(client, "_get_json", side_effect=json.JSONDecodeError("bad", "doc", 0)):
        with pytest.raises(MarketDataError, match="invalid JSON"):
            client.fetch_pool("abc")


@patch("commentator.market_data.time.sleep")
def test_fetch_pool_retries_on_429(mock_sleep, client):
    rate_limited = urllib.error.HTTPError("url", 429, "Too Many Requests", {}, None)
    with patch.object(client, "_get_json", side_effect=[rate_limited, rate_limited, _pool_payload()]) as mock_get:
        snapshot = client.fetch_pool("abc")

    assert snapshot.name == "BONK / SOL"
    assert mock_get.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]


@patch("commentator.market_data.time.sleep")
def test_fetch_pool_gives_up_after_429_retries(mock_sleep, client):
    rate_limited = urllib.error.HTTPError("url", 429, "Too Many Requests", {}, None)
    with patch.object(client, "_get_json", side_effect=rate_limited) as mock_get:
        with pytest.raises(MarketDataError, match="HTTP 429"):
            client.fetch_pool("abc")

    assert mock_get.call_count == 3
    assert mock_sleep.call_count == 2


def test_get_json_sends_json_request(client):
    response = MagicMock()
    response.read.return_value = json.dumps(_pool_payload()).encode()
    opened = MagicMock()
    opened.__enter__.return_value = response

    with patch("commentator.market_data.urllib.request.urlopen", return_value=opened) as mock_urlopen:
        snapshot = client.fetch_pool("abc")

    request = mock_urlopen.call_args.args[0]
    assert request.full_url == "https://example.test/api/p1/solana/pools/abc"
    assert request.get_header("Accept") == "application/json"
    assert mock_urlopen.call_args.kwargs["timeout"] == 5
    assert snapshot.price == pytest.approx(0.00002345)
