"""
Test suite for the CoinGecko HTTP client.

The requests session is replaced by a scripted fake; no network access.
"""

import json
from datetime import date
from decimal import Decimal

import pytest
import requests

from RoiEngine_core.data_sources.coingecko_http_client import CoinGeckoHttpClient
from RoiEngine_core.errors import PriceSupplierError

JAN_1 = 1767225600000  # 2026-01-01T00:00:00Z
DAY_MS = 86400000


class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None):
        self.status_code = status_code
        self.headers = headers or {}
        self.text = json.dumps(body) if body is not None else ""

    def json(self, parse_float=None):
        return json.loads(self.text, parse_float=parse_float)


class ScriptedGet:
    """Returns the scripted responses in order, recording each call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(sleeps):
    return CoinGeckoHttpClient(api_key=None, base_url="https://cg.test/api/v3", sleep=sleeps.append)


def chart(*samples):
    return FakeResponse(body={"prices": [list(s) for s in samples]})


def test_daily_closes_last_sample_of_day_wins(client):
    client.session.get = ScriptedGet(chart(
        (JAN_1, 100.5),
        (JAN_1 + DAY_MS // 2, 101.25),
        (JAN_1 + DAY_MS, 99.75),
    ))

    closes = client.get_daily_closes(["btc"], date(2026, 1, 1), date(2026, 1, 2))

    assert closes == {"BTC": [
        (date(2026, 1, 1), Decimal("101.25")),
        (date(2026, 1, 2), Decimal("99.75")),
    ]}
    url, params = client.session.get.calls[0]
    assert url == "https://cg.test/api/v3/coins/bitcoin/market_chart/range"
    assert params["vs_currency"] == "usd"
    assert params["from"] == JAN_1 // 1000


def test_missing_days_are_logged(client, caplog):
    client.session.get = ScriptedGet(chart((JAN_1, 1)))

    closes = client.get_daily_closes(["ETH"], date(2026, 1, 1), date(2026, 1, 3))

    assert [day for day, _ in closes["ETH"]] == [date(2026, 1, 1)]
    assert "2026-01-02" in caplog.text
    assert "(2 total)" in caplog.text


def test_cash_and_unmapped_need_no_request(client):
    client.session.get = ScriptedGet()

    closes = client.get_daily_closes(["CASH", "HYPEH", "NOPE"], date(2026, 1, 1), date(2026, 1, 2))

    assert closes["CASH"] == [(date(2026, 1, 1), Decimal(1)), (date(2026, 1, 2), Decimal(1))]
    assert closes["HYPEH"] == []
    assert closes["NOPE"] == []
    assert client.session.get.calls == []


def test_rate_limit_honours_retry_after(client, sleeps):
    client.session.get = ScriptedGet(
        FakeResponse(status_code=429, headers={"Retry-After": "2"}),
        chart((JAN_1, 5)),
    )

    closes = client.get_daily_closes(["SOL"], date(2026, 1, 1), date(2026, 1, 1))

    assert closes["SOL"] == [(date(2026, 1, 1), Decimal(5))]
    assert sleeps == [2.0]


def test_server_errors_exhaust_retries(client, sleeps):
    client.session.get = ScriptedGet(
        FakeResponse(status_code=500, body={"error": "boom"}),
        requests.exceptions.ConnectionError("reset"),
        FakeResponse(status_code=502),
    )

    with pytest.raises(PriceSupplierError) as exc_info:
        client.get_daily_closes(["BTC"], date(2026, 1, 1), date(2026, 1, 1))

    assert exc_info.value.details["ticker"] == "BTC"
    assert exc_info.value.details["last_error"] == "HTTP 502"
    # linear back-off, no sleep after the last attempt
    assert sleeps == [0.75, 1.5]


def test_invalid_json_raises(client):
    response = FakeResponse()
    response.text = "<html>"
    client.session.get = ScriptedGet(response)

    with pytest.raises(PriceSupplierError):
        client.get_daily_closes(["BTC"], date(2026, 1, 1), date(2026, 1, 1))


def test_api_key_header():
    client = CoinGeckoHttpClient(api_key="demo-key")
    assert client.session.headers["x-cg-demo-api-key"] == "demo-key"
    assert "x-cg-demo-api-key" not in CoinGeckoHttpClient(api_key=None).session.headers


def test_connection_check(client):
    client.session.get = ScriptedGet(FakeResponse(status_code=200, body={"gecko_says": "ok"}))
    assert client.test_connection() is True

    client.session.get = ScriptedGet(requests.exceptions.Timeout("slow"))
    assert client.test_connection() is False
