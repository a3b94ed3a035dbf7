"""Tests for currency rates and conversion."""

import asyncio
from decimal import Decimal

import httpx
import pytest

import currency
from errors import InvalidRequestError


class TestRates:
  def test_same_currency(self):
    assert currency.exchange_rate("USD", "USD") == 1.0

  def test_cross_rate(self):
    assert currency.exchange_rate("EUR", "GBP") == pytest.approx(0.73 / 0.85)

  def test_lowercase_codes(self):
    assert currency.exchange_rate("usd", "jpy") == 110.0

  def test_unknown_code(self):
    with pytest.raises(InvalidRequestError):
      currency.exchange_rate("USD", "XYZ")

  def test_convert_rounds_to_cents(self):
    result = currency.convert(Decimal("100"), "USD", "EUR")
    assert result["converted_amount"] == Decimal("85.00")
    assert result["from_currency"] == "USD"

    result = currency.convert(Decimal("10"), "EUR", "USD")
    assert result["converted_amount"] == Decimal("11.76")

  def test_convert_out_of_range(self):
    with pytest.raises(InvalidRequestError):
      currency.convert(Decimal("1e30"), "USD", "JPY")

  def test_list_currencies(self):
    codes = {c["code"] for c in currency.list_currencies()}
    assert {"USD", "EUR", "GBP", "JPY"} <= codes


class TestRefreshRates:
  def test_updates_known_codes(self, monkeypatch):
    monkeypatch.setattr(currency, "EXCHANGE_RATES", dict(currency.EXCHANGE_RATES))

    def handler(request):
      assert request.url.params["base"] == "USD"
      return httpx.Response(200, json={"rates": {"EUR": 0.9, "GBP": 0.8, "XXX": 5, "JPY": "bad"}})

    real_client = httpx.AsyncClient

    def fake_client(*args, **kwargs):
      return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(currency.httpx, "AsyncClient", fake_client)

    updated = asyncio.run(currency.refresh_rates("http://rates.test/latest"))
    assert updated == {"EUR": 0.9, "GBP": 0.8}
    assert currency.EXCHANGE_RATES["EUR"] == 0.9
    assert "XXX" not in currency.EXCHANGE_RATES
    assert currency.EXCHANGE_RATES["JPY"] == 110.0

  def test_provider_error(self, monkeypatch):
    from fastapi import HTTPException

    real_client = httpx.AsyncClient

    def fake_client(*args, **kwargs):
      return real_client(*args, transport=httpx.MockTransport(lambda r: httpx.Response(503)), **kwargs)

    monkeypatch.setattr(currency.httpx, "AsyncClient", fake_client)
    with pytest.raises(HTTPException) as exc:
      asyncio.run(currency.refresh_rates("http://rates.test/latest"))
    assert exc.value.status_code == 502


class TestCurrencyApi:
  def test_exchange_rate(self, client, admin_headers):
    r = client.get("/api/currency/exchange-rate/USD/EUR", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["rate"] == 0.85

  def test_invalid_code(self, client, admin_headers):
    r = client.get("/api/currency/exchange-rate/USD/ABC", headers=admin_headers)
    assert r.status_code == 400

  def test_convert(self, client, admin_headers):
    r = client.post(
      "/api/currency/convert",
      json={"amount": "200", "from_currency": "USD", "to_currency": "GBP"},
      headers=admin_headers,
    )
    assert r.status_code == 200
    assert Decimal(str(r.json()["converted_amount"])) == Decimal("146.00")

  def test_convert_out_of_range(self, client, admin_headers):
    r = client.post(
      "/api/currency/convert",
      json={"amount": "1e30", "from_currency": "USD", "to_currency": "JPY"},
      headers=admin_headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Amount cannot be converted")
