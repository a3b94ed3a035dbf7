# currency.py
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List

import httpx
from dotenv import load_dotenv
from fastapi import HTTPException

from errors import InvalidRequestError

load_dotenv()

logger = logging.getLogger(__name__)

EXCHANGE_RATES_URL = os.getenv("EXCHANGE_RATES_URL", "").strip()

# units per 1 USD
EXCHANGE_RATES: Dict[str, float] = {
  "USD": 1.0,
  "EUR": 0.85,
  "GBP": 0.73,
  "JPY": 110.0,
  "CAD": 1.25,
  "AUD": 1.35,
  "CHF": 0.92,
  "CNY": 6.45,
}

CURRENCY_INFO: Dict[str, Dict[str, str]] = {
  "USD": {"symbol": "$", "name": "US Dollar"},
  "EUR": {"symbol": "€", "name": "Euro"},
  "GBP": {"symbol": "£", "name": "British Pound"},
  "JPY": {"symbol": "¥", "name": "Japanese Yen"},
  "CAD": {"symbol": "C$", "name": "Canadian Dollar"},
  "AUD": {"symbol": "A$", "name": "Australian Dollar"},
  "CHF": {"symbol": "Fr", "name": "Swiss Franc"},
  "CNY": {"symbol": "¥", "name": "Chinese Yuan"},
}


def list_currencies() -> List[Dict[str, object]]:
  return [
    {"code": code, "symbol": info["symbol"], "name": info["name"], "rate": EXCHANGE_RATES[code]}
    for code, info in CURRENCY_INFO.items()
  ]


def normalize_code(code: str) -> str:
  code = (code or "").strip().upper()
  if code not in EXCHANGE_RATES:
    raise InvalidRequestError(f"Invalid currency code: {code or '?'}")
  return code


def exchange_rate(from_currency: str, to_currency: str) -> float:
  src = normalize_code(from_currency)
  dst = normalize_code(to_currency)
  return EXCHANGE_RATES[dst] / EXCHANGE_RATES[src]


def convert(amount, from_currency: str, to_currency: str) -> Dict[str, object]:
  rate = exchange_rate(from_currency, to_currency)
  try:
    original = Decimal(str(amount))
    converted = (original * Decimal(str(rate))).quantize(Decimal("0.01"))
  except (InvalidOperation, ValueError):
    raise InvalidRequestError(f"Amount cannot be converted: {amount}")
  if not converted.is_finite():
    raise InvalidRequestError(f"Amount cannot be converted: {amount}")
  return {
    "original_amount": original,
    "from_currency": normalize_code(from_currency),
    "to_currency": normalize_code(to_currency),
    "exchange_rate": rate,
    "converted_amount": converted,
    "timestamp": datetime.now(timezone.utc).isoformat(),
  }


async def refresh_rates(url: str = "") -> Dict[str, float]:
  """Pull USD-based rates from a JSON endpoint shaped like ``{"rates": {...}}``.

  Only codes already listed in CURRENCY_INFO are updated.
  """
  url = url or EXCHANGE_RATES_URL
  if not url:
    raise HTTPException(status_code=500, detail="EXCHANGE_RATES_URL is not set")

  async with httpx.AsyncClient(timeout=30) as client:
    r = await client.get(url, params={"base": "USD"})
    if r.status_code >= 400:
      raise HTTPException(status_code=502, detail=f"Exchange rate provider error: {r.status_code}")

  rates = r.json().get("rates") or {}
  updated = {}
  for code in CURRENCY_INFO:
    value = rates.get(code)
    if isinstance(value, (int, float)) and value > 0:
      EXCHANGE_RATES[code] = float(value)
      updated[code] = float(value)

  logger.info("Refreshed %d exchange rates from %s", len(updated), url)
  return updated
