"""
Price fetchers: one observation per (item, source) or a PriceFetchError
"""
import asyncio
import json
import logging
import random
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp

from pricewatch.core.config import settings
from pricewatch.services.errors import PriceFetchError
from pricewatch.services.price_history import Availability, PriceObservation, PriceSource, TrackedItem

logger = logging.getLogger(__name__)

PRICE_KEYS = ("price", "salePrice", "currentPrice")

EMBEDDED_PRICE_RE = re.compile(r'"(?:salePrice|currentPrice|price)"\s*:\s*"?([\d,]+(?:\.\d+)?)')
META_PRICE_RES = (
    re.compile(r'<meta[^>]+property=["\']product:price:amount["\'][^>]+content=["\']([\d.,]+)', re.I),
    re.compile(r'<meta[^>]+content=["\']([\d.,]+)["\'][^>]+property=["\']product:price:amount', re.I),
    re.compile(r'itemprop=["\']price["\'][^>]+content=["\']([\d.,]+)', re.I),
    re.compile(r'content=["\']([\d.,]+)["\'][^>]+itemprop=["\']price["\']', re.I),
)
DOLLAR_PRICE_RE = re.compile(r'\$\s*([\d,]+(?:\.\d{1,2})?)')

AVAILABILITY_MARKERS = (
    ("OutOfStock", Availability.OUT_OF_STOCK),
    ("LimitedAvailability", Availability.LIMITED),
    ("InStock", Availability.IN_STOCK),
)


def _to_price(raw: Any) -> Optional[float]:
    try:
        value = float(str(raw).replace(",", "").strip())
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def _price_from_json(payload: Any) -> Optional[float]:
    if not isinstance(payload, dict):
        return None
    for key in PRICE_KEYS:
        if key in payload:
            price = _to_price(payload[key])
            if price is not None:
                return price
    offers = payload.get("offers")
    if isinstance(offers, list) and offers:
        offers = offers[0]
    if isinstance(offers, dict):
        return _price_from_json(offers)
    return None


def extract_price(body: str) -> Optional[float]:
    """
    Pull a price out of a product page or API response.

    Tried in order: a JSON body, embedded JSON price fields, price meta tags,
    and finally the first ``$1,234.56`` looking string.
    """
    if not body:
        return None

    stripped = body.strip()
    if stripped.startswith("{"):
        try:
            price = _price_from_json(json.loads(stripped))
            if price is not None:
                return price
        except json.JSONDecodeError:
            pass

    match = EMBEDDED_PRICE_RE.search(body)
    if match:
        price = _to_price(match.group(1))
        if price is not None:
            return price

    for pattern in META_PRICE_RES:
        match = pattern.search(body)
        if match:
            price = _to_price(match.group(1))
            if price is not None:
                return price

    match = DOLLAR_PRICE_RE.search(body)
    if match:
        return _to_price(match.group(1))
    return None


def extract_availability(body: str) -> str:
    for marker, availability in AVAILABILITY_MARKERS:
        if marker in (body or ""):
            return availability.value
    return Availability.UNKNOWN.value


class PriceFetcher(ABC):
    """Fetches one source's current price for a tracked item"""

    @abstractmethod
    async def fetch_price(self, item: TrackedItem, source: PriceSource) -> PriceObservation:
        """Return a fresh observation or raise PriceFetchError"""

    async def close(self):
        return None


class HttpPriceFetcher(PriceFetcher):
    """Scrapes the source URL over HTTP with retries and a concurrency cap."""

    TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        timeout_seconds: Optional[int] = None,
        max_retries: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.FETCH_TIMEOUT_SECONDS
        max_retries = max_retries if max_retries is not None else settings.FETCH_MAX_RETRIES
        max_concurrency = max_concurrency if max_concurrency is not None else settings.FETCH_MAX_CONCURRENCY

        self.timeout = aiohttp.ClientTimeout(total=max(int(timeout_seconds), 1))
        self.max_retries = max(0, int(max_retries))
        self.headers = {
            "User-Agent": user_agent or settings.FETCH_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        self._semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))
        self._session: Optional[aiohttp.ClientSession] = None
        self._metrics = {
            "requests": 0,
            "retries": 0,
            "timeouts": 0,
            "errors": 0,
        }

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_price(self, item, source):
        body = await self._get_text(source)
        price = extract_price(body)
        if price is None:
            self._metrics["errors"] += 1
            raise PriceFetchError(source.name, f"no price found at {source.url}")

        return PriceObservation(
            source_name=source.name,
            price=round(price, 2),
            availability=extract_availability(body),
            domain=source.domain,
            url=source.url,
        )

    async def _get_text(self, source: PriceSource) -> str:
        session = await self._get_session()
        self._metrics["requests"] += 1

        for attempt in range(self.max_retries + 1):
            try:
                async with self._semaphore:
                    async with session.get(source.url, headers=self.headers, timeout=self.timeout) as response:
                        if response.status in self.TRANSIENT_STATUS_CODES and attempt < self.max_retries:
                            self._metrics["retries"] += 1
                            await self._sleep_backoff(attempt)
                            continue
                        response.raise_for_status()
                        return await response.text()
            except (asyncio.TimeoutError, aiohttp.ServerTimeoutError) as e:
                self._metrics["timeouts"] += 1
                if attempt < self.max_retries:
                    self._metrics["retries"] += 1
                    await self._sleep_backoff(attempt)
                    continue
                self._metrics["errors"] += 1
                raise PriceFetchError(source.name, "timed out") from e
            except aiohttp.ClientResponseError as e:
                if e.status in self.TRANSIENT_STATUS_CODES and attempt < self.max_retries:
                    self._metrics["retries"] += 1
                    await self._sleep_backoff(attempt)
                    continue
                self._metrics["errors"] += 1
                raise PriceFetchError(source.name, f"HTTP {e.status}") from e
            except aiohttp.ClientError as e:
                if attempt < self.max_retries:
                    self._metrics["retries"] += 1
                    await self._sleep_backoff(attempt)
                    continue
                self._metrics["errors"] += 1
                raise PriceFetchError(source.name, str(e) or e.__class__.__name__) from e
        self._metrics["errors"] += 1
        raise PriceFetchError(source.name, "request failed after retries")

    async def _sleep_backoff(self, attempt: int):
        base_delay = 0.3 * (2 ** max(attempt, 0))
        jitter = random.uniform(0.01, 0.16)
        await asyncio.sleep(base_delay + jitter)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def get_metrics(self) -> Dict[str, int]:
        return dict(self._metrics)


class StaticPriceFetcher(PriceFetcher):
    """Deterministic fetcher keyed by (item id, source name)."""

    def __init__(self, prices: Optional[Dict[Tuple[str, str], Union[float, Exception]]] = None,
                 availability: str = Availability.IN_STOCK.value):
        self.prices: Dict[Tuple[str, str], Union[float, Exception]] = dict(prices or {})
        self.availability = availability
        self.calls: List[Tuple[str, str]] = []

    def set_price(self, item_id: str, source_name: str, value: Union[float, Exception]):
        self.prices[(item_id, source_name)] = value

    async def fetch_price(self, item, source):
        self.calls.append((item.id, source.name))
        value = self.prices.get((item.id, source.name))
        if value is None:
            raise PriceFetchError(source.name, "no price configured")
        if isinstance(value, Exception):
            raise value
        return PriceObservation(
            source_name=source.name,
            price=float(value),
            availability=self.availability,
            domain=source.domain,
            url=source.url,
        )
