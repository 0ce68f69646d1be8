"""
Tracked items, their capped price history and multi-source price reconciliation.

Every function here is pure: it takes a ``TrackedItem`` and returns an updated copy.
Persisting the result is left to the caller (the batch runner saves through the
repository once per item).
"""
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from pricewatch.core.config import settings
from pricewatch.services.errors import InvalidPriceError


class CheckFrequency(str, Enum):
    """How often a tracked item is re-checked"""
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


CHECK_INTERVALS: Dict[CheckFrequency, timedelta] = {
    CheckFrequency.HOURLY: timedelta(hours=1),
    CheckFrequency.DAILY: timedelta(hours=24),
    CheckFrequency.WEEKLY: timedelta(days=7),
}


class ItemStatus(str, Enum):
    ACTIVE = "active"
    PURCHASED = "purchased"
    REMOVED = "removed"
    OUT_OF_STOCK = "out_of_stock"


class Availability(str, Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    LIMITED = "limited"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProductInfo:
    """Display-only product descriptor"""
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None


@dataclass(frozen=True)
class PriceHistoryEntry:
    price: float
    recorded_at: datetime
    source: str
    currency: str = "USD"
    url: Optional[str] = None
    availability: str = Availability.UNKNOWN.value


@dataclass(frozen=True)
class PriceSource:
    """One retailer polled for an item"""
    name: str
    domain: str
    url: str
    last_observed_price: Optional[float] = None
    availability: str = Availability.UNKNOWN.value
    last_checked_at: Optional[datetime] = None
    is_active: bool = True


@dataclass(frozen=True)
class AlertSettings:
    """Per-item alert configuration"""
    price_drop_threshold: float = field(default_factory=lambda: settings.DEFAULT_PRICE_DROP_THRESHOLD)  # percent
    target_price: Optional[float] = None
    enabled: bool = True
    email_alerts: bool = True
    push_alerts: bool = True
    last_alert_sent: Optional[datetime] = None


@dataclass(frozen=True)
class PriceObservation:
    """Fresh price reported by one source"""
    source_name: str
    price: float
    availability: str = Availability.UNKNOWN.value
    domain: str = ""
    url: str = ""


@dataclass(frozen=True)
class TrackedItem:
    """One user's watch on one product"""
    id: str
    user_id: str
    product: ProductInfo
    original_price: float
    current_price: float
    currency: str = "USD"
    is_tracking: bool = True
    check_frequency: CheckFrequency = CheckFrequency.DAILY
    last_checked: Optional[datetime] = None
    lowest_price: Optional[float] = None
    highest_price: Optional[float] = None
    price_history: Tuple[PriceHistoryEntry, ...] = ()
    sources: Tuple[PriceSource, ...] = ()
    alert_settings: AlertSettings = field(default_factory=AlertSettings)
    status: ItemStatus = ItemStatus.ACTIVE
    purchased_at: Optional[datetime] = None
    purchase_price: Optional[float] = None

    @property
    def is_eligible(self) -> bool:
        """Only active items that are still tracking get polled"""
        return self.status == ItemStatus.ACTIVE and self.is_tracking

    @property
    def active_sources(self) -> Tuple[PriceSource, ...]:
        return tuple(source for source in self.sources if source.is_active)

    @property
    def price_change_percentage(self) -> float:
        if not self.original_price:
            return 0.0
        return (self.current_price - self.original_price) / self.original_price * 100

    @property
    def savings_amount(self) -> float:
        return max(0.0, self.original_price - self.current_price)

    @property
    def has_price_dropped(self) -> bool:
        return self.current_price < self.original_price

    @property
    def is_target_price_met(self) -> bool:
        target = self.alert_settings.target_price
        return target is not None and self.current_price <= target

    def is_due(self, now: datetime) -> bool:
        if not self.is_eligible:
            return False
        if self.last_checked is None:
            return True
        return self.last_checked < cutoff_for(self.check_frequency, now)


def cutoff_for(frequency: CheckFrequency, now: datetime) -> datetime:
    """Items last checked before this moment are due again"""
    return now - CHECK_INTERVALS[CheckFrequency(frequency)]


def validate_price(price) -> float:
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        raise InvalidPriceError(f"Price must be a number, got {price!r}")
    value = float(price)
    if math.isnan(value) or math.isinf(value):
        raise InvalidPriceError(f"Price must be finite, got {price!r}")
    if value < 0:
        raise InvalidPriceError(f"Price cannot be negative, got {price!r}")
    return value


def record_observation(
    item: TrackedItem,
    price: float,
    source: str,
    now: datetime,
    url: Optional[str] = None,
    availability: str = Availability.UNKNOWN.value,
    history_limit: Optional[int] = None,
) -> TrackedItem:
    """
    Append a price to the item's history and make it the current price.

    The history keeps the most recent ``history_limit`` entries (default
    ``PRICE_HISTORY_LIMIT``), evicting the oldest first. Lowest and highest
    observed prices are updated along the way.

    Raises:
        InvalidPriceError: if ``price`` is negative or not a finite number
    """
    value = validate_price(price)
    limit = history_limit if history_limit is not None else settings.PRICE_HISTORY_LIMIT

    entry = PriceHistoryEntry(
        price=value,
        recorded_at=now,
        source=source,
        currency=item.currency,
        url=url,
        availability=availability,
    )
    history = item.price_history + (entry,)
    if len(history) > limit:
        history = history[len(history) - limit:]

    lowest = value if item.lowest_price is None else min(item.lowest_price, value)
    highest = value if item.highest_price is None else max(item.highest_price, value)

    return replace(
        item,
        price_history=history,
        current_price=value,
        last_checked=now,
        lowest_price=lowest,
        highest_price=highest,
    )


def touch(item: TrackedItem, now: datetime) -> TrackedItem:
    """Advance last_checked without recording a price"""
    return replace(item, last_checked=now)


def update_source(item: TrackedItem, observation: PriceObservation, now: datetime) -> TrackedItem:
    """Store the latest observation on the matching source (matched by domain, then name)"""
    updated = []
    matched = False
    for source in item.sources:
        same_domain = observation.domain and source.domain.lower() == observation.domain.lower()
        if not matched and (same_domain or (not observation.domain and source.name == observation.source_name)):
            source = replace(
                source,
                last_observed_price=observation.price,
                availability=observation.availability,
                last_checked_at=now,
                is_active=True,
            )
            matched = True
        updated.append(source)

    if not matched:
        updated.append(PriceSource(
            name=observation.source_name,
            domain=(observation.domain or "").lower(),
            url=observation.url,
            last_observed_price=observation.price,
            availability=observation.availability,
            last_checked_at=now,
        ))
    return replace(item, sources=tuple(updated))


def select_best_price(observations: Iterable[PriceObservation]) -> Optional[PriceObservation]:
    """
    Pick the lowest price across the sources that responded.

    Ties go to the source whose name sorts first. Returns None when nothing responded.
    """
    candidates = list(observations)
    if not candidates:
        return None
    return min(candidates, key=lambda obs: (obs.price, obs.source_name))


def mark_purchased(item: TrackedItem, now: datetime, purchase_price: Optional[float] = None) -> TrackedItem:
    price = validate_price(purchase_price) if purchase_price is not None else item.current_price
    return replace(
        item,
        status=ItemStatus.PURCHASED,
        is_tracking=False,
        purchased_at=now,
        purchase_price=price,
    )
