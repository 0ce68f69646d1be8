"""
Alert decision rules: whether a price change is worth an alert, and how urgent it is
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pricewatch.services.price_history import AlertSettings


class AlertType(str, Enum):
    PRICE_DROP = "price_drop"
    TARGET_PRICE = "target_price"
    BACK_IN_STOCK = "back_in_stock"
    # Kept for stored records and message formatting; decide_alert never emits it.
    PRICE_INCREASE = "price_increase"


class AlertPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class AlertDecision:
    """Trigger snapshot for an alert that should be created"""
    alert_type: AlertType
    priority: AlertPriority
    previous_price: float
    current_price: float
    target_price: Optional[float] = None
    drop_amount: Optional[float] = None
    drop_percentage: Optional[float] = None


def drop_percentage(old_price: float, new_price: float) -> Optional[float]:
    """Percentage fall from old to new, or None when the price did not fall"""
    if old_price <= 0 or new_price >= old_price:
        return None
    return (old_price - new_price) / old_price * 100


def priority_for_drop(percentage: float) -> AlertPriority:
    if percentage >= 50:
        return AlertPriority.URGENT
    if percentage >= 25:
        return AlertPriority.HIGH
    if percentage >= 10:
        return AlertPriority.MEDIUM
    return AlertPriority.LOW


def decide_alert(old_price: float, new_price: float, config: AlertSettings) -> Optional[AlertDecision]:
    """
    Decide whether a price update produces an alert.

    A met target price wins over the drop threshold, so at most one alert fires
    per update. Price increases never produce an alert.

    Args:
        old_price: Price before the update
        new_price: Freshly selected best price
        config: The item's alert settings

    Returns:
        AlertDecision, or None when no alert should fire
    """
    if not config.enabled or new_price == old_price:
        return None

    pct = drop_percentage(old_price, new_price)
    amount = old_price - new_price if pct is not None else None

    if config.target_price is not None and new_price <= config.target_price:
        return AlertDecision(
            alert_type=AlertType.TARGET_PRICE,
            priority=AlertPriority.HIGH,
            previous_price=old_price,
            current_price=new_price,
            target_price=config.target_price,
            drop_amount=amount,
            drop_percentage=pct,
        )

    if pct is not None and pct >= config.price_drop_threshold:
        return AlertDecision(
            alert_type=AlertType.PRICE_DROP,
            priority=priority_for_drop(pct),
            previous_price=old_price,
            current_price=new_price,
            drop_amount=amount,
            drop_percentage=pct,
        )

    return None
