"""
Alert records and their lifecycle.

Status moves ``pending -> sent | failed | dismissed``; ``sent`` may still be
dismissed by the user. Per-channel delivery bookkeeping (email, push) is only
touched through ``record_attempt`` and ``resolve_status``, which the
notification dispatcher drives. Read/unread is independent of status.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Tuple

from pricewatch.core.config import settings
from pricewatch.services.alert_rules import AlertDecision, AlertPriority, AlertType
from pricewatch.services.errors import AlertStateError
from pricewatch.services.price_history import ProductInfo, TrackedItem


class AlertStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DISMISSED = "dismissed"


TERMINAL_STATUSES = frozenset({AlertStatus.SENT, AlertStatus.FAILED, AlertStatus.DISMISSED})


class Channel(str, Enum):
    EMAIL = "email"
    PUSH = "push"


@dataclass(frozen=True)
class ChannelState:
    sent: bool = False
    sent_at: Optional[datetime] = None
    attempts: int = 0

    def is_exhausted(self, max_attempts: int) -> bool:
        return not self.sent and self.attempts >= max_attempts

    def is_final(self, max_attempts: int) -> bool:
        return self.sent or self.attempts >= max_attempts


@dataclass(frozen=True)
class InAppState:
    read: bool = False
    read_at: Optional[datetime] = None


@dataclass(frozen=True)
class AlertSource:
    name: str
    domain: str = ""
    url: str = ""


@dataclass(frozen=True)
class Alert:
    """Notification-worthy price event for one tracked item"""
    id: Optional[str]
    user_id: str
    item_id: str
    alert_type: AlertType
    priority: AlertPriority
    current_price: float
    created_at: datetime
    expires_at: datetime
    product: ProductInfo
    source: AlertSource
    previous_price: Optional[float] = None
    target_price: Optional[float] = None
    drop_amount: Optional[float] = None
    drop_percentage: Optional[float] = None
    status: AlertStatus = AlertStatus.PENDING
    email: ChannelState = field(default_factory=ChannelState)
    push: ChannelState = field(default_factory=ChannelState)
    in_app: InAppState = field(default_factory=InAppState)
    requested_channels: Tuple[Channel, ...] = (Channel.EMAIL, Channel.PUSH)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def savings_amount(self) -> float:
        if self.alert_type == AlertType.PRICE_DROP and self.previous_price:
            return self.previous_price - self.current_price
        return 0.0

    @property
    def message(self) -> str:
        return format_message(self)

    def channel_state(self, channel: Channel) -> ChannelState:
        return self.email if Channel(channel) == Channel.EMAIL else self.push


def format_message(alert: Alert) -> str:
    product = alert.product.name
    price = f"${alert.current_price:.2f}"
    pct = f"{alert.drop_percentage or 0:.1f}"

    if alert.alert_type == AlertType.PRICE_DROP:
        return f"{product} price dropped {pct}% to {price}"
    if alert.alert_type == AlertType.TARGET_PRICE:
        return f"{product} reached your target price of {price}"
    if alert.alert_type == AlertType.BACK_IN_STOCK:
        return f"{product} is back in stock at {price}"
    if alert.alert_type == AlertType.PRICE_INCREASE:
        return f"{product} price increased {pct}% to {price}"
    return f"Price alert for {product}: {price}"


def create_alert(
    item: TrackedItem,
    decision: AlertDecision,
    source: AlertSource,
    now: datetime,
    ttl_days: Optional[int] = None,
) -> Alert:
    """Build a pending alert whose trigger snapshot is taken from ``decision``"""
    ttl = ttl_days if ttl_days is not None else settings.ALERT_TTL_DAYS
    channels = []
    if item.alert_settings.email_alerts:
        channels.append(Channel.EMAIL)
    if item.alert_settings.push_alerts:
        channels.append(Channel.PUSH)

    return Alert(
        id=None,
        user_id=item.user_id,
        item_id=item.id,
        alert_type=decision.alert_type,
        priority=decision.priority,
        previous_price=decision.previous_price,
        current_price=decision.current_price,
        target_price=decision.target_price,
        drop_amount=decision.drop_amount,
        drop_percentage=decision.drop_percentage,
        product=item.product,
        source=source,
        created_at=now,
        expires_at=now + timedelta(days=ttl),
        requested_channels=tuple(channels),
    )


def record_attempt(alert: Alert, channel: Channel, success: bool, now: datetime,
                   max_attempts: Optional[int] = None) -> Alert:
    """Count one delivery attempt on a channel, marking it sent on success"""
    cap = max_attempts if max_attempts is not None else settings.NOTIFICATION_MAX_ATTEMPTS
    if alert.is_terminal:
        raise AlertStateError(f"Alert {alert.id} is {alert.status.value}; no further delivery attempts")

    channel = Channel(channel)
    state = alert.channel_state(channel)
    if state.sent:
        raise AlertStateError(f"{channel.value} already delivered for alert {alert.id}")
    if state.attempts >= cap:
        raise AlertStateError(f"{channel.value} exhausted {cap} attempts for alert {alert.id}")

    if success:
        state = ChannelState(sent=True, sent_at=now, attempts=state.attempts + 1)
    else:
        state = replace(state, attempts=state.attempts + 1)

    if channel == Channel.EMAIL:
        return replace(alert, email=state)
    return replace(alert, push=state)


def resolve_status(alert: Alert, enabled_channels: Iterable[Channel],
                   max_attempts: Optional[int] = None) -> Alert:
    """
    Settle a pending alert once every enabled channel reached a final state.

    A channel is final when it was delivered or ran out of attempts. Disabled
    channels never block. All final with at least one delivery -> sent;
    all final with none delivered -> failed; otherwise the alert stays pending.
    """
    if alert.status != AlertStatus.PENDING:
        return alert
    cap = max_attempts if max_attempts is not None else settings.NOTIFICATION_MAX_ATTEMPTS
    states = [alert.channel_state(channel) for channel in set(Channel(c) for c in enabled_channels)]

    if not states:
        return replace(alert, status=AlertStatus.SENT)
    if not all(state.is_final(cap) for state in states):
        return alert
    if any(state.sent for state in states):
        return replace(alert, status=AlertStatus.SENT)
    return replace(alert, status=AlertStatus.FAILED)


def dismiss(alert: Alert) -> Alert:
    if alert.status == AlertStatus.DISMISSED:
        return alert
    if alert.status == AlertStatus.FAILED:
        raise AlertStateError(f"Alert {alert.id} failed and cannot be dismissed")
    return replace(alert, status=AlertStatus.DISMISSED)


def mark_read(alert: Alert, now: datetime) -> Alert:
    if alert.in_app.read:
        return alert
    return replace(alert, in_app=InAppState(read=True, read_at=now))


def mark_unread(alert: Alert) -> Alert:
    if not alert.in_app.read:
        return alert
    return replace(alert, in_app=InAppState())


def expire(alert: Alert, now: datetime) -> Alert:
    """Sweep an expired pending alert to failed; anything else is returned unchanged"""
    if alert.status == AlertStatus.PENDING and alert.is_expired(now):
        return replace(alert, status=AlertStatus.FAILED)
    return alert
