"""
Persistence for tracked items and alerts
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from pricewatch.core.config import settings
from pricewatch.core.database import SessionLocal
from pricewatch.models.alert import PriceAlertModel
from pricewatch.models.tracked_item import ItemSourceModel, PriceHistoryModel, TrackedItemModel
from pricewatch.services.alert_lifecycle import (
    Alert,
    AlertSource,
    AlertStatus,
    Channel,
    ChannelState,
    InAppState,
)
from pricewatch.services.alert_rules import AlertPriority, AlertType
from pricewatch.services.errors import RepositoryError
from pricewatch.services.price_history import (
    AlertSettings,
    CheckFrequency,
    ItemStatus,
    PriceHistoryEntry,
    PriceSource,
    ProductInfo,
    TrackedItem,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class AlertTypeStats:
    """Alert counts for one alert type, broken down by status"""
    alert_type: str
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    average_drop_amount: Optional[float] = None


def _fold_alert_stats(rows: Iterable[Tuple[str, str, int, Optional[float], int]]) -> List[AlertTypeStats]:
    """Fold (type, status, count, drop_sum, drop_count) groups into per-type stats"""
    stats: Dict[str, AlertTypeStats] = {}
    drops: Dict[str, Tuple[float, int]] = {}
    for alert_type, status, count, drop_sum, drop_count in rows:
        entry = stats.setdefault(alert_type, AlertTypeStats(alert_type=alert_type))
        entry.total += count
        entry.by_status[status] = entry.by_status.get(status, 0) + count
        total, seen = drops.get(alert_type, (0.0, 0))
        drops[alert_type] = (total + (drop_sum or 0.0), seen + (drop_count or 0))

    for alert_type, (total, seen) in drops.items():
        if seen:
            stats[alert_type].average_drop_amount = total / seen
    return sorted(stats.values(), key=lambda entry: entry.alert_type)


class Repository(ABC):
    """Storage contract used by the tracking core"""

    @abstractmethod
    async def find_due_items(self, frequency: CheckFrequency, cutoff: datetime, limit: int) -> List[TrackedItem]:
        """Active, tracking items of one frequency last checked before ``cutoff``, oldest first"""

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[TrackedItem]:
        pass

    @abstractmethod
    async def find_user_items(self, user_id: str, limit: int) -> List[TrackedItem]:
        """Active, tracking items owned by one user"""

    @abstractmethod
    async def save_item(self, item: TrackedItem) -> TrackedItem:
        pass

    @abstractmethod
    async def save_alert(self, alert: Alert) -> Alert:
        """Persist an alert, assigning an id on first save"""

    @abstractmethod
    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        pass

    @abstractmethod
    async def find_pending_alerts(self, now: datetime, limit: int) -> List[Alert]:
        """Pending alerts that have not expired yet"""

    @abstractmethod
    async def find_expired_alerts(self, now: datetime, limit: int) -> List[Alert]:
        """Pending alerts past their expiry"""

    @abstractmethod
    async def count_unread_alerts(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def list_user_alerts(
        self,
        user_id: str,
        status: Optional[AlertStatus] = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Alert]:
        pass

    @abstractmethod
    async def alert_stats(
        self,
        user_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[AlertTypeStats]:
        """Per-type alert counts by status and the average drop amount, optionally within a creation window"""


class InMemoryRepository(Repository):
    """Dict-backed repository for tests and local runs"""

    def __init__(self, items: Optional[List[TrackedItem]] = None):
        self.items: Dict[str, TrackedItem] = {}
        self.alerts: Dict[str, Alert] = {}
        for item in items or []:
            self.items[item.id] = item

    async def find_due_items(self, frequency, cutoff, limit):
        frequency = CheckFrequency(frequency)
        due = [
            item for item in self.items.values()
            if item.is_eligible
            and item.check_frequency == frequency
            and (item.last_checked is None or item.last_checked < cutoff)
        ]
        due.sort(key=lambda item: item.last_checked or datetime.min)
        return due[:limit]

    async def get_item(self, item_id):
        return self.items.get(item_id)

    async def find_user_items(self, user_id, limit):
        owned = [item for item in self.items.values() if item.user_id == user_id and item.is_eligible]
        return owned[:limit]

    async def save_item(self, item):
        self.items[item.id] = item
        return item

    async def save_alert(self, alert):
        if alert.id is None:
            alert = replace(alert, id=new_id())
        self.alerts[alert.id] = alert
        return alert

    async def get_alert(self, alert_id):
        return self.alerts.get(alert_id)

    async def find_pending_alerts(self, now, limit):
        pending = [
            alert for alert in self.alerts.values()
            if alert.status == AlertStatus.PENDING and not alert.is_expired(now)
        ]
        pending.sort(key=lambda alert: alert.created_at)
        return pending[:limit]

    async def find_expired_alerts(self, now, limit):
        expired = [
            alert for alert in self.alerts.values()
            if alert.status == AlertStatus.PENDING and alert.is_expired(now)
        ]
        expired.sort(key=lambda alert: alert.expires_at)
        return expired[:limit]

    async def count_unread_alerts(self, user_id):
        return sum(
            1 for alert in self.alerts.values()
            if alert.user_id == user_id
            and not alert.in_app.read
            and alert.status in (AlertStatus.PENDING, AlertStatus.SENT)
        )

    async def list_user_alerts(self, user_id, status=None, unread_only=False, limit=50):
        alerts = [alert for alert in self.alerts.values() if alert.user_id == user_id]
        if status is not None:
            alerts = [alert for alert in alerts if alert.status == AlertStatus(status)]
        if unread_only:
            alerts = [alert for alert in alerts if not alert.in_app.read]
        alerts.sort(key=lambda alert: alert.created_at, reverse=True)
        return alerts[:limit]

    async def alert_stats(self, user_id, date_from=None, date_to=None):
        groups: Dict[Tuple[str, str], List] = {}
        for alert in self.alerts.values():
            if alert.user_id != user_id:
                continue
            if date_from is not None and alert.created_at < date_from:
                continue
            if date_to is not None and alert.created_at > date_to:
                continue
            group = groups.setdefault((alert.alert_type.value, alert.status.value), [0, 0.0, 0])
            group[0] += 1
            if alert.drop_amount is not None:
                group[1] += alert.drop_amount
                group[2] += 1
        return _fold_alert_stats(
            (alert_type, status, count, drop_sum, drop_count)
            for (alert_type, status), (count, drop_sum, drop_count) in groups.items()
        )


class SqlAlchemyRepository(Repository):
    """Repository backed by the ORM models; one transaction per saved entity"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def find_due_items(self, frequency, cutoff, limit):
        frequency = CheckFrequency(frequency)
        db = self.session_factory()
        try:
            rows = (
                db.query(TrackedItemModel)
                .options(selectinload(TrackedItemModel.sources), selectinload(TrackedItemModel.history))
                .filter(
                    TrackedItemModel.status == ItemStatus.ACTIVE.value,
                    TrackedItemModel.is_tracking == True,  # noqa: E712
                    TrackedItemModel.check_frequency == frequency.value,
                    or_(TrackedItemModel.last_checked.is_(None), TrackedItemModel.last_checked < cutoff),
                )
                .order_by(TrackedItemModel.last_checked.asc().nulls_first())
                .limit(limit)
                .all()
            )
            return [_item_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to query due {frequency.value} items: {e}") from e
        finally:
            db.close()

    async def get_item(self, item_id):
        db = self.session_factory()
        try:
            row = db.get(TrackedItemModel, item_id)
            return _item_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load item {item_id}: {e}") from e
        finally:
            db.close()

    async def find_user_items(self, user_id, limit):
        db = self.session_factory()
        try:
            rows = (
                db.query(TrackedItemModel)
                .filter(
                    TrackedItemModel.user_id == user_id,
                    TrackedItemModel.status == ItemStatus.ACTIVE.value,
                    TrackedItemModel.is_tracking == True,  # noqa: E712
                )
                .limit(limit)
                .all()
            )
            return [_item_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load items for user {user_id}: {e}") from e
        finally:
            db.close()

    async def save_item(self, item):
        db = self.session_factory()
        try:
            row = db.get(TrackedItemModel, item.id)
            if row is None:
                row = TrackedItemModel(id=item.id)
                db.add(row)
            _apply_item(row, item)
            db.commit()
            return item
        except SQLAlchemyError as e:
            db.rollback()
            raise RepositoryError(f"Failed to save item {item.id}: {e}") from e
        finally:
            db.close()

    async def save_alert(self, alert):
        if alert.id is None:
            alert = replace(alert, id=new_id())
        db = self.session_factory()
        try:
            row = db.get(PriceAlertModel, alert.id)
            if row is None:
                row = PriceAlertModel(id=alert.id)
                db.add(row)
            _apply_alert(row, alert)
            db.commit()
            return alert
        except SQLAlchemyError as e:
            db.rollback()
            raise RepositoryError(f"Failed to save alert {alert.id}: {e}") from e
        finally:
            db.close()

    async def get_alert(self, alert_id):
        db = self.session_factory()
        try:
            row = db.get(PriceAlertModel, alert_id)
            return _alert_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load alert {alert_id}: {e}") from e
        finally:
            db.close()

    async def find_pending_alerts(self, now, limit):
        return self._query_alerts(
            lambda q: q.filter(
                PriceAlertModel.status == AlertStatus.PENDING.value,
                PriceAlertModel.expires_at > now,
            ).order_by(PriceAlertModel.created_at.asc()),
            limit,
        )

    async def find_expired_alerts(self, now, limit):
        return self._query_alerts(
            lambda q: q.filter(
                PriceAlertModel.status == AlertStatus.PENDING.value,
                PriceAlertModel.expires_at <= now,
            ).order_by(PriceAlertModel.expires_at.asc()),
            limit,
        )

    async def count_unread_alerts(self, user_id):
        db = self.session_factory()
        try:
            return (
                db.query(PriceAlertModel)
                .filter(
                    PriceAlertModel.user_id == user_id,
                    PriceAlertModel.is_read == False,  # noqa: E712
                    PriceAlertModel.status.in_([AlertStatus.PENDING.value, AlertStatus.SENT.value]),
                )
                .count()
            )
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to count unread alerts for {user_id}: {e}") from e
        finally:
            db.close()

    async def list_user_alerts(self, user_id, status=None, unread_only=False, limit=50):
        def build(q):
            q = q.filter(PriceAlertModel.user_id == user_id)
            if status is not None:
                q = q.filter(PriceAlertModel.status == AlertStatus(status).value)
            if unread_only:
                q = q.filter(PriceAlertModel.is_read == False)  # noqa: E712
            return q.order_by(PriceAlertModel.created_at.desc())

        return self._query_alerts(build, limit)

    async def alert_stats(self, user_id, date_from=None, date_to=None):
        db = self.session_factory()
        try:
            query = db.query(
                PriceAlertModel.alert_type,
                PriceAlertModel.status,
                func.count(PriceAlertModel.id),
                func.sum(PriceAlertModel.drop_amount),
                func.count(PriceAlertModel.drop_amount),
            ).filter(PriceAlertModel.user_id == user_id)
            if date_from is not None:
                query = query.filter(PriceAlertModel.created_at >= date_from)
            if date_to is not None:
                query = query.filter(PriceAlertModel.created_at <= date_to)
            rows = query.group_by(PriceAlertModel.alert_type, PriceAlertModel.status).all()
            return _fold_alert_stats(tuple(row) for row in rows)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to compute alert stats for {user_id}: {e}") from e
        finally:
            db.close()

    def _query_alerts(self, build, limit: int) -> List[Alert]:
        db = self.session_factory()
        try:
            rows = build(db.query(PriceAlertModel)).limit(limit).all()
            return [_alert_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to query alerts: {e}") from e
        finally:
            db.close()


def _item_from_row(row: TrackedItemModel) -> TrackedItem:
    return TrackedItem(
        id=row.id,
        user_id=row.user_id,
        product=ProductInfo(
            name=row.product_name,
            brand=row.product_brand,
            category=row.product_category,
            image=row.product_image,
        ),
        original_price=row.original_price,
        current_price=row.current_price,
        currency=row.currency or "USD",
        is_tracking=bool(row.is_tracking),
        check_frequency=CheckFrequency(row.check_frequency or CheckFrequency.DAILY.value),
        last_checked=row.last_checked,
        lowest_price=row.lowest_price,
        highest_price=row.highest_price,
        price_history=tuple(
            PriceHistoryEntry(
                price=entry.price,
                recorded_at=entry.recorded_at,
                source=entry.source,
                currency=entry.currency or "USD",
                url=entry.url,
                availability=entry.availability or "unknown",
            )
            for entry in row.history
        ),
        sources=tuple(
            PriceSource(
                name=source.name,
                domain=source.domain,
                url=source.url,
                last_observed_price=source.last_observed_price,
                availability=source.availability or "unknown",
                last_checked_at=source.last_checked_at,
                is_active=bool(source.is_active),
            )
            for source in row.sources
        ),
        alert_settings=AlertSettings(
            price_drop_threshold=(
                row.price_drop_threshold if row.price_drop_threshold is not None
                else settings.DEFAULT_PRICE_DROP_THRESHOLD
            ),
            target_price=row.target_price,
            enabled=bool(row.alerts_enabled),
            email_alerts=bool(row.email_alerts),
            push_alerts=bool(row.push_alerts),
            last_alert_sent=row.last_alert_sent,
        ),
        status=ItemStatus(row.status or ItemStatus.ACTIVE.value),
        purchased_at=row.purchased_at,
        purchase_price=row.purchase_price,
    )


def _history_key(price, recorded_at, source):
    return (float(price), recorded_at, source)


def _apply_item(row: TrackedItemModel, item: TrackedItem):
    row.user_id = item.user_id
    row.product_name = item.product.name
    row.product_brand = item.product.brand
    row.product_category = item.product.category
    row.product_image = item.product.image
    row.original_price = item.original_price
    row.current_price = item.current_price
    row.lowest_price = item.lowest_price
    row.highest_price = item.highest_price
    row.currency = item.currency
    row.is_tracking = item.is_tracking
    row.check_frequency = CheckFrequency(item.check_frequency).value
    row.last_checked = item.last_checked
    row.status = ItemStatus(item.status).value
    row.purchased_at = item.purchased_at
    row.purchase_price = item.purchase_price
    row.alerts_enabled = item.alert_settings.enabled
    row.price_drop_threshold = item.alert_settings.price_drop_threshold
    row.target_price = item.alert_settings.target_price
    row.email_alerts = item.alert_settings.email_alerts
    row.push_alerts = item.alert_settings.push_alerts
    row.last_alert_sent = item.alert_settings.last_alert_sent

    row.sources = [
        ItemSourceModel(
            name=source.name,
            domain=source.domain,
            url=source.url,
            last_observed_price=source.last_observed_price,
            availability=source.availability,
            last_checked_at=source.last_checked_at,
            is_active=source.is_active,
        )
        for source in item.sources
    ]

    # History rows are immutable: drop evicted ones, append new ones.
    wanted = {_history_key(e.price, e.recorded_at, e.source) for e in item.price_history}
    kept = [e for e in row.history if _history_key(e.price, e.recorded_at, e.source) in wanted]
    existing = {_history_key(e.price, e.recorded_at, e.source) for e in kept}
    for entry in item.price_history:
        if _history_key(entry.price, entry.recorded_at, entry.source) not in existing:
            kept.append(PriceHistoryModel(
                price=entry.price,
                currency=entry.currency,
                source=entry.source,
                url=entry.url,
                availability=entry.availability,
                recorded_at=entry.recorded_at,
            ))
    row.history = kept


def _alert_from_row(row: PriceAlertModel) -> Alert:
    channels = []
    if row.email_requested:
        channels.append(Channel.EMAIL)
    if row.push_requested:
        channels.append(Channel.PUSH)

    return Alert(
        id=row.id,
        user_id=row.user_id,
        item_id=row.item_id,
        alert_type=AlertType(row.alert_type),
        priority=AlertPriority(row.priority or AlertPriority.MEDIUM.value),
        previous_price=row.previous_price,
        current_price=row.current_price,
        target_price=row.target_price,
        drop_amount=row.drop_amount,
        drop_percentage=row.drop_percentage,
        product=ProductInfo(
            name=row.product_name,
            brand=row.product_brand,
            category=row.product_category,
            image=row.product_image,
        ),
        source=AlertSource(
            name=row.source_name or "",
            domain=row.source_domain or "",
            url=row.source_url or "",
        ),
        created_at=row.created_at,
        expires_at=row.expires_at,
        status=AlertStatus(row.status or AlertStatus.PENDING.value),
        email=ChannelState(
            sent=bool(row.email_sent),
            sent_at=row.email_sent_at,
            attempts=row.email_attempts or 0,
        ),
        push=ChannelState(
            sent=bool(row.push_sent),
            sent_at=row.push_sent_at,
            attempts=row.push_attempts or 0,
        ),
        in_app=InAppState(read=bool(row.is_read), read_at=row.read_at),
        requested_channels=tuple(channels),
    )


def _apply_alert(row: PriceAlertModel, alert: Alert):
    row.user_id = alert.user_id
    row.item_id = alert.item_id
    row.alert_type = AlertType(alert.alert_type).value
    row.priority = AlertPriority(alert.priority).value
    row.status = AlertStatus(alert.status).value
    row.previous_price = alert.previous_price
    row.current_price = alert.current_price
    row.target_price = alert.target_price
    row.drop_amount = alert.drop_amount
    row.drop_percentage = alert.drop_percentage
    row.product_name = alert.product.name
    row.product_brand = alert.product.brand
    row.product_image = alert.product.image
    row.product_category = alert.product.category
    row.source_name = alert.source.name
    row.source_domain = alert.source.domain
    row.source_url = alert.source.url
    row.email_requested = Channel.EMAIL in alert.requested_channels
    row.email_sent = alert.email.sent
    row.email_sent_at = alert.email.sent_at
    row.email_attempts = alert.email.attempts
    row.push_requested = Channel.PUSH in alert.requested_channels
    row.push_sent = alert.push.sent
    row.push_sent_at = alert.push.sent_at
    row.push_attempts = alert.push.attempts
    row.is_read = alert.in_app.read
    row.read_at = alert.in_app.read_at
    row.created_at = alert.created_at
    row.expires_at = alert.expires_at
