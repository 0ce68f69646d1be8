"""
Pydantic schemas for admin API responses.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from pricewatch.services.alert_lifecycle import Alert
from pricewatch.services.batch_runner import CycleReport, ItemResult
from pricewatch.services.price_history import TrackedItem
from pricewatch.services.repository import AlertTypeStats


class MessageResponse(BaseModel):
    message: str


class SchedulerStatusResponse(BaseModel):
    is_running: bool
    state: str
    started_at: Optional[datetime] = None
    last_cycle_at: Optional[datetime] = None
    last_report: Optional[Dict[str, Any]] = None
    batch_size: int
    concurrency_limit: int
    interval_seconds: float
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ItemCheckResponse(BaseModel):
    item_id: str
    status: str
    old_price: Optional[float] = None
    new_price: Optional[float] = None
    source: Optional[str] = None
    alert_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: ItemResult) -> "ItemCheckResponse":
        return cls(
            item_id=result.item_id,
            status=result.status,
            old_price=result.old_price,
            new_price=result.new_price,
            source=result.source,
            alert_id=result.alert_id,
            error=result.error,
        )


class CycleReportResponse(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    total: int
    successful: int
    updated: int
    unchanged: int
    errored: int
    skipped: int
    alerts_created: int
    errors: Dict[str, str] = Field(default_factory=dict)
    results: List[ItemCheckResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: CycleReport) -> "CycleReportResponse":
        return cls(
            started_at=report.started_at,
            finished_at=report.finished_at,
            total=report.total,
            successful=report.successful,
            updated=report.updated,
            unchanged=report.unchanged,
            errored=report.errored,
            skipped=report.skipped,
            alerts_created=report.alerts_created,
            errors=report.errors,
            results=[ItemCheckResponse.from_result(r) for r in report.results],
        )


class AlertResponse(BaseModel):
    id: str
    user_id: str
    item_id: str
    alert_type: str
    priority: str
    status: str
    message: str
    product_name: str
    source_name: Optional[str] = None
    source_url: Optional[str] = None
    previous_price: Optional[float] = None
    current_price: float
    target_price: Optional[float] = None
    drop_percentage: Optional[float] = None
    email_sent: bool
    email_attempts: int
    push_sent: bool
    push_attempts: int
    is_read: bool
    created_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertResponse":
        return cls(
            id=alert.id,
            user_id=alert.user_id,
            item_id=alert.item_id,
            alert_type=alert.alert_type.value,
            priority=alert.priority.value,
            status=alert.status.value,
            message=alert.message,
            product_name=alert.product.name,
            source_name=alert.source.name if alert.source else None,
            source_url=alert.source.url if alert.source else None,
            previous_price=alert.previous_price,
            current_price=alert.current_price,
            target_price=alert.target_price,
            drop_percentage=alert.drop_percentage,
            email_sent=alert.email.sent,
            email_attempts=alert.email.attempts,
            push_sent=alert.push.sent,
            push_attempts=alert.push.attempts,
            is_read=alert.in_app.read,
            created_at=alert.created_at,
            expires_at=alert.expires_at,
        )


class AlertListResponse(BaseModel):
    user_id: str
    unread_count: int
    alerts: List[AlertResponse] = Field(default_factory=list)


class ExpireResponse(BaseModel):
    expired: int


class TrackedItemResponse(BaseModel):
    id: str
    user_id: str
    product_name: str
    status: str
    is_tracking: bool
    original_price: float
    current_price: float
    lowest_price: Optional[float] = None
    highest_price: Optional[float] = None
    price_change_percentage: float
    savings_amount: float
    has_price_dropped: bool
    target_price_met: bool
    last_checked: Optional[datetime] = None
    purchased_at: Optional[datetime] = None
    purchase_price: Optional[float] = None

    @classmethod
    def from_item(cls, item: TrackedItem) -> "TrackedItemResponse":
        return cls(
            id=item.id,
            user_id=item.user_id,
            product_name=item.product.name,
            status=item.status.value,
            is_tracking=item.is_tracking,
            original_price=item.original_price,
            current_price=item.current_price,
            lowest_price=item.lowest_price,
            highest_price=item.highest_price,
            price_change_percentage=round(item.price_change_percentage, 2),
            savings_amount=round(item.savings_amount, 2),
            has_price_dropped=item.has_price_dropped,
            target_price_met=item.is_target_price_met,
            last_checked=item.last_checked,
            purchased_at=item.purchased_at,
            purchase_price=item.purchase_price,
        )


class AlertTypeStatsResponse(BaseModel):
    alert_type: str
    total: int
    by_status: Dict[str, int] = Field(default_factory=dict)
    average_drop_amount: Optional[float] = None

    @classmethod
    def from_stats(cls, stats: AlertTypeStats) -> "AlertTypeStatsResponse":
        average = stats.average_drop_amount
        return cls(
            alert_type=stats.alert_type,
            total=stats.total,
            by_status=dict(stats.by_status),
            average_drop_amount=round(average, 2) if average is not None else None,
        )


class AlertStatsResponse(BaseModel):
    user_id: str
    unread_count: int
    by_type: List[AlertTypeStatsResponse] = Field(default_factory=list)


class ProcessNotificationsResponse(BaseModel):
    processed: int
    processed_at: datetime = Field(default_factory=datetime.utcnow)
