"""
Admin API routes for the price tracker
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from datetime import datetime
from typing import Optional
import logging

from pricewatch.api.schemas import (
    AlertListResponse,
    AlertResponse,
    AlertStatsResponse,
    AlertTypeStatsResponse,
    CycleReportResponse,
    ExpireResponse,
    ItemCheckResponse,
    MessageResponse,
    ProcessNotificationsResponse,
    SchedulerStatusResponse,
    TrackedItemResponse,
)
from pricewatch.api.security import require_api_key
from pricewatch.services.alert_lifecycle import AlertStatus
from pricewatch.services.batch_runner import BatchRunner
from pricewatch.services.errors import (
    AlertNotFoundError,
    AlertStateError,
    InvalidPriceError,
    ItemNotTrackableError,
)
from pricewatch.services.repository import Repository
from pricewatch.services.scheduler import PriceTrackingScheduler

logger = logging.getLogger(__name__)

# Create router
api_router = APIRouter(dependencies=[Depends(require_api_key)])

# Global services (will be injected)
scheduler: Optional[PriceTrackingScheduler] = None
runner: Optional[BatchRunner] = None
repository: Optional[Repository] = None


def set_services(sch: Optional[PriceTrackingScheduler], br: Optional[BatchRunner], repo: Optional[Repository]):
    """Set global services"""
    global scheduler, runner, repository
    scheduler = sch
    runner = br
    repository = repo


def _require_scheduler() -> PriceTrackingScheduler:
    if not scheduler:
        raise HTTPException(status_code=503, detail="Price tracking scheduler not available")
    return scheduler


def _require_runner() -> BatchRunner:
    if not runner:
        raise HTTPException(status_code=503, detail="Batch runner not available")
    return runner


# Tracking Routes
@api_router.get("/tracking/status", response_model=SchedulerStatusResponse)
async def get_tracking_status():
    """Get scheduler status"""
    return SchedulerStatusResponse(**_require_scheduler().status())


@api_router.post("/tracking/start", response_model=MessageResponse)
async def start_tracking():
    """Start the price tracking scheduler"""
    sch = _require_scheduler()
    try:
        await sch.start()
        return MessageResponse(message="Price tracking started")
    except Exception as e:
        logger.error(f"Error starting price tracking: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.post("/tracking/stop", response_model=MessageResponse)
async def stop_tracking(cancel_in_flight: bool = Query(default=False)):
    """Stop the price tracking scheduler"""
    sch = _require_scheduler()
    try:
        await sch.stop(cancel_in_flight=cancel_in_flight)
        return MessageResponse(message="Price tracking stopped")
    except Exception as e:
        logger.error(f"Error stopping price tracking: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.post("/tracking/items/{item_id}/check", response_model=ItemCheckResponse)
async def check_item(item_id: str):
    """Check one item's price right away"""
    br = _require_runner()
    try:
        result = await br.check_single_item(item_id)
        return ItemCheckResponse.from_result(result)
    except ItemNotTrackableError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error checking item {item_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.post("/tracking/users/{user_id}/check", response_model=CycleReportResponse)
async def check_user_items(user_id: str):
    """Check every active item a user tracks"""
    br = _require_runner()
    try:
        report = await br.check_user_items(user_id)
        return CycleReportResponse.from_report(report)
    except Exception as e:
        logger.error(f"Error checking items for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.post("/tracking/items/{item_id}/purchase", response_model=TrackedItemResponse)
async def mark_item_purchased(item_id: str, purchase_price: Optional[float] = Query(default=None, ge=0)):
    """Mark an active item as purchased and stop tracking it"""
    br = _require_runner()
    try:
        return TrackedItemResponse.from_item(await br.mark_item_purchased(item_id, purchase_price))
    except ItemNotTrackableError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidPriceError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Error marking item {item_id} purchased: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# Alert Routes
@api_router.post("/alerts/expire", response_model=ExpireResponse)
async def expire_alerts():
    """Sweep expired pending alerts to failed"""
    br = _require_runner()
    try:
        return ExpireResponse(expired=await br.expire_alerts())
    except Exception as e:
        logger.error(f"Error expiring alerts: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.post("/notifications/process", response_model=ProcessNotificationsResponse)
async def process_pending_notifications():
    """Run the pending alert delivery pass now"""
    br = _require_runner()
    try:
        return ProcessNotificationsResponse(processed=await br.retry_pending_alerts())
    except Exception as e:
        logger.error(f"Error processing pending notifications: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.post("/alerts/{alert_id}/dismiss", response_model=AlertResponse)
async def dismiss_alert(alert_id: str):
    """Dismiss an alert"""
    br = _require_runner()
    try:
        return AlertResponse.from_alert(await br.dismiss_alert(alert_id))
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlertStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error dismissing alert {alert_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.post("/alerts/{alert_id}/read", response_model=AlertResponse)
async def mark_alert_read(alert_id: str):
    """Mark an alert as read"""
    br = _require_runner()
    try:
        return AlertResponse.from_alert(await br.mark_alert_read(alert_id))
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error marking alert {alert_id} read: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.get("/users/{user_id}/alerts", response_model=AlertListResponse)
async def list_user_alerts(
    user_id: str,
    status: Optional[AlertStatus] = None,
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
):
    """List a user's alerts, newest first"""
    if not repository:
        raise HTTPException(status_code=503, detail="Repository not available")
    try:
        alerts = await repository.list_user_alerts(user_id, status=status, unread_only=unread_only, limit=limit)
        unread = await repository.count_unread_alerts(user_id)
        return AlertListResponse(
            user_id=user_id,
            unread_count=unread,
            alerts=[AlertResponse.from_alert(alert) for alert in alerts],
        )
    except Exception as e:
        logger.error(f"Error listing alerts for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@api_router.get("/users/{user_id}/alerts/stats", response_model=AlertStatsResponse)
async def get_alert_stats(user_id: str, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None):
    """Alert counts per type and status for a user"""
    if not repository:
        raise HTTPException(status_code=503, detail="Repository not available")
    try:
        stats = await repository.alert_stats(user_id, date_from=date_from, date_to=date_to)
        unread = await repository.count_unread_alerts(user_id)
        return AlertStatsResponse(
            user_id=user_id,
            unread_count=unread,
            by_type=[AlertTypeStatsResponse.from_stats(entry) for entry in stats],
        )
    except Exception as e:
        logger.error(f"Error computing alert stats for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
