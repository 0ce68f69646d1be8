import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from pricewatch.api import routes
from pricewatch.core.config import settings
from pricewatch.services.alert_lifecycle import AlertStatus
from pricewatch.services.batch_runner import BatchRunner
from pricewatch.services.notification_service import NotificationDispatcher
from pricewatch.services.price_fetcher import StaticPriceFetcher
from pricewatch.services.repository import InMemoryRepository
from pricewatch.services.scheduler import PriceTrackingScheduler
from pricewatch.services.user_directory import InMemoryUserDirectory


class DummyPushSender:
    def is_configured(self):
        return True

    async def send_push(self, contact, title, body, data):
        return False


def _wire(monkeypatch, make_item, clock, prices=None):
    repository = InMemoryRepository([make_item(price=100.0), make_item(item_id="paused", is_tracking=False)])
    directory = InMemoryUserDirectory()
    directory.add_user("user-1", email_enabled=False, push_enabled=True)
    dispatcher = NotificationDispatcher(directory, push_sender=DummyPushSender(),
                                        repository=repository, clock=clock)
    fetcher = StaticPriceFetcher(prices if prices is not None else {("item-1", "shop-a"): 60.0})
    runner = BatchRunner(repository, fetcher, dispatcher, batch_delay=0, clock=clock)
    scheduler = PriceTrackingScheduler(runner, interval_seconds=3600, clock=clock)

    monkeypatch.setattr(routes, "scheduler", scheduler)
    monkeypatch.setattr(routes, "runner", runner)
    monkeypatch.setattr(routes, "repository", repository)
    return repository, runner, scheduler


@pytest.mark.asyncio
async def test_status_without_scheduler_is_unavailable(monkeypatch):
    monkeypatch.setattr(routes, "scheduler", None)
    with pytest.raises(HTTPException) as exc:
        await routes.get_tracking_status()
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_status_reports_scheduler_state(monkeypatch, make_item, clock):
    _wire(monkeypatch, make_item, clock)
    payload = await routes.get_tracking_status()
    assert payload.is_running is False
    assert payload.state == "stopped"
    assert payload.batch_size == settings.TRACKING_BATCH_SIZE


@pytest.mark.asyncio
async def test_start_and_stop_tracking(monkeypatch, make_item, clock):
    _, _, scheduler = _wire(monkeypatch, make_item, clock)

    await routes.start_tracking()
    assert scheduler.is_running()
    await routes.stop_tracking(cancel_in_flight=False)
    assert not scheduler.is_running()


@pytest.mark.asyncio
async def test_manual_item_check(monkeypatch, make_item, clock):
    repository, _, _ = _wire(monkeypatch, make_item, clock)

    payload = await routes.check_item("item-1")

    assert payload.status == "updated"
    assert payload.new_price == 60.0
    assert payload.alert_id in repository.alerts


@pytest.mark.asyncio
async def test_manual_check_of_untrackable_item_is_not_found(monkeypatch, make_item, clock):
    _wire(monkeypatch, make_item, clock)
    with pytest.raises(HTTPException) as exc:
        await routes.check_item("paused")
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_manual_check_with_no_prices_reports_an_error_result(monkeypatch, make_item, clock):
    repository, _, _ = _wire(monkeypatch, make_item, clock, prices={})

    payload = await routes.check_item("item-1")

    assert payload.status == "error"
    assert payload.old_price == 100.0
    assert "No source returned a price" in payload.error
    assert repository.items["item-1"].last_checked == clock()
    assert repository.alerts == {}


@pytest.mark.asyncio
async def test_manual_user_check(monkeypatch, make_item, clock):
    _wire(monkeypatch, make_item, clock)
    payload = await routes.check_user_items("user-1")
    assert payload.total == 1
    assert payload.alerts_created == 1


@pytest.mark.asyncio
async def test_alert_routes(monkeypatch, make_item, clock):
    repository, _, _ = _wire(monkeypatch, make_item, clock)
    checked = await routes.check_item("item-1")

    listing = await routes.list_user_alerts("user-1", status=None, unread_only=False, limit=50)
    assert listing.unread_count == 1
    assert listing.alerts[0].message == "Noise Cancelling Headphones price dropped 40.0% to $60.00"

    read = await routes.mark_alert_read(checked.alert_id)
    assert read.is_read

    dismissed = await routes.dismiss_alert(checked.alert_id)
    assert dismissed.status == AlertStatus.DISMISSED.value

    with pytest.raises(HTTPException) as exc:
        await routes.dismiss_alert("missing")
    assert exc.value.status_code == 404

    expired = await routes.expire_alerts()
    assert expired.expired == 0


@pytest.mark.asyncio
async def test_purchase_route(monkeypatch, make_item, clock):
    repository, _, _ = _wire(monkeypatch, make_item, clock)
    await routes.check_item("item-1")

    payload = await routes.mark_item_purchased("item-1", purchase_price=None)

    assert payload.status == "purchased"
    assert payload.is_tracking is False
    assert payload.purchase_price == 60.0
    assert payload.has_price_dropped is True
    assert payload.savings_amount == 40.0
    assert repository.items["item-1"].status.value == "purchased"

    with pytest.raises(HTTPException) as exc:
        await routes.mark_item_purchased("item-1", purchase_price=55.0)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_alert_stats_route(monkeypatch, make_item, clock):
    _wire(monkeypatch, make_item, clock)
    await routes.check_item("item-1")

    payload = await routes.get_alert_stats("user-1", date_from=None, date_to=None)

    assert payload.unread_count == 1
    assert len(payload.by_type) == 1
    stats = payload.by_type[0]
    assert stats.alert_type == "price_drop"
    assert stats.total == 1
    assert stats.by_status == {"pending": 1}
    assert stats.average_drop_amount == 40.0

    empty = await routes.get_alert_stats("user-2", date_from=None, date_to=None)
    assert empty.by_type == []


@pytest.mark.asyncio
async def test_process_notifications_route_retries_pending_alerts(monkeypatch, make_item, clock):
    repository, _, _ = _wire(monkeypatch, make_item, clock)
    checked = await routes.check_item("item-1")
    assert repository.alerts[checked.alert_id].push.attempts == 1

    payload = await routes.process_pending_notifications()

    assert payload.processed == 1
    assert repository.alerts[checked.alert_id].push.attempts == 2


def test_purchase_route_rejects_negative_price(monkeypatch, make_item, clock):
    monkeypatch.setattr(settings, "API_AUTH_ENABLED", False)
    _wire(monkeypatch, make_item, clock)

    app = FastAPI()
    app.include_router(routes.api_router, prefix="/api/v1")
    client = TestClient(app)

    response = client.post("/api/v1/tracking/items/item-1/purchase", params={"purchase_price": -1})
    assert response.status_code == 422


def test_router_requires_api_key(monkeypatch, make_item, clock):
    monkeypatch.setattr(settings, "API_AUTH_ENABLED", True)
    monkeypatch.setattr(settings, "API_AUTH_TOKEN", "secret-token")
    _wire(monkeypatch, make_item, clock)

    app = FastAPI()
    app.include_router(routes.api_router, prefix="/api/v1")
    client = TestClient(app)

    assert client.get("/api/v1/tracking/status").status_code == 401
    response = client.get("/api/v1/tracking/status", headers={"X-API-Key": "secret-token"})
    assert response.status_code == 200
    assert response.json()["is_running"] is False
