from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import pricewatch.models  # noqa: F401
from pricewatch.core.config import settings
from pricewatch.core.database import Base
from pricewatch.models.tracked_item import TrackedItemModel
from pricewatch.services.alert_lifecycle import AlertSource, AlertStatus, Channel, create_alert, record_attempt
from pricewatch.services.alert_rules import decide_alert
from pricewatch.services.errors import RepositoryError
from pricewatch.services.price_history import CheckFrequency, record_observation
from pricewatch.services.repository import SqlAlchemyRepository
from pricewatch.services.user_directory import SqlAlchemyUserDirectory
from pricewatch.models.user_preference import UserPreferenceModel

NOW = datetime(2026, 1, 15, 12, 0, 0)


def _session_factory():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


class BrokenSession:
    def get(self, *args, **kwargs):
        from sqlalchemy.exc import OperationalError
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    def rollback(self):
        return None

    def close(self):
        return None


@pytest.mark.asyncio
async def test_item_round_trip_keeps_history_and_sources(make_item):
    repository = SqlAlchemyRepository(_session_factory())
    item = make_item(sources=("shop-a", "shop-b"))
    for i in range(3):
        item = record_observation(item, 90.0 - i, "shop-a", NOW + timedelta(minutes=i), history_limit=2)

    await repository.save_item(item)
    loaded = await repository.get_item("item-1")

    assert loaded.current_price == 88.0
    assert [entry.price for entry in loaded.price_history] == [89.0, 88.0]
    assert [source.name for source in loaded.sources] == ["shop-a", "shop-b"]
    assert loaded.lowest_price == 88.0
    assert loaded.alert_settings == item.alert_settings


@pytest.mark.asyncio
async def test_find_due_items_includes_never_checked_items(make_item):
    repository = SqlAlchemyRepository(_session_factory())
    await repository.save_item(make_item(item_id="never"))
    await repository.save_item(make_item(item_id="stale", last_checked=NOW - timedelta(days=2)))
    await repository.save_item(make_item(item_id="fresh", last_checked=NOW - timedelta(hours=1)))
    await repository.save_item(make_item(item_id="paused", is_tracking=False))

    due = await repository.find_due_items(CheckFrequency.DAILY, NOW - timedelta(hours=24), 10)

    assert [item.id for item in due] == ["never", "stale"]


@pytest.mark.asyncio
async def test_alert_persistence_and_queries(make_item):
    repository = SqlAlchemyRepository(_session_factory())
    item = make_item(price=100.0)
    alert = create_alert(item, decide_alert(100.0, 70.0, item.alert_settings), AlertSource(name="shop-a"), NOW)
    alert = await repository.save_alert(alert)
    alert = await repository.save_alert(record_attempt(alert, Channel.EMAIL, False, NOW))

    loaded = await repository.get_alert(alert.id)
    assert loaded == alert
    assert loaded.email.attempts == 1
    assert await repository.count_unread_alerts("user-1") == 1
    assert [a.id for a in await repository.find_pending_alerts(NOW, 10)] == [alert.id]
    assert await repository.find_expired_alerts(NOW + timedelta(days=8), 10) != []
    assert await repository.list_user_alerts("user-1", status=AlertStatus.SENT) == []


@pytest.mark.asyncio
async def test_database_errors_become_repository_errors(make_item):
    repository = SqlAlchemyRepository(lambda: BrokenSession())
    with pytest.raises(RepositoryError):
        await repository.save_item(make_item())
    with pytest.raises(RepositoryError):
        await repository.get_item("item-1")


@pytest.mark.asyncio
async def test_user_directory_reads_preferences():
    factory = _session_factory()
    db = factory()
    db.add(UserPreferenceModel(user_id="user-1", email="shopper@example.com", email_enabled=True, push_enabled=False))
    db.commit()
    db.close()
    directory = SqlAlchemyUserDirectory(factory)

    preferences = await directory.get_preferences("user-1")
    assert preferences.email_enabled
    assert not preferences.push_enabled
    assert (await directory.get_contact("user-1")).email == "shopper@example.com"

    unknown = await directory.get_preferences("nobody")
    assert not unknown.email_enabled
    assert not unknown.push_enabled


@pytest.mark.asyncio
async def test_alert_stats_group_by_type_and_status(make_item):
    repository = SqlAlchemyRepository(_session_factory())
    item = make_item(price=100.0)
    drop = decide_alert(100.0, 70.0, item.alert_settings)
    first = await repository.save_alert(create_alert(item, drop, AlertSource(name="shop-a"), NOW))
    await repository.save_alert(create_alert(item, decide_alert(100.0, 85.0, item.alert_settings),
                                             AlertSource(name="shop-a"), NOW + timedelta(days=1)))
    await repository.save_alert(record_attempt(first, Channel.PUSH, True, NOW))
    await repository.save_alert(create_alert(make_item(user_id="user-2"), drop, AlertSource(name="shop-a"), NOW))

    stats = await repository.alert_stats("user-1")

    assert len(stats) == 1
    assert stats[0].alert_type == "price_drop"
    assert stats[0].total == 2
    assert sum(stats[0].by_status.values()) == 2
    assert stats[0].average_drop_amount == pytest.approx(22.5)

    windowed = await repository.alert_stats("user-1", date_from=NOW + timedelta(hours=1))
    assert windowed[0].total == 1
    assert windowed[0].average_drop_amount == pytest.approx(15.0)


@pytest.mark.asyncio
async def test_missing_threshold_falls_back_to_configured_default(monkeypatch, make_item):
    factory = _session_factory()
    repository = SqlAlchemyRepository(factory)
    await repository.save_item(make_item())

    db = factory()
    db.get(TrackedItemModel, "item-1").price_drop_threshold = None
    db.commit()
    db.close()

    monkeypatch.setattr(settings, "DEFAULT_PRICE_DROP_THRESHOLD", 7.5)
    loaded = await repository.get_item("item-1")
    assert loaded.alert_settings.price_drop_threshold == 7.5
