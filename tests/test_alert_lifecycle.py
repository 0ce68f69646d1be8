from datetime import datetime, timedelta

import pytest

from pricewatch.services.alert_lifecycle import (
    AlertSource,
    AlertStatus,
    Channel,
    create_alert,
    dismiss,
    expire,
    mark_read,
    mark_unread,
    record_attempt,
    resolve_status,
)
from pricewatch.services.alert_rules import AlertPriority, AlertType, decide_alert
from pricewatch.services.errors import AlertStateError
from pricewatch.services.price_history import AlertSettings

NOW = datetime(2026, 1, 15, 12, 0, 0)


def _build_alert(make_item, **settings_kwargs):
    item = make_item(price=100.0, alert_settings=AlertSettings(**settings_kwargs))
    decision = decide_alert(100.0, 80.0, item.alert_settings)
    return create_alert(item, decision, AlertSource(name="shop-a", domain="shop-a.example.com"), NOW, ttl_days=7)


def test_create_alert_snapshots_trigger_and_channels(make_item):
    alert = _build_alert(make_item, push_alerts=False)

    assert alert.status == AlertStatus.PENDING
    assert alert.alert_type == AlertType.PRICE_DROP
    assert alert.priority == AlertPriority.MEDIUM
    assert alert.previous_price == 100.0
    assert alert.current_price == 80.0
    assert alert.requested_channels == (Channel.EMAIL,)
    assert alert.expires_at == NOW + timedelta(days=7)
    assert alert.product.name == "Noise Cancelling Headphones"


@pytest.mark.parametrize(
    "settings_kwargs,expected",
    [
        ({}, "Noise Cancelling Headphones price dropped 20.0% to $80.00"),
        ({"target_price": 85.0}, "Noise Cancelling Headphones reached your target price of $80.00"),
    ],
)
def test_message_templates(make_item, settings_kwargs, expected):
    assert _build_alert(make_item, **settings_kwargs).message == expected


def test_dismiss_is_idempotent(make_item):
    alert = _build_alert(make_item)
    once = dismiss(alert)
    twice = dismiss(once)

    assert once.status == AlertStatus.DISMISSED
    assert twice == once


def test_dismiss_a_sent_alert(make_item):
    alert = record_attempt(_build_alert(make_item), Channel.EMAIL, True, NOW)
    alert = resolve_status(alert, [Channel.EMAIL])
    assert alert.status == AlertStatus.SENT
    assert dismiss(alert).status == AlertStatus.DISMISSED


def test_failed_alert_cannot_be_dismissed(make_item):
    alert = expire(_build_alert(make_item), NOW + timedelta(days=8))
    assert alert.status == AlertStatus.FAILED
    with pytest.raises(AlertStateError):
        dismiss(alert)


def test_record_attempt_caps_at_max_attempts(make_item):
    alert = _build_alert(make_item)
    for _ in range(3):
        alert = record_attempt(alert, Channel.EMAIL, False, NOW, max_attempts=3)

    assert alert.email.attempts == 3
    assert not alert.email.sent
    with pytest.raises(AlertStateError):
        record_attempt(alert, Channel.EMAIL, False, NOW, max_attempts=3)


def test_record_attempt_rejects_already_delivered_channel(make_item):
    alert = record_attempt(_build_alert(make_item), Channel.PUSH, True, NOW)
    assert alert.push.sent
    assert alert.push.sent_at == NOW
    with pytest.raises(AlertStateError):
        record_attempt(alert, Channel.PUSH, True, NOW)


def test_resolve_status_waits_for_unfinished_channels(make_item):
    alert = record_attempt(_build_alert(make_item), Channel.PUSH, True, NOW)
    alert = record_attempt(alert, Channel.EMAIL, False, NOW)

    assert resolve_status(alert, [Channel.EMAIL, Channel.PUSH], max_attempts=3).status == AlertStatus.PENDING


def test_resolve_status_ignores_disabled_channels(make_item):
    alert = record_attempt(_build_alert(make_item), Channel.PUSH, True, NOW)
    assert resolve_status(alert, [Channel.PUSH]).status == AlertStatus.SENT


def test_resolve_status_with_no_enabled_channels(make_item):
    assert resolve_status(_build_alert(make_item), []).status == AlertStatus.SENT


def test_expire_leaves_fresh_alerts_alone(make_item):
    alert = _build_alert(make_item)
    assert expire(alert, NOW + timedelta(days=1)) is alert


def test_read_flags(make_item):
    alert = mark_read(_build_alert(make_item), NOW)
    assert alert.in_app.read
    assert alert.in_app.read_at == NOW
    assert not mark_unread(alert).in_app.read
