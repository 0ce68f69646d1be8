import pytest

from pricewatch.core.config import settings
from pricewatch.services.alert_rules import (
    AlertPriority,
    AlertType,
    decide_alert,
    drop_percentage,
    priority_for_drop,
)
from pricewatch.services.price_history import AlertSettings


def test_drop_past_threshold_creates_price_drop_alert():
    decision = decide_alert(100.0, 80.0, AlertSettings(price_drop_threshold=10.0))

    assert decision.alert_type == AlertType.PRICE_DROP
    assert decision.drop_percentage == pytest.approx(20.0)
    assert decision.drop_amount == pytest.approx(20.0)
    assert decision.priority == AlertPriority.MEDIUM


def test_target_price_takes_precedence_over_drop():
    decision = decide_alert(100.0, 80.0, AlertSettings(price_drop_threshold=10.0, target_price=85.0))

    assert decision.alert_type == AlertType.TARGET_PRICE
    assert decision.priority == AlertPriority.HIGH
    assert decision.target_price == 85.0
    assert decision.drop_percentage == pytest.approx(20.0)


def test_small_drop_below_threshold_creates_no_alert():
    assert decide_alert(100.0, 95.0, AlertSettings(price_drop_threshold=10.0)) is None


def test_unchanged_price_creates_no_alert_even_at_target():
    assert decide_alert(80.0, 80.0, AlertSettings(target_price=85.0)) is None


def test_price_increase_creates_no_alert():
    assert decide_alert(80.0, 120.0, AlertSettings(price_drop_threshold=0.0)) is None


def test_price_rising_onto_target_still_fires():
    decision = decide_alert(70.0, 84.0, AlertSettings(target_price=85.0))
    assert decision.alert_type == AlertType.TARGET_PRICE
    assert decision.drop_percentage is None


def test_disabled_alerts_never_fire():
    assert decide_alert(100.0, 10.0, AlertSettings(enabled=False, target_price=50.0)) is None


def test_threshold_boundary_is_inclusive():
    decision = decide_alert(200.0, 180.0, AlertSettings(price_drop_threshold=10.0))
    assert decision is not None
    assert decision.alert_type == AlertType.PRICE_DROP


@pytest.mark.parametrize(
    "pct,expected",
    [
        (5.0, AlertPriority.LOW),
        (10.0, AlertPriority.MEDIUM),
        (24.9, AlertPriority.MEDIUM),
        (25.0, AlertPriority.HIGH),
        (49.9, AlertPriority.HIGH),
        (50.0, AlertPriority.URGENT),
        (90.0, AlertPriority.URGENT),
    ],
)
def test_priority_bands(pct, expected):
    assert priority_for_drop(pct) == expected


def test_drop_percentage_guards_against_zero_old_price():
    assert drop_percentage(0.0, 10.0) is None
    assert drop_percentage(50.0, 60.0) is None
    assert drop_percentage(50.0, 25.0) == pytest.approx(50.0)


def test_default_threshold_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_PRICE_DROP_THRESHOLD", 5.0)

    alert_settings = AlertSettings()
    assert alert_settings.price_drop_threshold == 5.0

    decision = decide_alert(100.0, 93.0, alert_settings)
    assert decision is not None
    assert decision.alert_type == AlertType.PRICE_DROP
