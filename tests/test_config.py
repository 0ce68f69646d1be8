import pytest
from pydantic import ValidationError

from pricewatch.core.config import Settings


def test_defaults_match_tracking_policy():
    config = Settings(_env_file=None)
    assert config.TRACKING_BATCH_SIZE == 50
    assert config.TRACKING_MAX_CONCURRENCY == 10
    assert config.PRICE_HISTORY_LIMIT == 100
    assert config.NOTIFICATION_MAX_ATTEMPTS == 3
    assert config.get_interval_seconds() == 1800.0


@pytest.mark.parametrize(
    "field,value",
    [
        ("TRACKING_BATCH_SIZE", 0),
        ("TRACKING_MAX_CONCURRENCY", -1),
        ("TRACKING_INTERVAL_MINUTES", 0),
        ("PRICE_HISTORY_LIMIT", 0),
        ("NOTIFICATION_MAX_ATTEMPTS", 0),
        ("TRACKING_BATCH_DELAY_SECONDS", -0.5),
        ("DEFAULT_PRICE_DROP_THRESHOLD", 150),
        ("LOG_LEVEL", "LOUD"),
    ],
)
def test_invalid_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_log_level_is_normalized():
    assert Settings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


def test_push_requires_webhook():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, PUSH_ENABLED=True, PUSH_WEBHOOK_URL="")
    config = Settings(_env_file=None, PUSH_ENABLED=True, PUSH_WEBHOOK_URL="https://push.example.com/send")
    assert config.PUSH_ENABLED


def test_cors_origins_accept_csv_and_json():
    assert Settings(_env_file=None, CORS_ORIGINS="https://a.example, https://b.example").get_cors_origins() == [
        "https://a.example",
        "https://b.example",
    ]
    assert Settings(_env_file=None, CORS_ORIGINS='["https://c.example"]').get_cors_origins() == ["https://c.example"]


def test_email_sender_falls_back_to_user():
    config = Settings(_env_file=None, EMAIL_USER="bot@example.com", EMAIL_FROM="")
    assert config.get_email_sender() == "bot@example.com"
