"""
Application configuration management
"""
import json
from typing import Any, List, Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Ensure repository .env values win over stale exported shell variables.
load_dotenv(override=True)

class Settings(BaseSettings):
    """Application settings"""
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")
    
    # Database
    DATABASE_URL: str = "sqlite:///./pricewatch.db"
    
    # Scheduler
    TRACKING_AUTOSTART: bool = True
    TRACKING_INTERVAL_MINUTES: float = 30.0
    TRACKING_BATCH_SIZE: int = 50
    TRACKING_MAX_CONCURRENCY: int = 10
    TRACKING_BATCH_DELAY_SECONDS: float = 2.0
    
    # Due-item query limits per check frequency
    TRACKING_HOURLY_LIMIT: int = 100
    TRACKING_DAILY_LIMIT: int = 500
    TRACKING_WEEKLY_LIMIT: int = 200
    USER_CHECK_LIMIT: int = 100
    
    # Price history and alert rules
    PRICE_HISTORY_LIMIT: int = 100
    DEFAULT_PRICE_DROP_THRESHOLD: float = 10.0  # percent
    ALERT_TTL_DAYS: int = 7
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    PENDING_ALERT_BATCH_LIMIT: int = 100
    
    # Price fetching
    FETCH_TIMEOUT_SECONDS: int = 10
    FETCH_MAX_RETRIES: int = 2
    FETCH_MAX_CONCURRENCY: int = 8
    FETCH_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    
    # Notification Settings
    EMAIL_ENABLED: bool = False
    EMAIL_HOST: str = "smtp.gmail.com"
    EMAIL_PORT: int = 587
    EMAIL_USER: Optional[str] = None
    EMAIL_PASSWORD: Optional[str] = None
    EMAIL_FROM: str = ""
    
    PUSH_ENABLED: bool = False
    PUSH_WEBHOOK_URL: str = ""
    PUSH_AUTH_TOKEN: str = ""
    PUSH_TIMEOUT_SECONDS: int = 10
    
    # Security
    API_AUTH_ENABLED: bool = True
    API_AUTH_TOKEN: str = "change-me-api-token"
    CORS_ORIGINS: str = "http://localhost:8000,http://127.0.0.1:8000"
    
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/pricewatch.log"
    
    @field_validator(
        'TRACKING_INTERVAL_MINUTES', 'TRACKING_BATCH_SIZE', 'TRACKING_MAX_CONCURRENCY',
        'TRACKING_HOURLY_LIMIT', 'TRACKING_DAILY_LIMIT', 'TRACKING_WEEKLY_LIMIT',
        'USER_CHECK_LIMIT', 'PRICE_HISTORY_LIMIT', 'ALERT_TTL_DAYS',
        'NOTIFICATION_MAX_ATTEMPTS', 'PENDING_ALERT_BATCH_LIMIT',
        'FETCH_TIMEOUT_SECONDS', 'FETCH_MAX_CONCURRENCY', 'PUSH_TIMEOUT_SECONDS',
    )
    @classmethod
    def validate_positive_numbers(cls, v):
        if v <= 0:
            raise ValueError('Must be positive')
        return v
    
    @field_validator('TRACKING_BATCH_DELAY_SECONDS', 'FETCH_MAX_RETRIES')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError('Cannot be negative')
        return v

    @field_validator('DEFAULT_PRICE_DROP_THRESHOLD')
    @classmethod
    def validate_threshold(cls, v):
        if v < 0 or v > 100:
            raise ValueError('DEFAULT_PRICE_DROP_THRESHOLD must be between 0 and 100')
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        level = str(v or "").strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f'Unknown LOG_LEVEL: {v}')
        return level

    @model_validator(mode='after')
    def validate_push_target(self):
        if self.PUSH_ENABLED and not self.PUSH_WEBHOOK_URL:
            raise ValueError('PUSH_ENABLED requires PUSH_WEBHOOK_URL')
        return self

    @staticmethod
    def _parse_str_list(value: Any) -> List[str]:
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        if value is None:
            return []
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return []
            if stripped.startswith('[') and stripped.endswith(']'):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in stripped.split(',') if item.strip()]
        return [str(value).strip()] if str(value).strip() else []

    def get_cors_origins(self) -> List[str]:
        origins = self._parse_str_list(self.CORS_ORIGINS)
        return origins or ["http://localhost:8000", "http://127.0.0.1:8000"]

    def get_interval_seconds(self) -> float:
        return float(self.TRACKING_INTERVAL_MINUTES) * 60.0

    def get_email_sender(self) -> str:
        return self.EMAIL_FROM or (self.EMAIL_USER or "")
    
# Global settings instance
settings = Settings()
