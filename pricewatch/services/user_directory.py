"""
Read-only view of user contact details and notification preferences
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pricewatch.core.database import SessionLocal
from pricewatch.models.user_preference import UserPreferenceModel
from pricewatch.services.errors import RepositoryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationPreferences:
    email_enabled: bool = False
    push_enabled: bool = False


@dataclass(frozen=True)
class UserContact:
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


class UserDirectory(ABC):
    @abstractmethod
    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Channel switches for a user; unknown users get everything disabled"""

    @abstractmethod
    async def get_contact(self, user_id: str) -> UserContact:
        pass


class InMemoryUserDirectory(UserDirectory):
    def __init__(self):
        self._preferences: Dict[str, NotificationPreferences] = {}
        self._contacts: Dict[str, UserContact] = {}

    def add_user(self, user_id: str, email: Optional[str] = None, display_name: Optional[str] = None,
                 email_enabled: bool = True, push_enabled: bool = True):
        self._contacts[user_id] = UserContact(user_id=user_id, email=email, display_name=display_name)
        self._preferences[user_id] = NotificationPreferences(email_enabled=email_enabled, push_enabled=push_enabled)

    async def get_preferences(self, user_id):
        return self._preferences.get(user_id, NotificationPreferences())

    async def get_contact(self, user_id):
        return self._contacts.get(user_id, UserContact(user_id=user_id))


class SqlAlchemyUserDirectory(UserDirectory):
    """Reads the user_preferences table"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _load(self, user_id: str) -> Optional[UserPreferenceModel]:
        db = self.session_factory()
        try:
            row = db.get(UserPreferenceModel, user_id)
            if row is not None:
                db.expunge(row)
            return row
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load preferences for {user_id}: {e}") from e
        finally:
            db.close()

    async def get_preferences(self, user_id):
        row = self._load(user_id)
        if row is None:
            logger.debug(f"No notification preferences stored for user {user_id}")
            return NotificationPreferences()
        return NotificationPreferences(
            email_enabled=bool(row.email_enabled),
            push_enabled=bool(row.push_enabled),
        )

    async def get_contact(self, user_id):
        row = self._load(user_id)
        if row is None:
            return UserContact(user_id=user_id)
        return UserContact(user_id=user_id, email=row.email, display_name=row.display_name)
