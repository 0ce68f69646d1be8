"""
ORM models
"""
from pricewatch.models.tracked_item import TrackedItemModel, ItemSourceModel, PriceHistoryModel
from pricewatch.models.alert import PriceAlertModel
from pricewatch.models.user_preference import UserPreferenceModel

__all__ = [
    "TrackedItemModel",
    "ItemSourceModel",
    "PriceHistoryModel",
    "PriceAlertModel",
    "UserPreferenceModel",
]
