"""
Exception hierarchy for the price tracking core
"""


class PriceTrackingError(Exception):
    """Base class for price tracking failures"""


class InvalidPriceError(PriceTrackingError, ValueError):
    """Observed price is negative or not a number"""


class PriceFetchError(PriceTrackingError):
    """A single source failed to return a price"""

    def __init__(self, source_name: str, message: str):
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name


class NoObservationsError(PriceTrackingError):
    """No active source returned a price for an item"""


class ItemNotTrackableError(PriceTrackingError):
    """Item is missing, inactive, or not being tracked"""


class AlertNotFoundError(PriceTrackingError):
    pass


class RepositoryError(PriceTrackingError):
    """Persistence layer failed to read or write a record"""


class AlertStateError(PriceTrackingError):
    """Requested transition is not allowed from the alert's current status"""
