from datetime import datetime

import pytest

from pricewatch.services.price_history import AlertSettings, PriceSource, ProductInfo, TrackedItem

NOW = datetime(2026, 1, 15, 12, 0, 0)


class FrozenClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def make_item():
    def _make(item_id="item-1", price=100.0, sources=("shop-a",), user_id="user-1", **kwargs):
        alert_settings = kwargs.pop("alert_settings", AlertSettings())
        return TrackedItem(
            id=item_id,
            user_id=user_id,
            product=ProductInfo(name=kwargs.pop("name", "Noise Cancelling Headphones"), brand="Acme"),
            original_price=kwargs.pop("original_price", price),
            current_price=price,
            sources=tuple(
                PriceSource(name=name, domain=f"{name}.example.com", url=f"https://{name}.example.com/p/{item_id}")
                for name in sources
            ),
            alert_settings=alert_settings,
            **kwargs,
        )
    return _make
