import pytest

from pricewatch.services.errors import PriceFetchError
from pricewatch.services.price_fetcher import (
    HttpPriceFetcher,
    StaticPriceFetcher,
    extract_availability,
    extract_price,
)
from pricewatch.services.price_history import PriceSource


@pytest.mark.parametrize(
    "body,expected",
    [
        ('{"sku": "A1", "price": "129.99"}', 129.99),
        ('{"salePrice": 1249.5}', 1249.5),
        ('{"name": "x", "offers": [{"price": "19.00"}]}', 19.0),
        ('<script>window.__STATE__ = {"currentPrice": "1,299.00"};</script>', 1299.0),
        ('<meta property="product:price:amount" content="54.25">', 54.25),
        ('<span itemprop="price" content="8.99">$8.99</span>', 8.99),
        ('<div class="price">Now only $ 2,499.95!</div>', 2499.95),
        ("<html>Sold out</html>", None),
        ("", None),
    ],
)
def test_extract_price(body, expected):
    assert extract_price(body) == expected


def test_extract_availability():
    assert extract_availability('"availability": "https://schema.org/InStock"') == "in_stock"
    assert extract_availability('"availability": "https://schema.org/OutOfStock"') == "out_of_stock"
    assert extract_availability("<html></html>") == "unknown"


@pytest.mark.asyncio
async def test_http_fetcher_raises_when_page_has_no_price(monkeypatch, make_item):
    fetcher = HttpPriceFetcher(timeout_seconds=1, max_retries=0, max_concurrency=1)

    async def fake_get_text(source):
        return "<html>Currently unavailable</html>"

    monkeypatch.setattr(fetcher, "_get_text", fake_get_text)
    item = make_item()

    with pytest.raises(PriceFetchError) as exc:
        await fetcher.fetch_price(item, item.sources[0])
    assert exc.value.source_name == "shop-a"
    assert fetcher.get_metrics()["errors"] == 1


@pytest.mark.asyncio
async def test_http_fetcher_builds_observation(monkeypatch, make_item):
    fetcher = HttpPriceFetcher(timeout_seconds=1, max_retries=0, max_concurrency=1)

    async def fake_get_text(source):
        return '{"price": 42.499, "availability": "InStock"}'

    monkeypatch.setattr(fetcher, "_get_text", fake_get_text)
    item = make_item()

    observation = await fetcher.fetch_price(item, item.sources[0])

    assert observation.price == 42.5
    assert observation.availability == "in_stock"
    assert observation.domain == "shop-a.example.com"


@pytest.mark.asyncio
async def test_static_fetcher(make_item):
    item = make_item()
    fetcher = StaticPriceFetcher()
    fetcher.set_price("item-1", "shop-a", 10.0)

    observation = await fetcher.fetch_price(item, item.sources[0])
    assert observation.price == 10.0

    with pytest.raises(PriceFetchError):
        await fetcher.fetch_price(item, PriceSource(name="shop-b", domain="shop-b.example.com", url=""))
