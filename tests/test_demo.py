"""Tests for the demo services."""

import asyncio
import logging

import pytest

from embedkv.client import KeyValueClient
from embedkv.demo import Order, OrderPublisher, Product, ProductService


class TestProductService:
    """Tests for ProductService."""

    @pytest.mark.asyncio
    async def test_get_product_cache_aside(
        self, client: KeyValueClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        """The loader runs once; later lookups hit the cache."""
        service = ProductService(client.cache("products"))

        with caplog.at_level(logging.INFO, logger="embedkv.demo.products"):
            first = await service.get_product("001")
            second = await service.get_product("001")

        assert first == second == Product(id="001", name="Sample 001", price=100)
        assert service.loads == 1
        assert [r.getMessage() for r in caplog.records].count("get product") == 1

    @pytest.mark.asyncio
    async def test_custom_loader(self, client: KeyValueClient) -> None:
        """A loader can be injected."""

        async def load(id: str) -> Product:
            return Product(id=id, name="Mie Ayam Jakarta", price=20_000)

        service = ProductService(client.cache("products"), loader=load)
        product = await service.get_product("7")
        assert product.name == "Mie Ayam Jakarta"

    @pytest.mark.asyncio
    async def test_save_and_remove(self, client: KeyValueClient) -> None:
        """save fills the cache; remove evicts it."""
        service = ProductService(client.cache("products"))
        await service.save(Product(id="002", name="Bakso", price=15_000))

        assert (await service.get_product("002")).name == "Bakso"
        assert service.loads == 0

        assert await service.remove("002") is True
        assert (await service.get_product("002")).name == "Sample 002"
        assert service.loads == 1

    @pytest.mark.asyncio
    async def test_save_requires_id(self, client: KeyValueClient) -> None:
        """Products without an id cannot be cached."""
        service = ProductService(client.cache("products"))
        with pytest.raises(ValueError):
            await service.save(Product(name="Bakso", price=15_000))


class TestOrderPublisher:
    """Tests for OrderPublisher."""

    @pytest.mark.asyncio
    async def test_publish_once(self, client: KeyValueClient) -> None:
        """Each tick appends one order of amount 1000."""
        publisher = OrderPublisher(client)
        record_id = await publisher.publish_once()

        records = await client.streams.range("orders")
        assert [r.id for r in records] == [record_id]
        order = Order.from_fields(records[0].fields)
        assert order.amount == 1000
        assert len(order.id) == 36
        assert publisher.published == 1

    @pytest.mark.asyncio
    async def test_scheduled_publishing(self) -> None:
        """A started publisher keeps appending until stopped."""
        client = KeyValueClient()
        publisher = OrderPublisher(client, stream="orders", interval=0.01, max_length=100)
        publisher.start()
        assert publisher.running
        await asyncio.sleep(0.1)
        await publisher.stop()

        assert not publisher.running
        assert await client.streams.length("orders") == publisher.published
        assert publisher.published >= 3

    @pytest.mark.asyncio
    async def test_from_client_config(self, client: KeyValueClient) -> None:
        """Publisher settings come from the client config."""
        publisher = OrderPublisher.from_client(client)
        assert publisher.stream == "orders"
        assert publisher.max_length is None
