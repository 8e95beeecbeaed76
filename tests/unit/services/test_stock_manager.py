"""
Unit tests for StockManager and ProductService.

Tests for:
- Decrement/increment under the row lock, with validation
- No partial decrement on insufficient stock
- Catalog operations and the revision-checked price update
"""

from __future__ import annotations

import asyncio

import pytest

from storefront import Product, ProductService, StockManager
from storefront.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from storefront.observability import ATTR_PRODUCT_ID, ATTR_QUANTITY, MockTracer
from storefront.stores import Database


@pytest.fixture
def stock() -> StockManager:
    return StockManager(enable_tracing=False)


class TestDecrease:
    @pytest.mark.asyncio
    async def test_decrease_returns_updated_product(
        self, database: Database, stock: StockManager, product: Product
    ) -> None:
        assert product.id is not None

        async with database.transaction() as uow:
            updated = await stock.decrease(uow, product.id, 4)

        assert updated.stock == 6
        assert updated.price == product.price

    @pytest.mark.asyncio
    async def test_decrease_persists(
        self,
        database: Database,
        stock: StockManager,
        products: ProductService,
        product: Product,
    ) -> None:
        assert product.id is not None

        async with database.transaction() as uow:
            await stock.decrease(uow, product.id, 10)

        assert (await products.get_product(product.id)).stock == 0

    @pytest.mark.asyncio
    async def test_insufficient_stock(
        self,
        database: Database,
        stock: StockManager,
        products: ProductService,
        product: Product,
    ) -> None:
        assert product.id is not None

        with pytest.raises(InsufficientStockError) as exc_info:
            async with database.transaction() as uow:
                await stock.decrease(uow, product.id, 11)

        assert exc_info.value.requested == 11
        assert exc_info.value.available == 10
        assert (await products.get_product(product.id)).stock == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_invalid_quantity(
        self, database: Database, stock: StockManager, product: Product, quantity: int
    ) -> None:
        assert product.id is not None

        async with database.transaction() as uow:
            with pytest.raises(ValidationError):
                await stock.decrease(uow, product.id, quantity)
            with pytest.raises(ValidationError):
                await stock.increase(uow, product.id, quantity)

    @pytest.mark.asyncio
    async def test_unknown_product(self, database: Database, stock: StockManager) -> None:
        async with database.transaction() as uow:
            with pytest.raises(NotFoundError):
                await stock.decrease(uow, 404, 1)

    @pytest.mark.asyncio
    async def test_decrease_does_not_touch_revision(
        self,
        database: Database,
        stock: StockManager,
        products: ProductService,
        product: Product,
    ) -> None:
        assert product.id is not None

        async with database.transaction() as uow:
            await stock.decrease(uow, product.id, 1)

        assert (await products.get_product(product.id)).version == 1

    @pytest.mark.asyncio
    async def test_spans(self, database: Database, product: Product) -> None:
        assert product.id is not None
        tracer = MockTracer()
        stock = StockManager(tracer=tracer)

        async with database.transaction() as uow:
            await stock.decrease(uow, product.id, 2)
            await stock.increase(uow, product.id, 1)

        assert tracer.span_names == ["storefront.stock.decrease", "storefront.stock.increase"]
        _, attributes = tracer.spans[0]
        assert attributes == {ATTR_PRODUCT_ID: product.id, ATTR_QUANTITY: 2}


class TestIncrease:
    @pytest.mark.asyncio
    async def test_increase(
        self,
        database: Database,
        stock: StockManager,
        products: ProductService,
        product: Product,
    ) -> None:
        assert product.id is not None

        async with database.transaction() as uow:
            await stock.increase(uow, product.id, 5)

        assert (await products.get_product(product.id)).stock == 15

    @pytest.mark.asyncio
    async def test_increase_is_undone_on_abort(
        self,
        database: Database,
        stock: StockManager,
        products: ProductService,
        product: Product,
    ) -> None:
        assert product.id is not None

        with pytest.raises(RuntimeError):
            async with database.transaction() as uow:
                await stock.increase(uow, product.id, 5)
                raise RuntimeError("abort")

        assert (await products.get_product(product.id)).stock == 10


class TestConcurrentDecrease:
    @pytest.mark.asyncio
    async def test_exactly_stock_units_are_sold(
        self,
        database: Database,
        stock: StockManager,
        products: ProductService,
        product: Product,
    ) -> None:
        assert product.id is not None
        product_id = product.id

        async def buy() -> None:
            async with database.transaction() as uow:
                await stock.decrease(uow, product_id, 1)

        results = await asyncio.gather(*(buy() for _ in range(15)), return_exceptions=True)

        failures = [r for r in results if r is not None]
        assert len(failures) == 5
        assert all(isinstance(f, InsufficientStockError) for f in failures)
        assert (await products.get_product(product_id)).stock == 0


class TestProductService:
    @pytest.mark.asyncio
    async def test_create_and_get(self, products: ProductService) -> None:
        created = await products.create_product("notebook", 500, 3)

        assert created.id is not None
        fetched = await products.get_product(created.id)
        assert (fetched.name, fetched.price, fetched.stock, fetched.version) == (
            "notebook",
            500,
            3,
            1,
        )

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_input(self, products: ProductService) -> None:
        with pytest.raises(ValidationError):
            await products.create_product("pen", -1, 1)

        assert await products.get_all_products() == []

    @pytest.mark.asyncio
    async def test_get_all_products(self, products: ProductService) -> None:
        first = await products.create_product("a", 1, 1)
        second = await products.create_product("b", 2, 2)

        assert [p.id for p in await products.get_all_products()] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_get_unknown_product(self, products: ProductService) -> None:
        with pytest.raises(NotFoundError):
            await products.get_product(404)


class TestUpdatePrice:
    @pytest.mark.asyncio
    async def test_update_price_bumps_version(
        self, products: ProductService, product: Product
    ) -> None:
        assert product.id is not None

        updated = await products.update_price(product.id, 1_200)

        assert updated.price == 1_200
        assert updated.version == 2
        assert updated.stock == 10

    @pytest.mark.asyncio
    async def test_matching_expected_version(
        self, products: ProductService, product: Product
    ) -> None:
        assert product.id is not None

        updated = await products.update_price(product.id, 900, expected_version=1)

        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_stale_expected_version(self, products: ProductService, product: Product) -> None:
        assert product.id is not None
        await products.update_price(product.id, 1_100)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await products.update_price(product.id, 900, expected_version=1)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        current = await products.get_product(product.id)
        assert current.price == 1_100
        assert current.version == 2

    @pytest.mark.asyncio
    async def test_negative_price(self, products: ProductService, product: Product) -> None:
        assert product.id is not None

        with pytest.raises(ValidationError):
            await products.update_price(product.id, -5)

    @pytest.mark.asyncio
    async def test_unknown_product(self, products: ProductService) -> None:
        with pytest.raises(NotFoundError):
            await products.update_price(404, 100)

    @pytest.mark.asyncio
    async def test_concurrent_updates_with_same_base_version(
        self, products: ProductService, product: Product
    ) -> None:
        """Of two writers based on the same revision, exactly one wins."""
        assert product.id is not None

        results = await asyncio.gather(
            products.update_price(product.id, 1_100, expected_version=1),
            products.update_price(product.id, 1_200, expected_version=1),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], ConcurrentModificationError)
        assert (await products.get_product(product.id)).version == 2

    @pytest.mark.asyncio
    async def test_queued_updates_without_version_all_apply(
        self, database: Database, products: ProductService, product: Product
    ) -> None:
        """Re-prices that wait on the same row lock apply in turn without conflict."""
        assert product.id is not None
        product_id = product.id
        locked = asyncio.Event()
        release = asyncio.Event()

        async def hold_row() -> None:
            async with database.transaction() as uow:
                await uow.products.find_for_update(product_id)
                locked.set()
                await release.wait()

        holder = asyncio.create_task(hold_row())
        await locked.wait()
        updates = asyncio.gather(
            products.update_price(product_id, 200),
            products.update_price(product_id, 300),
        )
        await asyncio.sleep(0.05)
        release.set()

        results = await updates
        await holder

        assert sorted(p.version for p in results) == [2, 3]
        last = max(results, key=lambda p: p.version)
        current = await products.get_product(product_id)
        assert current.version == 3
        assert current.price == last.price
        assert current.stock == 10
