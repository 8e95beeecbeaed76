"""
Unit tests for InMemoryDatabase specifics.

Tests for:
- Isolation of uncommitted writes
- Row locks held until the unit of work ends, then released
- Lock timeout handling
- Lifecycle (close, clear)
"""

from __future__ import annotations

import asyncio

import pytest

from storefront.domain.product import Product
from storefront.domain.user import User
from storefront.exceptions import LockTimeoutError, StoreError
from storefront.observability import MockTracer
from storefront.services import OrderOrchestrator
from storefront.stores import InMemoryDatabase


async def _seed_product(database: InMemoryDatabase, stock: int = 5) -> int:
    async with database.transaction() as uow:
        product = await uow.products.save(Product.create("pen", 100, stock))
    assert product.id is not None
    return product.id


class TestIsolation:
    @pytest.mark.asyncio
    async def test_uncommitted_writes_are_invisible(
        self, memory_database: InMemoryDatabase
    ) -> None:
        product_id = await _seed_product(memory_database)
        written = asyncio.Event()
        release = asyncio.Event()

        async def writer() -> None:
            async with memory_database.transaction() as uow:
                product = await uow.products.find_for_update(product_id)
                product.decrease_stock(5)
                await uow.products.save(product)
                written.set()
                await release.wait()

        task = asyncio.create_task(writer())
        await written.wait()

        async with memory_database.transaction() as uow:
            assert (await uow.products.find(product_id)).stock == 5

        release.set()
        await task

        async with memory_database.transaction() as uow:
            assert (await uow.products.find(product_id)).stock == 0

    @pytest.mark.asyncio
    async def test_writes_visible_inside_own_unit_of_work(
        self, memory_database: InMemoryDatabase
    ) -> None:
        product_id = await _seed_product(memory_database)

        async with memory_database.transaction() as uow:
            product = await uow.products.find_for_update(product_id)
            product.decrease_stock(2)
            await uow.products.save(product)

            assert (await uow.products.find(product_id)).stock == 3


class TestRowLocks:
    @pytest.mark.asyncio
    async def test_lock_held_until_end_then_released(
        self, memory_database: InMemoryDatabase
    ) -> None:
        product_id = await _seed_product(memory_database)
        key = memory_database.locks.row_key("products", product_id)

        async with memory_database.transaction() as uow:
            await uow.products.find_for_update(product_id)
            assert memory_database.locks.is_locked(key)

        assert not memory_database.locks.is_locked(key)

    @pytest.mark.asyncio
    async def test_locks_released_on_rollback(self, memory_database: InMemoryDatabase) -> None:
        product_id = await _seed_product(memory_database)
        key = memory_database.locks.row_key("products", product_id)

        with pytest.raises(RuntimeError):
            async with memory_database.transaction() as uow:
                await uow.products.find_for_update(product_id)
                raise RuntimeError("abort")

        assert not memory_database.locks.is_locked(key)

    @pytest.mark.asyncio
    async def test_waiter_observes_committed_stock(
        self, memory_database: InMemoryDatabase
    ) -> None:
        product_id = await _seed_product(memory_database, stock=1)
        locked = asyncio.Event()
        observed: list[int] = []

        async def first() -> None:
            async with memory_database.transaction() as uow:
                product = await uow.products.find_for_update(product_id)
                locked.set()
                await asyncio.sleep(0.01)
                product.decrease_stock(1)
                await uow.products.save(product)

        async def second() -> None:
            await locked.wait()
            async with memory_database.transaction() as uow:
                product = await uow.products.find_for_update(product_id)
                observed.append(product.stock)

        await asyncio.gather(first(), second())

        assert observed == [0]

    @pytest.mark.asyncio
    async def test_lock_timeout(self) -> None:
        database = InMemoryDatabase(lock_timeout=0.05, enable_tracing=False)
        product_id = await _seed_product(database)
        release = asyncio.Event()
        locked = asyncio.Event()

        async def holder() -> None:
            async with database.transaction() as uow:
                await uow.products.find_for_update(product_id)
                locked.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await locked.wait()

        with pytest.raises(LockTimeoutError) as exc_info:
            async with database.transaction() as uow:
                await uow.products.find_for_update(product_id)

        assert exc_info.value.resource == f"products:{product_id}"
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_lock_spans_recorded(self) -> None:
        tracer = MockTracer()
        database = InMemoryDatabase(tracer=tracer)
        product_id = await _seed_product(database)

        async with database.transaction() as uow:
            await uow.products.find_for_update(product_id)

        assert "storefront.lock.acquire" in tracer.span_names

    @pytest.mark.asyncio
    async def test_lock_table_empty_after_many_orders(
        self, memory_database: InMemoryDatabase
    ) -> None:
        """Every row lock is forgotten once its unit of work ends."""
        orders = OrderOrchestrator(memory_database, enable_tracing=False)
        async with memory_database.transaction() as uow:
            user = User.register("alice")
            user.charge(100_000)
            user = await uow.users.save(user)
        assert user.id is not None

        for _ in range(50):
            product_id = await _seed_product(memory_database, stock=1)
            await orders.create_order(user.id, {product_id: 1})

        assert memory_database.locks._locks == {}
        assert memory_database.locks._waiters == {}


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_closed_database_rejects_transactions(self) -> None:
        database = InMemoryDatabase(enable_tracing=False)
        await database.close()

        with pytest.raises(StoreError):
            async with database.transaction():
                pass

    @pytest.mark.asyncio
    async def test_context_manager_closes(self) -> None:
        async with InMemoryDatabase(enable_tracing=False) as database:
            await _seed_product(database)

        with pytest.raises(StoreError):
            async with database.transaction():
                pass

    @pytest.mark.asyncio
    async def test_clear(self, memory_database: InMemoryDatabase) -> None:
        await _seed_product(memory_database)
        memory_database.clear()

        async with memory_database.transaction() as uow:
            assert await uow.products.find_all() == []

    @pytest.mark.asyncio
    async def test_ids_not_reused_after_rollback(self, memory_database: InMemoryDatabase) -> None:
        with pytest.raises(RuntimeError):
            async with memory_database.transaction() as uow:
                await uow.products.save(Product.create("ghost", 1, 1))
                raise RuntimeError("abort")

        product_id = await _seed_product(memory_database)

        assert product_id == 2
