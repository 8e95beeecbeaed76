"""
Basic Usage Example

This example walks through the storefront flow end to end:
- Registering a user and charging points
- Creating products
- Placing, paying and cancelling an order
- Business rule failures and their rollback
- Many concurrent orders competing for limited stock

Run with: python examples/basic_usage.py
"""

import asyncio
import logging

from storefront import Storefront, StorefrontConfig
from storefront.exceptions import (
    InsufficientBalanceError,
    InsufficientStockError,
    InvalidStateError,
)


async def main() -> None:
    print("=" * 60)
    print("Storefront Basic Usage Example")
    print("=" * 60)

    # Swap backend="sqlite", database="shop.db" to persist to a file.
    config = StorefrontConfig(backend="memory", enable_tracing=False)

    async with Storefront.from_config(config) as shop:
        # =====================================================================
        # Step 1: Users and points
        # =====================================================================
        print("\n1. Registering a user and charging points")

        alice = await shop.users.create_user("Alice")
        alice = await shop.users.charge_point(alice.id, 10_000)
        print(f"   User {alice.id}: {alice.name}, balance {alice.balance}")

        # =====================================================================
        # Step 2: Products
        # =====================================================================
        print("\n2. Creating products")

        pen = await shop.products.create_product("Fountain pen", 1_500, 10)
        ink = await shop.products.create_product("Ink bottle", 400, 3)
        for product in (pen, ink):
            print(f"   {product.name}: price {product.price}, stock {product.stock}")

        # =====================================================================
        # Step 3: Place and pay an order
        # =====================================================================
        print("\n3. Placing an order for 2 pens and 1 ink")

        order = await shop.orders.create_order(alice.id, {pen.id: 2, ink.id: 1})
        print(f"   Order {order.id}: total {order.total_amount}, status {order.status.value}")
        print(f"   Balance now {(await shop.users.get_user(alice.id)).balance}")

        order = await shop.orders.pay_order(order.id)
        print(f"   Paid: status {order.status.value}")

        # =====================================================================
        # Step 4: Prices are frozen on the order
        # =====================================================================
        print("\n4. Raising the pen price")

        pen = await shop.products.update_price(pen.id, 2_000, expected_version=pen.version)
        stored = await shop.orders.get_order(order.id)
        print(f"   Pen now costs {pen.price} (revision {pen.version})")
        print(f"   Order {stored.id} still totals {stored.total_amount}")

        # =====================================================================
        # Step 5: Cancel and refund
        # =====================================================================
        print("\n5. Cancelling the order")

        order = await shop.orders.cancel_order(order.id)
        alice = await shop.users.get_user(alice.id)
        print(f"   Status {order.status.value}, balance restored to {alice.balance}")

        try:
            await shop.orders.cancel_order(order.id)
        except InvalidStateError as e:
            print(f"   Second cancel blocked: {e}")

        # =====================================================================
        # Step 6: Business rule failures roll back
        # =====================================================================
        print("\n6. Business rule validation")

        try:
            await shop.orders.create_order(alice.id, {ink.id: 5})
        except InsufficientStockError as e:
            print(f"   Order blocked: {e}")

        try:
            await shop.orders.create_order(alice.id, {pen.id: 6})
        except InsufficientBalanceError as e:
            print(f"   Order blocked: {e}")

        pen = await shop.products.get_product(pen.id)
        print(f"   Pen stock untouched: {pen.stock}")

        # =====================================================================
        # Step 7: Concurrent orders
        # =====================================================================
        print("\n7. Fifteen buyers race for three ink bottles")

        buyers = []
        for n in range(15):
            buyer = await shop.users.create_user(f"buyer-{n}")
            await shop.users.charge_point(buyer.id, 1_000)
            buyers.append(buyer.id)

        results = await asyncio.gather(
            *(shop.orders.create_order(buyer_id, {ink.id: 1}) for buyer_id in buyers),
            return_exceptions=True,
        )
        sold = sum(1 for r in results if not isinstance(r, BaseException))
        ink = await shop.products.get_product(ink.id)
        print(f"   Orders accepted: {sold}, rejected: {len(results) - sold}")
        print(f"   Ink stock left: {ink.stock}")

        # =====================================================================
        # Step 8: Point history
        # =====================================================================
        print("\n8. Alice's point history:")

        for entry in await shop.users.get_point_history(alice.id):
            print(
                f"   {entry.transaction_type.value:<6} {entry.signed_amount:>+7} "
                f"-> {entry.balance_after}"
            )

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    asyncio.run(main())
