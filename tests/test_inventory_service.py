"""Tests for product listing and all-or-nothing stock debits."""

import asyncio
from decimal import Decimal

import pytest

from conftest import make_listing
from errors import CapacityError, NotFoundError
from services import inventory_service


class TestAddProducts:
    async def test_same_code_and_lot_adds_quantity(self, db, market):
        [merged] = await inventory_service.add_products(
            db, market.seller_id, [make_listing(quantity=5, price=Decimal("9.99"))]
        )
        assert merged.id == market.product_id
        assert merged.quantity == 15
        assert merged.price == Decimal("5.00")

    async def test_new_lot_creates_separate_product(self, db, market):
        [product] = await inventory_service.add_products(
            db, market.seller_id, [make_listing(lot_number="LOT-2", quantity=3)]
        )
        assert product.id != market.product_id
        assert product.quantity == 3

        products = await inventory_service.list_products_for_hospital(db, market.seller_id)
        assert len(products) == 2


class TestMarketplaceListing:
    async def test_excludes_own_and_out_of_stock(self, db, market):
        await inventory_service.add_products(db, market.buyer_id, [make_listing(code="MASK-1")])
        await inventory_service.debit_stock(db, [{"product_id": market.product_id, "quantity": 10}])

        visible = await inventory_service.list_marketplace_products(db, exclude_hospital_id=market.seller_id)
        assert [p.seller_id for p in visible] == [market.buyer_id]

        visible = await inventory_service.list_marketplace_products(db, exclude_hospital_id=market.buyer_id)
        assert visible == []


class TestDebitStock:
    async def test_debits_every_item(self, db, market):
        await inventory_service.debit_stock(db, [{"product_id": market.product_id, "quantity": 4}])
        product = await inventory_service.get_product(db, market.product_id)
        assert product["quantity"] == 6

    async def test_quantities_of_same_product_are_summed(self, db, market):
        items = [
            {"product_id": market.product_id, "quantity": 6},
            {"product_id": market.product_id, "quantity": 6},
        ]
        with pytest.raises(CapacityError) as exc_info:
            await inventory_service.debit_stock(db, items)
        assert exc_info.value.requested == 12
        assert exc_info.value.available == 10

    async def test_shortage_reverts_earlier_debits(self, db, market):
        [scarce] = await inventory_service.add_products(
            db, market.seller_id, [make_listing(code="SYR-5", quantity=1)]
        )
        items = [
            {"product_id": market.product_id, "quantity": 3},
            {"product_id": scarce.id, "quantity": 2},
        ]
        with pytest.raises(CapacityError):
            await inventory_service.debit_stock(db, items)

        assert (await inventory_service.get_product(db, market.product_id))["quantity"] == 10
        assert (await inventory_service.get_product(db, scarce.id))["quantity"] == 1

    async def test_unknown_product(self, db, market):
        items = [
            {"product_id": market.product_id, "quantity": 1},
            {"product_id": "PROD-MISSING", "quantity": 1},
        ]
        with pytest.raises(NotFoundError):
            await inventory_service.debit_stock(db, items)
        assert (await inventory_service.get_product(db, market.product_id))["quantity"] == 10


class TestConcurrentDebits:
    async def test_short_order_does_not_fail_a_concurrent_one(self, db, interleaving_db, market):
        [syringes] = await inventory_service.add_products(
            db, market.seller_id, [make_listing(code="SYR-5", quantity=1)]
        )
        short = [
            {"product_id": market.product_id, "quantity": 10},
            {"product_id": syringes.id, "quantity": 2},
        ]
        full = [{"product_id": market.product_id, "quantity": 10}]

        short_result, full_result = await asyncio.gather(
            inventory_service.debit_stock(interleaving_db, short),
            inventory_service.debit_stock(interleaving_db, full),
            return_exceptions=True,
        )

        assert isinstance(short_result, CapacityError)
        assert short_result.entity_id == syringes.id
        assert full_result is None
        assert (await inventory_service.get_product(db, market.product_id))["quantity"] == 0
        assert (await inventory_service.get_product(db, syringes.id))["quantity"] == 1

    async def test_only_one_of_two_full_debits_wins(self, db, interleaving_db, market):
        items = [{"product_id": market.product_id, "quantity": 7}]

        results = await asyncio.gather(
            inventory_service.debit_stock(interleaving_db, items),
            inventory_service.debit_stock(interleaving_db, items),
            return_exceptions=True,
        )

        assert results.count(None) == 1
        assert sum(isinstance(r, CapacityError) for r in results) == 1
        assert (await inventory_service.get_product(db, market.product_id))["quantity"] == 3
