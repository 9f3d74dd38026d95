"""Tests for the per-hospital shopping cart."""

import asyncio
from decimal import Decimal

import pytest
from bson.decimal128 import Decimal128

from conftest import BUYER_OWNER, SELLER_OWNER, ContendedDatabase, make_listing
from database import CARTS, PRODUCTS
from errors import AuthorizationError, CapacityError, ConflictError, NotFoundError, ValidationError
from models.cart import ShopItemType
from services import cart_service, inventory_service


def offer_lines(product_id, seller_id, quantity=2, price="4.00"):
    return [{
        "product_id": product_id,
        "seller_id": seller_id,
        "product_name": "Surgical Gloves",
        "quantity": quantity,
        "price": Decimal(price),
    }]


class TestSingleItems:
    async def test_same_product_merges(self, db, market):
        await cart_service.add_single_item(db, market.buyer_id, market.product_id, 2, BUYER_OWNER)
        cart = await cart_service.add_single_item(db, market.buyer_id, market.product_id, 3, BUYER_OWNER)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5
        assert cart.items[0].type == ShopItemType.SINGLE
        assert cart.total_items == 5
        assert cart.total_amount == Decimal("25.00")

    async def test_merge_refreshes_price(self, db, market):
        await cart_service.add_single_item(db, market.buyer_id, market.product_id, 1, BUYER_OWNER)
        await db[PRODUCTS].update_one({"_id": market.product_id}, {"$set": {"price": Decimal128("6.00")}})

        cart = await cart_service.add_single_item(db, market.buyer_id, market.product_id, 1, BUYER_OWNER)
        assert cart.items[0].price == Decimal("6.00")
        assert cart.total_amount == Decimal("12.00")

    async def test_rejects_non_positive_quantity(self, db, market):
        with pytest.raises(ValidationError):
            await cart_service.add_single_item(db, market.buyer_id, market.product_id, 0, BUYER_OWNER)

    async def test_rejects_quantity_above_stock(self, db, market):
        with pytest.raises(CapacityError):
            await cart_service.add_single_item(db, market.buyer_id, market.product_id, 11, BUYER_OWNER)

    async def test_cannot_buy_own_product(self, db, market):
        with pytest.raises(ValidationError):
            await cart_service.add_single_item(db, market.seller_id, market.product_id, 1, SELLER_OWNER)

    async def test_only_owner_edits_cart(self, db, market):
        with pytest.raises(AuthorizationError):
            await cart_service.add_single_item(db, market.buyer_id, market.product_id, 1, SELLER_OWNER)
        with pytest.raises(AuthorizationError):
            await cart_service.get_cart(db, market.buyer_id, SELLER_OWNER)

    async def test_unknown_product(self, db, market):
        with pytest.raises(NotFoundError):
            await cart_service.add_single_item(db, market.buyer_id, "PROD-MISSING", 1, BUYER_OWNER)


class TestOfferGroups:
    async def test_offer_items_never_merge_with_single(self, db, market):
        await cart_service.add_single_item(db, market.buyer_id, market.product_id, 2, BUYER_OWNER)
        await cart_service.add_offer_group(
            db, market.buyer_id, "OFFER-1", offer_lines(market.product_id, market.seller_id)
        )

        cart = await cart_service.get_cart(db, market.buyer_id, BUYER_OWNER)
        assert sorted(item.type.value for item in cart.items) == ["OFFER", "SINGLE"]
        assert cart.total_amount == Decimal("18.00")

    async def test_adding_same_offer_twice_is_a_no_op(self, db, market):
        lines = offer_lines(market.product_id, market.seller_id)
        await cart_service.add_offer_group(db, market.buyer_id, "OFFER-1", lines)
        await cart_service.add_offer_group(db, market.buyer_id, "OFFER-1", lines)

        cart = await cart_service.get_cart(db, market.buyer_id, BUYER_OWNER)
        assert len(cart.items) == 1


class TestRemoveItem:
    async def test_removing_offer_item_removes_its_group(self, db, market):
        [other] = await inventory_service.add_products(db, market.seller_id, [make_listing(code="SYR-5")])
        lines = offer_lines(market.product_id, market.seller_id) + offer_lines(other.id, market.seller_id)
        await cart_service.add_offer_group(db, market.buyer_id, "OFFER-1", lines)
        cart = await cart_service.add_single_item(db, market.buyer_id, market.product_id, 1, BUYER_OWNER)
        assert len(cart.items) == 3

        offer_item = next(item for item in cart.items if item.type == ShopItemType.OFFER)
        cart = await cart_service.remove_item(db, market.buyer_id, offer_item.item_id, BUYER_OWNER)
        assert [item.type for item in cart.items] == [ShopItemType.SINGLE]

    async def test_removing_single_item_keeps_others(self, db, market):
        await cart_service.add_offer_group(
            db, market.buyer_id, "OFFER-1", offer_lines(market.product_id, market.seller_id)
        )
        cart = await cart_service.add_single_item(db, market.buyer_id, market.product_id, 1, BUYER_OWNER)
        single = next(item for item in cart.items if item.type == ShopItemType.SINGLE)

        cart = await cart_service.remove_item(db, market.buyer_id, single.item_id, BUYER_OWNER)
        assert [item.offer_id for item in cart.items] == ["OFFER-1"]

    async def test_unknown_item(self, db, market):
        with pytest.raises(NotFoundError):
            await cart_service.remove_item(db, market.buyer_id, "ITEM-MISSING", BUYER_OWNER)


class TestCheckout:
    async def test_stale_snapshot_is_rejected(self, db, market):
        await cart_service.add_single_item(db, market.buyer_id, market.product_id, 1, BUYER_OWNER)
        snapshot = await db[CARTS].find_one({"hospital_id": market.buyer_id})
        await cart_service.add_single_item(db, market.buyer_id, market.product_id, 1, BUYER_OWNER)

        with pytest.raises(ConflictError):
            await cart_service.checkout_items(db, snapshot)
        cart = await cart_service.get_cart(db, market.buyer_id, BUYER_OWNER)
        assert cart.total_items == 2

    async def test_restore_puts_items_back(self, db, market):
        await cart_service.add_single_item(db, market.buyer_id, market.product_id, 2, BUYER_OWNER)
        snapshot = await db[CARTS].find_one({"hospital_id": market.buyer_id})

        await cart_service.checkout_items(db, snapshot)
        assert (await cart_service.get_cart(db, market.buyer_id, BUYER_OWNER)).items == []

        await cart_service.restore_items(db, snapshot)
        assert (await cart_service.get_cart(db, market.buyer_id, BUYER_OWNER)).total_items == 2


class TestConcurrentWrites:
    async def test_concurrent_adds_all_land(self, db, interleaving_db, market):
        before = await db[CARTS].find_one({"hospital_id": market.buyer_id})

        await asyncio.gather(*(
            cart_service.add_single_item(interleaving_db, market.buyer_id, market.product_id, 2, BUYER_OWNER)
            for _ in range(3)
        ))

        cart = await cart_service.get_cart(db, market.buyer_id, BUYER_OWNER)
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 6
        after = await db[CARTS].find_one({"hospital_id": market.buyer_id})
        assert after["version"] == before["version"] + 3

    async def test_offer_group_and_single_item_interleave(self, db, interleaving_db, market):
        await asyncio.gather(
            cart_service.add_single_item(interleaving_db, market.buyer_id, market.product_id, 1, BUYER_OWNER),
            cart_service.add_offer_group(
                interleaving_db, market.buyer_id, "OFFER-1", offer_lines(market.product_id, market.seller_id)
            ),
        )

        cart = await cart_service.get_cart(db, market.buyer_id, BUYER_OWNER)
        assert sorted(item.type.value for item in cart.items) == ["OFFER", "SINGLE"]

    async def test_gives_up_after_repeated_conflicts(self, db, market):
        contended = ContendedDatabase(db, {CARTS: "version"})

        with pytest.raises(ConflictError):
            await cart_service.add_single_item(contended, market.buyer_id, market.product_id, 1, BUYER_OWNER)

        cart = await db[CARTS].find_one({"hospital_id": market.buyer_id})
        assert cart["items"] == []
        assert cart["version"] == cart_service.MAX_CART_WRITE_ATTEMPTS
