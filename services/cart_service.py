# services/cart_service.py
"""
Per-hospital shopping cart.

Items are embedded in the cart document and every mutation is an optimistic
read-modify-write guarded by the cart ``version``: the new item list is
written only if nobody else wrote since it was read, otherwise the mutation
is re-applied to the fresh state. SINGLE items merge by product; OFFER items
stay grouped by ``offer_id`` and never merge.
"""
import logging
from decimal import Decimal
from typing import Callable, List
from pymongo.errors import DuplicateKeyError
from database import CARTS
from errors import ConflictError, NotFoundError, ValidationError
from models.cart import ShopItemType, ShoppingCartResponse
from services.hospital_service import new_cart_document, require_owner
from services.inventory_service import ensure_available, get_product
from utils import generate_item_id, get_current_datetime, to_decimal, to_decimal128

logger = logging.getLogger(__name__)

MAX_CART_WRITE_ATTEMPTS = 5


async def get_or_create_cart(db, hospital_id: str, session=None) -> dict:
    cart = await db[CARTS].find_one({"hospital_id": hospital_id}, session=session)
    if cart:
        return cart

    logger.warning(f"Shopping cart not found for hospital {hospital_id}, creating new one")
    try:
        await db[CARTS].insert_one(new_cart_document(hospital_id), session=session)
    except DuplicateKeyError:
        pass  # created concurrently, read it below
    return await db[CARTS].find_one({"hospital_id": hospital_id}, session=session)


async def _mutate_cart(db, hospital_id: str, mutate: Callable[[List[dict]], List[dict]],
                       session=None) -> dict:
    """Apply ``mutate`` to the cart items with a version check; returns the new cart."""
    for attempt in range(1, MAX_CART_WRITE_ATTEMPTS + 1):
        cart = await get_or_create_cart(db, hospital_id, session=session)
        items = mutate([dict(item) for item in cart["items"]])
        now = get_current_datetime()

        result = await db[CARTS].update_one(
            {"_id": cart["_id"], "version": cart["version"]},
            {"$set": {"items": items, "updated_at": now}, "$inc": {"version": 1}},
            session=session
        )
        if result.modified_count == 1:
            cart.update({"items": items, "updated_at": now, "version": cart["version"] + 1})
            return cart

        logger.warning(f"Cart {cart['_id']} changed concurrently (attempt {attempt}), re-reading")

    raise ConflictError(
        f"Shopping cart for hospital {hospital_id} is being modified concurrently, try again",
        entity="ShoppingCart",
        entity_id=hospital_id
    )


def build_cart_response(cart: dict) -> ShoppingCartResponse:
    items = cart.get("items", [])
    total_items = sum(item["quantity"] for item in items)
    total_amount = sum(
        (to_decimal(item["price"]) * item["quantity"] for item in items),
        Decimal("0")
    )
    return ShoppingCartResponse.model_validate({
        **cart,
        "total_items": total_items,
        "total_amount": total_amount
    })


async def get_cart(db, hospital_id: str, user_id: str) -> ShoppingCartResponse:
    await require_owner(db, hospital_id, user_id)
    cart = await get_or_create_cart(db, hospital_id)
    return build_cart_response(cart)


async def add_single_item(db, hospital_id: str, product_id: str, quantity: int,
                          user_id: str) -> ShoppingCartResponse:
    """
    Add a direct purchase to the cart.
    An existing SINGLE item for the product gets the quantity added and its
    price refreshed to the current catalog price.
    """
    logger.info(f"Adding product {product_id} (qty: {quantity}) to cart for hospital {hospital_id} by user {user_id}")

    if quantity is None or quantity <= 0:
        raise ValidationError("Quantity must be greater than 0", entity="Product",
                              entity_id=product_id, field="quantity")

    await require_owner(db, hospital_id, user_id)
    product = await get_product(db, product_id)
    if product["seller_id"] == hospital_id:
        raise ValidationError("A hospital cannot buy its own products", entity="Product",
                              entity_id=product_id, field="product_id")
    ensure_available(product, quantity)

    def merge(items):
        for item in items:
            if item["product_id"] == product_id and item["type"] == ShopItemType.SINGLE.value:
                item["quantity"] += quantity
                item["price"] = product["price"]
                return items
        items.append({
            "item_id": generate_item_id(),
            "product_id": product_id,
            "seller_id": product["seller_id"],
            "product_name": product.get("name"),
            "quantity": quantity,
            "price": product["price"],
            "type": ShopItemType.SINGLE.value,
            "offer_id": None,
            "added_at": get_current_datetime()
        })
        return items

    cart = await _mutate_cart(db, hospital_id, merge)
    return build_cart_response(cart)


async def add_offer_group(db, hospital_id: str, offer_id: str, lines: List[dict], session=None) -> dict:
    """Append one OFFER item per accepted offer line. Adding the same offer twice is a no-op."""
    now = get_current_datetime()

    def append_group(items):
        if any(item.get("offer_id") == offer_id for item in items):
            logger.warning(f"Offer {offer_id} already present in cart of hospital {hospital_id}")
            return items
        for line in lines:
            items.append({
                "item_id": generate_item_id(),
                "product_id": line["product_id"],
                "seller_id": line["seller_id"],
                "product_name": line.get("product_name"),
                "quantity": line["quantity"],
                "price": to_decimal128(line["price"]),
                "type": ShopItemType.OFFER.value,
                "offer_id": offer_id,
                "added_at": now
            })
        return items

    cart = await _mutate_cart(db, hospital_id, append_group, session=session)
    logger.info(f"Added {len(lines)} OFFER items (offerId: {offer_id}) to cart of hospital {hospital_id}")
    return cart


async def remove_item(db, hospital_id: str, item_id: str, user_id: str) -> ShoppingCartResponse:
    """
    SINGLE: removes only the specified item.
    OFFER: removes every item of the same offer.
    """
    logger.info(f"Removing item {item_id} from cart for hospital {hospital_id} by user {user_id}")
    await require_owner(db, hospital_id, user_id)

    def remove(items):
        target = next((item for item in items if item["item_id"] == item_id), None)
        if target is None:
            raise NotFoundError("ShopItem", item_id)
        if target["type"] == ShopItemType.OFFER.value:
            offer_id = target["offer_id"]
            remaining = [item for item in items if item.get("offer_id") != offer_id]
            logger.info(f"Removing {len(items) - len(remaining)} OFFER items (offerId: {offer_id})")
            return remaining
        return [item for item in items if item["item_id"] != item_id]

    cart = await _mutate_cart(db, hospital_id, remove)
    return build_cart_response(cart)


async def checkout_items(db, cart: dict, session=None) -> None:
    """Empty the cart, only if it is still exactly the snapshot that was read."""
    result = await db[CARTS].update_one(
        {"_id": cart["_id"], "version": cart["version"]},
        {"$set": {"items": [], "updated_at": get_current_datetime()}, "$inc": {"version": 1}},
        session=session
    )
    if result.modified_count == 0:
        raise ConflictError(
            "Shopping cart changed while creating the order, review it and try again",
            entity="ShoppingCart",
            entity_id=cart["_id"]
        )


async def restore_items(db, cart: dict) -> None:
    """Put back items taken by ``checkout_items`` when the order could not be stored."""
    def put_back(items):
        return [dict(item) for item in cart["items"]] + items

    logger.warning(f"Restoring {len(cart['items'])} items to cart {cart['_id']}")
    await _mutate_cart(db, cart["hospital_id"], put_back)
