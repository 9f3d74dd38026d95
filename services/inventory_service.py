# services/inventory_service.py
"""
Inventory ledger.

Product stock is only consumed by ``debit_stock``; offers and carts call
``ensure_available`` which is a best-effort read and reserves nothing.
"""
import logging
from collections import OrderedDict
from typing import Iterable, List, Optional
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from database import PRODUCTS
from errors import CapacityError, NotFoundError
from models.products import ProductListing, ProductResponse
from utils import generate_product_id, get_current_datetime, to_decimal128

logger = logging.getLogger(__name__)


async def get_product(db, product_id: str) -> dict:
    product = await db[PRODUCTS].find_one({"_id": product_id})
    if not product:
        raise NotFoundError("Product", product_id)
    return product


async def find_products(db, product_ids: Iterable[str]) -> dict:
    """Map of product id to document for the ids that exist."""
    ids = list(set(product_ids))
    products = await db[PRODUCTS].find({"_id": {"$in": ids}}).to_list(length=None)
    return {p["_id"]: p for p in products}


def ensure_available(product: dict, quantity: int) -> None:
    """Soft availability check against the stock visible right now."""
    if quantity > product["quantity"]:
        raise CapacityError(
            product["_id"], quantity, product["quantity"],
            product_name=product.get("name")
        )


async def _merge_listing(db, hospital_id: str, listing: ProductListing) -> dict:
    now = get_current_datetime()
    natural_key = {
        "seller_id": hospital_id,
        "code": listing.code,
        "lot_number": listing.lot_number
    }
    # same code + lot: add to quantity, keep the original price
    merged = await db[PRODUCTS].find_one_and_update(
        natural_key,
        {
            "$inc": {"quantity": listing.quantity},
            "$set": {
                "name": listing.name,
                "manufacturer": listing.manufacturer,
                "expiry_date": listing.expiry_date,
                "description": listing.description,
                "unit": listing.unit.value,
                "updated_at": now
            }
        },
        return_document=ReturnDocument.AFTER
    )
    if merged:
        logger.info(
            f"Added {listing.quantity} to product {merged['_id']} "
            f"(code: {listing.code}, lot: {listing.lot_number}, new total: {merged['quantity']})"
        )
    return merged


async def add_products(db, hospital_id: str, listings: List[ProductListing]) -> List[ProductResponse]:
    """
    List products for a seller hospital.
    Same code + lot number: quantity is added to the existing product.
    Same code with a different lot number: a new product is created.
    """
    logger.info(f"Adding {len(listings)} products for hospital {hospital_id}")
    processed = []

    for listing in listings:
        product = await _merge_listing(db, hospital_id, listing)
        if product is None:
            product = {
                "_id": generate_product_id(),
                "seller_id": hospital_id,
                "name": listing.name,
                "manufacturer": listing.manufacturer,
                "code": listing.code,
                "lot_number": listing.lot_number,
                "expiry_date": listing.expiry_date,
                "description": listing.description,
                "price": to_decimal128(listing.price),
                "quantity": listing.quantity,
                "unit": listing.unit.value,
                "created_at": get_current_datetime(),
                "updated_at": None
            }
            try:
                await db[PRODUCTS].insert_one(product)
                logger.info(
                    f"Created product {product['_id']} "
                    f"(code: {listing.code}, lot: {listing.lot_number}, qty: {listing.quantity})"
                )
            except DuplicateKeyError:
                # a concurrent listing created the lot first
                product = await _merge_listing(db, hospital_id, listing)
        processed.append(ProductResponse.model_validate(product))

    return processed


async def list_products_for_hospital(db, hospital_id: str) -> List[ProductResponse]:
    products = await db[PRODUCTS].find({"seller_id": hospital_id}) \
        .sort("created_at", -1) \
        .to_list(length=None)
    return [ProductResponse.model_validate(p) for p in products]


async def list_marketplace_products(db, exclude_hospital_id: Optional[str] = None) -> List[ProductResponse]:
    query = {"quantity": {"$gt": 0}}
    if exclude_hospital_id:
        query["seller_id"] = {"$ne": exclude_hospital_id}
    products = await db[PRODUCTS].find(query) \
        .sort("expiry_date", 1) \
        .to_list(length=None)
    return [ProductResponse.model_validate(p) for p in products]


def quantities_by_product(items) -> "OrderedDict[str, int]":
    totals = OrderedDict()
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


async def restore_stock(db, quantities) -> None:
    for product_id, quantity in quantities.items():
        await db[PRODUCTS].update_one(
            {"_id": product_id},
            {"$inc": {"quantity": quantity}, "$set": {"updated_at": get_current_datetime()}}
        )


def _shortage(product_id: str, quantity: int, product: Optional[dict]) -> Exception:
    if product is None:
        return NotFoundError("Product", product_id)
    return CapacityError(product_id, quantity, product["quantity"], product_name=product.get("name"))


async def debit_stock(db, items, session=None) -> None:
    """
    Consume stock for every item, all or nothing.

    All products are read first and nothing is written when one of them is
    short. Each decrement is then conditional on the live quantity covering
    the request. Inside a transaction (``session``) a failed decrement aborts
    the whole unit; without one, the decrements already applied by this call
    are reversed before CapacityError is raised.
    """
    required = quantities_by_product(items)
    products = await db[PRODUCTS].find(
        {"_id": {"$in": list(required)}}, session=session
    ).to_list(length=None)
    stock = {p["_id"]: p for p in products}
    for product_id, quantity in required.items():
        product = stock.get(product_id)
        if product is None or product["quantity"] < quantity:
            raise _shortage(product_id, quantity, product)

    applied = OrderedDict()
    for product_id, quantity in required.items():
        result = await db[PRODUCTS].update_one(
            {"_id": product_id, "quantity": {"$gte": quantity}},
            {"$inc": {"quantity": -quantity}, "$set": {"updated_at": get_current_datetime()}},
            session=session
        )
        if result.modified_count == 1:
            applied[product_id] = quantity
            continue

        product = await db[PRODUCTS].find_one({"_id": product_id}, session=session)
        if applied and session is None:
            logger.warning(f"Reverting stock debit for {len(applied)} products after shortage on {product_id}")
            await restore_stock(db, applied)
        raise _shortage(product_id, quantity, product)

    for product_id, quantity in applied.items():
        logger.info(f"Reduced product {product_id} quantity by {quantity}")
